"""Repository modules - Data access layer"""
from .workflow_repo import WorkflowDefinitionRepository
from .client_state_repo import ClientStateRepository
from .legacy_source import LegacyClientSource, YamlLegacyClientSource, InMemoryLegacyClientSource

__all__ = [
    "WorkflowDefinitionRepository",
    "ClientStateRepository",
    "LegacyClientSource",
    "YamlLegacyClientSource",
    "InMemoryLegacyClientSource",
]
