"""Service modules - Business logic layer"""
from .workflow_service import WorkflowService
from .client_progress_service import ClientProgressService

__all__ = [
    "WorkflowService",
    "ClientProgressService",
]
