"""
Pytest Configuration and Fixtures

This file contains shared fixtures and configuration for all tests.
"""
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

from clientflow.config.settings import get_settings
from clientflow.domain.models import WorkflowDefinition, RuntimeMachine
from clientflow.engine.loader import DefinitionLoader
from clientflow.engine.compiler import WorkflowCompiler
from clientflow.repositories.client_state_repo import ClientStateRepository
from clientflow.repositories.legacy_source import InMemoryLegacyClientSource


DATA_DIR = Path(__file__).resolve().parent.parent / "data"

ONBOARDING_YAML = """
id: test_onboarding
name: Test Onboarding
stages:
  - id: contact
    name: Contact Details
  - id: verification
    name: Verification
  - id: finalization
    name: Finalization
steps:
  - id: start
    stage: contact
    task_ref: contact_info/base
    required_fields: [email]
    next: verify
  - id: verify
    stage: verification
    task_ref: risk/assessment
    next:
      conditions:
        - field: risk
          op: ">="
          value: high
          target: review
      default: finalize
  - id: review
    stage: verification
    task_ref: review/manual
    next: finalize
  - id: finalize
    stage: finalization
    task_ref: review/summary
    next: END
"""

LEGACY_CLIENTS: List[Dict[str, Any]] = [
    {"id": "corp-001", "name": "Acme Corp", "type": "corporate", "risk": "low", "jurisdiction": "US"},
    {"id": "corp-002", "name": "GreenTech Industries", "type": "corporate", "risk": "medium", "jurisdiction": "UK"},
    {"id": "corp-003", "name": "TechStart Ventures", "type": "corporate", "risk": "high", "jurisdiction": "SG"},
    {"id": "ind-001", "name": "John Smith", "type": "individual", "risk": "low", "jurisdiction": "US"},
    {"id": "ind-002", "name": "Sarah Johnson", "type": "individual", "risk": "low", "jurisdiction": "CA"},
]

LEGACY_WORKFLOWS = {
    "corporate": "corporate_onboarding_v1",
    "individual": "individual_onboarding_v1",
}


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that patch the environment need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def data_dir() -> Path:
    """The sample data shipped with the backend."""
    return DATA_DIR


@pytest.fixture
def loader() -> DefinitionLoader:
    return DefinitionLoader()


@pytest.fixture
def compiler() -> WorkflowCompiler:
    return WorkflowCompiler()


@pytest.fixture
def onboarding_definition(loader) -> WorkflowDefinition:
    return loader.load(ONBOARDING_YAML, source_name="test_onboarding.yaml")


@pytest.fixture
def machine(compiler, onboarding_definition) -> RuntimeMachine:
    """start(email) -> verify -(risk >= high)-> review -> finalize -> END"""
    return compiler.compile_definition(onboarding_definition)


@pytest.fixture
def build_definition(loader) -> Callable[..., WorkflowDefinition]:
    """Build a definition from a list of (step_id, next) pairs or full step dicts."""

    def _build(
        workflow_id: str = "wf",
        steps: Optional[List[Any]] = None,
        applies_to: Optional[Dict[str, Any]] = None,
        stages: Optional[List[Dict[str, Any]]] = None,
    ) -> WorkflowDefinition:
        raw_steps = []
        for step in steps or [("only", "END")]:
            if isinstance(step, dict):
                raw_steps.append(step)
            else:
                step_id, next_target = step
                raw_steps.append({"id": step_id, "next": next_target})

        raw: Dict[str, Any] = {"id": workflow_id, "name": workflow_id.title(), "steps": raw_steps}
        if applies_to is not None:
            raw["applies_to"] = applies_to
        if stages is not None:
            raw["stages"] = stages
        return loader.load_data(raw, source_name=workflow_id)

    return _build


@pytest.fixture
def legacy_records() -> List[Dict[str, Any]]:
    return [dict(record) for record in LEGACY_CLIENTS]


@pytest.fixture
def legacy_source(legacy_records) -> InMemoryLegacyClientSource:
    return InMemoryLegacyClientSource(
        legacy_records,
        workflow_by_client_type=LEGACY_WORKFLOWS,
        default_workflow_id="individual_onboarding_v1",
        initial_step_id="start",
    )


@pytest.fixture
def state_repo(tmp_path) -> ClientStateRepository:
    return ClientStateRepository(tmp_path / "client_state")


@pytest.fixture
def migrating_repo(tmp_path, legacy_source) -> ClientStateRepository:
    return ClientStateRepository(tmp_path / "client_state", legacy_source=legacy_source)


@pytest.fixture
def workflows_dir(tmp_path) -> Path:
    """Workflows directory holding only the test onboarding definition."""
    path = tmp_path / "workflows"
    path.mkdir()
    (path / "onboarding.yaml").write_text(ONBOARDING_YAML, encoding="utf-8")
    return path
