"""Tests for machine resolution and definition validation."""
import pytest

from clientflow.domain.models import ClientProfile
from clientflow.domain.errors import NotFoundError, SelectionError
from clientflow.engine.compiler import WorkflowCompiler
from clientflow.repositories.workflow_repo import WorkflowDefinitionRepository
from clientflow.services.workflow_service import WorkflowService


CORPORATE_US_YAML = """
id: corporate_us
name: Corporate US
applies_to:
  client_type: corporate
  jurisdictions: [US]
steps:
  - id: intake
    task_ref: contact/base
    next: END
"""


@pytest.fixture
def service(workflows_dir):
    (workflows_dir / "corporate_us.yaml").write_text(CORPORATE_US_YAML, encoding="utf-8")
    return WorkflowService(repo=WorkflowDefinitionRepository(workflows_dir), compiler=WorkflowCompiler())


def test_get_machine_selects_by_profile(service):
    assert service.get_machine(ClientProfile(client_type="corporate", jurisdiction="US")).workflow_id == "corporate_us"
    assert service.get_machine(ClientProfile(client_type="corporate", jurisdiction="GB")).workflow_id == "test_onboarding"


def test_get_machine_without_match(tmp_path):
    workflows_dir = tmp_path / "workflows"
    workflows_dir.mkdir()
    (workflows_dir / "corporate_us.yaml").write_text(CORPORATE_US_YAML, encoding="utf-8")
    service = WorkflowService(repo=WorkflowDefinitionRepository(workflows_dir), compiler=WorkflowCompiler())
    with pytest.raises(SelectionError):
        service.get_machine(ClientProfile(client_type="individual", jurisdiction="US"))


def test_get_machine_for_workflow(service):
    machine = service.get_machine_for_workflow("test_onboarding")
    assert machine.initial_step_id == "start"
    with pytest.raises(NotFoundError):
        service.get_machine_for_workflow("unknown")


def test_valid_definition(service):
    result = service.validate_workflow("test_onboarding")
    assert result == {"is_valid": True, "errors": [], "warnings": []}


def test_invalid_definition_data(service):
    result = service.validate_definition({
        "id": "broken",
        "name": "Broken",
        "steps": [{"id": "a", "next": "nowhere"}],
    })
    assert result["is_valid"] is False
    assert result["errors"][0]["type"] == "DEFINITION_PARSE_ERROR"
    assert "nowhere" in result["errors"][0]["message"]
    assert result["errors"][0]["path"] == "a.next.default"


def test_unreachable_steps_are_warnings(service, build_definition):
    definition = build_definition(steps=[
        {"id": "a", "task_ref": "t", "next": "END"},
        {"id": "orphan", "task_ref": "t", "next": "END"},
    ])
    result = service.validate_definition(definition)
    assert result["is_valid"] is True
    assert [w["type"] for w in result["warnings"]] == ["UNREACHABLE_STEP"]
    assert "orphan" in result["warnings"][0]["message"]


def test_loop_without_end_is_a_warning(service, build_definition):
    definition = build_definition(steps=[
        {"id": "a", "task_ref": "t", "next": "b"},
        {"id": "b", "task_ref": "t", "next": "a"},
    ])
    result = service.validate_definition(definition)
    assert result["is_valid"] is True
    assert [w["type"] for w in result["warnings"]] == ["NO_END_PATH"]


def test_missing_task_ref_is_a_warning(service, build_definition):
    result = service.validate_definition(build_definition(steps=[("a", "END")]))
    assert [w["type"] for w in result["warnings"]] == ["MISSING_TASK_REF"]


def test_conditional_targets_count_as_reachable(service, onboarding_definition):
    result = service.validate_definition(onboarding_definition)
    assert not any(w["type"] == "UNREACHABLE_STEP" for w in result["warnings"])
