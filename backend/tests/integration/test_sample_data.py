"""End-to-end checks against the sample data shipped in backend/data."""
import pytest

from clientflow.domain.models import ClientProfile
from clientflow.domain.enums import END_STEP_ID
from clientflow.domain.errors import SelectionError
from clientflow.engine.compiler import WorkflowCompiler
from clientflow.engine.task_library import TaskLibrary
from clientflow.repositories.client_state_repo import ClientStateRepository
from clientflow.repositories.legacy_source import YamlLegacyClientSource
from clientflow.repositories.workflow_repo import WorkflowDefinitionRepository
from clientflow.services.client_progress_service import ClientProgressService
from clientflow.services.workflow_service import WorkflowService


@pytest.fixture
def workflow_service(data_dir):
    return WorkflowService(
        repo=WorkflowDefinitionRepository(data_dir / "workflows"),
        compiler=WorkflowCompiler(TaskLibrary(data_dir / "tasks")),
    )


@pytest.fixture
def progress_service(workflow_service, state_repo):
    return ClientProgressService(workflow_service=workflow_service, state_repo=state_repo)


def test_every_sample_workflow_is_valid(workflow_service):
    for definition in workflow_service.repo.list_definitions():
        result = workflow_service.validate_definition(definition)
        assert result["is_valid"], result["errors"]
        assert result["warnings"] == []


def test_task_schemas_are_resolved(workflow_service):
    machine = workflow_service.get_machine(ClientProfile(client_type="corporate"))
    start = machine.initial_step()
    assert start.component_id == "form"
    assert start.required_fields == ("legal_name", "entity_type", "email")
    email = next(f for f in start.fields() if f.name == "email")
    assert email.type == "email"
    assert email.label == "Primary Contact Email"


@pytest.mark.parametrize("client_type,workflow_id", [
    ("corporate", "corporate_onboarding_v1"),
    ("individual", "individual_onboarding_v1"),
])
def test_selection_by_client_type(workflow_service, client_type, workflow_id):
    profile = ClientProfile(client_type=client_type, jurisdiction="US")
    assert workflow_service.get_machine(profile).workflow_id == workflow_id


def test_no_workflow_for_trusts(workflow_service):
    with pytest.raises(SelectionError):
        workflow_service.get_machine(ClientProfile(client_type="trust"))


def test_legacy_clients_migrate_once(tmp_path, data_dir):
    repo = ClientStateRepository(
        tmp_path / "client_state",
        legacy_source=YamlLegacyClientSource(
            data_dir / "legacy" / "clients.yaml",
            workflow_by_client_type={
                "corporate": "corporate_onboarding_v1",
                "individual": "individual_onboarding_v1",
            },
            default_workflow_id="individual_onboarding_v1",
            initial_step_id="start",
        ),
    )

    assert repo.migrate_legacy_data() == 5
    assert repo.list() == ["corp-001", "corp-002", "corp-003", "ind-001", "ind-002"]

    acme = repo.load("corp-001")
    assert acme.workflow_id == "corporate_onboarding_v1"
    assert acme.current_step_id == "start"
    assert acme.data["name"] == "Acme Corp"

    assert repo.migrate_legacy_data() == 0


def test_corporate_journey_with_enhanced_due_diligence(progress_service):
    client_id = "acme-corp"
    state = progress_service.start(client_id, ClientProfile(client_type="corporate", jurisdiction="US"))
    assert state.workflow_id == "corporate_onboarding_v1"
    assert state.current_stage == "information"

    progress_service.record_inputs(client_id, {"legal_name": "Acme Corp", "entity_type": "LLC", "email": "bad"})
    snapshot = progress_service.snapshot(client_id)
    assert snapshot.can_proceed is True
    assert snapshot.validation_errors == ['Invalid email format for field "email"']

    journey = [
        ({"email": "admin@acmecorp.com"}, "business_details"),
        ({"industry": "Manufacturing"}, "documents"),
        ({"certificate_of_incorporation": "coi.pdf"}, "risk_assessment"),
        ({"risk_score": "85"}, "enhanced_due_diligence"),
        ({"source_of_funds": "Retained earnings from operations"}, "review"),
    ]
    for inputs, expected_step in journey:
        progress_service.record_inputs(client_id, inputs)
        outcome = progress_service.advance(client_id)
        assert outcome.advanced, outcome.reason
        assert outcome.state.current_step_id == expected_step

    blocked = progress_service.advance(client_id)
    assert blocked.advanced is False
    assert blocked.missing_fields == ["confirmation"]

    progress_service.record_inputs(client_id, {"confirmation": True})
    final = progress_service.advance(client_id)
    assert final.is_end is True
    assert final.state.current_step_id == END_STEP_ID
    assert final.state.completed_stages == ["information", "compliance", "finalization"]

    snapshot = progress_service.snapshot(client_id)
    assert snapshot.workflow_progress.percentage == 100
    assert all(stage.percentage == 100 for stage in snapshot.stage_progress)


def test_low_risk_corporate_skips_enhanced_due_diligence(progress_service):
    client_id = "greentech"
    progress_service.start(client_id, ClientProfile(client_type="corporate", jurisdiction="GB"))
    progress_service.record_inputs(client_id, {
        "legal_name": "GreenTech Industries",
        "entity_type": "Corporation",
        "email": "contact@greentech.com",
        "industry": "Energy",
        "certificate_of_incorporation": "coi.pdf",
        "risk_score": 40,
    })
    for _ in range(4):
        outcome = progress_service.advance(client_id)
    assert outcome.state.current_step_id == "review"
    assert "enhanced_due_diligence" not in outcome.state.completed_steps

    snapshot = progress_service.snapshot(client_id)
    assert snapshot.workflow_progress.completed == 4
    assert snapshot.workflow_progress.percentage == 67


def test_politically_exposed_individual(progress_service):
    client_id = "john.smith@email.com"
    progress_service.start(client_id, ClientProfile(client_type="individual", jurisdiction="US"))
    progress_service.record_inputs(client_id, {
        "first_name": "John",
        "last_name": "Smith",
        "email": "john.smith@email.com",
        "id_document": "passport.jpg",
        "pep_status": True,
    })
    progress_service.advance(client_id)
    outcome = progress_service.advance(client_id)
    assert outcome.state.current_step_id == "enhanced_due_diligence"
    assert outcome.state.current_stage == "verification"
