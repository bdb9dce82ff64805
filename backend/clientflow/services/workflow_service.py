"""Workflow Service - Machine resolution and definition validation"""
from typing import Any, Dict, List, Optional, Set, Union

from ..config.settings import get_settings
from ..domain.models import ClientProfile, RuntimeMachine, WorkflowDefinition
from ..domain.enums import END_STEP_ID
from ..domain.errors import ParseError
from ..engine.loader import DefinitionLoader
from ..engine.task_library import TaskLibrary
from ..engine.compiler import WorkflowCompiler
from ..repositories.workflow_repo import WorkflowDefinitionRepository
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowService:
    """Service for workflow definition operations"""

    def __init__(
        self,
        repo: Optional[WorkflowDefinitionRepository] = None,
        compiler: Optional[WorkflowCompiler] = None,
    ):
        self.repo = repo or WorkflowDefinitionRepository.from_settings()
        self.compiler = compiler or WorkflowCompiler(TaskLibrary(get_settings().tasks_dir))
        self.loader = DefinitionLoader()

    # =========================================================================
    # Machines
    # =========================================================================

    def get_machine(self, profile: ClientProfile) -> RuntimeMachine:
        """
        Compile the workflow that applies to a client profile

        Raises:
            SelectionError: No single definition applies
            ParseError: A definition or referenced task is malformed
        """
        machine = self.compiler.compile(self.repo.list_definitions(), profile)
        logger.debug(
            f"Compiled machine {machine.workflow_id} v{machine.version} with {len(machine.steps)} steps",
            extra={"workflow_id": machine.workflow_id, "count": len(machine.steps)}
        )
        return machine

    def get_machine_for_workflow(self, workflow_id: str) -> RuntimeMachine:
        """Compile a workflow by id, bypassing profile selection"""
        return self.compiler.compile_definition(self.repo.get_definition(workflow_id))

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_workflow(self, workflow_id: str) -> Dict[str, Any]:
        """Validate a stored workflow definition"""
        return self.validate_definition(self.repo.get_definition(workflow_id))

    def validate_definition(self, definition: Union[WorkflowDefinition, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Validate a workflow definition

        Structural problems and compile failures (e.g. unknown tasks) are
        errors; unreachable steps and a missing path to END are warnings.

        Returns:
            {"is_valid", "errors", "warnings"} where each issue has
            "type", "message" and "path"
        """
        errors: List[Dict[str, Any]] = []
        warnings: List[Dict[str, Any]] = []

        try:
            if not isinstance(definition, WorkflowDefinition):
                definition = self.loader.load_data(definition)
            self.compiler.compile_definition(definition)
        except ParseError as e:
            errors.append({
                "type": e.error_code,
                "message": e.message,
                "path": e.details.get("path")
            })
            return {"is_valid": False, "errors": errors, "warnings": warnings}

        start_step_id = definition.steps[0].id
        reachable = self._find_reachable_steps(start_step_id, definition)

        for step in definition.steps:
            if step.id not in reachable:
                warnings.append({
                    "type": "UNREACHABLE_STEP",
                    "message": f"Step {step.id} is not reachable from start",
                    "path": f"steps.{step.id}"
                })
            if not step.task_ref:
                warnings.append({
                    "type": "MISSING_TASK_REF",
                    "message": f"Step {step.id} has no task_ref",
                    "path": f"steps.{step.id}.task_ref"
                })

        if END_STEP_ID not in reachable:
            warnings.append({
                "type": "NO_END_PATH",
                "message": f"No transition from start reaches {END_STEP_ID}",
                "path": None
            })

        return {
            "is_valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings
        }

    def _find_reachable_steps(self, start_step_id: str, definition: WorkflowDefinition) -> Set[str]:
        """All step ids (and END) reachable from start through any transition"""
        step_lookup = {s.id: s for s in definition.steps}
        reachable = {start_step_id}
        to_visit = [start_step_id]

        while to_visit:
            current = step_lookup.get(to_visit.pop())
            if current is None:
                continue
            for target in current.next.targets():
                if target not in reachable:
                    reachable.add(target)
                    to_visit.append(target)

        return reachable
