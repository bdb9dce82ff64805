"""Workflow Compiler - Select a definition for a profile and build its runtime machine"""
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..domain.models import (
    ClientProfile, CompiledStep, RuntimeMachine, StageDefinition, StepDefinition, WorkflowDefinition
)
from ..domain.errors import SelectionError
from .loader import DefinitionLoader
from .task_library import TaskLibrary
from ..utils.logger import get_logger

logger = get_logger(__name__)


# Selection specificity
_WILDCARD = 0           # no applies_to
_TYPE_ONLY = 1          # client type matches, no jurisdiction list
_JURISDICTION = 2       # client type matches and jurisdiction listed


class WorkflowCompiler:
    """
    Compile workflow definitions into immutable runtime machines

    Compilation is pure: the same definitions and profile always produce an
    equal machine (and an identical JSON serialization). With a TaskLibrary,
    each step's task_ref is resolved to its component and field schema.
    """

    def __init__(self, task_library: Optional[TaskLibrary] = None):
        self.task_library = task_library
        self._loader = DefinitionLoader()

    def compile(
        self,
        definitions: Union[WorkflowDefinition, Sequence[WorkflowDefinition]],
        profile: ClientProfile
    ) -> RuntimeMachine:
        """
        Select the definition variant for the profile and compile it

        Raises:
            SelectionError: No variant matches, or the best match is ambiguous
            ParseError: The selected definition is structurally invalid
        """
        if isinstance(definitions, WorkflowDefinition):
            definitions = [definitions]
        selected = self.select(definitions, profile)
        return self.compile_definition(selected)

    def select(
        self,
        definitions: Sequence[WorkflowDefinition],
        profile: ClientProfile
    ) -> WorkflowDefinition:
        """
        Pick the most specific definition that applies to the profile

        A definition applies when its client type equals the profile's and its
        jurisdictions list contains the profile jurisdiction or is empty.
        A definition without applies_to serves any profile at the lowest
        precedence. Two matches at the winning precedence are a
        configuration error.
        """
        candidates: List[Tuple[int, WorkflowDefinition]] = []
        for definition in definitions:
            score = self._specificity(definition, profile)
            if score is not None:
                candidates.append((score, definition))

        if not candidates:
            raise SelectionError(
                f"No workflow applies to client type {profile.client_type!r} "
                f"in jurisdiction {profile.jurisdiction!r}",
                details={"client_type": profile.client_type, "jurisdiction": profile.jurisdiction}
            )

        best = max(score for score, _ in candidates)
        winners = [d for score, d in candidates if score == best]
        if len(winners) > 1:
            raise SelectionError(
                f"Ambiguous workflow selection for client type {profile.client_type!r}: "
                f"{', '.join(d.id for d in winners)}",
                details={
                    "client_type": profile.client_type,
                    "jurisdiction": profile.jurisdiction,
                    "candidates": [d.id for d in winners]
                }
            )

        selected = winners[0]
        logger.info(
            f"Selected workflow {selected.id} for {profile.client_type}/{profile.jurisdiction}",
            extra={"workflow_id": selected.id}
        )
        return selected

    def compile_definition(self, definition: WorkflowDefinition) -> RuntimeMachine:
        """Compile one definition without profile selection"""
        self._loader.validate(definition, source_name=definition.id)

        compiled_steps = tuple(
            self._compile_step(step, position)
            for position, step in enumerate(definition.steps)
        )
        step_index_by_id = {step.id: step.position for step in compiled_steps}

        return RuntimeMachine(
            workflow_id=definition.id,
            name=definition.name,
            version=definition.version,
            stages=self._collect_stages(definition),
            initial_step_id=compiled_steps[0].id,
            steps=compiled_steps,
            step_index_by_id=step_index_by_id,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _specificity(self, definition: WorkflowDefinition, profile: ClientProfile) -> Optional[int]:
        applies_to = definition.applies_to
        if applies_to is None:
            return _WILDCARD
        if applies_to.client_type != profile.client_type:
            return None
        if not applies_to.jurisdictions:
            return _TYPE_ONLY
        if profile.jurisdiction in applies_to.jurisdictions:
            return _JURISDICTION
        return None

    def _collect_stages(self, definition: WorkflowDefinition) -> Tuple[StageDefinition, ...]:
        """Stages in first-appearance order across steps, named from declarations"""
        declared: Dict[str, StageDefinition] = {s.id: s for s in definition.stages}
        stages: List[StageDefinition] = []
        seen = set()
        for step in definition.steps:
            if not step.stage or step.stage in seen:
                continue
            seen.add(step.stage)
            stages.append(declared.get(step.stage) or StageDefinition(id=step.stage, name=step.stage))
        return tuple(stages)

    def _compile_step(self, step: StepDefinition, position: int) -> CompiledStep:
        required_fields = list(step.required_fields)
        component_id = None
        field_schema: Dict = {}

        if self.task_library is not None and step.task_ref:
            task = self.task_library.resolve(step.task_ref)
            component_id = task.component_id
            field_schema = task.field_schema
            if not required_fields:
                required_fields = list(task.required_fields)
            self.task_library.validate_required_fields(
                task.model_copy(update={"required_fields": required_fields}),
                step.task_ref
            )

        return CompiledStep(
            id=step.id,
            position=position,
            stage=step.stage,
            task_ref=step.task_ref,
            required_fields=tuple(required_fields),
            next=step.next,
            component_id=component_id,
            field_schema=field_schema,
        )
