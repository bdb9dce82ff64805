"""Client Progress Service - Drive a client through its workflow machine"""
from typing import Any, Dict, Optional

from ..domain.models import (
    AdvanceOutcome, ClientProfile, ClientSnapshot, ClientState, CompiledStep, RuntimeMachine
)
from ..domain.enums import END_STEP_ID
from ..domain.errors import AlreadyExistsError, InvalidStateError, StepNotFoundError
from ..engine.transition_resolver import TransitionResolver
from ..engine.progress import ProgressCalculator
from ..engine.input_validator import StepInputValidator
from ..repositories.client_state_repo import ClientStateRepository
from .workflow_service import WorkflowService
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ClientProgressService:
    """
    Glue between the stateless engine and the client state store

    Every state change is a single read-modify-write on the store, so
    concurrent calls for one client never lose each other's writes.
    """

    def __init__(
        self,
        workflow_service: Optional[WorkflowService] = None,
        state_repo: Optional[ClientStateRepository] = None,
    ):
        self.workflow_service = workflow_service or WorkflowService()
        self.state_repo = state_repo or ClientStateRepository.from_settings()
        self.resolver = TransitionResolver()
        self.progress = ProgressCalculator()
        self.input_validator = StepInputValidator(self.resolver)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, client_id: str, profile: ClientProfile) -> ClientState:
        """
        Resume the client's state, or initialize it at the initial step of
        the workflow that applies to the profile
        """
        existing = self.state_repo.load(client_id)
        if existing is not None:
            return existing

        machine = self.workflow_service.get_machine(profile)
        try:
            self.state_repo.initialize(client_id, machine.workflow_id, machine.initial_step_id)
        except AlreadyExistsError:
            # Created concurrently
            return self.state_repo.load_or_raise(client_id)

        initial_stage = machine.initial_step().stage
        profile_data = profile.model_dump(mode="json")

        def apply(state: ClientState) -> ClientState:
            state.current_stage = initial_stage
            state.data = {**(state.data or {}), **profile_data}
            return state

        return self.state_repo.modify(client_id, apply)

    def reset(self, client_id: str) -> ClientState:
        """Back to the initial step with no inputs or history; ``data`` is kept"""
        state = self.state_repo.load_or_raise(client_id)
        machine = self.get_machine(state)
        initial = machine.initial_step()

        def apply(current: ClientState) -> ClientState:
            current.current_step_id = initial.id
            current.current_stage = initial.stage
            current.collected_inputs = {}
            current.completed_steps = []
            current.completed_stages = []
            return current

        logger.info(f"Resetting client {client_id}", extra={"client_id": client_id, "action": "reset"})
        return self.state_repo.modify(client_id, apply)

    # =========================================================================
    # Inputs and Transitions
    # =========================================================================

    def record_inputs(self, client_id: str, inputs: Dict[str, Any]) -> ClientState:
        """Merge inputs into the collected inputs (new values win)"""
        def apply(state: ClientState) -> ClientState:
            state.collected_inputs = {**state.collected_inputs, **inputs}
            return state

        return self.state_repo.modify(client_id, apply)

    def advance(self, client_id: str) -> AdvanceOutcome:
        """
        Move the client past its current step

        Required fields gate the move; a blocked move is returned as a value
        with the reason, not raised.

        Every forward transition appends the step being left to
        ``completed_steps``, so a definition that loops back to an earlier
        step records that step again and ``go_back`` retraces the loop. A
        transition that resolves to the current step is not a move: it is
        reported as blocked and history is left alone, so history never
        repeats a step back to back.

        Raises:
            ClientStateNotFoundError: Unknown client
            InvalidStateError: Workflow already finished
            StepNotFoundError: Current step is not part of the workflow
            TransitionError: Resolved target does not exist
        """
        state = self.state_repo.load_or_raise(client_id)
        machine = self.get_machine(state)
        outcome: Dict[str, Any] = {}

        def apply(current: ClientState) -> ClientState:
            step = self._current_step(machine, current)
            check = self.resolver.can_transition_from(step, current.collected_inputs)
            if not check.can_transition:
                outcome.update(reason=check.reason, missing_fields=check.missing_fields)
                return current

            result = self.resolver.execute_transition(machine, step, current.collected_inputs)
            if result.target_step_id == step.id:
                outcome.update(reason=f"Step {step.id} transitions to itself")
                return current

            current.completed_steps = current.completed_steps + [step.id]

            if result.is_end:
                current.current_step_id = END_STEP_ID
                current.current_stage = None
            else:
                current.current_step_id = result.next_step.id
                current.current_stage = result.next_step.stage
            current.completed_stages = self.progress.completed_stages(machine, current.completed_steps)
            outcome.update(advanced=True, is_end=result.is_end)
            return current

        state = self.state_repo.modify(client_id, apply)

        if outcome.get("advanced"):
            logger.info(
                f"Client {client_id} advanced to {state.current_step_id}",
                extra={"client_id": client_id, "workflow_id": state.workflow_id, "step_id": state.current_step_id}
            )
        else:
            logger.debug(
                f"Client {client_id} blocked at {state.current_step_id}: {outcome.get('reason')}",
                extra={"client_id": client_id, "step_id": state.current_step_id}
            )

        return AdvanceOutcome(
            advanced=outcome.get("advanced", False),
            is_end=outcome.get("is_end", False),
            reason=outcome.get("reason"),
            missing_fields=outcome.get("missing_fields", []),
            state=state,
        )

    def go_back(self, client_id: str) -> ClientState:
        """
        Return to the most recently completed step, dropping it from history

        Raises:
            InvalidStateError: Nothing has been completed yet
            StepNotFoundError: The previous step is not part of the workflow
        """
        state = self.state_repo.load_or_raise(client_id)
        machine = self.get_machine(state)

        def apply(current: ClientState) -> ClientState:
            if not current.completed_steps:
                raise InvalidStateError(
                    "Cannot go back: already at first step",
                    details={"client_id": client_id}
                )
            previous_id = current.completed_steps[-1]
            previous = machine.get_step_by_id(previous_id)
            if previous is None:
                raise StepNotFoundError(
                    f"Previous step not found: {previous_id}",
                    details={"client_id": client_id, "step_id": previous_id}
                )

            current.completed_steps = current.completed_steps[:-1]
            current.current_step_id = previous.id
            current.current_stage = previous.stage
            current.completed_stages = self.progress.completed_stages(machine, current.completed_steps)
            return current

        state = self.state_repo.modify(client_id, apply)
        logger.info(
            f"Client {client_id} went back to {state.current_step_id}",
            extra={"client_id": client_id, "step_id": state.current_step_id, "action": "go_back"}
        )
        return state

    # =========================================================================
    # Queries
    # =========================================================================

    def snapshot(self, client_id: str) -> ClientSnapshot:
        """Current step, gating, validation and progress for rendering"""
        state = self.state_repo.load_or_raise(client_id)
        machine = self.get_machine(state)

        current_step = None
        missing_fields = []
        validation_errors = []
        can_proceed = False

        if not state.is_complete:
            current_step = self._current_step(machine, state)
            check = self.resolver.can_transition_from(current_step, state.collected_inputs)
            can_proceed = check.can_transition
            missing_fields = check.missing_fields
            validation_errors = self.input_validator.validate(current_step, state.collected_inputs).errors

        return ClientSnapshot(
            state=state,
            current_step=current_step,
            can_proceed=can_proceed,
            missing_fields=missing_fields,
            validation_errors=validation_errors,
            workflow_progress=self.progress.get_workflow_progress(machine, state.completed_steps),
            stage_progress=self.progress.get_stage_progress(machine, state.completed_steps),
            is_complete=state.is_complete,
        )

    def get_machine(self, state: ClientState) -> RuntimeMachine:
        """Machine for the workflow the client is on"""
        return self.workflow_service.get_machine_for_workflow(state.workflow_id)

    def _current_step(self, machine: RuntimeMachine, state: ClientState) -> CompiledStep:
        if state.is_complete:
            raise InvalidStateError(
                f"Workflow already complete for client {state.client_id}",
                details={"client_id": state.client_id}
            )
        step = machine.get_step_by_id(state.current_step_id)
        if step is None:
            raise StepNotFoundError(
                f"Step {state.current_step_id} not found in workflow {machine.workflow_id}",
                details={"client_id": state.client_id, "step_id": state.current_step_id}
            )
        return step
