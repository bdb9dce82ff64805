"""Transition Resolver - Required-field gating and next-step resolution"""
from typing import Any, Dict, List

from ..domain.models import CompiledStep, RuntimeMachine, TransitionCheck, TransitionResult
from ..domain.enums import END_STEP_ID
from ..domain.errors import TransitionError
from .condition_evaluator import ConditionEvaluator
from ..utils.logger import get_logger

logger = get_logger(__name__)


class TransitionResolver:
    """
    Resolve transitions from the current step given collected inputs

    Given current step S and inputs I:
    1. Gate: every field in S.required_fields must have a value in I
    2. Evaluate S.next.conditions in declaration order; first match wins
    3. No match -> S.next.default
    4. Target END -> workflow finished; unknown target -> TransitionError

    Gating and resolution are separate calls. execute_transition does not
    re-check required fields; callers gate with can_transition_from first.
    """

    def __init__(self):
        self.condition_evaluator = ConditionEvaluator()

    def missing_required_fields(
        self,
        step: CompiledStep,
        inputs: Dict[str, Any]
    ) -> List[str]:
        """
        Required fields whose value is absent, None, "" or []

        Returned in declaration order; callers should only rely on membership.
        """
        missing = []
        for field_name in step.required_fields:
            value = inputs.get(field_name)
            if value is None or value == "" or value == []:
                missing.append(field_name)
        return missing

    def can_transition_from(
        self,
        step: CompiledStep,
        inputs: Dict[str, Any]
    ) -> TransitionCheck:
        """Check whether the step's required inputs are all present"""
        missing = self.missing_required_fields(step, inputs)
        if missing:
            return TransitionCheck(
                can_transition=False,
                reason=f"Missing required fields: {', '.join(missing)}",
                missing_fields=missing,
            )
        return TransitionCheck(can_transition=True)

    def resolve_target(self, step: CompiledStep, inputs: Dict[str, Any]) -> str:
        """Target step id (or END) selected by the step's transition rules"""
        for condition in step.next.conditions:
            if self.condition_evaluator.evaluate(condition, inputs):
                return condition.target
        return step.next.default

    def execute_transition(
        self,
        machine: RuntimeMachine,
        step: CompiledStep,
        inputs: Dict[str, Any]
    ) -> TransitionResult:
        """
        Resolve the move out of ``step``

        Args:
            machine: Compiled runtime machine
            step: Step being left
            inputs: Collected inputs used by conditions

        Returns:
            TransitionResult with is_end or the next compiled step

        Raises:
            TransitionError: If the resolved target is not a step of the machine
        """
        target_step_id = self.resolve_target(step, inputs)

        if target_step_id == END_STEP_ID:
            logger.info(
                f"Resolved transition: {step.id} -> {END_STEP_ID}",
                extra={"workflow_id": machine.workflow_id, "step_id": step.id, "target_step_id": END_STEP_ID}
            )
            return TransitionResult(is_end=True, target_step_id=END_STEP_ID)

        next_step = machine.get_step_by_id(target_step_id)
        if next_step is None:
            raise TransitionError(
                f"Transition from step {step.id} resolved to unknown step {target_step_id}",
                details={
                    "workflow_id": machine.workflow_id,
                    "current_step_id": step.id,
                    "target_step_id": target_step_id
                }
            )

        logger.info(
            f"Resolved transition: {step.id} -> {next_step.id}",
            extra={"workflow_id": machine.workflow_id, "step_id": step.id, "target_step_id": next_step.id}
        )
        return TransitionResult(is_end=False, target_step_id=next_step.id, next_step=next_step)

    def get_outgoing_targets(self, step: CompiledStep) -> List[str]:
        """All step ids (or END) reachable in one move from the step"""
        return step.next.targets()
