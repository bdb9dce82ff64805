"""Condition Evaluator - Safe evaluation of transition conditions"""
from typing import Any, Dict

from ..domain.models import Condition
from ..domain.enums import ConditionOperator
from ..domain.values import compare_values
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ConditionEvaluator:
    """
    Evaluate transition conditions safely

    Uses a simple DSL - no eval() or exec(). Comparison semantics live in
    ``domain.values``; this class only resolves the field being compared.
    """

    def evaluate(self, condition: Condition, inputs: Dict[str, Any]) -> bool:
        """
        Evaluate a single condition

        Args:
            condition: Field/operator/literal triple
            inputs: Collected input values

        Returns:
            True if the comparison holds
        """
        field_value = self._get_field_value(condition.field, inputs)

        # A missing input only ever satisfies "!="
        if field_value is None:
            return condition.op == ConditionOperator.NOT_EQUALS

        result = compare_values(field_value, condition.op, condition.value)
        logger.debug(
            f"Condition {condition.field} {condition.op.value} {condition.value!r} "
            f"on {field_value!r} -> {result}"
        )
        return result

    def _get_field_value(self, field_path: str, inputs: Dict[str, Any]) -> Any:
        """
        Get field value from inputs, falling back to dot notation

        Example: "address.country" -> inputs["address"]["country"]
        """
        if field_path in inputs:
            return inputs[field_path]

        value: Any = inputs
        for part in field_path.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            else:
                return None

        return value
