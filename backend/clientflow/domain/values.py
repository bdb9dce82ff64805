"""Tagged Values - Deterministic coercion for condition comparisons

Collected inputs are loosely typed (form posts give strings, migrated records
give whatever JSON held). Conditions never compare raw Python objects; both
sides are wrapped in a TypedValue first and compared by these rules:

- A value is numeric when it is an int/float, or a string matching a plain
  decimal/exponent literal. Booleans are never numeric. NaN and infinities
  are not numeric.
- If both sides are numeric, every operator compares the numbers.
- Otherwise ``==`` and ``!=`` compare canonical text (booleans render as
  ``true``/``false``, null as the empty string).
- Non-numeric operands are unordered: ``>`` and ``<`` never hold, ``>=`` and
  ``<=`` hold only when the canonical texts are equal.
"""
import math
import re
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from .enums import ConditionOperator, ValueKind


_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_EXPRESSION_RE = re.compile(r"^\s*([A-Za-z_][\w.]*)\s*(==|!=|>=|<=|>|<)\s*(.+?)\s*$")


class TypedValue(BaseModel):
    """A scalar tagged with the kind it was recognised as"""
    model_config = ConfigDict(frozen=True)

    kind: ValueKind
    value: Any = None

    @classmethod
    def of(cls, raw: Any) -> "TypedValue":
        """Wrap a raw input or literal"""
        if isinstance(raw, TypedValue):
            return raw
        if raw is None:
            return cls(kind=ValueKind.NULL, value=None)
        if isinstance(raw, bool):
            return cls(kind=ValueKind.BOOLEAN, value=raw)
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and not math.isfinite(raw):
                return cls(kind=ValueKind.STRING, value=str(raw))
            return cls(kind=ValueKind.NUMBER, value=raw)
        if isinstance(raw, str):
            return cls(kind=ValueKind.STRING, value=raw)
        return cls(kind=ValueKind.STRING, value=str(raw))

    def as_number(self) -> Optional[float]:
        """Numeric reading of the value, or None when it is not numeric"""
        if self.kind == ValueKind.NUMBER:
            return float(self.value)
        if self.kind == ValueKind.STRING:
            text = self.value.strip()
            if _NUMBER_RE.match(text):
                number = float(text)
                if math.isfinite(number):
                    return number
        return None

    def as_text(self) -> str:
        """Canonical text used for non-numeric comparison"""
        if self.kind == ValueKind.NULL:
            return ""
        if self.kind == ValueKind.BOOLEAN:
            return "true" if self.value else "false"
        if self.kind == ValueKind.NUMBER:
            number = float(self.value)
            return str(int(number)) if number.is_integer() else repr(number)
        return self.value


def compare_values(left: Any, operator: ConditionOperator, right: Any) -> bool:
    """Apply operator to two raw values under the tagged coercion rules"""
    a = TypedValue.of(left)
    b = TypedValue.of(right)

    a_num = a.as_number()
    b_num = b.as_number()
    if a_num is not None and b_num is not None:
        if operator == ConditionOperator.EQUALS:
            return a_num == b_num
        if operator == ConditionOperator.NOT_EQUALS:
            return a_num != b_num
        if operator == ConditionOperator.GREATER_THAN:
            return a_num > b_num
        if operator == ConditionOperator.GREATER_THAN_OR_EQUALS:
            return a_num >= b_num
        if operator == ConditionOperator.LESS_THAN:
            return a_num < b_num
        if operator == ConditionOperator.LESS_THAN_OR_EQUALS:
            return a_num <= b_num
        return False

    same = a.as_text() == b.as_text()
    if operator in (
        ConditionOperator.EQUALS,
        ConditionOperator.GREATER_THAN_OR_EQUALS,
        ConditionOperator.LESS_THAN_OR_EQUALS,
    ):
        return same
    if operator == ConditionOperator.NOT_EQUALS:
        return not same
    # > and < on unordered operands
    return False


def parse_literal(text: str) -> Any:
    """
    Parse the right-hand side of a condition expression

    Quoted text stays text, true/false become booleans, plain numbers become
    int or float, anything else is taken verbatim.
    """
    text = text.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered in ("null", "none"):
        return None
    if _NUMBER_RE.match(text):
        number = float(text)
        if number.is_integer() and "." not in text and "e" not in lowered:
            return int(text)
        return number
    return text


def parse_condition_expression(expression: str) -> Tuple[str, ConditionOperator, Any]:
    """
    Split an authored expression such as ``risk_score > 70``

    Returns:
        (field, operator, literal)

    Raises:
        ValueError: If the expression is not a single binary comparison
    """
    match = _EXPRESSION_RE.match(expression or "")
    if not match:
        raise ValueError(f"Unsupported condition expression: {expression!r}")
    field, op, literal = match.groups()
    return field, ConditionOperator(op), parse_literal(literal)
