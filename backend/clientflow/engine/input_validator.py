"""Step Input Validator - Field-level checks driven by a step's field schema"""
import re
from typing import Any, Dict, List, Optional

from ..domain.models import CompiledStep, InputValidationResult
from ..domain.values import TypedValue
from .transition_resolver import TransitionResolver

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class StepInputValidator:
    """
    Validate inputs for a step

    Combines the required-field gate with per-field rules from the compiled
    schema: email format, numeric type, regex pattern, min/max length.
    Optional fields that are empty are not checked.
    """

    def __init__(self, resolver: Optional[TransitionResolver] = None):
        self.resolver = resolver or TransitionResolver()

    def validate(self, step: CompiledStep, inputs: Dict[str, Any]) -> InputValidationResult:
        errors: List[str] = []

        missing = self.resolver.missing_required_fields(step, inputs)
        if missing:
            errors.append(f"Missing required fields: {', '.join(missing)}")

        for field in step.fields():
            value = inputs.get(field.name)
            if value is None or value == "":
                continue

            if field.type == "email" and isinstance(value, str):
                if not EMAIL_RE.match(value):
                    errors.append(f'Invalid email format for field "{field.name}"')

            if field.type == "number" and TypedValue.of(value).as_number() is None:
                errors.append(f'Field "{field.name}" must be a number')

            rules = field.validation
            if not isinstance(value, str):
                continue

            pattern = rules.get("pattern")
            if pattern and not re.search(pattern, value):
                errors.append(f'Field "{field.name}" does not match required pattern')

            min_length = rules.get("minLength", rules.get("min_length"))
            if min_length and len(value) < min_length:
                errors.append(f'Field "{field.name}" must be at least {min_length} characters')

            max_length = rules.get("maxLength", rules.get("max_length"))
            if max_length and len(value) > max_length:
                errors.append(f'Field "{field.name}" must be at most {max_length} characters')

        return InputValidationResult(valid=not errors, errors=errors)
