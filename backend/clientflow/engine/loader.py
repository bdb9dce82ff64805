"""Definition Loader - Parse and validate declarative workflow definitions"""
import json
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from ..domain.models import WorkflowDefinition
from ..domain.enums import END_STEP_ID
from ..domain.errors import ParseError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _get(raw: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Read a snake_case key, accepting its camelCase spelling too"""
    if key in raw:
        return raw[key]
    return raw.get(to_camel(key), default)


def describe_pydantic_error(exc: PydanticValidationError) -> str:
    """First pydantic error as 'steps.1.next.default: Field required'"""
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else first.get("msg", str(exc))


class DefinitionLoader:
    """
    Turn workflow definition text (YAML or JSON) into a WorkflowDefinition

    Validation fails fast: the first structural violation raises ParseError
    and no partially valid definition is ever returned. Checks, in order:
    - document is a mapping with id, name and a non-empty steps list
    - every step is a mapping with a unique, non-empty id
    - every required_fields entry is a non-empty string
    - the document matches the definition schema
    - declared stage ids are unique
    - every transition target is a step of this definition or END
    """

    def load(self, source_text: str, source_name: str = "<string>") -> WorkflowDefinition:
        """
        Parse definition text

        Text starting with ``{`` or ``[`` is read as JSON first; YAML flow
        documents that are not valid JSON still parse as YAML.

        Args:
            source_text: YAML (or JSON) document
            source_name: Label used in error messages

        Raises:
            ParseError: On syntax errors or the first structural violation
        """
        if source_text.lstrip().startswith(("{", "[")):
            try:
                return self.load_data(json.loads(source_text), source_name=source_name)
            except json.JSONDecodeError as e:
                json_error = e
            try:
                raw = yaml.safe_load(source_text)
            except yaml.YAMLError:
                raise ParseError(
                    f"JSON parsing failed in {source_name}:{json_error.lineno}: {json_error.msg}",
                    details={"source": source_name, "line": json_error.lineno}
                )
            return self.load_data(raw, source_name=source_name)

        try:
            raw = yaml.safe_load(source_text)
        except yaml.YAMLError as e:
            line = None
            mark = getattr(e, "problem_mark", None)
            if mark is not None:
                line = mark.line + 1
            raise ParseError(
                f"YAML parsing failed in {source_name}:{line or 'unknown'}: {e}",
                details={"source": source_name, "line": line}
            )

        return self.load_data(raw, source_name=source_name)

    def load_file(self, path: Union[str, Path]) -> WorkflowDefinition:
        """Read and parse a definition file"""
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise ParseError(f"File not found: {path}", details={"source": str(path)})
        except OSError as e:
            raise ParseError(f"Could not read {path}: {e}", details={"source": str(path)})

        definition = self.load(text, source_name=path.name)
        logger.debug(f"Loaded workflow definition {definition.id} from {path}", extra={"path": str(path)})
        return definition

    def load_data(self, raw: Any, source_name: str = "<data>") -> WorkflowDefinition:
        """Validate an already-parsed document"""
        self._check_document(raw, source_name)

        try:
            definition = WorkflowDefinition.model_validate(raw)
        except PydanticValidationError as e:
            raise ParseError(
                f"Invalid workflow definition in {source_name}: {describe_pydantic_error(e)}",
                details={"source": source_name}
            )

        self.validate(definition, source_name)
        return definition

    def validate(self, definition: WorkflowDefinition, source_name: str = "<definition>") -> None:
        """Checks that hold for any definition, however it was built"""
        if not definition.steps:
            self._fail("workflow must have at least one step", source_name, "steps")
        step_ids = definition.step_ids()
        if len(set(step_ids)) != len(step_ids):
            duplicate = next(s for s in step_ids if step_ids.count(s) > 1)
            self._fail(f"duplicate step id: {duplicate}", source_name, "steps")
        self._check_stages(definition, source_name)
        self._check_transitions(definition, source_name)

    # =========================================================================
    # Structural checks
    # =========================================================================

    def _fail(self, message: str, source_name: str, path: Optional[str] = None) -> NoReturn:
        details = {"source": source_name}
        if path:
            details["path"] = path
        raise ParseError(f"Invalid workflow definition in {source_name}: {message}", details=details)

    def _check_document(self, raw: Any, source_name: str) -> None:
        if not isinstance(raw, dict):
            self._fail("document must be a mapping", source_name)

        for key in ("id", "name"):
            if not raw.get(key):
                self._fail(f"missing required field '{key}'", source_name, key)

        steps = raw.get("steps")
        if not isinstance(steps, list) or not steps:
            self._fail("workflow must have at least one step", source_name, "steps")

        seen: List[str] = []
        for i, step in enumerate(steps):
            if not isinstance(step, dict):
                self._fail(f"step at index {i} must be a mapping", source_name, f"steps[{i}]")

            step_id = step.get("id")
            if not isinstance(step_id, str) or not step_id.strip():
                self._fail(f"step at index {i} is missing id", source_name, f"steps[{i}].id")
            if step_id == END_STEP_ID:
                self._fail(f"step id '{END_STEP_ID}' is reserved", source_name, f"steps[{i}].id")
            if step_id in seen:
                self._fail(f"duplicate step id: {step_id}", source_name, f"steps[{i}].id")
            seen.append(step_id)

            required = _get(step, "required_fields", [])
            if required is None:
                continue
            if not isinstance(required, list):
                self._fail(
                    f"required_fields of step '{step_id}' must be a list",
                    source_name, f"steps[{i}].required_fields"
                )
            for j, field_name in enumerate(required):
                if not isinstance(field_name, str) or not field_name.strip():
                    self._fail(
                        f"required_fields[{j}] of step '{step_id}' must be a non-empty string",
                        source_name, f"steps[{i}].required_fields[{j}]"
                    )

    def _check_stages(self, definition: WorkflowDefinition, source_name: str) -> None:
        seen = set()
        for stage in definition.stages:
            if stage.id in seen:
                self._fail(f"duplicate stage id: {stage.id}", source_name, "stages")
            seen.add(stage.id)

    def _check_transitions(self, definition: WorkflowDefinition, source_name: str) -> None:
        step_ids = set(definition.step_ids())
        for step in definition.steps:
            for condition in step.next.conditions:
                if condition.target != END_STEP_ID and condition.target not in step_ids:
                    self._fail(
                        f"invalid transition in step '{step.id}': "
                        f"condition target '{condition.target}' does not exist",
                        source_name, f"{step.id}.next.conditions"
                    )
            if step.next.default != END_STEP_ID and step.next.default not in step_ids:
                self._fail(
                    f"invalid transition in step '{step.id}': "
                    f"default target '{step.next.default}' does not exist",
                    source_name, f"{step.id}.next.default"
                )
