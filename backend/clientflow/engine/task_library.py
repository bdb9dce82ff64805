"""Task Library - Load task definitions and resolve inheritance"""
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..domain.models import TaskDefinition
from ..domain.errors import ParseError
from .loader import describe_pydantic_error
from ..utils.logger import get_logger

logger = get_logger(__name__)

LENGTH_RULES = ("minLength", "min_length", "maxLength", "max_length")


def merge_schemas(parent_schema: Dict[str, Any], child_schema: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge parent and child field schemas

    Child fields override parent fields with the same name. A child field with
    ``inherits: other`` copies the parent's ``other`` field under its own name.
    Schemas without field lists are merged key by key, child winning.
    """
    if not parent_schema:
        return dict(child_schema or {})
    if not child_schema:
        return dict(parent_schema)

    parent_fields = parent_schema.get("fields")
    child_fields = child_schema.get("fields")
    if not parent_fields or not child_fields:
        return {**parent_schema, **child_schema}

    field_map: Dict[str, Dict[str, Any]] = {f["name"]: f for f in parent_fields}
    for field in child_fields:
        inherits = field.get("inherits")
        if inherits and inherits in field_map:
            merged = {**field_map[inherits], **field}
            merged.pop("inherits", None)
            field_map[field["name"]] = merged
        else:
            field_map[field["name"]] = field

    return {**parent_schema, **child_schema, "fields": list(field_map.values())}


class TaskLibrary:
    """
    Task definitions addressed by ``task_ref`` (path below the tasks directory)

    Definitions can also be registered directly, which is how tests and
    callers holding task data in memory use the library.
    """

    def __init__(self, tasks_dir: Optional[Union[str, Path]] = None):
        self.tasks_dir = Path(tasks_dir) if tasks_dir else None
        self._tasks: Dict[str, TaskDefinition] = {}
        self._resolved: Dict[str, TaskDefinition] = {}

    def register(self, task_ref: str, task: Union[TaskDefinition, Dict[str, Any]]) -> TaskDefinition:
        """Add a task definition under a ref"""
        if isinstance(task, TaskDefinition):
            self.validate_field_rules(task, task_ref)
        else:
            task = self._validate(task, task_ref)
        self._tasks[self._normalize_ref(task_ref)] = task
        self._resolved.clear()
        return task

    def get(self, task_ref: str) -> TaskDefinition:
        """Raw (unresolved) task definition"""
        ref = self._normalize_ref(task_ref)
        if ref not in self._tasks:
            self._tasks[ref] = self._load_from_disk(ref)
        return self._tasks[ref]

    def resolve(self, task_ref: str) -> TaskDefinition:
        """Task definition with its ``extends`` chain merged in"""
        ref = self._normalize_ref(task_ref)
        if ref not in self._resolved:
            self._resolved[ref] = self._resolve_inheritance(ref, [])
        return self._resolved[ref]

    def validate_required_fields(self, task: TaskDefinition, task_ref: str) -> None:
        """Required fields must exist in a form schema's field list"""
        if not task.required_fields or not task.field_schema.get("fields"):
            return
        names = {f.name for f in task.fields()}
        missing = [name for name in task.required_fields if name not in names]
        if missing:
            raise ParseError(
                f"Task validation failed in {task_ref}: "
                f"required fields not found in schema: {', '.join(missing)}",
                details={"task_ref": task_ref, "missing": missing}
            )

    def validate_field_rules(self, task: TaskDefinition, task_ref: str) -> None:
        """Field schemas must parse, patterns must compile and length limits must be counts"""
        try:
            fields = task.fields()
        except PydanticValidationError as e:
            raise ParseError(
                f"Invalid field schema in {task_ref}: {describe_pydantic_error(e)}",
                details={"task_ref": task_ref}
            )

        for field in fields:
            rules = field.validation
            pattern = rules.get("pattern")
            if pattern is not None:
                try:
                    re.compile(pattern)
                except (re.error, TypeError) as e:
                    raise ParseError(
                        f"Invalid pattern for field \"{field.name}\" in {task_ref}: {e}",
                        details={"task_ref": task_ref, "field": field.name}
                    )
            for rule in LENGTH_RULES:
                limit = rules.get(rule)
                if limit is None:
                    continue
                if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
                    raise ParseError(
                        f"Invalid {rule} for field \"{field.name}\" in {task_ref}: "
                        f"expected a non-negative integer, got {limit!r}",
                        details={"task_ref": task_ref, "field": field.name}
                    )

    # =========================================================================
    # Internals
    # =========================================================================

    def _normalize_ref(self, task_ref: str) -> str:
        return task_ref[:-5] if task_ref.endswith(".yaml") else task_ref

    def _resolve_inheritance(self, ref: str, chain: List[str]) -> TaskDefinition:
        task = self.get(ref)
        if not task.extends:
            return task

        if ref in chain:
            raise ParseError(
                f"Circular inheritance detected: {' -> '.join(chain + [ref])}",
                details={"task_ref": ref}
            )

        parent = self._resolve_inheritance(self._normalize_ref(task.extends), chain + [ref])
        merged = task.model_copy(update={
            "field_schema": merge_schemas(parent.field_schema, task.field_schema),
            "required_fields": task.required_fields or parent.required_fields,
            "expected_output_fields": parent.expected_output_fields + task.expected_output_fields,
        })
        return merged

    def _load_from_disk(self, ref: str) -> TaskDefinition:
        if self.tasks_dir is None:
            raise ParseError(f"Unknown task: {ref}", details={"task_ref": ref})

        path = self.tasks_dir / f"{ref}.yaml"
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ParseError(f"Task file not found: {path}", details={"task_ref": ref})
        except yaml.YAMLError as e:
            raise ParseError(f"YAML parsing failed in {path.name}: {e}", details={"task_ref": ref})

        task = self._validate(raw, ref)
        logger.debug(f"Loaded task {task.id} from {path}", extra={"path": str(path)})
        return task

    def _validate(self, raw: Any, ref: str) -> TaskDefinition:
        if not isinstance(raw, dict):
            raise ParseError(f"Invalid task definition in {ref}: document must be a mapping")
        try:
            task = TaskDefinition.model_validate(raw)
        except PydanticValidationError as e:
            raise ParseError(
                f"Invalid task definition in {ref}: {describe_pydantic_error(e)}",
                details={"task_ref": ref}
            )
        self.validate_field_rules(task, ref)
        return task
