"""Domain Models - Pydantic schemas for definitions, runtime machines and client state"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .enums import ConditionOperator, END_STEP_ID
from .values import parse_condition_expression
from ..utils.time import utc_now, parse_iso


def _config(**overrides: Any) -> ConfigDict:
    """Shared model config: camelCase on the wire, snake_case accepted too"""
    base = dict(alias_generator=to_camel, populate_by_name=True)
    base.update(overrides)
    return ConfigDict(**base)


# ============================================================================
# Workflow Definition (authored)
# ============================================================================

class ClientProfile(BaseModel):
    """Profile used to select a workflow definition"""
    model_config = _config(extra="ignore")

    client_type: str = Field(..., min_length=1, description="e.g. corporate, individual, trust")
    jurisdiction: Optional[str] = Field(None, description="e.g. US, CA, GB")


class AppliesTo(BaseModel):
    """Which client profiles a definition variant serves"""
    model_config = _config(extra="forbid")

    client_type: str = Field(..., min_length=1)
    jurisdictions: List[str] = Field(default_factory=list, description="Empty = any jurisdiction")


class StageDefinition(BaseModel):
    """Stage used for grouping steps in progress reporting"""
    model_config = _config(extra="ignore", frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class Condition(BaseModel):
    """Binary comparison of a collected input against a literal"""
    model_config = _config(extra="forbid", frozen=True)

    field: str = Field(..., min_length=1, description="Input field name (dot notation allowed)")
    op: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Literal to compare against")
    target: str = Field(..., min_length=1, description="Step id or END")

    @model_validator(mode="before")
    @classmethod
    def _normalize_authored_form(cls, data: Any) -> Any:
        # Accepts {when: "risk > 70", then: review} and {operator: ...}
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "when" in data:
            field, op, value = parse_condition_expression(data.pop("when"))
            data.setdefault("field", field)
            data.setdefault("op", op)
            data.setdefault("value", value)
        if "then" in data:
            data.setdefault("target", data.pop("then"))
        if "operator" in data:
            data.setdefault("op", data.pop("operator"))
        return data


class StepTransitions(BaseModel):
    """Ordered conditional transitions plus the default target"""
    model_config = _config(extra="forbid", frozen=True)

    conditions: Tuple[Condition, ...] = Field(default_factory=tuple)
    default: str = Field(..., min_length=1, description="Default next step id or END")

    @model_validator(mode="before")
    @classmethod
    def _from_shorthand(cls, data: Any) -> Any:
        # "next: verify" is shorthand for {default: verify}
        if isinstance(data, str):
            return {"default": data}
        return data

    def targets(self) -> List[str]:
        """Every target this step can move to, conditions first"""
        return [c.target for c in self.conditions] + [self.default]


class StepDefinition(BaseModel):
    """Workflow step reference (before task resolution)"""
    model_config = _config(extra="ignore")

    id: str = Field(..., min_length=1)
    stage: Optional[str] = None
    task_ref: Optional[str] = Field(None, description="Task path, e.g. contact_info/corporate")
    required_fields: List[str] = Field(default_factory=list)
    next: StepTransitions


class WorkflowDefinition(BaseModel):
    """Workflow definition (orchestration level)"""
    model_config = _config(extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    version: int = Field(default=1)
    description: Optional[str] = None
    applies_to: Optional[AppliesTo] = None
    stages: List[StageDefinition] = Field(default_factory=list)
    steps: List[StepDefinition] = Field(default_factory=list)

    def step_ids(self) -> List[str]:
        return [s.id for s in self.steps]


# ============================================================================
# Task Definition (field schemas)
# ============================================================================

class FieldSchema(BaseModel):
    """Field schema from a task definition"""
    model_config = _config(extra="allow")

    name: str = Field(..., min_length=1)
    label: Optional[str] = None
    type: str = Field(default="text")
    required: bool = False
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    validation: Dict[str, Any] = Field(default_factory=dict)
    options: Optional[List[Any]] = None
    default_value: Optional[Any] = None
    visible: Optional[str] = None
    inherits: Optional[str] = Field(None, description="Parent field this one is derived from")


class TaskDefinition(BaseModel):
    """Task definition - canonical field schema for a step"""
    model_config = _config(extra="ignore")

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str = ""
    version: int = 1
    extends: Optional[str] = Field(None, description="Base task ref to inherit from")
    component_id: str = Field(..., min_length=1)
    required_fields: List[str] = Field(default_factory=list)
    field_schema: Dict[str, Any] = Field(default_factory=dict, alias="schema")
    expected_output_fields: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)

    def fields(self) -> List[FieldSchema]:
        return [FieldSchema.model_validate(f) for f in self.field_schema.get("fields") or []]


# ============================================================================
# Runtime Machine (compiled)
# ============================================================================

class FrozenDict(dict):
    """Read-only dict; still a dict for serialization and equality"""

    def _read_only(self, *args: Any, **kwargs: Any) -> None:
        raise TypeError(f"{type(self).__name__} is read-only")

    __setitem__ = __delitem__ = __ior__ = _read_only
    clear = pop = popitem = setdefault = update = _read_only

    def __reduce__(self):
        return (type(self), (dict(self),))


def freeze(value: Any) -> Any:
    """Recursively turn dicts into FrozenDicts and lists into tuples"""
    if isinstance(value, dict):
        return FrozenDict((key, freeze(item)) for key, item in value.items())
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


class CompiledStep(BaseModel):
    """Compiled workflow step with resolved stage membership"""
    model_config = _config(extra="forbid", frozen=True)

    id: str
    position: int
    stage: Optional[str] = None
    task_ref: Optional[str] = None
    required_fields: Tuple[str, ...] = Field(default_factory=tuple)
    next: StepTransitions
    component_id: Optional[str] = None
    field_schema: Dict[str, Any] = Field(default_factory=FrozenDict, alias="schema")

    @field_validator("field_schema", mode="after")
    @classmethod
    def _freeze_schema(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        return freeze(value)

    @property
    def is_final_step(self) -> bool:
        """True when the default transition leaves the workflow"""
        return self.next.default == END_STEP_ID

    def fields(self) -> List[FieldSchema]:
        return [FieldSchema.model_validate(f) for f in self.field_schema.get("fields") or []]


class RuntimeMachine(BaseModel):
    """
    Compiled, immutable form of a workflow definition for one profile

    Step lookups go through ``step_index_by_id`` (id -> position in ``steps``).
    """
    model_config = _config(extra="forbid", frozen=True)

    workflow_id: str
    name: str
    version: int
    stages: Tuple[StageDefinition, ...] = Field(default_factory=tuple)
    initial_step_id: str
    steps: Tuple[CompiledStep, ...]
    step_index_by_id: Dict[str, int]

    @field_validator("step_index_by_id", mode="after")
    @classmethod
    def _freeze_index(cls, value: Dict[str, int]) -> Dict[str, int]:
        return freeze(value)

    def get_step_by_id(self, step_id: str) -> Optional[CompiledStep]:
        """O(1) step lookup; None for unknown ids and for END"""
        position = self.step_index_by_id.get(step_id)
        if position is None:
            return None
        return self.steps[position]

    def has_step(self, step_id: str) -> bool:
        return step_id in self.step_index_by_id

    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]

    def initial_step(self) -> Optional[CompiledStep]:
        return self.get_step_by_id(self.initial_step_id)

    def steps_in_stage(self, stage_id: str) -> List[CompiledStep]:
        return [step for step in self.steps if step.stage == stage_id]

    def stage_for_step(self, step_id: str) -> Optional[StageDefinition]:
        step = self.get_step_by_id(step_id)
        if not step or not step.stage:
            return None
        for stage in self.stages:
            if stage.id == step.stage:
                return stage
        return None


# ============================================================================
# Engine Results
# ============================================================================

class TransitionCheck(BaseModel):
    """Whether a step's required inputs allow leaving it"""
    can_transition: bool
    reason: Optional[str] = None
    missing_fields: List[str] = Field(default_factory=list)


class TransitionResult(BaseModel):
    """Resolved move from a step"""
    is_end: bool
    target_step_id: str
    next_step: Optional[CompiledStep] = None


class InputValidationResult(BaseModel):
    """Field-level validation outcome for a step"""
    valid: bool
    errors: List[str] = Field(default_factory=list)


class WorkflowProgress(BaseModel):
    total: int
    completed: int
    remaining: int
    percentage: int


class StageProgress(BaseModel):
    stage_id: str
    stage_name: str
    total: int
    completed: int
    percentage: int


# ============================================================================
# Client State (persisted)
# ============================================================================

class ClientState(BaseModel):
    """Durable per-client record of workflow position and collected data"""
    model_config = _config(extra="ignore")

    client_id: str = Field(..., min_length=1)
    workflow_id: str = Field(..., min_length=1)
    current_step_id: str = Field(..., min_length=1, description="Step id or END")
    current_stage: Optional[str] = None
    collected_inputs: Dict[str, Any] = Field(default_factory=dict)
    completed_steps: List[str] = Field(default_factory=list)
    completed_stages: List[str] = Field(default_factory=list)
    data: Optional[Dict[str, Any]] = Field(None, description="Opaque client profile payload")
    last_updated: datetime = Field(default_factory=utc_now)

    @field_validator("last_updated", mode="before")
    @classmethod
    def _parse_timestamp(cls, value: Any) -> Any:
        # Legacy records carry date-only or offset-less strings
        if isinstance(value, str):
            return parse_iso(value)
        return value

    @property
    def is_complete(self) -> bool:
        return self.current_step_id == END_STEP_ID

    def to_record(self) -> Dict[str, Any]:
        """On-disk representation (camelCase JSON)"""
        return self.model_dump(mode="json", by_alias=True)


# ============================================================================
# Service Results
# ============================================================================

class AdvanceOutcome(BaseModel):
    """Result of trying to move a client past its current step"""
    advanced: bool
    is_end: bool = False
    reason: Optional[str] = None
    missing_fields: List[str] = Field(default_factory=list)
    state: ClientState


class ClientSnapshot(BaseModel):
    """Everything a calling layer needs to render a client's position"""
    state: ClientState
    current_step: Optional[CompiledStep] = None
    can_proceed: bool
    missing_fields: List[str] = Field(default_factory=list)
    validation_errors: List[str] = Field(default_factory=list)
    workflow_progress: WorkflowProgress
    stage_progress: List[StageProgress] = Field(default_factory=list)
    is_complete: bool
