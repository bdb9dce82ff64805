"""Tests for required-field gating, condition evaluation and transitions."""
import pytest

from clientflow.domain.models import CompiledStep, Condition
from clientflow.domain.enums import END_STEP_ID
from clientflow.domain.errors import TransitionError
from clientflow.engine.condition_evaluator import ConditionEvaluator
from clientflow.engine.transition_resolver import TransitionResolver


@pytest.fixture
def resolver():
    return TransitionResolver()


# =============================================================================
# Gating
# =============================================================================

def test_missing_email_blocks_start(resolver, machine):
    start = machine.get_step_by_id("start")
    check = resolver.can_transition_from(start, {})
    assert check.can_transition is False
    assert check.reason == "Missing required fields: email"
    assert check.missing_fields == ["email"]


def test_present_email_allows_start(resolver, machine):
    start = machine.get_step_by_id("start")
    inputs = {"email": "a@b.com"}
    assert resolver.can_transition_from(start, inputs).can_transition is True

    result = resolver.execute_transition(machine, start, inputs)
    assert result.is_end is False
    assert result.target_step_id == "verify"
    assert result.next_step.id == "verify"


@pytest.mark.parametrize(
    "inputs, missing",
    [
        ({}, ["email", "name"]),
        ({"email": "", "name": "Ann"}, ["email"]),
        ({"email": None, "name": "Ann"}, ["email"]),
        ({"email": [], "name": "Ann"}, ["email"]),
        ({"email": "a@b.com", "name": 0}, []),
        ({"email": "a@b.com", "name": False}, []),
        ({"email": "a@b.com", "name": "Ann", "extra": ""}, []),
    ],
)
def test_can_transition_iff_nothing_missing(resolver, inputs, missing):
    step = CompiledStep(id="s", position=0, required_fields=("email", "name"), next={"default": END_STEP_ID})
    assert resolver.missing_required_fields(step, inputs) == missing
    check = resolver.can_transition_from(step, inputs)
    assert check.can_transition is (not missing)
    assert check.missing_fields == missing


def test_step_without_required_fields_can_always_transition(resolver, machine):
    assert resolver.can_transition_from(machine.get_step_by_id("verify"), {}).can_transition


# =============================================================================
# Conditional transitions
# =============================================================================

@pytest.mark.parametrize(
    "inputs, expected",
    [
        ({"risk": "high"}, "review"),
        ({"risk": "low"}, "finalize"),
        ({"risk": "medium"}, "finalize"),
        ({}, "finalize"),
    ],
)
def test_risk_routing(resolver, machine, inputs, expected):
    verify = machine.get_step_by_id("verify")
    result = resolver.execute_transition(machine, verify, inputs)
    assert result.next_step.id == expected


def test_end_transition(resolver, machine):
    result = resolver.execute_transition(machine, machine.get_step_by_id("finalize"), {})
    assert result.is_end is True
    assert result.target_step_id == END_STEP_ID
    assert result.next_step is None


def test_first_matching_condition_wins(resolver, compiler, build_definition):
    machine = compiler.compile_definition(build_definition(steps=[
        {
            "id": "assess",
            "next": {
                "conditions": [
                    {"when": "score > 50", "then": "medium"},
                    {"when": "score > 80", "then": "high"},
                ],
                "default": "low",
            },
        },
        ("low", "END"),
        ("medium", "END"),
        ("high", "END"),
    ]))
    assess = machine.get_step_by_id("assess")
    assert resolver.resolve_target(assess, {"score": 90}) == "medium"
    assert resolver.resolve_target(assess, {"score": "60"}) == "medium"
    assert resolver.resolve_target(assess, {"score": 10}) == "low"


def test_execute_transition_does_not_regate(resolver, machine):
    result = resolver.execute_transition(machine, machine.get_step_by_id("start"), {})
    assert result.next_step.id == "verify"


def test_unknown_target_raises_transition_error(resolver, machine):
    orphan = CompiledStep(id="orphan", position=9, next={"default": "ghost"})
    with pytest.raises(TransitionError) as exc_info:
        resolver.execute_transition(machine, orphan, {})
    assert exc_info.value.details["target_step_id"] == "ghost"
    assert exc_info.value.http_status == 500


def test_outgoing_targets(resolver, machine):
    assert resolver.get_outgoing_targets(machine.get_step_by_id("verify")) == ["review", "finalize"]


# =============================================================================
# Condition evaluation
# =============================================================================

@pytest.fixture
def evaluator():
    return ConditionEvaluator()


@pytest.mark.parametrize(
    "op, expected",
    [("==", False), ("!=", True), (">", False), (">=", False), ("<", False), ("<=", False)],
)
def test_missing_field_only_satisfies_not_equals(evaluator, op, expected):
    condition = Condition(field="risk", op=op, value="high", target="x")
    assert evaluator.evaluate(condition, {}) is expected
    assert evaluator.evaluate(condition, {"risk": None}) is expected


def test_dot_notation_lookup(evaluator):
    condition = Condition(field="address.country", op="==", value="US", target="x")
    assert evaluator.evaluate(condition, {"address": {"country": "US"}})
    assert not evaluator.evaluate(condition, {"address": {"country": "CA"}})
    assert not evaluator.evaluate(condition, {"address": "US"})


def test_flat_key_with_dot_takes_precedence(evaluator):
    condition = Condition(field="address.country", op="==", value="US", target="x")
    assert evaluator.evaluate(condition, {"address.country": "US", "address": {"country": "CA"}})
