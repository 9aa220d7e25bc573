import pytest

from macroflow.core.constants import ConditionOperator, ErrorPolicy, StepKind
from macroflow.modules.scenario.types import Condition, Step, parse_kind, parse_steps


def test_step_from_dict_accepts_wire_names():
    step = Step.from_dict(
        {
            "id": "s1",
            "type": "if",
            "pairId": "p1",
            "conditionOperator": "or",
            "onError": "stop",
            "conditions": [{"actionType": "image-match", "params": {"template": "a.png"}, "negate": True}],
        }
    )

    assert step.kind == StepKind.IF
    assert step.pair_id == "p1"
    assert step.condition_operator == ConditionOperator.OR
    assert step.on_error == ErrorPolicy.STOP
    assert step.conditions[0].action_type == StepKind.IMAGE_MATCH
    assert step.conditions[0].negate is True
    assert step.conditions[0].params == {"template": "a.png"}


def test_extra_keys_become_params():
    step = Step.from_dict({"kind": "tap", "x": 10, "y": 20, "params": {"x": 1, "note": "n"}})

    assert step.params == {"x": 10, "y": 20, "note": "n"}
    assert step.get("x") == 10
    assert step.get("missing", 5) == 5


def test_defaults_and_generated_id():
    a = Step.from_dict({"kind": "wait"})
    b = Step.from_dict({"kind": "wait"})

    assert a.id and b.id and a.id != b.id
    assert a.pair_id is None
    assert a.on_error == ErrorPolicy.CONTINUE
    assert a.condition_operator == ConditionOperator.AND


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        Step.from_dict({"kind": "teleport"})


def test_unknown_error_policy_rejected():
    with pytest.raises(ValueError):
        Step.from_dict({"kind": "tap", "onError": "retry"})


def test_condition_rejects_control_kind():
    with pytest.raises(ValueError):
        Condition.from_dict({"actionType": "while"})


def test_condition_as_step_copies_params():
    condition = Condition.from_dict({"actionType": "get-volume", "params": {"value": 3}, "id": "c1"})
    synthetic = condition.as_step()

    assert synthetic.kind == StepKind.GET_VOLUME
    assert synthetic.id == "c1"
    synthetic.params["value"] = 9
    assert condition.params["value"] == 3


def test_parse_kind_normalizes():
    assert parse_kind(" END-LOOP ") == StepKind.END_LOOP
    assert parse_kind(StepKind.TAP) is StepKind.TAP


def test_parse_steps_keeps_step_instances():
    existing = Step(kind=StepKind.HOME)
    steps = parse_steps([existing, {"kind": "back"}])

    assert steps[0] is existing
    assert steps[1].kind == StepKind.BACK
