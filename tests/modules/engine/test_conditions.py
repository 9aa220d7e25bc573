from types import SimpleNamespace

import pytest

from macroflow.core.constants import StepKind
from macroflow.modules.engine.conditions import ConditionEvaluator, derive_outcome, evaluate_comparison
from macroflow.modules.engine.variables import VariableStore
from macroflow.modules.executor.base import ActionExecutor, ActionResult
from macroflow.modules.scenario.types import Step


class _FixedExecutor(ActionExecutor):
    def __init__(self, results):
        super().__init__()
        self.results = results
        self.checked = []

    async def execute(self, step):
        self.checked.append(step.id)
        return self.results[step.id]


def _step(operator, *conditions):
    return Step.from_dict(
        {
            "kind": "if",
            "conditionOperator": operator,
            "conditions": [
                {"id": cid, "actionType": "image-match", "negate": negate} for cid, negate in conditions
            ],
        }
    )


def _run():
    return SimpleNamespace(variables=VariableStore())


@pytest.mark.parametrize(
    "actual,op,expected,result",
    [
        (5, ">=", 5, True),
        (5, ">", 5, False),
        (4, "<", 5, True),
        (5, "<=", 4, False),
        (5, "==", 5, True),
        ("a", "===", "a", True),
        (5, "!=", 5, False),
        (5, "!==", 6, True),
        (0.8, ">=", 0.8, True),
    ],
)
def test_evaluate_comparison(actual, op, expected, result):
    assert evaluate_comparison(actual, op, expected) is result


def test_unknown_operator_is_false():
    assert evaluate_comparison(5, "~=", 5) is False


def test_ordering_needs_numbers():
    assert evaluate_comparison("5", ">=", 1) is False
    assert evaluate_comparison(None, "<", 1) is False
    assert evaluate_comparison(True, ">=", 0) is False


def test_derive_outcome_volume_and_sound():
    assert derive_outcome(StepKind.GET_VOLUME, {"value": 3}, ActionResult.ok(volume=3)) is True
    assert derive_outcome(StepKind.GET_VOLUME, {"operator": "<", "value": 3}, ActionResult.ok(volume=3)) is False
    assert derive_outcome(StepKind.GET_VOLUME, {}, ActionResult.failed("adb")) is False
    assert derive_outcome(
        StepKind.GET_VOLUME,
        {"comparison": {"operator": "==", "value": 7}},
        ActionResult.ok(volume=7),
    ) is True

    assert derive_outcome(StepKind.SOUND_CHECK, {}, ActionResult.ok(similarity=0.9)) is True
    assert derive_outcome(StepKind.SOUND_CHECK, {"threshold": 0.95}, ActionResult.ok(similarity=0.9)) is False
    # a dB band threshold falls back to the default cut-off
    assert derive_outcome(
        StepKind.SOUND_CHECK, {"threshold": {"min": 40, "max": 80}}, ActionResult.ok(similarity=0.85)
    ) is True


def test_derive_outcome_image_match_uses_success():
    assert derive_outcome(StepKind.IMAGE_MATCH, {}, ActionResult.ok(score=0.1)) is True
    assert derive_outcome(StepKind.IMAGE_MATCH, {}, ActionResult.failed("nope", score=0.99)) is False


@pytest.mark.asyncio
async def test_and_group_requires_all():
    executor = _FixedExecutor({"a": ActionResult.ok(), "b": ActionResult.failed("x")})
    evaluator = ConditionEvaluator(executor)

    assert await evaluator.evaluate(_step("AND", ("a", False), ("b", False)), _run()) is False
    assert await evaluator.evaluate(_step("AND", ("a", False), ("b", True)), _run()) is True


@pytest.mark.asyncio
async def test_or_group_requires_any():
    executor = _FixedExecutor({"a": ActionResult.failed("x"), "b": ActionResult.failed("y")})
    evaluator = ConditionEvaluator(executor)

    assert await evaluator.evaluate(_step("OR", ("a", False), ("b", False)), _run()) is False
    assert await evaluator.evaluate(_step("OR", ("a", True), ("b", False)), _run()) is True


@pytest.mark.asyncio
async def test_every_condition_is_executed():
    executor = _FixedExecutor({"a": ActionResult.failed("x"), "b": ActionResult.ok()})
    evaluator = ConditionEvaluator(executor)

    await evaluator.evaluate(_step("AND", ("a", False), ("b", False)), _run())

    assert executor.checked == ["a", "b"]


@pytest.mark.asyncio
async def test_empty_conditions_false():
    evaluator = ConditionEvaluator(_FixedExecutor({}))

    assert await evaluator.evaluate(Step(kind=StepKind.IF), _run()) is False


@pytest.mark.asyncio
async def test_check_records_last_action_result():
    executor = _FixedExecutor({"v": ActionResult.ok(volume=11)})
    evaluator = ConditionEvaluator(executor)
    run = _run()

    await evaluator.check(Step(kind=StepKind.GET_VOLUME, id="v"), run)

    assert run.variables.last_action_result == 11
