"""
条件求值 - 用于 if / else-if / while 以及条件起始步骤
"""
from __future__ import annotations

from numbers import Number
from typing import TYPE_CHECKING, Any, List, Mapping

from ...core.constants import ConditionOperator, StepKind
from ...core.logger import logger
from ..executor.base import ActionExecutor, ActionResult
from ..scenario.types import Step

if TYPE_CHECKING:
    from ..executor.types import ScenarioRun

_log = logger.bind(module="ConditionEvaluator")

DEFAULT_COMPARISON = ">="
DEFAULT_VOLUME_VALUE = 0
DEFAULT_SOUND_THRESHOLD = 0.8

_ORDERING = {
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
}
_EQUALITY = {"==", "===", "!=", "!=="}


def _is_number(value: Any) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


def evaluate_comparison(actual: Any, operator: str, expected: Any) -> bool:
    """比较 actual 与 expected；输入非法时返回 False"""
    if operator in _EQUALITY:
        equal = actual == expected
        return equal if operator in ("==", "===") else not equal

    compare = _ORDERING.get(operator)
    if compare is None:
        _log.warning(f"未知的比较运算符: {operator!r}")
        return False
    if not (_is_number(actual) and _is_number(expected)):
        _log.warning(f"无法比较 {actual!r} {operator} {expected!r}")
        return False
    return compare(actual, expected)


def _comparison(params: Mapping[str, Any], expected_key: str, default_expected: Any):
    # 旧版编辑器数据把比较条件放在 "comparison" 下
    nested = params.get("comparison")
    if isinstance(nested, Mapping):
        operator = nested.get("operator", params.get("operator", DEFAULT_COMPARISON))
        expected = nested.get("value", params.get(expected_key, default_expected))
    else:
        operator = params.get("operator", DEFAULT_COMPARISON)
        expected = params.get(expected_key, default_expected)
    if isinstance(expected, Mapping):
        # {min, max} 形式的 threshold 是声音检测的分贝区间，不是判定阈值
        expected = default_expected
    return operator, expected


def derive_outcome(kind: StepKind, params: Mapping[str, Any], result: ActionResult) -> bool:
    """把探测动作的结果转换为布尔值"""
    if kind == StepKind.GET_VOLUME:
        if not result.success:
            return False
        operator, expected = _comparison(params, "value", DEFAULT_VOLUME_VALUE)
        return evaluate_comparison(result.volume, operator, expected)
    if kind == StepKind.SOUND_CHECK:
        if not result.success:
            return False
        operator, expected = _comparison(params, "threshold", DEFAULT_SOUND_THRESHOLD)
        return evaluate_comparison(result.similarity, operator, expected)
    return bool(result.success)


class ConditionEvaluator:
    def __init__(self, executor: ActionExecutor) -> None:
        self.executor = executor

    async def check(self, step: Step, run: "ScenarioRun") -> bool:
        """执行一个探测步骤并得出布尔值"""
        result = await self.executor.run_action(step)
        run.variables.last_action_result = result.value
        outcome = derive_outcome(step.kind, step.params, result)
        if not result.success and result.error:
            _log.info(f"条件探测 {step.kind.value} 失败: {result.error}")
        return outcome

    async def evaluate(self, step: Step, run: "ScenarioRun") -> bool:
        """
        用步骤的组合运算符 (AND/OR) 求值全部条件

        每个条件都会执行，不短路；条件列表为空时为 False。
        """
        if not step.conditions:
            _log.warning(f"{step.describe()} 没有条件，按 False 处理")
            return False

        results: List[bool] = []
        for condition in step.conditions:
            outcome = await self.check(condition.as_step(), run)
            if condition.negate:
                outcome = not outcome
            _log.debug(
                f"条件 {condition.action_type.value}"
                f"{' (取反)' if condition.negate else ''} = {outcome}"
            )
            results.append(outcome)

        if step.condition_operator == ConditionOperator.OR:
            final = any(results)
        else:
            final = all(results)
        _log.info(f"{step.describe()} 条件 {step.condition_operator.value} -> {final}")
        return final


__all__ = [
    "ConditionEvaluator",
    "derive_outcome",
    "evaluate_comparison",
]
