"""
执行引擎 - 把扁平步骤列表当作嵌套控制流程序解释执行

- 每个块体通过递归 ``execute_range`` 在半开区间上执行，递归深度等于块嵌套深度
- 控制步骤按 StepKind 分派到处理函数，其余步骤交给 ActionExecutor
"""
from __future__ import annotations

import asyncio
import inspect
import math
import operator as _op
from dataclasses import dataclass
from numbers import Number
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional

from ...core.config import settings
from ...core.constants import (
    CONTROL_TERMINATORS,
    MAX_WHILE_ITERATIONS,
    ErrorPolicy,
    RunStatus,
    StepKind,
)
from ...core.logger import logger
from ..executor.base import ActionExecutor
from ..scenario.resolver import BlockResolver
from ..scenario.types import Step
from .conditions import ConditionEvaluator, derive_outcome
from .errors import (
    BlockStructureError,
    FatalRunError,
    LoopCountError,
    RunCancelled,
    RunTerminated,
    StepError,
)
from .variables import VariableStore

if TYPE_CHECKING:
    from ..executor.types import RunSnapshot, ScenarioRun

ProgressCallback = Callable[["RunSnapshot"], Optional[Awaitable[None]]]

_ARITHMETIC = {
    "+": _op.add,
    "-": _op.sub,
    "*": _op.mul,
    "/": _op.truediv,
}


def _to_number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{what} must be numeric, got {value!r}")
    if isinstance(value, Number):
        return value  # type: ignore[return-value]
    if isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            raise ValueError(f"{what} must be numeric, got {value!r}") from None
        return int(number) if number.is_integer() else number
    raise ValueError(f"{what} must be numeric, got {value!r}")


def resolve_loop_count(step: Step, variables: VariableStore) -> int:
    """loop 步骤的循环次数（常量或变量）"""
    if str(step.get("countType", "constant")).lower() == "variable":
        name = step.get("countVariable") or step.get("variableName")
        try:
            raw = variables.require(name)
        except KeyError:
            raise LoopCountError(f"Loop count variable {name!r} is not defined") from None
        source = f"variable {name!r}"
    else:
        raw = step.get("loopCount", step.get("count", 1))
        source = "loop count"

    try:
        value = float(_to_number(raw, source))
    except ValueError as e:
        raise LoopCountError(str(e)) from None
    if not math.isfinite(value) or value < 0:
        raise LoopCountError(f"{source} must be a finite non-negative number, got {raw!r}")
    return math.floor(value)


def calculate(left: Any, operation: str, right: Any) -> Any:
    func = _ARITHMETIC.get(operation)
    if func is None:
        raise StepError(f"Unknown operation {operation!r}")
    if operation == "/" and right == 0:
        raise StepError("Division by zero")
    return func(left, right)


@dataclass
class _RunContext:
    run: "ScenarioRun"
    resolver: BlockResolver

    @property
    def steps(self):
        return self.run.steps

    @property
    def variables(self) -> VariableStore:
        return self.run.variables


Handler = Callable[[_RunContext, int, Step], Awaitable[int]]


class ExecutionEngine:
    def __init__(
        self,
        executor: ActionExecutor,
        *,
        step_delay_ms: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.executor = executor
        self.evaluator = ConditionEvaluator(executor)
        self.step_delay_ms = settings.step_delay_ms if step_delay_ms is None else max(0, step_delay_ms)
        self.on_progress = on_progress
        self._log = logger.bind(module="ExecutionEngine")
        self._handlers: Dict[StepKind, Handler] = {
            StepKind.IF: self._handle_if,
            StepKind.ELSE_IF: self._handle_if,
            StepKind.ELSE: self._handle_else,
            StepKind.WHILE: self._handle_while,
            StepKind.LOOP: self._handle_loop,
            StepKind.IMAGE_MATCH: self._handle_condition_starter,
            StepKind.GET_VOLUME: self._handle_condition_starter,
            StepKind.SOUND_CHECK: self._handle_condition_starter,
            StepKind.SUCCESS: self._handle_terminate,
            StepKind.SKIP: self._handle_terminate,
            StepKind.FAIL: self._handle_terminate,
            StepKind.SET_VARIABLE: self._handle_set_variable,
            StepKind.CALC_VARIABLE: self._handle_calc_variable,
            StepKind.END_IF: self._handle_marker,
            StepKind.ENDIF: self._handle_marker,
            StepKind.END_LOOP: self._handle_marker,
            StepKind.END_WHILE: self._handle_marker,
        }

    # ── 运行生命周期 ──

    async def execute(self, run: "ScenarioRun") -> "ScenarioRun":
        """执行 run 的全部步骤并记录最终状态"""
        log = self._log.bind(scenario_key=run.key)
        run.variables.clear()
        ctx = _RunContext(run=run, resolver=BlockResolver(run.steps))
        log.info(f"开始执行: 共 {len(run.steps)} 个步骤")

        try:
            await self.execute_range(ctx, 0, len(run.steps))
        except RunTerminated as t:
            run.finish(t.status, t.message or "")
            log.info(f"步骤结束运行: {t.status.value} {t.message or ''}".rstrip())
        except RunCancelled:
            run.finish(RunStatus.STOPPED, "Stopped by user")
            log.warning("执行已停止")
        except FatalRunError as e:
            run.finish(RunStatus.FAIL, str(e))
            log.error(f"执行失败: {e}")
        except Exception as e:
            run.finish(RunStatus.FAIL, str(e))
            log.error(f"执行异常: {e}")
        else:
            if run.stop_requested:
                run.finish(RunStatus.STOPPED, "Stopped by user")
                log.warning("执行已停止")
            else:
                run.finish(RunStatus.PASS, "All actions completed")
                log.info("执行完成")
        return run

    async def execute_range(self, ctx: _RunContext, start: int, end: int) -> None:
        """执行 [start, end) 区间，块处理函数返回下一个下标"""
        index = start
        while index < end:
            if ctx.run.stop_requested:
                raise RunCancelled()
            step = ctx.steps[index]
            ctx.run.current_index = index
            handler = self._handlers.get(step.kind, self._handle_leaf)
            try:
                index = await handler(ctx, index, step)
            except StepError as e:
                self._on_step_error(index, step, e)
                index += 1

    def _on_step_error(self, index: int, step: Step, error: StepError) -> None:
        if step.on_error == ErrorPolicy.STOP:
            raise FatalRunError(f"Step {index + 1} ({step.kind.value}) failed: {error}") from error
        if step.on_error == ErrorPolicy.SKIP:
            return
        self._log.error(f"步骤 {index + 1} ({step.kind.value}) 失败: {error}")

    # ── 辅助 ──

    def _block_end(self, ctx: _RunContext, index: int, terminators: Iterable[StepKind]) -> int:
        end = ctx.resolver.find_block_end(index, terminators)
        if end >= len(ctx.steps):
            names = "/".join(k.value for k in terminators)
            raise BlockStructureError(
                f"Step {index + 1} ({ctx.steps[index].kind.value}) has no matching {names}"
            )
        return end

    async def _pause(self) -> None:
        if self.step_delay_ms > 0:
            await asyncio.sleep(self.step_delay_ms / 1000.0)

    async def _advance(self, ctx: _RunContext) -> None:
        ctx.run.progress.current += 1
        if self.on_progress is not None:
            maybe = self.on_progress(ctx.run.snapshot())
            if inspect.isawaitable(maybe):
                await maybe

    async def _run_paired_block(self, ctx: _RunContext, index: int, matched: bool) -> int:
        """
        执行配对块 [index, endif]

        分支标记 (else-if / else) 可带同一 pairId，也可不带；
        条件不成立时按顺序检查 else-if，命中第一个成立的分支或 else。
        """
        endif = ctx.resolver.find_paired_endif(index)
        if endif is None:
            raise BlockStructureError(f"Step {index + 1} has no paired endif")
        markers = ctx.resolver.find_branch_markers(index, endif)
        bounds = markers + [endif]
        if matched:
            await self.execute_range(ctx, index + 1, bounds[0])
            return endif + 1

        for position, marker in enumerate(markers):
            if ctx.run.stop_requested:
                raise RunCancelled()
            branch = ctx.steps[marker]
            ctx.run.current_index = marker
            if branch.kind == StepKind.ELSE or await self.evaluator.evaluate(branch, ctx.run):
                await self.execute_range(ctx, marker + 1, bounds[position + 1])
                break
        return endif + 1

    # ── 控制流 ──

    async def _handle_if(self, ctx: _RunContext, index: int, step: Step) -> int:
        matched = await self.evaluator.evaluate(step, ctx.run)
        if step.kind == StepKind.IF and ctx.resolver.is_paired_block(index):
            return await self._run_paired_block(ctx, index, matched)

        branch_end = self._block_end(ctx, index, (StepKind.ELSE_IF, StepKind.ELSE, StepKind.END_IF))
        if not matched:
            # 停在 branch_end，由下一轮检查该处的 else-if/else/end-if
            return branch_end
        await self.execute_range(ctx, index + 1, branch_end)
        return self._block_end(ctx, index, (StepKind.END_IF,)) + 1

    async def _handle_else(self, ctx: _RunContext, index: int, step: Step) -> int:
        end = self._block_end(ctx, index, (StepKind.END_IF,))
        await self.execute_range(ctx, index + 1, end)
        return end + 1

    async def _handle_while(self, ctx: _RunContext, index: int, step: Step) -> int:
        end = self._block_end(ctx, index, (StepKind.END_WHILE,))
        iterations = 0
        while True:
            if ctx.run.stop_requested:
                raise RunCancelled()
            if iterations >= MAX_WHILE_ITERATIONS:
                self._log.warning(
                    f"步骤 {index + 1} 的 while 循环达到最大次数 ({MAX_WHILE_ITERATIONS})"
                )
                break
            if not await self.evaluator.evaluate(step, ctx.run):
                break
            await self.execute_range(ctx, index + 1, end)
            iterations += 1
        return end + 1

    async def _handle_loop(self, ctx: _RunContext, index: int, step: Step) -> int:
        end = self._block_end(ctx, index, (StepKind.END_LOOP,))
        count = resolve_loop_count(step, ctx.variables)
        self._log.debug(f"步骤 {index + 1} 循环 {count} 次")
        for _ in range(count):
            await self.execute_range(ctx, index + 1, end)
        return end + 1

    async def _handle_condition_starter(self, ctx: _RunContext, index: int, step: Step) -> int:
        if not ctx.resolver.is_paired_block(index):
            return await self._handle_leaf(ctx, index, step)

        result = await self.executor.run_action(step)
        ctx.variables.last_action_result = result.value
        matched = derive_outcome(step.kind, step.params, result)
        self._log.info(f"{step.describe()} 条件 -> {matched}")
        await self._pause()
        return await self._run_paired_block(ctx, index, matched)

    async def _handle_terminate(self, ctx: _RunContext, index: int, step: Step) -> int:
        status = CONTROL_TERMINATORS[step.kind]
        raise RunTerminated(status, step.get("message"))

    async def _handle_marker(self, ctx: _RunContext, index: int, step: Step) -> int:
        return index + 1

    # ── 数据步骤 ──
    # 失败的数据步骤同样计入进度，与 count_total 的静态计数一致

    async def _handle_set_variable(self, ctx: _RunContext, index: int, step: Step) -> int:
        name = step.get("variableName") or step.get("name")
        if not name:
            await self._advance(ctx)
            raise StepError("set-variable requires variableName")

        if str(step.get("source", "constant")).lower() == "previous":
            value = ctx.variables.last_action_result
            if value is None:
                self._log.warning(f"没有上一步结果可用于 {name!r}，使用 0")
                value = 0
        else:
            value = step.get("value")

        ctx.variables.set(name, value)
        ctx.variables.last_action_result = value
        self._log.info(f"变量 {name} = {value!r}")
        await self._advance(ctx)
        await self._pause()
        return index + 1

    def _operand(self, ctx: _RunContext, operand: Any, label: str) -> Any:
        if isinstance(operand, Mapping):
            if str(operand.get("type", "constant")).lower() == "variable":
                name = operand.get("name") or operand.get("value")
                try:
                    operand = ctx.variables.require(name)
                except KeyError:
                    raise StepError(f"{label} variable {name!r} is not defined") from None
            else:
                operand = operand.get("value")
        try:
            return _to_number(operand, label)
        except ValueError as e:
            raise StepError(str(e)) from None

    async def _handle_calc_variable(self, ctx: _RunContext, index: int, step: Step) -> int:
        target = step.get("targetVariable") or step.get("variableName")
        operation = str(step.get("operation", "+"))
        try:
            if not target:
                raise StepError("calc-variable requires targetVariable")
            left = self._operand(ctx, step.get("operand1"), "operand1")
            right = self._operand(ctx, step.get("operand2"), "operand2")
            value = calculate(left, operation, right)
        except StepError:
            await self._advance(ctx)
            raise

        ctx.variables.set(target, value)
        ctx.variables.last_action_result = value
        self._log.info(f"变量 {target} = {left!r} {operation} {right!r} = {value!r}")
        await self._advance(ctx)
        await self._pause()
        return index + 1

    # ── 叶子动作 ──

    async def _handle_leaf(self, ctx: _RunContext, index: int, step: Step) -> int:
        result = await self.executor.run_action(step)
        ctx.variables.last_action_result = result.value
        await self._advance(ctx)
        if result.success:
            self._log.info(f"步骤 {index + 1} ({step.kind.value}) 完成")
        await self._pause()
        if not result.success:
            raise StepError(result.error or "action reported failure")
        return index + 1


__all__ = ["ExecutionEngine", "calculate", "resolve_loop_count"]
