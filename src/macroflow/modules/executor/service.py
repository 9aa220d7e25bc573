"""
场景运行服务 - 运行生命周期与运行登记表

职责:
- 每次执行创建独立的 ScenarioRun（变量存储互不共享）
- 串行化运行，任一时刻只有一个运行占用引擎
- 按 key 登记运行中的场景，提供 {status, progress} 给观察者
- 顺序执行批量场景，停止/取消在步骤边界生效
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from ...core.constants import CONDITION_STARTERS, RunStatus, StepKind
from ...core.logger import get_scenario_logger, logger
from ..engine.errors import BlockStructureError, LoopCountError
from ..engine.interpreter import ExecutionEngine, resolve_loop_count
from ..engine.variables import VariableStore
from ..scenario.loader import ScenarioLoader
from ..scenario.resolver import BlockResolver
from ..scenario.types import Step, parse_steps
from .base import ActionExecutor
from .types import RunOutcome, RunSnapshot, ScenarioRun

SnapshotCallback = Callable[[RunSnapshot], Optional[Awaitable[None]]]
CompleteCallback = Callable[[Optional[str], RunOutcome], Optional[Awaitable[None]]]

_UNPREDICTABLE = frozenset({StepKind.WHILE, StepKind.IF, StepKind.ELSE_IF, StepKind.ELSE})


def count_total(steps: Sequence[Step]) -> Optional[int]:
    """
    静态统计叶子步骤数，展开 loop 的循环次数

    遇到 while、条件分支或变量次数的 loop 时无法预知执行步数，返回 None
    """
    resolver = BlockResolver(steps)

    def _count(start: int, end: int) -> Optional[int]:
        total = 0
        index = start
        while index < end:
            step = steps[index]
            kind = step.kind
            if kind in _UNPREDICTABLE:
                return None
            if kind in CONDITION_STARTERS and resolver.is_paired_block(index):
                return None
            if kind == StepKind.LOOP:
                loop_end = resolver.find_block_end(index, (StepKind.END_LOOP,))
                if loop_end >= len(steps):
                    return None
                if str(step.get("countType", "constant")).lower() == "variable":
                    return None
                try:
                    count = resolve_loop_count(step, VariableStore())
                except LoopCountError:
                    return None
                inner = _count(index + 1, loop_end)
                if inner is None:
                    return None
                total += inner * count
                index = loop_end + 1
                continue
            if kind in (StepKind.END_LOOP, StepKind.END_WHILE, StepKind.END_IF, StepKind.ENDIF):
                index += 1
                continue
            if kind in (StepKind.SUCCESS, StepKind.SKIP, StepKind.FAIL):
                index += 1
                continue
            total += 1
            index += 1
        return total

    return _count(0, len(steps))


async def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.bind(module="ScenarioRunService").warning(f"观察者回调异常: {e}")


class ScenarioRunService:
    def __init__(
        self,
        executor: ActionExecutor,
        *,
        source: Optional[ScenarioLoader] = None,
        step_delay_ms: Optional[int] = None,
        on_progress: Optional[SnapshotCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> None:
        self.executor = executor
        self.source = source
        self.on_progress = on_progress
        self.on_complete = on_complete
        self._engine = ExecutionEngine(
            executor,
            step_delay_ms=step_delay_ms,
            on_progress=self._emit_progress,
        )
        self._runs: Dict[str, ScenarioRun] = {}
        self._active: Optional[ScenarioRun] = None
        self._lock = asyncio.Lock()
        self._batch_stop = False
        self._log = logger.bind(module="ScenarioRunService")

    @property
    def engine(self) -> ExecutionEngine:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._active is not None

    async def _emit_progress(self, snapshot: RunSnapshot) -> None:
        await _notify(self.on_progress, snapshot)

    # ── 单次运行 ──

    async def run(self, steps: Sequence[Any], key: Optional[str] = None) -> RunOutcome:
        """
        执行一个场景直到结束并返回结果

        运行在等待锁之前就按 key 登记，排队中也能被 stop/cancel；
        完成回调在释放锁之后触发，回调里可以直接发起下一次运行。
        """
        parsed = parse_steps(list(steps))
        run = ScenarioRun(steps=parsed, key=key)
        run.progress.total = count_total(parsed)
        log = get_scenario_logger(key) if key else self._log
        if key is not None:
            self._runs[key] = run
        try:
            async with self._lock:
                await self._execute(run, log)
        finally:
            if key is not None and self._runs.get(key) is run:
                del self._runs[key]

        outcome = run.outcome()
        log.info(f"运行结束: {outcome.status.value} ({outcome.actions_count} 个动作) {outcome.message}")
        await _notify(self.on_progress, run.snapshot())
        await _notify(self.on_complete, key, outcome)
        return outcome

    async def _execute(self, run: ScenarioRun, log) -> None:
        problems = BlockResolver(run.steps).validate()
        if problems:
            error = BlockStructureError("; ".join(problems))
            run.finish(RunStatus.FAIL, str(error))
            log.error(f"场景结构错误: {error}")
            return
        if run.stop_requested:
            run.finish(RunStatus.STOPPED, "Stopped by user")
            log.warning("运行在排队期间已被停止")
            return

        self._active = run
        log.info(f"开始运行: {len(run.steps)} 个步骤, total={run.progress.total}")
        await _notify(self.on_progress, run.snapshot())
        try:
            await self._engine.execute(run)
        finally:
            self._active = None

    async def run_scenario(self, key: str) -> RunOutcome:
        """从场景源加载并运行"""
        if self.source is None:
            raise RuntimeError("No scenario source configured")
        scenario = self.source.load(key)
        if scenario is None:
            raise LookupError(f"Scenario not found: {key}")
        return await self.run(scenario.steps, key=key)

    # ── 批量 ──

    async def run_batch(self, keys: Iterable[str]) -> Dict[str, RunOutcome]:
        """依次运行多个场景，前一个结束后才开始下一个"""
        keys = list(keys)
        results: Dict[str, RunOutcome] = {}
        if not keys:
            self._log.warning("未选择任何场景")
            return results

        self._batch_stop = False
        self._log.info(f"开始批量运行 {len(keys)} 个场景")
        for key in keys:
            if self._batch_stop:
                self._log.info(f"批量运行已停止，跳过 {key}")
                break
            try:
                results[key] = await self.run_scenario(key)
            except (LookupError, RuntimeError) as e:
                self._log.error(f"场景 {key} 运行失败: {e}")
                outcome = RunOutcome(status=RunStatus.FAIL, message=str(e))
                results[key] = outcome
                await _notify(self.on_complete, key, outcome)
        self._log.info("批量场景运行完成")
        return results

    def stop_batch(self) -> None:
        """停止当前运行并跳过批量中剩余的场景"""
        self._batch_stop = True
        if self._active is not None:
            self._active.stop()

    # ── 控制 ──

    def stop(self, key: Optional[str] = None) -> bool:
        """请求停止当前运行（或指定 key 的运行），在步骤边界生效"""
        run = self._runs.get(key) if key is not None else self._active
        if run is None:
            return False
        run.stop()
        self._log.info(f"正在停止运行: {run.key or '-'}")
        return True

    def cancel(self, key: str) -> bool:
        """取消登记中的运行并从登记表移除"""
        run = self._runs.pop(key, None)
        if run is None:
            return False
        run.cancel()
        self._log.info(f"场景 {key} 已取消")
        return True

    # 观察接口
    def snapshot(self, key: str) -> Optional[RunSnapshot]:
        run = self._runs.get(key)
        return run.snapshot() if run is not None else None

    def running_info(self) -> List[dict]:
        return [run.snapshot().as_dict() for run in self._runs.values()]


__all__ = ["ScenarioRunService", "count_total"]
