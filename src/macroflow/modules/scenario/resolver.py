"""
块解析器 - 在扁平步骤列表中定位块边界

两种匹配方式并存:
- 结构计数: ``if``/``else-if``/``else``/``end-if``、``loop``/``end-loop``、
  ``while``/``end-while`` 按嵌套深度匹配
- 配对标识: 带 ``pair_id`` 的条件块由同 ``pair_id`` 的 ``endif`` 关闭，
  块内的 ``else``/``else-if`` 可以带同一 ``pair_id``，也可以不带

解析器存活期间步骤列表视为只读。
"""
from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Set

from ...core.constants import (
    BLOCK_TERMINATORS,
    CONDITION_STARTERS,
    END_IF_KINDS,
    MID_MARKERS,
    STRUCTURAL_OPENERS,
    TERMINATOR_OPENERS,
    StepKind,
)
from .types import Step


def _expand_terminators(kinds: Iterable[StepKind]) -> Set[StepKind]:
    expanded = set(kinds)
    if expanded & END_IF_KINDS:
        expanded |= END_IF_KINDS
    return expanded


class BlockResolver:
    def __init__(self, steps: Sequence[Step]) -> None:
        self.steps = steps
        self._pairs: Dict[str, List[int]] = defaultdict(list)
        for index, step in enumerate(steps):
            if step.pair_id is not None:
                self._pairs[step.pair_id].append(index)

    def __len__(self) -> int:
        return len(self.steps)

    # ── 分类 ──

    def is_paired_block(self, index: int) -> bool:
        """该步骤能否通过同 pair_id 的 endif 关闭"""
        step = self.steps[index]
        if step.pair_id is None or step.kind not in (CONDITION_STARTERS | {StepKind.IF}):
            return False
        return self.find_paired_endif(index) is not None

    def opens_block(self, index: int) -> bool:
        kind = self.steps[index].kind
        if kind in STRUCTURAL_OPENERS:
            return True
        return kind in CONDITION_STARTERS and self.is_paired_block(index)

    # ── 结构计数 ──

    def find_block_end(self, start: int, terminators: Iterable[StepKind]) -> int:
        """
        查找与起始步骤同一深度、类型属于 terminators 的第一个步骤

        ``end-if`` 与 ``endif`` 视为同一种结束符。
        块没有以所需类型关闭时返回 ``len(steps)``。
        """
        if not (self.opens_block(start) or self.steps[start].kind in MID_MARKERS):
            raise ValueError(
                f"Step {start} ({self.steps[start].kind.value}) does not open a block"
            )
        wanted = _expand_terminators(terminators)
        depth = 1
        for index in range(start + 1, len(self.steps)):
            kind = self.steps[index].kind
            if self.opens_block(index):
                depth += 1
                continue
            if depth == 1 and kind in wanted:
                return index
            if kind in BLOCK_TERMINATORS:
                depth -= 1
                if depth == 0:
                    break
        return len(self.steps)

    # ── 配对标识 ──

    def find_paired_endif(self, start: int) -> Optional[int]:
        """同 pair_id 的 endif；旧式 end-if 不参与标识配对"""
        pair_id = self.steps[start].pair_id
        if pair_id is None:
            return None
        for index in self._pairs.get(pair_id, ()):
            if index > start and self.steps[index].kind == StepKind.ENDIF:
                return index
        return None

    def find_branch_markers(self, start: int, endif_index: int) -> List[int]:
        """
        配对块 (start, endif_index) 内属于本块的 else-if / else 下标

        只收深度 1 的分支标记，pair_id 为空或与起始步骤相同；
        嵌套块内部的标记不算。
        """
        pair_id = self.steps[start].pair_id
        markers: List[int] = []
        depth = 1
        for index in range(start + 1, endif_index):
            step = self.steps[index]
            if self.opens_block(index):
                depth += 1
            elif step.kind in BLOCK_TERMINATORS:
                depth -= 1
                if depth < 1:
                    break
            elif depth == 1 and step.kind in MID_MARKERS and step.pair_id in (None, pair_id):
                markers.append(index)
        return markers

    def find_else_in_block(self, start: int, endif_index: int) -> Optional[int]:
        """配对块内的 else：优先同 pair_id，其次深度 1 上第一个不带标识的 else"""
        pair_id = self.steps[start].pair_id
        if pair_id is None:
            return None
        for index in self._pairs.get(pair_id, ()):
            if start < index < endif_index and self.steps[index].kind == StepKind.ELSE:
                return index
        for index in self.find_branch_markers(start, endif_index):
            if self.steps[index].kind == StepKind.ELSE:
                return index
        return None

    # ── 校验 ──

    def validate(self) -> List[str]:
        """检查括号匹配问题，只报告不修改"""
        problems: List[str] = []
        stack: List[int] = []
        for index, step in enumerate(self.steps):
            kind = step.kind
            if self.opens_block(index):
                stack.append(index)
            elif kind in MID_MARKERS:
                if not stack or self.steps[stack[-1]].kind not in (CONDITION_STARTERS | {StepKind.IF}):
                    problems.append(f"step {index}: '{kind.value}' outside of an if block")
                elif step.pair_id is not None and step.pair_id != self.steps[stack[-1]].pair_id:
                    problems.append(
                        f"step {index}: pairId {step.pair_id!r} does not match opener at step {stack[-1]}"
                    )
            elif kind in BLOCK_TERMINATORS:
                if not stack:
                    problems.append(f"step {index}: '{kind.value}' has no opening step")
                    continue
                opener_index = stack.pop()
                opener = self.steps[opener_index]
                expected = TERMINATOR_OPENERS[kind]
                opener_kind = StepKind.IF if opener.kind in CONDITION_STARTERS else opener.kind
                if opener_kind != expected:
                    problems.append(
                        f"step {index}: '{kind.value}' closes '{opener.kind.value}' opened at step {opener_index}"
                    )
                elif opener.pair_id is not None and step.pair_id not in (None, opener.pair_id):
                    problems.append(
                        f"step {index}: pairId {step.pair_id!r} does not match opener at step {opener_index}"
                    )
        for opener_index in stack:
            problems.append(
                f"step {opener_index}: '{self.steps[opener_index].kind.value}' is never closed"
            )
        return problems


__all__ = ["BlockResolver"]
