"""
引擎异常体系

- StepError: 单步可恢复错误，记录后继续，除非步骤的错误策略要求升级
- FatalRunError 及其子类: 结束整个运行，结果为 FAIL
- RunTerminated / RunCancelled: 控制信号，逐层退出所有嵌套区间
"""
from __future__ import annotations

from typing import Optional

from ...core.constants import RunStatus


class RunError(Exception):
    pass


class StepError(RunError):
    """单个步骤失败（可恢复）"""


class FatalRunError(RunError):
    """导致整个运行失败的错误"""


class LoopCountError(FatalRunError):
    pass


class BlockStructureError(FatalRunError):
    pass


class RunTerminated(Exception):
    """success/skip/fail 步骤触发"""

    def __init__(self, status: RunStatus, message: Optional[str] = None) -> None:
        super().__init__(message or status.value)
        self.status = status
        self.message = message


class RunCancelled(Exception):
    """在步骤边界检测到停止标记"""


__all__ = [
    "RunError",
    "StepError",
    "FatalRunError",
    "LoopCountError",
    "BlockStructureError",
    "RunTerminated",
    "RunCancelled",
]
