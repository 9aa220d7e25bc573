"""
执行器基类定义

引擎通过 ActionExecutor.execute(step) 调用设备/识图/音频等外部能力，
执行器只负责单个叶子动作，不关心控制流。
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

from ...core.logger import logger
from ..scenario.types import Step

_RESULT_FIELDS = ("success", "error", "message", "volume", "similarity", "score", "x", "y")


@dataclass
class ActionResult:
    success: bool
    error: Optional[str] = None
    message: Optional[str] = None
    volume: Optional[float] = None
    similarity: Optional[float] = None
    score: Optional[float] = None
    x: Optional[int] = None
    y: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **kwargs: Any) -> "ActionResult":
        return cls(success=True, **kwargs)

    @classmethod
    def failed(cls, error: str, **kwargs: Any) -> "ActionResult":
        return cls(success=False, error=error, **kwargs)

    @classmethod
    def coerce(cls, value: Union["ActionResult", Mapping[str, Any], None]) -> "ActionResult":
        """Normalize executor return values (dataclass, dict or None)."""
        if isinstance(value, ActionResult):
            return value
        if value is None:
            return cls(success=True)
        if isinstance(value, Mapping):
            known = {k: value[k] for k in _RESULT_FIELDS if k in value}
            known["success"] = bool(known.get("success", False))
            extra = {k: v for k, v in value.items() if k not in _RESULT_FIELDS}
            return cls(extra=extra, **known)
        raise TypeError(f"Unsupported action result type: {type(value)}")

    @property
    def value(self) -> Any:
        """Primitive mirrored into the run's last action result slot."""
        for candidate in (self.volume, self.similarity, self.score):
            if candidate is not None:
                return candidate
        return self.success


class ActionExecutor(ABC):
    """叶子动作执行器抽象基类"""

    def __init__(self) -> None:
        self.logger = logger.bind(module=type(self).__name__)

    @abstractmethod
    async def execute(self, step: Step) -> ActionResult:
        """
        执行单个叶子动作

        Args:
            step: 要执行的步骤（条件探测时为合成步骤）

        Returns:
            ActionResult，失败时 success=False 并附带 error
        """

    async def run_action(self, step: Step) -> ActionResult:
        """execute() 的安全包装：异常转换为失败结果。"""
        try:
            return ActionResult.coerce(await self.execute(step))
        except Exception as e:
            self.logger.error(f"动作执行异常 [{step.describe()}]: {e}")
            return ActionResult.failed(str(e))


__all__ = ["ActionResult", "ActionExecutor"]
