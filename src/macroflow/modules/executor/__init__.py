"""
执行器模块
"""
from .base import ActionExecutor, ActionResult

__all__ = [
    "ActionExecutor",
    "ActionResult",
]
