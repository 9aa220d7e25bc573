"""
单次运行独占的变量存储
"""
from __future__ import annotations

from typing import Any, Dict, Iterator, Optional

_UNSET = object()


class VariableStore:
    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}
        self.last_action_result: Optional[Any] = None

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        if not name:
            raise ValueError("Variable name must not be empty")
        self._values[name] = value

    def has(self, name: str) -> bool:
        return name in self._values

    def require(self, name: str) -> Any:
        """读取已定义的变量，未定义时抛 KeyError"""
        value = self._values.get(name, _UNSET)
        if value is _UNSET:
            raise KeyError(name)
        return value

    def clear(self) -> None:
        """新运行开始时清空"""
        self._values.clear()
        self.last_action_result = None

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)


__all__ = ["VariableStore"]
