"""
统一设备适配器：封装 ADB，对外暴露场景动作需要的方法

- DeviceAdapter: 同步实现
- AsyncDeviceAdapter: 通过 I/O 线程池 offload，不阻塞事件循环
"""
from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from ...core.config import settings
from ...core.thread_pool import run_in_io
from ..vision.utils import load_image
from .adb import Adb

KEYCODE_HOME = 3
KEYCODE_BACK = 4


@dataclass
class AdapterConfig:
    adb_addr: str
    adb_path: str = "adb"

    @classmethod
    def from_settings(cls, adb_addr: Optional[str] = None) -> "AdapterConfig":
        return cls(adb_addr=adb_addr or settings.device_addr, adb_path=settings.adb_path)


class DeviceAdapter:
    def __init__(self, cfg: AdapterConfig) -> None:
        self.cfg = cfg
        self.adb = Adb(cfg.adb_path)

    def ensure_connected(self) -> bool:
        if self.cfg.adb_addr in self.adb.devices():
            return True
        return self.adb.connect(self.cfg.adb_addr)

    def capture(self) -> bytes:
        return self.adb.screencap(self.cfg.adb_addr)

    def capture_ndarray(self) -> np.ndarray:
        return load_image(self.capture())

    def tap(self, x: int, y: int) -> None:
        self.adb.tap(self.cfg.adb_addr, x, y)

    def swipe(self, x1: int, y1: int, x2: int, y2: int, dur_ms: int = 300) -> None:
        self.adb.swipe(self.cfg.adb_addr, x1, y1, x2, y2, dur_ms)

    def long_press(self, x: int, y: int, dur_ms: int = 1000) -> None:
        # 原地 swipe 即长按
        self.adb.swipe(self.cfg.adb_addr, x, y, x, y, dur_ms)

    def input_text(self, text: str) -> None:
        self.adb.input_text(self.cfg.adb_addr, text)

    def keyevent(self, keycode: Union[int, str]) -> None:
        self.adb.keyevent(self.cfg.adb_addr, keycode)

    def get_volume(self) -> int:
        return self.adb.get_volume(self.cfg.adb_addr)


class AsyncDeviceAdapter:
    """DeviceAdapter 的异步包装器（代理模式）。"""

    def __init__(self, adapter: DeviceAdapter) -> None:
        self._sync = adapter

    @property
    def sync(self) -> DeviceAdapter:
        return self._sync

    @property
    def cfg(self) -> AdapterConfig:
        return self._sync.cfg

    async def _run(self, func, *args):
        return await run_in_io(func, *args)

    async def ensure_connected(self) -> bool:
        return await self._run(self._sync.ensure_connected)

    async def capture(self) -> bytes:
        return await self._run(self._sync.capture)

    async def capture_ndarray(self) -> np.ndarray:
        return await self._run(self._sync.capture_ndarray)

    async def tap(self, x: int, y: int) -> None:
        await self._run(self._sync.tap, x, y)

    async def swipe(self, x1: int, y1: int, x2: int, y2: int, dur_ms: int = 300) -> None:
        await self._run(functools.partial(self._sync.swipe, x1, y1, x2, y2, dur_ms=dur_ms))

    async def long_press(self, x: int, y: int, dur_ms: int = 1000) -> None:
        await self._run(functools.partial(self._sync.long_press, x, y, dur_ms=dur_ms))

    async def input_text(self, text: str) -> None:
        await self._run(self._sync.input_text, text)

    async def keyevent(self, keycode: Union[int, str]) -> None:
        await self._run(self._sync.keyevent, keycode)

    async def get_volume(self) -> int:
        return await self._run(self._sync.get_volume)


__all__ = [
    "AdapterConfig",
    "DeviceAdapter",
    "AsyncDeviceAdapter",
    "KEYCODE_HOME",
    "KEYCODE_BACK",
]
