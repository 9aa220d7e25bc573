"""
音频采集基类

具体采集实现（麦克风、声卡回环等）由外部提供，
这里只定义接口与分贝分析工具。
"""
from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np

DEFAULT_DB_RANGE = {"min": 30.0, "max": 80.0}
EXPECTATIONS = ("present", "silent", "level")


class AudioCaptureError(Exception):
    """音频采集异常"""


class AudioCapture(ABC):
    """音频采集基类"""

    @abstractmethod
    def init(self, device_id: Optional[str] = None) -> None:
        """打开采集设备"""

    @abstractmethod
    def get_decibel(self) -> float:
        """
        读取当前分贝值

        Raises:
            AudioCaptureError: 采集失败
        """

    @abstractmethod
    def cleanup(self) -> None:
        """释放采集设备"""


def decibel_from_samples(samples: np.ndarray, reference: float = 1.0, floor_db: float = 0.0) -> float:
    """PCM 采样（-1..1 浮点）换算为分贝，静音返回 floor_db。"""
    data = np.asarray(samples, dtype=np.float64)
    if data.size == 0:
        return floor_db
    rms = float(np.sqrt(np.mean(np.square(data))))
    if rms <= 0:
        return floor_db
    return max(floor_db, 20.0 * np.log10(rms / reference) + 94.0)


@dataclass
class LevelAnalysis:
    samples: int
    average: float
    peak: float
    minimum: float
    similarity: float
    passed: bool
    expectation: str = "level"


def analyze_levels(
    levels: Sequence[float],
    db_range: Optional[Mapping[str, float]] = None,
    expectation: str = "level",
) -> LevelAnalysis:
    """
    统计分贝序列

    - similarity: 落在 [min, max] 区间内的采样比例
    - passed: 按 expectation 判定平均分贝
      present: average >= min; silent: average <= max; level: min <= average <= max
    """
    if expectation not in EXPECTATIONS:
        raise ValueError(f"Unknown expectation: {expectation!r}")
    rng = dict(DEFAULT_DB_RANGE)
    if db_range:
        rng.update({k: float(v) for k, v in db_range.items() if k in ("min", "max")})
    data = np.asarray(list(levels), dtype=np.float64)
    if data.size == 0:
        raise AudioCaptureError("No samples collected")
    inside = np.logical_and(data >= rng["min"], data <= rng["max"])
    average = float(data.mean())
    if expectation == "present":
        passed = average >= rng["min"]
    elif expectation == "silent":
        passed = average <= rng["max"]
    else:
        passed = rng["min"] <= average <= rng["max"]
    return LevelAnalysis(
        samples=int(data.size),
        average=average,
        peak=float(data.max()),
        minimum=float(data.min()),
        similarity=float(inside.mean()),
        passed=bool(passed),
        expectation=expectation,
    )


async def measure_level(
    capture: AudioCapture,
    duration_ms: int = 3000,
    sample_rate: int = 10,
    db_range: Optional[Mapping[str, float]] = None,
    expectation: str = "level",
) -> LevelAnalysis:
    """按 sample_rate 次/秒采集 duration_ms 毫秒并分析。"""
    interval = 1.0 / max(1, sample_rate)
    total = max(1, int(duration_ms * sample_rate // 1000))
    levels = []
    for _ in range(total):
        value = capture.get_decibel()
        if inspect.isawaitable(value):
            value = await value
        levels.append(float(value))
        await asyncio.sleep(interval)
    return analyze_levels(levels, db_range, expectation)


__all__ = [
    "AudioCapture",
    "AudioCaptureError",
    "LevelAnalysis",
    "analyze_levels",
    "decibel_from_samples",
    "measure_level",
]
