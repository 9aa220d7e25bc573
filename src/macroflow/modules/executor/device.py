"""
设备动作执行器 - 把叶子步骤映射到设备适配器、识图与音频采集

- 坐标类: tap/click, long-press, drag/swipe
- 输入类: input, key, home, back
- 其他: wait, screenshot, log
- 条件类: image-match, tap-matched-image, get-volume, sound-check
"""
from __future__ import annotations

import asyncio
import os
from typing import Any, Awaitable, Callable, Dict, Optional

import cv2  # type: ignore

from ...core.config import settings
from ...core.constants import StepKind
from ...core.thread_pool import run_in_compute, run_in_io
from ..audio.capture import AudioCapture, AudioCaptureError, measure_level
from ..emu.adapter import KEYCODE_BACK, KEYCODE_HOME, AsyncDeviceAdapter
from ..scenario.types import Step
from ..vision.template import TemplateMatch, find_template
from ..vision.utils import parse_region
from .base import ActionExecutor, ActionResult

Matcher = Callable[..., TemplateMatch]


def _first(step: Step, *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = step.get(key)
        if value is not None:
            return value
    return default


def _coord(step: Step, *keys: str) -> int:
    value = _first(step, *keys)
    if value is None:
        raise ValueError(f"{step.kind.value} 缺少坐标参数: {'/'.join(keys)}")
    return int(round(float(value)))


class DeviceActionExecutor(ActionExecutor):
    """通过 AsyncDeviceAdapter 驱动真实设备的执行器"""

    def __init__(
        self,
        adapter: AsyncDeviceAdapter,
        *,
        audio: Optional[AudioCapture] = None,
        matcher: Matcher = find_template,
        threshold: Optional[float] = None,
    ) -> None:
        super().__init__()
        self.adapter = adapter
        self.audio = audio
        self.matcher = matcher
        self.threshold = settings.image_match_threshold if threshold is None else threshold
        self.last_match: Optional[TemplateMatch] = None
        self._handlers: Dict[StepKind, Callable[[Step], Awaitable[ActionResult]]] = {
            StepKind.TAP: self._tap,
            StepKind.CLICK: self._tap,
            StepKind.LONG_PRESS: self._long_press,
            StepKind.DRAG: self._swipe,
            StepKind.SWIPE: self._swipe,
            StepKind.INPUT: self._input,
            StepKind.KEY: self._key,
            StepKind.HOME: self._home,
            StepKind.BACK: self._back,
            StepKind.WAIT: self._wait,
            StepKind.SCREENSHOT: self._screenshot,
            StepKind.LOG: self._log_message,
            StepKind.IMAGE_MATCH: self._image_match,
            StepKind.TAP_MATCHED_IMAGE: self._tap_matched_image,
            StepKind.GET_VOLUME: self._get_volume,
            StepKind.SOUND_CHECK: self._sound_check,
        }

    async def execute(self, step: Step) -> ActionResult:
        handler = self._handlers.get(step.kind)
        if handler is None:
            self.logger.warning(f"不支持的动作类型: {step.kind.value}")
            return ActionResult.failed(f"Unsupported action: {step.kind.value}")
        return await handler(step)

    # ── 坐标类 ──

    async def _tap(self, step: Step) -> ActionResult:
        x, y = _coord(step, "x"), _coord(step, "y")
        await self.adapter.tap(x, y)
        self.logger.debug(f"点击 ({x}, {y})")
        return ActionResult.ok(x=x, y=y)

    async def _long_press(self, step: Step) -> ActionResult:
        x, y = _coord(step, "x"), _coord(step, "y")
        duration = int(_first(step, "duration", default=1000))
        await self.adapter.long_press(x, y, dur_ms=duration)
        return ActionResult.ok(x=x, y=y)

    async def _swipe(self, step: Step) -> ActionResult:
        x1 = _coord(step, "startX", "x1", "x")
        y1 = _coord(step, "startY", "y1", "y")
        x2 = _coord(step, "endX", "x2")
        y2 = _coord(step, "endY", "y2")
        duration = int(_first(step, "duration", default=300))
        await self.adapter.swipe(x1, y1, x2, y2, dur_ms=duration)
        return ActionResult.ok(x=x2, y=y2)

    # ── 输入类 ──

    async def _input(self, step: Step) -> ActionResult:
        text = _first(step, "text", default="")
        await self.adapter.input_text(str(text))
        return ActionResult.ok()

    async def _key(self, step: Step) -> ActionResult:
        keycode = _first(step, "keyCode", "keycode", "key")
        if keycode is None:
            return ActionResult.failed("key 缺少 keyCode 参数")
        await self.adapter.keyevent(keycode)
        return ActionResult.ok()

    async def _home(self, step: Step) -> ActionResult:
        await self.adapter.keyevent(KEYCODE_HOME)
        return ActionResult.ok()

    async def _back(self, step: Step) -> ActionResult:
        await self.adapter.keyevent(KEYCODE_BACK)
        return ActionResult.ok()

    # ── 其他 ──

    async def _wait(self, step: Step) -> ActionResult:
        duration = max(0, int(_first(step, "duration", default=1000)))
        await asyncio.sleep(duration / 1000.0)
        return ActionResult.ok()

    async def _screenshot(self, step: Step) -> ActionResult:
        image = await self.adapter.capture_ndarray()
        path = _first(step, "path", "savePath")
        if path:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            ok = await run_in_io(cv2.imwrite, str(path), image)
            if not ok:
                return ActionResult.failed(f"截图保存失败: {path}")
            self.logger.info(f"截图已保存: {path}")
        h, w = image.shape[:2]
        return ActionResult.ok(extra={"width": w, "height": h, "path": path})

    async def _log_message(self, step: Step) -> ActionResult:
        message = _first(step, "message", "text", default="")
        self.logger.info(f"[场景日志] {message}")
        return ActionResult.ok(message=str(message))

    # ── 识图 ──

    async def _match(self, step: Step) -> TemplateMatch:
        template = _first(step, "template", "imagePath", "image")
        if not template:
            raise ValueError(f"{step.kind.value} 缺少模板图片参数")
        region = parse_region(_first(step, "region", "cropHint"))
        threshold = float(_first(step, "threshold", default=self.threshold))
        color_invariant = bool(_first(step, "colorInvariant", default=False))
        screen = await self.adapter.capture_ndarray()
        return await run_in_compute(
            self._call_matcher, screen, template, threshold, region, color_invariant
        )

    def _call_matcher(self, screen, template, threshold, region, color_invariant) -> TemplateMatch:
        return self.matcher(
            screen,
            template,
            threshold=threshold,
            crop_hint=region,
            color_invariant=color_invariant,
        )

    async def _image_match(self, step: Step) -> ActionResult:
        match = await self._match(step)
        self.logger.info(f"识图 score={match.score:.3f} found={match.found}")
        if not match.found:
            return ActionResult.failed(
                f"Image not found (score {match.score:.3f})", score=match.score
            )
        self.last_match = match
        x, y = match.center
        return ActionResult.ok(x=x, y=y, score=match.score)

    async def _tap_matched_image(self, step: Step) -> ActionResult:
        match = self.last_match
        if _first(step, "template", "imagePath", "image"):
            match = await self._match(step)
            if not match.found:
                return ActionResult.failed(
                    f"Image not found (score {match.score:.3f})", score=match.score
                )
            self.last_match = match
        if match is None:
            return ActionResult.failed("没有可点击的识图结果")
        x, y = match.center
        x += int(_first(step, "offsetX", default=0))
        y += int(_first(step, "offsetY", default=0))
        await self.adapter.tap(x, y)
        return ActionResult.ok(x=x, y=y, score=match.score)

    # ── 音频 ──

    async def _get_volume(self, step: Step) -> ActionResult:
        volume = await self.adapter.get_volume()
        self.logger.info(f"当前音量: {volume}")
        return ActionResult.ok(volume=volume)

    async def _sound_check(self, step: Step) -> ActionResult:
        if self.audio is None:
            return ActionResult.failed("未配置音频采集设备")
        band = _first(step, "dbRange", "threshold")
        if not isinstance(band, dict):
            band = None
        try:
            await run_in_io(self.audio.init, _first(step, "audioDeviceId", "deviceId"))
            analysis = await measure_level(
                self.audio,
                duration_ms=int(_first(step, "duration", default=3000)),
                sample_rate=int(_first(step, "sampleRate", default=10)),
                db_range=band,
                expectation=str(_first(step, "expectation", default="level")),
            )
        except AudioCaptureError as e:
            return ActionResult.failed(str(e))
        finally:
            await run_in_io(self.audio.cleanup)
        self.logger.info(
            f"声音检测 avg={analysis.average:.1f}dB similarity={analysis.similarity:.2f} "
            f"passed={analysis.passed}"
        )
        return ActionResult.ok(
            similarity=analysis.similarity,
            message=f"{analysis.expectation}: {analysis.average:.1f}dB",
            extra={
                "passed": analysis.passed,
                "average": analysis.average,
                "max": analysis.peak,
                "min": analysis.minimum,
            },
        )


__all__ = ["DeviceActionExecutor"]
