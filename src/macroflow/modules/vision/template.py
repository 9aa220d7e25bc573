"""
Template matching behind the findTemplate contract.

- Best match with default threshold from settings (0.85)
- Optional crop hint (x, y, w, h) limits the search area; returned
  coordinates are translated back into the source image space
- Optional color invariance matches on grayscale
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import cv2  # type: ignore
import numpy as np

from ...core.config import settings
from .utils import ImageLike, Region, crop, load_image, to_gray


@dataclass
class TemplateMatch:
    found: bool
    x: int = 0
    y: int = 0
    score: float = 0.0
    w: int = 0
    h: int = 0

    @property
    def center(self) -> Tuple[int, int]:
        return (self.x + self.w // 2, self.y + self.h // 2)


def _ensure_sizes(big: np.ndarray, small: np.ndarray) -> None:
    hb, wb = big.shape[:2]
    hs, ws = small.shape[:2]
    if hs > hb or ws > wb:
        raise ValueError(f"Template larger than image: template {ws}x{hs}, image {wb}x{hb}")


def find_template(
    source: ImageLike,
    template: ImageLike,
    *,
    threshold: Optional[float] = None,
    crop_hint: Optional[Region] = None,
    color_invariant: bool = False,
    method: int = cv2.TM_CCOEFF_NORMED,
) -> TemplateMatch:
    """Find the best match of ``template`` inside ``source``.

    Args:
        source: large image (path/bytes/np.ndarray)
        template: small image (path/bytes/np.ndarray)
        threshold: minimum score (settings.image_match_threshold if None)
        crop_hint: search only inside this (x, y, w, h) region
        color_invariant: match on grayscale images
        method: OpenCV matchTemplate method (default TM_CCOEFF_NORMED)

    Returns:
        TemplateMatch; ``found`` is False when the best score is below threshold.
        ``x``/``y`` are the top-left corner in source coordinates.
    """
    thr = settings.image_match_threshold if threshold is None else float(threshold)
    img = load_image(source)
    tpl = load_image(template)

    offset_x = offset_y = 0
    if crop_hint is not None:
        img = crop(img, crop_hint)
        offset_x, offset_y = max(0, crop_hint[0]), max(0, crop_hint[1])

    if color_invariant:
        img = to_gray(img)
        tpl = to_gray(tpl)
    elif img.ndim != tpl.ndim:
        img = to_gray(img)
        tpl = to_gray(tpl)
    _ensure_sizes(img, tpl)

    res = cv2.matchTemplate(img, tpl, method)
    min_val, max_val, min_loc, max_loc = cv2.minMaxLoc(res)

    if method in (cv2.TM_SQDIFF, cv2.TM_SQDIFF_NORMED):
        # lower is better
        score = 1.0 - float(min_val)
        x, y = min_loc
    else:
        score = float(max_val)
        x, y = max_loc

    h, w = tpl.shape[:2]
    return TemplateMatch(
        found=score >= thr,
        x=int(x) + offset_x,
        y=int(y) + offset_y,
        score=score,
        w=w,
        h=h,
    )


__all__ = ["TemplateMatch", "find_template"]
