"""
Vision utilities: image loading/decoding and region helpers.
"""
from __future__ import annotations

import os
from typing import Optional, Sequence, Tuple, Union

import cv2  # type: ignore
import numpy as np

ImageLike = Union[str, bytes, np.ndarray]
Region = Tuple[int, int, int, int]

_IMAGE_PATH_CACHE: dict[str, np.ndarray] = {}


def load_image(img: ImageLike) -> np.ndarray:
    """Load an image into a BGR numpy array.

    - str: treated as a file path and loaded via cv2.imread
    - bytes: decoded via cv2.imdecode
    - np.ndarray: returned as-is (assumed BGR or single-channel)
    """
    if isinstance(img, np.ndarray):
        return img
    if isinstance(img, (bytes, bytearray)):
        arr = np.frombuffer(img, dtype=np.uint8)
        mat = cv2.imdecode(arr, cv2.IMREAD_COLOR)
        if mat is None:
            raise ValueError("Failed to decode image bytes")
        return mat
    if isinstance(img, str):
        if not os.path.isfile(img):
            raise FileNotFoundError(f"Image file not found: {img}")
        if img in _IMAGE_PATH_CACHE:
            return _IMAGE_PATH_CACHE[img]
        mat = cv2.imread(img, cv2.IMREAD_COLOR)
        if mat is None:
            raise ValueError(f"Failed to load image from path: {img}")
        _IMAGE_PATH_CACHE[img] = mat
        return mat
    raise TypeError(f"Unsupported image type: {type(img)}")


def to_gray(img: np.ndarray) -> np.ndarray:
    """Convert BGR image to grayscale (no-op if already single-channel)."""
    if img.ndim == 2:
        return img
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def parse_region(value: Optional[Union[Sequence[int], dict]]) -> Optional[Region]:
    """Accept [x, y, w, h] or {x, y, width, height}; None passes through."""
    if value is None:
        return None
    if isinstance(value, dict):
        x = value.get("x", 0)
        y = value.get("y", 0)
        w = value.get("width", value.get("w"))
        h = value.get("height", value.get("h"))
        if w is None or h is None:
            raise ValueError(f"Region missing width/height: {value}")
        return int(x), int(y), int(w), int(h)
    if len(value) != 4:
        raise ValueError(f"Region must be [x, y, w, h], got {value}")
    x, y, w, h = (int(v) for v in value)
    return x, y, w, h


def crop(img: np.ndarray, region: Region) -> np.ndarray:
    """Crop ``region`` clamped to the image bounds."""
    x, y, w, h = region
    hi, wi = img.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(wi, x + w), min(hi, y + h)
    if x1 <= x0 or y1 <= y0:
        raise ValueError(f"Region {region} is outside image {wi}x{hi}")
    return img[y0:y1, x0:x1]


__all__ = [
    "ImageLike",
    "Region",
    "load_image",
    "to_gray",
    "parse_region",
    "crop",
]
