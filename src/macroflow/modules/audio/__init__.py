from .capture import (
    AudioCapture,
    AudioCaptureError,
    LevelAnalysis,
    analyze_levels,
    decibel_from_samples,
    measure_level,
)

__all__ = [
    "AudioCapture",
    "AudioCaptureError",
    "LevelAnalysis",
    "analyze_levels",
    "decibel_from_samples",
    "measure_level",
]
