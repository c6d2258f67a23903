"""
Vision module.

Template-match based offset measurement, the per-feeder offset cache,
and an OpenCV vision provider.
"""

from tape_feeder.vision.correction import (
    VisionCorrection,
    find_vision_camera,
    pixel_offset,
    select_best_match,
)
from tape_feeder.vision.offset_cache import CacheState, VisionOffsetCache
from tape_feeder.vision.opencv_matcher import OpenCvTemplateMatcher

__all__ = [
    "CacheState",
    "OpenCvTemplateMatcher",
    "VisionCorrection",
    "VisionOffsetCache",
    "find_vision_camera",
    "pixel_offset",
    "select_best_match",
]
