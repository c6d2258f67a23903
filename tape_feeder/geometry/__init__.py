"""
Geometry module.

Unit-tagged lengths and locations, pixel rectangles, and the planar
vision offsets applied to feed and pick positions.
"""

from tape_feeder.geometry.offsets import VisionOffset, apply_offset
from tape_feeder.geometry.units import (
    Length,
    LengthUnit,
    Location,
    Rectangle,
    conversion_factor,
)

__all__ = [
    "Length",
    "LengthUnit",
    "Location",
    "Rectangle",
    "VisionOffset",
    "apply_offset",
    "conversion_factor",
]
