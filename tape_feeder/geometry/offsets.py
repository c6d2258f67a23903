"""Planar vision offsets and their application to locations.

A vision offset is the difference between where a feature was expected
and where it actually is.  Subtracting it from a nominal location gives
the corrected location, so ``apply_offset`` subtracts.
"""

from __future__ import annotations

from dataclasses import dataclass

from tape_feeder.geometry.units import LengthUnit, Location, conversion_factor


@dataclass(frozen=True, slots=True)
class VisionOffset:
    """Planar (x, y) correction.  Carries no Z or rotation meaning."""

    units: LengthUnit = LengthUnit.MILLIMETERS
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def zero(cls, units: LengthUnit = LengthUnit.MILLIMETERS) -> VisionOffset:
        return cls(units, 0.0, 0.0)

    def negate(self) -> VisionOffset:
        return VisionOffset(self.units, -self.x, -self.y)

    def convert_to_units(self, units: LengthUnit) -> VisionOffset:
        if units is self.units:
            return self
        f = conversion_factor(self.units, units)
        return VisionOffset(units, self.x * f, self.y * f)

    def to_location(self) -> Location:
        return Location(self.units, self.x, self.y, 0.0, 0.0)

    def __str__(self) -> str:
        return f"({self.x:.4f}, {self.y:.4f} {self.units.short_name})"


def apply_offset(location: Location, offset: VisionOffset) -> Location:
    """Return *location* corrected by *offset*.

    Only X and Y change; Z and rotation are kept.

    Raises
    ------
    ValueError
        If the two operands are in different units.
    """
    if location.units is not offset.units:
        raise ValueError(
            f"Cannot apply offset in {offset.units.short_name} to location "
            f"in {location.units.short_name}; convert to a common unit first"
        )
    return location.derive(x=location.x - offset.x, y=location.y - offset.y)
