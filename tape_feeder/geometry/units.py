"""Length units, lengths and locations.

Every geometric quantity carries the unit it is expressed in.  Arithmetic
between two quantities requires matching units: callers normalize with
``convert_to_units`` first.  Mixing units is a programming error and
raises ``ValueError``; it is never coerced silently.

Conversion is multiplicative through a fixed factor to millimetres, so
it is total over the closed ``LengthUnit`` enumeration.

Usage::

    from tape_feeder.geometry.units import LengthUnit, Location
    loc = Location(LengthUnit.INCHES, 1.0, 2.0, 0.0, 90.0)
    mm = loc.convert_to_units(LengthUnit.MILLIMETERS)   # x=25.4, y=50.8
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


class LengthUnit(Enum):
    """Supported length units.  Value is the size of one unit in mm."""

    MILLIMETERS = 1.0
    CENTIMETERS = 10.0
    METERS = 1000.0
    MICRONS = 0.001
    INCHES = 25.4
    FEET = 304.8
    MILS = 0.0254

    @property
    def mm_per_unit(self) -> float:
        return self.value

    @property
    def short_name(self) -> str:
        return _SHORT_NAMES[self]

    @classmethod
    def parse(cls, name: str) -> LengthUnit:
        """Look up a unit by enum name or short name (case-insensitive).

        Raises
        ------
        ValueError
            If *name* is not a known unit.
        """
        key = str(name).strip().lower()
        for unit in cls:
            if key in (unit.name.lower(), unit.short_name):
                return unit
        raise ValueError(
            f"Unknown length unit {name!r}. "
            f"Expected one of {[u.short_name for u in cls]}"
        )


_SHORT_NAMES = {
    LengthUnit.MILLIMETERS: "mm",
    LengthUnit.CENTIMETERS: "cm",
    LengthUnit.METERS: "m",
    LengthUnit.MICRONS: "um",
    LengthUnit.INCHES: "in",
    LengthUnit.FEET: "ft",
    LengthUnit.MILS: "mil",
}


def conversion_factor(from_unit: LengthUnit, to_unit: LengthUnit) -> float:
    """Factor that converts a value in *from_unit* to *to_unit*."""
    if from_unit is to_unit:
        return 1.0
    return from_unit.mm_per_unit / to_unit.mm_per_unit


def _require_same_units(a: LengthUnit, b: LengthUnit, what: str) -> None:
    if a is not b:
        raise ValueError(
            f"Cannot {what} quantities in {a.short_name} and {b.short_name}; "
            f"convert to a common unit first"
        )


# ---------------------------------------------------------------------------
# Length
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Length:
    """A scalar length tagged with its unit."""

    value: float
    units: LengthUnit = LengthUnit.MILLIMETERS

    def convert_to_units(self, units: LengthUnit) -> Length:
        if units is self.units:
            return self
        return Length(self.value * conversion_factor(self.units, units), units)

    def add(self, other: Length) -> Length:
        _require_same_units(self.units, other.units, "add")
        return Length(self.value + other.value, self.units)

    def subtract(self, other: Length) -> Length:
        _require_same_units(self.units, other.units, "subtract")
        return Length(self.value - other.value, self.units)

    def __str__(self) -> str:
        return f"{self.value:.6g}{self.units.short_name}"


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Location:
    """Point plus orientation in a named unit space.

    Parameters
    ----------
    units : LengthUnit
        Unit of ``x``, ``y`` and ``z``.
    x, y, z : float
        Position.
    rotation : float
        Orientation in degrees.  Never scaled by unit conversion.
    """

    units: LengthUnit = LengthUnit.MILLIMETERS
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    rotation: float = 0.0

    def convert_to_units(self, units: LengthUnit) -> Location:
        if units is self.units:
            return self
        f = conversion_factor(self.units, units)
        return Location(units, self.x * f, self.y * f, self.z * f, self.rotation)

    def add(self, other: Location) -> Location:
        _require_same_units(self.units, other.units, "add")
        return Location(
            self.units,
            self.x + other.x,
            self.y + other.y,
            self.z + other.z,
            self.rotation + other.rotation,
        )

    def subtract(self, other: Location) -> Location:
        _require_same_units(self.units, other.units, "subtract")
        return Location(
            self.units,
            self.x - other.x,
            self.y - other.y,
            self.z - other.z,
            self.rotation - other.rotation,
        )

    def derive(
        self,
        x: float | None = None,
        y: float | None = None,
        z: float | None = None,
        rotation: float | None = None,
    ) -> Location:
        """Return a copy with the given fields replaced."""
        changes = {
            k: v
            for k, v in (("x", x), ("y", y), ("z", z), ("rotation", rotation))
            if v is not None
        }
        return replace(self, **changes)

    def __str__(self) -> str:
        return (
            f"({self.x:.4f}, {self.y:.4f}, {self.z:.4f}, "
            f"{self.rotation:.4f} {self.units.short_name})"
        )


# ---------------------------------------------------------------------------
# Pixel-space rectangle
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Rectangle:
    """Axis-aligned pixel rectangle (top-left origin, +Y down)."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Rectangle size must be non-negative, "
                f"got {self.width}x{self.height}"
            )

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0
