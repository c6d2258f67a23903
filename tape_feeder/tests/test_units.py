"""Tests for unit-tagged geometry.

Validates unit conversion round-trips, same-unit arithmetic guards,
and vision offset application.
"""

from __future__ import annotations

import itertools

import pytest

from tape_feeder.geometry.offsets import VisionOffset, apply_offset
from tape_feeder.geometry.units import (
    Length,
    LengthUnit,
    Location,
    Rectangle,
    conversion_factor,
)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


class TestConversion:
    @pytest.mark.parametrize(
        "a, b", list(itertools.permutations(LengthUnit, 2)),
    )
    def test_length_roundtrip_every_pair(self, a: LengthUnit, b: LengthUnit) -> None:
        original = Length(123.456, a)
        back = original.convert_to_units(b).convert_to_units(a)
        assert back.units is a
        assert back.value == pytest.approx(original.value, rel=1e-12)

    @pytest.mark.parametrize(
        "a, b", list(itertools.permutations(LengthUnit, 2)),
    )
    def test_location_roundtrip_every_pair(self, a: LengthUnit, b: LengthUnit) -> None:
        loc = Location(a, 1.5, -2.25, 7.0, 45.0)
        back = loc.convert_to_units(b).convert_to_units(a)
        assert (back.x, back.y, back.z) == pytest.approx((1.5, -2.25, 7.0), rel=1e-12)
        assert back.rotation == 45.0

    def test_inches_to_mm(self) -> None:
        assert Length(1.0, LengthUnit.INCHES).convert_to_units(
            LengthUnit.MILLIMETERS
        ).value == pytest.approx(25.4)

    def test_mils_to_inches(self) -> None:
        assert conversion_factor(LengthUnit.MILS, LengthUnit.INCHES) == pytest.approx(0.001)

    def test_rotation_not_scaled(self) -> None:
        loc = Location(LengthUnit.METERS, 1.0, 0.0, 0.0, 90.0)
        mm = loc.convert_to_units(LengthUnit.MILLIMETERS)
        assert mm.x == pytest.approx(1000.0)
        assert mm.rotation == 90.0

    def test_same_unit_returns_self(self) -> None:
        loc = Location(LengthUnit.MILLIMETERS, 1.0, 2.0)
        assert loc.convert_to_units(LengthUnit.MILLIMETERS) is loc

    @pytest.mark.parametrize("name, unit", [
        ("mm", LengthUnit.MILLIMETERS),
        ("IN", LengthUnit.INCHES),
        ("microns", LengthUnit.MICRONS),
        ("mil", LengthUnit.MILS),
    ])
    def test_parse(self, name: str, unit: LengthUnit) -> None:
        assert LengthUnit.parse(name) is unit

    def test_parse_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown length unit"):
            LengthUnit.parse("furlong")


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


class TestArithmetic:
    def test_subtract_componentwise(self) -> None:
        a = Location(LengthUnit.MILLIMETERS, 10.0, 20.0, 5.0, 90.0)
        b = Location(LengthUnit.MILLIMETERS, 1.0, 1.0, 0.5, 10.0)
        assert a.subtract(b) == Location(LengthUnit.MILLIMETERS, 9.0, 19.0, 4.5, 80.0)

    def test_add_componentwise(self) -> None:
        a = Location(LengthUnit.INCHES, 1.0, 2.0, 3.0, 4.0)
        assert a.add(a) == Location(LengthUnit.INCHES, 2.0, 4.0, 6.0, 8.0)

    def test_mixed_units_rejected(self) -> None:
        a = Location(LengthUnit.MILLIMETERS, 1.0)
        b = Location(LengthUnit.INCHES, 1.0)
        with pytest.raises(ValueError, match="convert to a common unit"):
            a.subtract(b)
        with pytest.raises(ValueError):
            Length(1.0, LengthUnit.MILLIMETERS).add(Length(1.0, LengthUnit.INCHES))

    def test_derive_keeps_unspecified(self) -> None:
        a = Location(LengthUnit.MILLIMETERS, 1.0, 2.0, 3.0, 4.0)
        assert a.derive(y=9.0) == Location(LengthUnit.MILLIMETERS, 1.0, 9.0, 3.0, 4.0)

    def test_immutable(self) -> None:
        a = Location(LengthUnit.MILLIMETERS, 1.0)
        with pytest.raises(AttributeError):
            a.x = 2.0  # type: ignore[misc]

    def test_rectangle_negative_size(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            Rectangle(0, 0, -1, 5)
        assert Rectangle().is_empty


# ---------------------------------------------------------------------------
# Offsets
# ---------------------------------------------------------------------------


class TestOffsets:
    def test_apply_subtracts_xy_only(self) -> None:
        loc = Location(LengthUnit.MILLIMETERS, 10.0, 15.0, 5.0, 30.0)
        off = VisionOffset(LengthUnit.MILLIMETERS, 0.5, -0.25)
        out = apply_offset(loc, off)
        assert (out.x, out.y, out.z, out.rotation) == (9.5, 15.25, 5.0, 30.0)

    @pytest.mark.parametrize("ox, oy", [(0.0, 0.0), (0.3, -1.7), (-12.5, 4.125)])
    def test_apply_then_negated_restores(self, ox: float, oy: float) -> None:
        loc = Location(LengthUnit.MILLIMETERS, 10.0, 15.0, 5.0, 30.0)
        off = VisionOffset(LengthUnit.MILLIMETERS, ox, oy)
        restored = apply_offset(apply_offset(loc, off), off.negate())
        assert restored.x == pytest.approx(loc.x)
        assert restored.y == pytest.approx(loc.y)
        assert (restored.z, restored.rotation) == (loc.z, loc.rotation)

    def test_apply_mixed_units_rejected(self) -> None:
        loc = Location(LengthUnit.MILLIMETERS, 1.0)
        with pytest.raises(ValueError):
            apply_offset(loc, VisionOffset(LengthUnit.INCHES, 0.1, 0.1))

    def test_offset_to_location_is_planar(self) -> None:
        loc = VisionOffset(LengthUnit.MILLIMETERS, 1.0, 2.0).to_location()
        assert (loc.z, loc.rotation) == (0.0, 0.0)

    def test_offset_conversion(self) -> None:
        off = VisionOffset(LengthUnit.INCHES, 1.0, -0.5).convert_to_units(LengthUnit.MILLIMETERS)
        assert (off.x, off.y) == pytest.approx((25.4, -12.7))
