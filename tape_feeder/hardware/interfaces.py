"""Collaborator contracts consumed by the feeder.

The machine abstraction layer (heads, actuators, cameras, vision
providers) lives outside this package.  These protocols describe the
subset the feeder relies on.  Every motion call blocks until the move
completes and raises on failure.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import numpy as np

from tape_feeder.geometry.units import LengthUnit, Location

# ---------------------------------------------------------------------------
# Data containers
# ---------------------------------------------------------------------------


@dataclass
class Position:
    """Current head pose in machine native units."""

    x: float
    y: float
    z: float
    c: float = 0.0

    @classmethod
    def from_list(cls, pos: Sequence[float]) -> Position:
        """Create from an ``[x, y, z, c]`` list."""
        return cls(
            x=pos[0],
            y=pos[1],
            z=pos[2],
            c=pos[3] if len(pos) > 3 else 0.0,
        )


@dataclass(frozen=True, slots=True)
class TemplateMatch:
    """One template-match candidate.

    Parameters
    ----------
    x, y : float
        Pixel position of the match's top-left corner in the full image.
    score : float
        Match quality; higher is better.
    """

    x: float
    y: float
    score: float = 1.0


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class VisionProvider(Protocol):
    def locate_template_matches(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        roll: float,
        contrast: float,
        template: np.ndarray,
    ) -> Sequence[TemplateMatch]: ...


class Actuator(Protocol):
    id: str

    @property
    def location(self) -> Location:
        """Mounting offset relative to the head."""
        ...

    def actuate(self, on: bool) -> None: ...


class Camera(Protocol):
    @property
    def head(self) -> Head | None: ...

    @property
    def location(self) -> Location:
        """Mounting offset relative to the head."""
        ...

    @property
    def units_per_pixel(self) -> Location: ...

    @property
    def vision_provider(self) -> VisionProvider | None: ...

    def capture(self) -> np.ndarray: ...


class Machine(Protocol):
    @property
    def native_units(self) -> LengthUnit: ...

    @property
    def cameras(self) -> Iterable[Camera]: ...


class Head(Protocol):
    id: str

    @property
    def machine(self) -> Machine: ...

    def move_to_safe_z(self) -> None: ...

    def move_to(
        self,
        x: float,
        y: float,
        z: float,
        c: float,
        feed_rate: float | None = None,
    ) -> None: ...

    def get_position(self) -> Position: ...

    def get_actuator(self, actuator_id: str) -> Actuator | None: ...
