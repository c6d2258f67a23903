"""In-process simulated machine.

Implements the collaborator protocols without hardware so feeds can be
dry-run from the command line and exercised in tests.  Every physical
action is appended to ``SimulatedMachine.events`` in issue order:

    ("safe_z", z)
    ("move", x, y, z, c, feed_rate)
    ("actuate", actuator_id, on)
    ("capture", camera_name)

Moves complete instantly.  ``SimulatedHead.fail_on_move`` injects a
``MotionError`` on the n-th ``move_to`` call (1-based) to simulate a
stalled axis.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from tape_feeder.geometry.units import LengthUnit, Location
from tape_feeder.hardware.interfaces import Position, TemplateMatch, VisionProvider

logger = logging.getLogger(__name__)


class MotionError(RuntimeError):
    """A simulated move could not be completed."""

    pass


# ---------------------------------------------------------------------------
# Machine
# ---------------------------------------------------------------------------


class SimulatedMachine:
    """Machine holding heads and cameras, plus the shared event log."""

    def __init__(self, native_units: LengthUnit = LengthUnit.MILLIMETERS) -> None:
        self._native_units = native_units
        self._cameras: list[SimulatedCamera] = []
        self.events: list[tuple[Any, ...]] = []

    @property
    def native_units(self) -> LengthUnit:
        return self._native_units

    @property
    def cameras(self) -> list[SimulatedCamera]:
        return list(self._cameras)

    def add_camera(self, camera: SimulatedCamera) -> SimulatedCamera:
        self._cameras.append(camera)
        return camera

    def record(self, *event: Any) -> None:
        self.events.append(event)

    def events_of(self, kind: str) -> list[tuple[Any, ...]]:
        """Return recorded events of one kind, in order."""
        return [e for e in self.events if e[0] == kind]

    def clear_events(self) -> None:
        self.events.clear()


# ---------------------------------------------------------------------------
# Head / actuator
# ---------------------------------------------------------------------------


class SimulatedActuator:
    """Digital actuator (e.g. the feeder pin) with a mounting offset."""

    def __init__(
        self,
        actuator_id: str,
        location: Location | None = None,
        machine: SimulatedMachine | None = None,
    ) -> None:
        self.id = actuator_id
        self._location = location or Location(LengthUnit.MILLIMETERS)
        self._machine = machine
        self.state = False
        self.fail_on_actuate = False

    @property
    def location(self) -> Location:
        return self._location

    def actuate(self, on: bool) -> None:
        if self.fail_on_actuate:
            raise MotionError(f"Actuator {self.id} failed to switch {'on' if on else 'off'}")
        self.state = bool(on)
        if self._machine is not None:
            self._machine.record("actuate", self.id, self.state)


class SimulatedHead:
    """Head that teleports to commanded positions.

    Parameters
    ----------
    head_id : str
        Head identifier.
    machine : SimulatedMachine
        Owning machine; receives the event log.
    safe_z : float
        Z height used by ``move_to_safe_z`` (machine native units).
    """

    def __init__(
        self,
        head_id: str,
        machine: SimulatedMachine,
        safe_z: float = 0.0,
    ) -> None:
        self.id = head_id
        self._machine = machine
        self.safe_z = safe_z
        self._position = Position(0.0, 0.0, safe_z, 0.0)
        self._actuators: dict[str, SimulatedActuator] = {}
        self.move_count = 0
        self.fail_on_move: int | None = None

    @property
    def machine(self) -> SimulatedMachine:
        return self._machine

    def add_actuator(self, actuator: SimulatedActuator) -> SimulatedActuator:
        self._actuators[actuator.id] = actuator
        return actuator

    def get_actuator(self, actuator_id: str) -> SimulatedActuator | None:
        return self._actuators.get(actuator_id)

    def get_position(self) -> Position:
        p = self._position
        return Position(p.x, p.y, p.z, p.c)

    def move_to_safe_z(self) -> None:
        self._position.z = self.safe_z
        self._machine.record("safe_z", self.safe_z)

    def move_to(
        self,
        x: float,
        y: float,
        z: float,
        c: float,
        feed_rate: float | None = None,
    ) -> None:
        self.move_count += 1
        if self.fail_on_move is not None and self.move_count == self.fail_on_move:
            raise MotionError(
                f"Head {self.id} could not reach "
                f"({x:.3f}, {y:.3f}, {z:.3f}, {c:.3f})"
            )
        self._position = Position(x, y, z, c)
        self._machine.record("move", x, y, z, c, feed_rate)

    def __str__(self) -> str:
        return f"SimulatedHead id {self.id}"


# ---------------------------------------------------------------------------
# Camera / vision
# ---------------------------------------------------------------------------


@dataclass
class ScriptedVisionProvider:
    """Vision provider returning pre-set candidates.

    ``results`` is consumed one entry per call; the last entry is reused
    once the list is exhausted.  Each call's arguments are kept in
    ``calls``.
    """

    results: list[Sequence[TemplateMatch]] = field(default_factory=list)
    calls: list[tuple[Any, ...]] = field(default_factory=list)

    def locate_template_matches(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        roll: float,
        contrast: float,
        template: np.ndarray,
    ) -> list[TemplateMatch]:
        self.calls.append((x, y, width, height, roll, contrast))
        if not self.results:
            return []
        idx = min(len(self.calls) - 1, len(self.results) - 1)
        return list(self.results[idx])


class SimulatedCamera:
    """Head-mounted camera returning a fixed frame.

    Parameters
    ----------
    name : str
        Identifier used in the event log.
    head : SimulatedHead | None
        Head the camera is mounted on (``None`` for fixed cameras).
    location : Location
        Mounting offset relative to the head.
    units_per_pixel : Location
        Calibration; only X and Y are used.
    frame : np.ndarray | None
        Image returned by ``capture``.  Defaults to a black 640x480 frame.
    vision_provider : VisionProvider | None
        Vision capability, or ``None`` for a plain camera.
    """

    def __init__(
        self,
        name: str,
        head: SimulatedHead | None,
        location: Location | None = None,
        units_per_pixel: Location | None = None,
        frame: np.ndarray | None = None,
        vision_provider: VisionProvider | None = None,
    ) -> None:
        self.name = name
        self._head = head
        self._location = location or Location(LengthUnit.MILLIMETERS)
        self._units_per_pixel = units_per_pixel or Location(
            LengthUnit.MILLIMETERS, 0.05, 0.05, 0.0, 0.0,
        )
        self.frame = (
            frame if frame is not None else np.zeros((480, 640, 3), dtype=np.uint8)
        )
        self.vision_provider = vision_provider

    @property
    def head(self) -> SimulatedHead | None:
        return self._head

    @property
    def location(self) -> Location:
        return self._location

    @property
    def units_per_pixel(self) -> Location:
        return self._units_per_pixel

    def capture(self) -> np.ndarray:
        if self._head is not None:
            self._head.machine.record("capture", self.name)
        return self.frame.copy()
