"""Observable feeder configuration.

``FeederConfig`` and its nested ``VisionConfig`` are mutable: setup
tools edit them while the machine runs.  Every property assignment that
changes a value fires a ``PropertyChange`` to registered listeners so
that persistence and UI refresh can subscribe independently.

The template raster is loaded lazily from ``template_image_name`` inside
the resource directory, and only re-encoded on save when it was replaced
(``template_image_dirty``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import numpy as np

from tape_feeder.geometry.units import Length, LengthUnit, Location, Rectangle
from tape_feeder.utils.fs import load_image

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PropertyChange:
    """A single configuration change."""

    source: object
    name: str
    old_value: Any
    new_value: Any


Listener = Callable[[PropertyChange], None]


def _same(old: Any, new: Any) -> bool:
    if old is new:
        return True
    if isinstance(old, np.ndarray) or isinstance(new, np.ndarray):
        return False
    return bool(old == new)


class Observable:
    """Listener registry shared by the configuration objects."""

    def __init__(self) -> None:
        self._listeners: list[tuple[str | None, Listener]] = []

    def add_listener(self, fn: Listener, property_name: str | None = None) -> None:
        """Register *fn* for all changes, or only for *property_name*."""
        self._listeners.append((property_name, fn))

    def remove_listener(self, fn: Listener, property_name: str | None = None) -> None:
        try:
            self._listeners.remove((property_name, fn))
        except ValueError:
            logger.debug("Listener %r was not registered", fn)

    def _fire(self, name: str, old: Any, new: Any) -> None:
        if _same(old, new):
            return
        event = PropertyChange(self, name, old, new)
        for prop, fn in list(self._listeners):
            if prop is not None and prop != name:
                continue
            try:
                fn(event)
            except Exception as exc:  # noqa: BLE001
                logger.error("Listener error on %s change: %s", name, exc)


# ---------------------------------------------------------------------------
# Vision
# ---------------------------------------------------------------------------


class VisionConfig(Observable):
    """Template-matching settings for one feeder.

    Parameters
    ----------
    enabled : bool
        Whether feeds are vision-corrected.
    template_image_name : str | None
        File name of the template PNG inside the resource directory.
    area_of_interest : Rectangle
        Pixel region of the captured image searched for the template.
    template_top_left, template_bottom_right : Location
        Template corners, recorded when the template was cut out.
    settle_time_s : float
        Wait between reaching the capture position and matching.
    min_match_score : float | None
        Reject the best candidate if its score is below this value.
        ``None`` accepts any score.
    """

    def __init__(
        self,
        enabled: bool = False,
        template_image_name: str | None = None,
        area_of_interest: Rectangle | None = None,
        template_top_left: Location | None = None,
        template_bottom_right: Location | None = None,
        settle_time_s: float = 0.2,
        min_match_score: float | None = None,
    ) -> None:
        super().__init__()
        self._enabled = enabled
        self._template_image_name = template_image_name
        self._area_of_interest = area_of_interest or Rectangle()
        self._template_top_left = template_top_left or Location(LengthUnit.MILLIMETERS)
        self._template_bottom_right = template_bottom_right or Location(LengthUnit.MILLIMETERS)
        self._settle_time_s = settle_time_s
        self._min_match_score = min_match_score

        self._template_image: np.ndarray | None = None
        self._template_image_dirty = False
        self._resource_dir: Path | None = None

    def resolve(self, resource_dir: str | Path) -> None:
        """Bind the directory the template image is read from and saved to."""
        self._resource_dir = Path(resource_dir)

    @property
    def resource_dir(self) -> Path | None:
        return self._resource_dir

    @property
    def enabled(self) -> bool:
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        old, self._enabled = self._enabled, bool(value)
        self._fire("enabled", old, self._enabled)

    @property
    def template_image_name(self) -> str | None:
        return self._template_image_name

    @property
    def template_image(self) -> np.ndarray | None:
        """Template raster, read from the resource directory on first use."""
        if (
            self._template_image is None
            and self._template_image_name is not None
            and self._resource_dir is not None
        ):
            path = self._resource_dir / self._template_image_name
            logger.debug("Loading template image %s", path)
            self._template_image = load_image(path)
        return self._template_image

    @template_image.setter
    def template_image(self, image: np.ndarray | None) -> None:
        """Replace the template.  ``None`` also drops the stored file name."""
        if image is None:
            self._clear_template()
            return
        if image is self._template_image:
            return
        old = self._template_image
        self._template_image = image
        self._template_image_dirty = True
        self._fire("template_image", old, image)

    def _clear_template(self) -> None:
        old = self._template_image
        old_name = self._template_image_name
        self._template_image = None
        self._template_image_name = None
        self._template_image_dirty = False
        self._fire("template_image", old, None)
        self._fire("template_image_name", old_name, None)

    @property
    def template_image_dirty(self) -> bool:
        return self._template_image_dirty

    def mark_template_persisted(self, name: str) -> None:
        """Record that the template was written to *name*; clears dirty."""
        old = self._template_image_name
        self._template_image_name = name
        self._template_image_dirty = False
        self._fire("template_image_name", old, name)

    @property
    def area_of_interest(self) -> Rectangle:
        return self._area_of_interest

    @area_of_interest.setter
    def area_of_interest(self, value: Rectangle) -> None:
        old, self._area_of_interest = self._area_of_interest, value
        self._fire("area_of_interest", old, value)

    @property
    def template_top_left(self) -> Location:
        return self._template_top_left

    @template_top_left.setter
    def template_top_left(self, value: Location) -> None:
        old, self._template_top_left = self._template_top_left, value
        self._fire("template_top_left", old, value)

    @property
    def template_bottom_right(self) -> Location:
        return self._template_bottom_right

    @template_bottom_right.setter
    def template_bottom_right(self, value: Location) -> None:
        old, self._template_bottom_right = self._template_bottom_right, value
        self._fire("template_bottom_right", old, value)

    @property
    def settle_time_s(self) -> float:
        return self._settle_time_s

    @settle_time_s.setter
    def settle_time_s(self, value: float) -> None:
        if value < 0:
            raise ValueError(f"settle_time_s must be >= 0, got {value}")
        old, self._settle_time_s = self._settle_time_s, float(value)
        self._fire("settle_time_s", old, self._settle_time_s)

    @property
    def min_match_score(self) -> float | None:
        return self._min_match_score

    @min_match_score.setter
    def min_match_score(self, value: float | None) -> None:
        old, self._min_match_score = self._min_match_score, value
        self._fire("min_match_score", old, value)


# ---------------------------------------------------------------------------
# Feeder
# ---------------------------------------------------------------------------


class FeederConfig(Observable):
    """Configuration of one pin-driven tape feeder.

    Locations are stored in the units they were entered in; the feeder
    normalizes them to machine units at feed time.
    """

    def __init__(
        self,
        feeder_id: str = "tape_feeder",
        feed_start_location: Location | None = None,
        feed_end_location: Location | None = None,
        feed_rate: Length | None = None,
        actuator_id: str | None = None,
        vision: VisionConfig | None = None,
    ) -> None:
        super().__init__()
        self.id = feeder_id
        self._feed_start_location = feed_start_location or Location(LengthUnit.MILLIMETERS)
        self._feed_end_location = feed_end_location or Location(LengthUnit.MILLIMETERS)
        self._feed_rate = feed_rate
        self._actuator_id = actuator_id
        self._vision = vision or VisionConfig()

    @property
    def feed_start_location(self) -> Location:
        return self._feed_start_location

    @feed_start_location.setter
    def feed_start_location(self, value: Location) -> None:
        old, self._feed_start_location = self._feed_start_location, value
        self._fire("feed_start_location", old, value)

    @property
    def feed_end_location(self) -> Location:
        return self._feed_end_location

    @feed_end_location.setter
    def feed_end_location(self, value: Location) -> None:
        old, self._feed_end_location = self._feed_end_location, value
        self._fire("feed_end_location", old, value)

    @property
    def feed_rate(self) -> Length | None:
        return self._feed_rate

    @feed_rate.setter
    def feed_rate(self, value: Length | None) -> None:
        old, self._feed_rate = self._feed_rate, value
        self._fire("feed_rate", old, value)

    @property
    def actuator_id(self) -> str | None:
        return self._actuator_id

    @actuator_id.setter
    def actuator_id(self, value: str | None) -> None:
        old, self._actuator_id = self._actuator_id, value
        self._fire("actuator_id", old, value)

    @property
    def vision(self) -> VisionConfig:
        return self._vision

    @vision.setter
    def vision(self, value: VisionConfig) -> None:
        old, self._vision = self._vision, value
        self._fire("vision", old, value)
