"""Exceptions raised by the feeder and the vision correction pipeline.

Configuration errors are raised before any physical motion.  Vision and
motion errors may surface part-way through a feed, after irreversible
moves have been issued; those carry enough context for an operator to
recover the machine by hand.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tape_feeder.geometry.units import Location


class FeederError(Exception):
    """Base exception for all feeder errors."""

    pass


# ---------------------------------------------------------------------------
# Configuration errors (raised before any motion)
# ---------------------------------------------------------------------------


class FeederConfigError(FeederError):
    """The feeder configuration cannot support the requested operation."""

    pass


class MissingFeedRate(FeederConfigError):
    """No feed rate is configured."""

    pass


class MissingActuatorId(FeederConfigError):
    """No actuator id is configured."""

    pass


class ActuatorNotFound(FeederConfigError):
    """The configured actuator id does not exist on the head."""

    pass


class VisionConfigError(FeederConfigError):
    """Vision is enabled but its configuration is incomplete."""

    pass


# ---------------------------------------------------------------------------
# Vision errors
# ---------------------------------------------------------------------------


class VisionError(FeederError):
    """Base exception for vision correction failures."""

    pass


class NoVisionCameraFound(VisionError):
    """No camera on the head exposes a vision capability."""

    pass


class NoMatchFound(VisionError):
    """Template matching returned no acceptable candidate."""

    pass


# ---------------------------------------------------------------------------
# Mid-sequence failures
# ---------------------------------------------------------------------------


class FeedInterrupted(FeederError):
    """A physical move failed part-way through the feed sequence.

    The feed is not rolled back.  ``step`` names the step that was in
    progress and ``pin_extended`` tells whether the pin may still be
    extended (and possibly inserted in the tape).
    """

    def __init__(self, message: str, step: object, pin_extended: bool) -> None:
        super().__init__(message)
        self.step = step
        self.pin_extended = pin_extended


class PostFeedVisionError(FeederError):
    """The vision pass after a completed feed failed.

    The tape has already been advanced.  ``pick_location`` is the
    corrected pick location computed from the previous offset, still
    usable by the caller.  The cached offset was not updated.
    """

    def __init__(self, message: str, pick_location: Location) -> None:
        super().__init__(message)
        self.pick_location = pick_location
