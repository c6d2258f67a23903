"""Pin-driven tape feeder with cached vision correction.

Feed operation
--------------
1. Apply the cached vision offset to the feed start and end locations.
2. Feed the tape: position the pin over the sprocket hole, extend it,
   lower it into the hole, drag the tape at the feed rate, lift, retract.
3. Apply the same offset to the pick location.
4. Run a vision pass over the corrected pick location and cache the
   result for the next feed.

The head is left above the pick location, so the subsequent pick only
moves by the vision offset.  The first feed with vision enabled (or the
first after ``reset_vision_offset``) runs an extra pre-flight pass to
obtain an initial offset.

Safety
------
Every move blocks and the order is fixed; nothing is retried or rolled
back.  Configuration problems are raised before any motion.  A motion
failure mid-sequence raises ``FeedInterrupted`` naming the step and
whether the pin may still be extended, so the operator can recover by
hand.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum, auto
from typing import Callable

from tape_feeder.errors import (
    ActuatorNotFound,
    FeederError,
    FeedInterrupted,
    MissingActuatorId,
    MissingFeedRate,
    PostFeedVisionError,
    VisionConfigError,
)
from tape_feeder.feeder.config import FeederConfig
from tape_feeder.geometry.offsets import VisionOffset, apply_offset
from tape_feeder.geometry.units import Location
from tape_feeder.hardware.interfaces import Head
from tape_feeder.utils.logging_config import log_context
from tape_feeder.vision.correction import VisionCorrection
from tape_feeder.vision.offset_cache import VisionOffsetCache

logger = logging.getLogger(__name__)


class FeedStep(Enum):
    """Steps of the feed sequence, in execution order."""

    IDLE = auto()
    SAFE_Z = auto()
    PREFLIGHT_VISION = auto()
    POSITION_PIN = auto()
    EXTEND_PIN = auto()
    INSERT_PIN = auto()
    DRAG_TAPE = auto()
    LIFT_PIN = auto()
    RETRACT_PIN = auto()
    POST_FEED_VISION = auto()
    DONE = auto()


class TapeFeeder:
    """Feeds one tape lane and returns vision-corrected pick locations.

    Parameters
    ----------
    config : FeederConfig
        Feeder configuration.  Changes made through its setters apply
        to the next feed.
    sleep : Callable[[float], None]
        Delay function for the camera settle wait.
    """

    def __init__(
        self,
        config: FeederConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._cache = VisionOffsetCache()
        self._correction = VisionCorrection(config.vision, sleep=sleep)
        self._lock = threading.Lock()
        self._last_step = FeedStep.IDLE
        self._pin_extended = False

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def id(self) -> str:
        return self._config.id

    @property
    def config(self) -> FeederConfig:
        return self._config

    @property
    def offset_cache(self) -> VisionOffsetCache:
        return self._cache

    @property
    def vision_offset(self) -> VisionOffset | None:
        """Offset that will correct the next feed, if one is cached."""
        return self._cache.get()

    @property
    def last_step(self) -> FeedStep:
        """Last step started by the most recent feed."""
        return self._last_step

    @property
    def pin_extended(self) -> bool:
        """``True`` if the last feed stopped with the pin possibly extended."""
        return self._pin_extended

    def can_feed_for_head(self, head: Head) -> bool:
        return True

    def reset_vision_offset(self) -> None:
        """Drop the cached offset; the next feed runs a pre-flight pass."""
        self._cache.reset()

    # ------------------------------------------------------------------
    # Feed
    # ------------------------------------------------------------------

    def feed(self, head: Head, pick_location: Location) -> Location:
        """Advance the tape by one pitch.

        Parameters
        ----------
        head : Head
            Head carrying the feed actuator (and the vision camera).
        pick_location : Location
            Nominal pick location of the next part; any units.

        Returns
        -------
        Location
            Pick location corrected by the cached vision offset, in
            machine native units.

        Raises
        ------
        MissingFeedRate, MissingActuatorId, ActuatorNotFound, VisionConfigError
            Before any motion.
        NoVisionCameraFound, NoMatchFound
            From the pre-flight vision pass.
        FeedInterrupted
            A head or actuator call failed mid-sequence.
        PostFeedVisionError
            The tape was fed but the follow-up vision pass failed.
        """
        with self._lock, log_context(feeder=self.id):
            return self._feed(head, pick_location)

    def _step(self, step: FeedStep) -> None:
        self._last_step = step
        logger.debug("Step %s", step.name)

    def _feed(self, head: Head, pick_location: Location) -> Location:
        cfg = self._config
        vision = cfg.vision
        self._correction.vision = vision
        logger.debug("feed(%s, %s)", head, pick_location)

        self._last_step = FeedStep.IDLE
        self._pin_extended = False

        if cfg.feed_rate is None:
            raise MissingFeedRate("No feed rate set.")
        if cfg.actuator_id is None:
            raise MissingActuatorId("No actuator ID set.")
        actuator = head.get_actuator(cfg.actuator_id)
        if actuator is None:
            raise ActuatorNotFound(
                f"No Actuator found with ID {cfg.actuator_id} on feed Head {head.id}"
            )
        if vision.enabled and vision.template_image is None:
            raise VisionConfigError("Vision is enabled but no template image is set")

        native = head.machine.native_units
        pick = pick_location.convert_to_units(native)
        feed_start = cfg.feed_start_location.convert_to_units(native)
        feed_end = cfg.feed_end_location.convert_to_units(native)
        actuator_offsets = actuator.location.convert_to_units(native)
        feed_rate = cfg.feed_rate.convert_to_units(native)

        logger.debug(
            "Converted inputs: pick %s, feed start %s, feed end %s, "
            "actuator offsets %s, feed rate %s",
            pick, feed_start, feed_end, actuator_offsets, feed_rate,
        )

        offset = VisionOffset.zero(native)
        try:
            self._step(FeedStep.SAFE_Z)
            head.move_to_safe_z()

            if vision.enabled:
                cached = self._cache.get()
                if cached is None:
                    # First feed with vision, or the offset was reset.
                    logger.info("No cached vision offset, running pre-flight pass")
                    self._step(FeedStep.PREFLIGHT_VISION)
                    cached = self._correction.compute_offset(head, pick)
                    self._cache.store(cached)
                offset = cached.convert_to_units(native)
                logger.debug("Using vision offset %s", offset)

            # Subtract: put the pin over the hole rather than express the
            # hole relative to the pin.
            feed_start = feed_start.subtract(actuator_offsets)
            feed_end = feed_end.subtract(actuator_offsets)
            logger.debug("Actuator-relative feed start %s, feed end %s", feed_start, feed_end)

            self._step(FeedStep.POSITION_PIN)
            pos = head.get_position()
            head.move_to(feed_start.x - offset.x, feed_start.y - offset.y, pos.z, pos.c)

            self._step(FeedStep.EXTEND_PIN)
            self._pin_extended = True
            actuator.actuate(True)

            self._step(FeedStep.INSERT_PIN)
            pos = head.get_position()
            head.move_to(pos.x, pos.y, feed_start.z, pos.c)

            self._step(FeedStep.DRAG_TAPE)
            pos = head.get_position()
            head.move_to(
                feed_end.x - offset.x,
                feed_end.y - offset.y,
                feed_end.z,
                pos.c,
                feed_rate.value,
            )

            self._step(FeedStep.LIFT_PIN)
            head.move_to_safe_z()

            self._step(FeedStep.RETRACT_PIN)
            actuator.actuate(False)
            self._pin_extended = False
        except FeederError:
            raise
        except Exception as exc:
            step = self._last_step
            hint = " The pin may still be extended." if self._pin_extended else ""
            logger.error("Feed aborted during %s: %s.%s", step.name, exc, hint)
            raise FeedInterrupted(
                f"Feed aborted during {step.name}: {exc}.{hint}",
                step=step,
                pin_extended=self._pin_extended,
            ) from exc

        pick = apply_offset(pick, offset)
        logger.debug("Corrected pick location %s", pick)

        if vision.enabled:
            self._step(FeedStep.POST_FEED_VISION)
            try:
                next_offset = self._correction.compute_offset(head, pick)
            except Exception as exc:
                logger.error("Vision pass after feed failed: %s", exc)
                raise PostFeedVisionError(
                    f"Tape was fed but the vision pass failed: {exc}",
                    pick_location=pick,
                ) from exc
            self._cache.store(next_offset)
            logger.debug("Next vision offset %s", next_offset)

        self._step(FeedStep.DONE)
        logger.info("Feed complete, pick at %s", pick)
        return pick

    def __str__(self) -> str:
        return f"TapeFeeder id {self.id}"
