"""Vision correction pass: measure where a feature really is.

The pass positions the head's vision camera over a target location,
matches the feeder's template inside the area of interest, and turns
the pixel distance between the image centre and the match centre into a
physical planar offset.

Sequence (all moves blocking, in this order):
    1. Safe Z.
    2. Planar move to the camera-centred X/Y at the current Z.
    3. Focus move to the camera-centred Z.
    4. Settle delay, then template match and capture.

Planar positioning always happens before Z descent so a lowered tool is
never dragged across the work surface.

Sign conventions:
    - The camera mounting offset is *subtracted* from the target so the
      camera, not the nozzle, ends up over it.
    - Image Y grows downward and machine Y grows upward, so the pixel Y
      offset is negated before scaling.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Callable

from tape_feeder.errors import NoMatchFound, NoVisionCameraFound, VisionConfigError
from tape_feeder.geometry.offsets import VisionOffset
from tape_feeder.geometry.units import Location
from tape_feeder.hardware.interfaces import Camera, Head, TemplateMatch

if TYPE_CHECKING:
    from tape_feeder.feeder.config import VisionConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def find_vision_camera(head: Head) -> Camera:
    """Return the first machine camera mounted on *head* with vision.

    Raises
    ------
    NoVisionCameraFound
        If no such camera exists.
    """
    for camera in head.machine.cameras:
        if camera.head is head and camera.vision_provider is not None:
            return camera
    raise NoVisionCameraFound(f"No vision capable camera found on head {head.id}")


def select_best_match(
    candidates: Sequence[TemplateMatch],
    min_score: float | None = None,
) -> TemplateMatch:
    """Pick the highest-scoring candidate.

    Ties keep the provider's order.

    Raises
    ------
    NoMatchFound
        If *candidates* is empty or the best score is below *min_score*.
    """
    if not candidates:
        raise NoMatchFound("Template matching returned no candidates")
    best = candidates[0]
    for cand in candidates[1:]:
        if cand.score > best.score:
            best = cand
    if min_score is not None and best.score < min_score:
        raise NoMatchFound(
            f"Best template match score {best.score:.3f} is below "
            f"the minimum {min_score:.3f}"
        )
    return best


def pixel_offset(
    match: TemplateMatch,
    template_size: tuple[int, int],
    image_size: tuple[int, int],
) -> tuple[float, float]:
    """Pixel offset from match centre to image centre, in machine Y sense.

    Parameters
    ----------
    match : TemplateMatch
        Candidate whose ``x, y`` is the template's top-left corner.
    template_size, image_size : tuple[int, int]
        ``(width, height)`` in pixels.

    Returns
    -------
    tuple[float, float]
        ``(dx, dy)`` with ``dy`` already flipped to machine orientation.
    """
    match_cx = match.x + template_size[0] / 2.0
    match_cy = match.y + template_size[1] / 2.0
    dx = image_size[0] / 2.0 - match_cx
    dy = image_size[1] / 2.0 - match_cy
    return dx, -dy


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class VisionCorrection:
    """Computes vision offsets for one feeder's template.

    Parameters
    ----------
    vision : VisionConfig
        Template, area of interest, settle time and score threshold.
    sleep : Callable[[float], None]
        Delay function used for the settle wait.
    """

    def __init__(
        self,
        vision: VisionConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._vision = vision
        self._sleep = sleep

    @property
    def vision(self) -> VisionConfig:
        return self._vision

    @vision.setter
    def vision(self, value: VisionConfig) -> None:
        self._vision = value

    def compute_offset(self, head: Head, target_location: Location) -> VisionOffset:
        """Measure the offset between *target_location* and the template.

        Parameters
        ----------
        head : Head
            Head carrying the vision camera.
        target_location : Location
            Where the template centre is expected; any units.

        Returns
        -------
        VisionOffset
            Planar offset in machine native units.  Subtracting it from
            the target gives the feature's actual position.

        Raises
        ------
        NoVisionCameraFound
            No vision camera on *head*.
        VisionConfigError
            No template image configured.
        NoMatchFound
            No acceptable template match.
        """
        native = head.machine.native_units
        camera = find_vision_camera(head)

        template = self._vision.template_image
        if template is None:
            raise VisionConfigError("Vision is enabled but no template image is set")

        target = target_location.convert_to_units(native)
        camera_offsets = camera.location.convert_to_units(native)
        # Subtract: put the camera over the target rather than
        # express the target relative to the camera.
        x = target.x - camera_offsets.x
        y = target.y - camera_offsets.y
        z = target.z - camera_offsets.z

        logger.debug("Vision pass at %s (camera at %.4f, %.4f, %.4f)", target, x, y, z)

        head.move_to_safe_z()
        pos = head.get_position()
        head.move_to(x, y, pos.z, pos.c)
        pos = head.get_position()
        head.move_to(pos.x, pos.y, z, pos.c)

        self._sleep(self._vision.settle_time_s)

        aoi = self._vision.area_of_interest
        candidates = camera.vision_provider.locate_template_matches(
            aoi.x, aoi.y, aoi.width, aoi.height, 0, 0, template,
        )
        match = select_best_match(candidates, self._vision.min_match_score)

        image = camera.capture()
        image_size = (image.shape[1], image.shape[0])
        template_size = (template.shape[1], template.shape[0])
        dx, dy = pixel_offset(match, template_size, image_size)

        upp = camera.units_per_pixel.convert_to_units(native)
        offset = VisionOffset(native, dx * upp.x, dy * upp.y)
        logger.debug(
            "Best match at (%.1f, %.1f) score %.3f -> pixel offset (%.1f, %.1f), offset %s",
            match.x, match.y, match.score, dx, dy, offset,
        )
        return offset
