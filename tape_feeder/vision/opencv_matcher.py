"""OpenCV template-matching vision provider.

Captures a frame from its camera and searches the area of interest for
the feeder template with ``cv2.matchTemplate``.  Several candidates are
returned, best first, by repeatedly taking the global peak of the score
map and suppressing a template-sized window around it.

Scores are normalised so that higher is always better: square-difference
methods are inverted.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

from tape_feeder.hardware.interfaces import Camera, TemplateMatch

logger = logging.getLogger(__name__)

_SQDIFF_METHODS = (cv2.TM_SQDIFF, cv2.TM_SQDIFF_NORMED)


def _to_gray(img: np.ndarray) -> np.ndarray:
    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    elif img.ndim == 3:
        img = img[:, :, 0]
    if img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)
    return img


def _rotate(img: np.ndarray, degrees: float) -> np.ndarray:
    h, w = img.shape[:2]
    m = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), degrees, 1.0)
    return cv2.warpAffine(img, m, (w, h), borderMode=cv2.BORDER_REPLICATE)


class OpenCvTemplateMatcher:
    """Vision provider backed by ``cv2.matchTemplate``.

    Parameters
    ----------
    camera : Camera
        Camera whose frames are searched.
    method : int
        OpenCV template matching method.
    threshold : float | None
        Minimum (normalised) score of a returned candidate.  ``None``
        returns up to ``max_matches`` peaks regardless of score.
    max_matches : int
        Maximum number of candidates per call.
    """

    def __init__(
        self,
        camera: Camera,
        method: int = cv2.TM_CCOEFF_NORMED,
        threshold: float | None = 0.5,
        max_matches: int = 10,
    ) -> None:
        self._camera = camera
        self.method = method
        self.threshold = threshold
        self.max_matches = max_matches

    def _scores(self, search: np.ndarray, template: np.ndarray) -> np.ndarray:
        result = cv2.matchTemplate(search, template, self.method).astype(np.float32)
        if self.method == cv2.TM_SQDIFF_NORMED:
            result = 1.0 - result
        elif self.method == cv2.TM_SQDIFF:
            result = -result
        # Flat regions give NaN under the normalised correlation methods
        result[np.isnan(result)] = -np.inf
        return result

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
        """Search the ``(x, y, width, height)`` region for *template*.

        An empty region searches the whole frame.  Returned coordinates
        are the template's top-left corner in full-frame pixels.
        """
        frame = _to_gray(self._camera.capture())
        tmpl = _to_gray(template)
        if roll:
            tmpl = _rotate(tmpl, roll)

        fh, fw = frame.shape[:2]
        if width <= 0 or height <= 0:
            x0, y0, x1, y1 = 0, 0, fw, fh
        else:
            x0, y0 = max(0, x), max(0, y)
            x1, y1 = min(fw, x + width), min(fh, y + height)
        search = frame[y0:y1, x0:x1]

        th, tw = tmpl.shape[:2]
        if search.shape[0] < th or search.shape[1] < tw:
            logger.warning(
                "Search region %dx%d is smaller than the %dx%d template",
                search.shape[1], search.shape[0], tw, th,
            )
            return []

        if contrast > 0:
            search = cv2.normalize(search, None, 0, 255, cv2.NORM_MINMAX)
            tmpl = cv2.normalize(tmpl, None, 0, 255, cv2.NORM_MINMAX)

        scores = self._scores(search, tmpl)
        matches: list[TemplateMatch] = []
        while len(matches) < self.max_matches:
            _, max_val, _, (px, py) = cv2.minMaxLoc(scores)
            if not np.isfinite(max_val):
                break
            if self.threshold is not None and max_val < self.threshold:
                break
            matches.append(TemplateMatch(float(px + x0), float(py + y0), float(max_val)))
            scores[
                max(0, py - th // 2):py + th // 2 + 1,
                max(0, px - tw // 2):px + tw // 2 + 1,
            ] = -np.inf

        logger.debug("Template search in (%d, %d, %d, %d): %d candidates",
                     x0, y0, x1 - x0, y1 - y0, len(matches))
        return matches
