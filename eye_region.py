"""
Eye Region Extraction
Turns normalized face-mesh landmarks into a pixel ROI around each eye.

The ROI is a square centered on the iris landmark centroid, sized from the
largest landmark-to-centroid distance ("iris radius") plus a fixed padding,
and clamped to the frame.
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# ─── Landmark Index Mapping (refined face mesh, 478 points) ─────
EYE_LANDMARKS = {
    "left": {
        "iris": [468, 469, 470, 471, 472],
        "contour": [33, 7, 163, 144, 145, 153, 154, 155, 133,
                    173, 157, 158, 159, 160, 161, 246],
    },
    "right": {
        "iris": [473, 474, 475, 476, 477],
        "contour": [362, 382, 381, 380, 374, 373, 390, 249, 263,
                    466, 388, 387, 386, 385, 384, 398],
    },
}

EYE_MODES = {
    "left": ("left",),
    "right": ("right",),
    "both": ("left", "right"),
}


@dataclass(frozen=True)
class EyeRegion:
    """Pixel rectangle around one eye, already clamped to the frame."""
    x: int
    y: int
    width: int
    height: int

    @property
    def center(self):
        return (self.x + self.width / 2.0, self.y + self.height / 2.0)

    def crop(self, image):
        return image[self.y:self.y + self.height, self.x:self.x + self.width]


def eyes_for_mode(eye_mode):
    """Resolve an eye mode to the ordered eye labels it covers."""
    try:
        return EYE_MODES[eye_mode]
    except KeyError:
        raise ValueError(f"Unknown eye mode {eye_mode!r}, expected one of {sorted(EYE_MODES)}")


def landmark_points(landmarks):
    """Unwrap a face-mesh result (anything with `.landmark`) to a plain sequence."""
    if landmarks is None:
        return []
    if hasattr(landmarks, "landmark"):
        return landmarks.landmark
    return landmarks


def _point(lm):
    if lm is None:
        return None
    if hasattr(lm, "x") and hasattr(lm, "y"):
        x, y = lm.x, lm.y
    else:
        try:
            x, y = lm[0], lm[1]
        except (TypeError, IndexError):
            return None
    if x is None or y is None:
        return None
    x, y = float(x), float(y)
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return x, y


def gather_points(landmarks, indices, width, height):
    """
    Collect the pixel coordinates of `indices`.
    Returns None if any of them is missing, so a half-present eye is skipped.
    """
    points = landmark_points(landmarks)
    pixels = []
    for i in indices:
        if i >= len(points):
            return None
        p = _point(points[i])
        if p is None:
            return None
        pixels.append((p[0] * width, p[1] * height))
    return pixels


def _clamp_box(x1, y1, x2, y2, width, height, min_size):
    x1 = max(0, int(math.floor(x1)))
    y1 = max(0, int(math.floor(y1)))
    x2 = min(width, int(math.ceil(x2)))
    y2 = min(height, int(math.ceil(y2)))
    w, h = x2 - x1, y2 - y1
    if w <= min_size or h <= min_size:
        return None
    return EyeRegion(x1, y1, w, h)


def iris_region(points, width, height, scale=1.6, padding=6, min_size=10):
    """Square ROI around the iris centroid."""
    cx = sum(p[0] for p in points) / len(points)
    cy = sum(p[1] for p in points) / len(points)
    iris_r = max(math.hypot(px - cx, py - cy) for px, py in points)
    half = iris_r * scale + padding
    return _clamp_box(cx - half, cy - half, cx + half, cy + half, width, height, min_size)


def contour_region(points, width, height, padding=15, min_size=10):
    """Bounding box of the eyelid contour plus padding."""
    xs = [p[0] for p in points]
    ys = [p[1] for p in points]
    return _clamp_box(min(xs) - padding, min(ys) - padding,
                      max(xs) + padding, max(ys) + padding,
                      width, height, min_size)


def extract_eye_region(landmarks, eye, width, height, cfg) -> Optional[EyeRegion]:
    """
    Build the ROI for one eye, or None when its landmarks are absent or the
    clamped box is degenerate.
    """
    if width <= 0 or height <= 0:
        return None
    source = cfg["region_source"]
    if source not in ("iris", "contour"):
        raise ValueError(f"Unknown region source {source!r}")

    points = gather_points(landmarks, EYE_LANDMARKS[eye][source], width, height)
    if not points:
        logger.debug("No %s landmarks for %s eye", source, eye)
        return None

    if source == "contour":
        region = contour_region(points, width, height,
                                padding=cfg["contour_padding"],
                                min_size=cfg["min_region_size"])
    else:
        region = iris_region(points, width, height,
                             scale=cfg["iris_scale"],
                             padding=cfg["region_padding"],
                             min_size=cfg["min_region_size"])
    if region is None:
        logger.debug("Degenerate region for %s eye", eye)
    return region
