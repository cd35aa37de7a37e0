"""
Pupil Detector
Landmark-guided pupil detection and tracking, one call per video frame.

Per requested eye:
  1. ROI from iris landmarks
  2. Candidate generators (threshold / darkest spot / gradient / Hough)
  3. Score and pick one candidate
  4. Kalman smoothing of x, y and diameter
  5. Stability score from the previous raw measurement
"""
import logging
import os
import time
from dataclasses import asdict, dataclass, replace
from enum import Enum, auto
from typing import Optional, Tuple

import cv2
import numpy as np

from candidates import GENERATORS, Candidate, run_generators
from eye_region import EYE_LANDMARKS, extract_eye_region, eyes_for_mode, landmark_points
from kalman import EyeFilter, compute_stability
from selector import select_best

logger = logging.getLogger(__name__)

# ─── Tunable Hyperparameters ────────────────────────────────────
DEFAULT_CONFIG = {
    # Eye region
    "region_source": "iris",       # "iris" = square around iris, "contour" = eyelid bbox
    "iris_scale": 1.6,             # ROI half-size as a multiple of iris radius
    "region_padding": 6,
    "contour_padding": 15,
    "min_region_size": 10,         # ROI at or below this many px per side is skipped

    # Preprocessing
    "preprocess": None,            # None, "clahe" or "equalize"
    "blur_kernel": 5,
    "min_region_std": 4.0,         # Flatter ROIs produce no candidates

    # Connected components
    "min_area": 20,
    "max_area": 2000,
    "min_circularity": 0.4,
    "circularity_weight": 0.6,
    "center_weight": 0.4,          # Pupil sits near the iris center

    # Adaptive threshold
    "adaptive_block_size": 21,
    "adaptive_c": 5,

    # Otsu threshold (more sensitive to illumination gradients)
    "otsu_confidence_scale": 0.9,

    # Darkest-region expansion
    "darkest_rays": 16,
    "darkest_delta": 25,           # Brightness rise that marks the pupil edge
    "darkest_tolerance": 8,
    "darkest_max_radius": 40,

    # Contrast-relative threshold
    "contrast_scale": 0.6,
    "contrast_min_threshold": 20,
    "contrast_confidence_scale": 0.85,

    # Gradient-weighted centroid
    "gradient_threshold": 20,
    "gradient_relative": 0.6,      # Also require this fraction of the max magnitude
    "gradient_border": 3,
    "gradient_percentile": 90,
    "gradient_confidence_scale": 150,

    # Hough circle fit
    "hough_param1": 50,
    "hough_param2": 15,
    "hough_circularity": 0.9,
    "hough_contrast_scale": 80,
    "contrast_ring": 2.0,

    # Sanity band for every generator
    "min_diameter": 4,
    "max_diameter": 80,

    # Selection
    "score_weights": (0.4, 0.3, 0.2),   # confidence, circularity, size plausibility
    "size_band": (10, 60),         # Open interval
    "size_off_band": 0.5,
    "method_bonus": {"hough": 0.1, "darkest": 0.1},
    "min_confidence": 0.1,         # Candidates below this never get selected

    # Kalman filter
    "position_q": 0.1,
    "position_r": 2.0,
    "diameter_q": 0.1,
    "diameter_r": 3.0,
    "initial_uncertainty": 1.0,

    # Stability
    "stability_center_scale": 10.0,
    "stability_size_scale": 5.0,
    "stability_initial": 0.5,

    # Tracking
    "lost_after": 5,               # Consecutive misses before an eye is dropped
    "coast_on_miss": True,         # Re-emit the last estimate while not yet lost

    # Ensemble, in tie-break order
    "methods": ("adaptive", "otsu", "darkest", "contrast", "gradient", "hough"),
}

PREPROCESS_MODES = (None, "clahe", "equalize")


def _cast(raw, default):
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if isinstance(default, tuple):
        parts = [p.strip() for p in raw.split(",") if p.strip()]
        return tuple(_cast(p, default[0]) if default else p for p in parts)
    if isinstance(default, dict):
        pairs = (p.split(":", 1) for p in raw.split(",") if ":" in p)
        return {k.strip(): float(v) for k, v in pairs}
    if default is None:
        return None if raw.strip().lower() in ("", "none") else raw.strip()
    return raw


def config_from_env(environ=None):
    """
    Read overrides from PUPIL_<KEY> environment variables.

    Examples:
        PUPIL_LOST_AFTER=8
        PUPIL_PREPROCESS=clahe
        PUPIL_METHODS=adaptive,darkest,hough
    """
    environ = os.environ if environ is None else environ
    overrides = {}
    for key, default in DEFAULT_CONFIG.items():
        raw = environ.get("PUPIL_" + key.upper())
        if raw is not None:
            overrides[key] = _cast(raw, default)
    return overrides


def to_gray(image):
    """Grayscale uint8 view of a gray, BGR or BGRA array."""
    if image.ndim == 3:
        channels = image.shape[2]
        if channels == 1:
            image = image[:, :, 0]
        elif channels == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        elif channels == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        else:
            raise ValueError(f"Unsupported channel count {channels}")
    if image.dtype != np.uint8:
        image = np.clip(image, 0, 255).astype(np.uint8)
    return image


def _is_frame(frame):
    if frame is None or getattr(frame, "ndim", 0) not in (2, 3):
        return False
    if frame.shape[0] == 0 or frame.shape[1] == 0:
        return False
    return frame.ndim == 2 or frame.shape[2] in (1, 3, 4)


# ─── Data Classes ───────────────────────────────────────────────
class TrackState(Enum):
    UNINITIALIZED = auto()
    TRACKING = auto()
    LOST = auto()


@dataclass(frozen=True)
class PupilEstimate:
    """Smoothed pupil for one eye in one frame, in frame pixels."""
    eye: str
    center: Tuple[float, float]
    smoothed_diameter: float
    raw_center: Tuple[float, float]
    raw_diameter: float
    confidence: float
    circularity: float
    stability: float
    source_method: str
    retained: bool = False         # True while coasting through missed frames

    def as_dict(self):
        d = asdict(self)
        d["x"], d["y"] = d.pop("center")
        d["raw_x"], d["raw_y"] = d.pop("raw_center")
        return d


@dataclass
class _EyeTrack:
    """Mutable per-eye state, owned by one PupilDetector."""
    filter: EyeFilter
    state: TrackState = TrackState.UNINITIALIZED
    previous: Optional[Candidate] = None     # last raw Candidate, frame coords
    last_estimate: Optional[PupilEstimate] = None
    misses: int = 0

    def reset(self):
        self.filter.reset()
        self.state = TrackState.UNINITIALIZED
        self.previous = None
        self.last_estimate = None
        self.misses = 0


# ─── Main Detector ──────────────────────────────────────────────
class PupilDetector:
    """
    Per-frame pupil detection with per-eye temporal filtering.

    Not thread-safe: call detect() from one loop, one frame at a time.

    Example:
        detector = PupilDetector({"lost_after": 8})
        estimates = detector.detect(frame, face_landmarks, "both")
        if "left" in estimates:
            print(estimates["left"].smoothed_diameter)
        detector.reset()   # camera restarted
    """

    def __init__(self, config=None):
        unknown = set(config or {}) - set(DEFAULT_CONFIG)
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        self.config = {**DEFAULT_CONFIG, **(config or {})}

        bad = [m for m in self.config["methods"] if m not in GENERATORS]
        if bad:
            raise ValueError(f"Unknown generator(s): {bad}")
        if self.config["preprocess"] not in PREPROCESS_MODES:
            raise ValueError(f"Unknown preprocess mode {self.config['preprocess']!r}")
        if self.config["lost_after"] < 1:
            raise ValueError("lost_after must be at least 1")

        self.clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(4, 4))
        self._eyes = {eye: _EyeTrack(EyeFilter(self.config)) for eye in EYE_LANDMARKS}

        # Performance metrics
        self.fps = 0
        self.last_time = time.time()
        self.frame_count = 0

        logger.info("PupilDetector initialized with methods=%s", ",".join(self.config["methods"]))

    def state_of(self, eye) -> TrackState:
        if eye not in self._eyes:
            raise ValueError(f"Unknown eye {eye!r}")
        return self._eyes[eye].state

    def reset(self):
        """Drop all filter state, e.g. after the video source restarted."""
        for track in self._eyes.values():
            track.reset()
        logger.info("PupilDetector reset")

    def detect(self, frame, landmarks, eye_mode="both"):
        """
        Process one frame.

        Args:
            frame: numpy image, gray (H, W), BGR (H, W, 3) or BGRA (H, W, 4)
            landmarks: normalized face-mesh points (sequence or `.landmark` holder)
            eye_mode: "left", "right" or "both"

        Returns:
            dict eye -> PupilEstimate, only for eyes with a current or
            retained estimate
        """
        eyes = eyes_for_mode(eye_mode)
        self._tick()

        if not _is_frame(frame):
            logger.debug("Skipping malformed frame")
            return {}
        points = landmark_points(landmarks)
        if len(points) == 0:
            logger.debug("Skipping frame without landmarks")
            for eye in eyes:
                self._register_miss(eye, self._eyes[eye], coast=False)
            return {}

        h, w = frame.shape[:2]
        results = {}
        for eye in eyes:
            estimate = self._process_eye(eye, frame, points, w, h)
            if estimate is not None:
                results[eye] = estimate
        return results

    # ═══════════════════════════════════════════════════════════
    # Per-eye pipeline
    # ═══════════════════════════════════════════════════════════
    def _process_eye(self, eye, frame, points, w, h):
        track = self._eyes[eye]
        region = extract_eye_region(points, eye, w, h, self.config)
        if region is None:
            return self._register_miss(eye, track, coast=False)

        gray = self._preprocess(to_gray(region.crop(frame)))
        floor = self.config["min_confidence"]
        candidates = [c for c in run_generators(gray, self.config) if c.confidence >= floor]
        logger.debug("%s eye: %d candidate(s) from %s", eye, len(candidates),
                     [c.method for c in candidates])

        best = select_best(candidates, self.config, offset=(region.x, region.y))
        if best is None:
            return self._register_miss(eye, track)
        return self._register_hit(eye, track, best)

    def _preprocess(self, gray):
        mode = self.config["preprocess"]
        if mode == "clahe":
            return self.clahe.apply(gray)
        if mode == "equalize":
            return cv2.equalizeHist(gray)
        return gray

    def _register_hit(self, eye, track, best):
        stability = compute_stability(best, track.previous, self.config)
        sx, sy, sd = track.filter.update(best.cx, best.cy, best.diameter)

        if track.state is TrackState.UNINITIALIZED:
            logger.info("%s eye acquired (%s)", eye, best.method)
        elif track.state is TrackState.LOST:
            logger.info("%s eye reacquired (%s)", eye, best.method)
        track.state = TrackState.TRACKING
        track.misses = 0
        track.previous = best

        estimate = PupilEstimate(
            eye=eye,
            center=(sx, sy),
            smoothed_diameter=sd,
            raw_center=(best.cx, best.cy),
            raw_diameter=best.diameter,
            confidence=best.confidence,
            circularity=best.circularity,
            stability=stability,
            source_method=best.method,
        )
        track.last_estimate = estimate
        return estimate

    def _register_miss(self, eye, track, coast=True):
        if track.state is not TrackState.TRACKING:
            return None

        track.misses += 1
        lost_after = self.config["lost_after"]
        if track.misses >= lost_after:
            track.state = TrackState.LOST
            logger.info("%s eye lost after %d missed frames", eye, track.misses)
            return None

        if not (coast and self.config["coast_on_miss"]) or track.last_estimate is None:
            return None
        decay = 1.0 - track.misses / lost_after
        last = track.last_estimate
        return replace(last, stability=last.stability * decay, retained=True)

    def _tick(self):
        current_time = time.time()
        self.frame_count += 1
        elapsed = current_time - self.last_time
        if elapsed >= 1.0:
            self.fps = self.frame_count / elapsed
            self.frame_count = 0
            self.last_time = current_time
