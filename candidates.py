"""
Pupil Candidate Generators
Each generator looks at one grayscale eye ROI and proposes at most one pupil.

Generators share the contract `generator(gray_roi, cfg) -> Optional[Candidate]`,
are independent of each other and hold no state, so the ensemble can be run
in any order and any subset.
"""
import logging
import math
from dataclasses import dataclass, replace
from typing import Optional

import cv2
import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    """One generator's proposal. Coordinates are ROI-relative until translated."""
    cx: float
    cy: float
    diameter: float
    confidence: float
    circularity: float
    method: str

    def translated(self, dx, dy):
        return replace(self, cx=self.cx + dx, cy=self.cy + dy)


# ─── Shared Helpers ─────────────────────────────────────────────
def _odd(k):
    k = max(3, int(k))
    return k if k % 2 == 1 else k + 1


def _blur(gray, cfg):
    k = _odd(cfg["blur_kernel"])
    return cv2.GaussianBlur(gray, (k, k), 0)


def _clip01(v):
    return float(min(1.0, max(0.0, v)))


def _proximity(cx, cy, w, h):
    """1.0 at the ROI center, 0.0 in a corner."""
    mx, my = (w - 1) / 2.0, (h - 1) / 2.0
    max_dist = math.hypot(mx, my)
    if max_dist == 0:
        return 1.0
    return _clip01(1.0 - math.hypot(cx - mx, cy - my) / max_dist)


def _candidate(cx, cy, diameter, confidence, circularity, method, cfg):
    if not (cfg["min_diameter"] <= diameter <= cfg["max_diameter"]):
        logger.debug("%s: diameter %.1f outside sane range", method, diameter)
        return None
    if not all(math.isfinite(v) for v in (cx, cy, diameter, confidence, circularity)):
        return None
    return Candidate(float(cx), float(cy), float(diameter),
                     _clip01(confidence), _clip01(circularity), method)


def ring_contrast(gray, cx, cy, r, ring=2.0):
    """Mean brightness of the ring around a circle minus the mean inside it."""
    h, w = gray.shape
    Y, X = np.ogrid[:h, :w]
    dist = np.sqrt((X - cx) ** 2 + (Y - cy) ** 2)
    inner_mask = dist <= r
    outer_mask = (dist > r) & (dist <= r * ring)
    if not np.any(inner_mask) or not np.any(outer_mask):
        return None
    return float(np.mean(gray[outer_mask]) - np.mean(gray[inner_mask]))


def best_component(binary, cfg, method, confidence_scale=1.0):
    """
    Score the connected components of a binary mask and keep the best one.

    Components outside [min_area, max_area] or below min_circularity are
    dropped. Confidence mixes circularity with proximity to the ROI center.
    """
    h, w = binary.shape
    kernel = np.ones((3, 3), np.uint8)
    binary = cv2.morphologyEx(binary, cv2.MORPH_OPEN, kernel)
    contours, _ = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    best = None
    for cnt in contours:
        area = cv2.contourArea(cnt)
        if area <= 0 or area < cfg["min_area"] or area > cfg["max_area"]:
            continue
        perimeter = cv2.arcLength(cnt, True)
        if perimeter == 0:
            continue
        circularity = min(1.0, 4 * np.pi * area / (perimeter * perimeter))
        if circularity < cfg["min_circularity"]:
            continue
        m = cv2.moments(cnt)
        if m["m00"] == 0:
            continue
        cx = m["m10"] / m["m00"]
        cy = m["m01"] / m["m00"]
        confidence = confidence_scale * (
            cfg["circularity_weight"] * circularity +
            cfg["center_weight"] * _proximity(cx, cy, w, h)
        )
        cand = _candidate(cx, cy, 2 * math.sqrt(area / math.pi),
                          confidence, circularity, method, cfg)
        if cand is not None and (best is None or cand.confidence > best.confidence):
            best = cand
    return best


# ─── Generators ─────────────────────────────────────────────────
def adaptive_threshold(gray, cfg) -> Optional[Candidate]:
    """Local mean threshold; flags pixels noticeably darker than their neighbourhood."""
    blurred = _blur(gray, cfg)
    binary = cv2.adaptiveThreshold(blurred, 255, cv2.ADAPTIVE_THRESH_MEAN_C,
                                   cv2.THRESH_BINARY_INV,
                                   _odd(cfg["adaptive_block_size"]), cfg["adaptive_c"])
    return best_component(binary, cfg, "adaptive")


def otsu_threshold(gray, cfg) -> Optional[Candidate]:
    """One histogram-based threshold for the whole ROI."""
    blurred = _blur(gray, cfg)
    _, binary = cv2.threshold(blurred, 0, 255, cv2.THRESH_BINARY_INV | cv2.THRESH_OTSU)
    return best_component(binary, cfg, "otsu", cfg["otsu_confidence_scale"])


def contrast_threshold(gray, cfg) -> Optional[Candidate]:
    """Threshold at a fraction of the ROI mean, with an absolute floor."""
    blurred = _blur(gray, cfg)
    limit = max(cfg["contrast_min_threshold"], float(np.mean(blurred)) * cfg["contrast_scale"])
    _, binary = cv2.threshold(blurred, limit, 255, cv2.THRESH_BINARY_INV)
    return best_component(binary, cfg, "contrast", cfg["contrast_confidence_scale"])


def darkest_region(gray, cfg) -> Optional[Candidate]:
    """
    Grow outward from the darkest spot.

    The seed is the centroid of the dark plateau holding the minimum pixel.
    Rays are cast from the seed until brightness rises `darkest_delta` above
    the minimum; the longest ray gives the radius.
    """
    blurred = _blur(gray, cfg)
    h, w = blurred.shape
    min_val, _, min_loc, _ = cv2.minMaxLoc(blurred)

    plateau = (blurred <= min_val + cfg["darkest_tolerance"]).astype(np.uint8)
    _, labels, _, centroids = cv2.connectedComponentsWithStats(plateau, connectivity=8)
    sx, sy = centroids[labels[min_loc[1], min_loc[0]]]

    limit = min_val + cfg["darkest_delta"]
    num_rays = cfg["darkest_rays"]
    radii = []
    for angle in np.linspace(0, 2 * np.pi, num_rays, endpoint=False):
        dx, dy = np.cos(angle), np.sin(angle)
        for dist in range(1, cfg["darkest_max_radius"] + 1):
            x = int(round(sx + dx * dist))
            y = int(round(sy + dy * dist))
            if not (0 <= x < w and 0 <= y < h):
                break
            if blurred[y, x] > limit:
                radii.append(dist)
                break

    # Rays that ran off the ROI never found an edge
    if len(radii) < num_rays // 2:
        return None

    radii = np.array(radii, dtype=np.float64)
    circularity = 1.0 - radii.std() / radii.mean()
    region_mean = float(np.mean(blurred))
    confidence = (region_mean - min_val) / max(region_mean, 1.0)
    if confidence <= 0:
        return None
    return _candidate(sx, sy, 2 * radii.max(), confidence, circularity, "darkest", cfg)


def gradient_centroid(gray, cfg) -> Optional[Candidate]:
    """Magnitude-weighted centroid of strong edges; radius from their distance spread."""
    h, w = gray.shape
    b = cfg["gradient_border"]
    if h <= 2 * b + 2 or w <= 2 * b + 2:
        return None

    blurred = _blur(gray, cfg)
    gx = cv2.Sobel(blurred, cv2.CV_32F, 1, 0, ksize=3)
    gy = cv2.Sobel(blurred, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(gx, gy)[b:h - b, b:w - b]

    limit = max(cfg["gradient_threshold"], cfg["gradient_relative"] * float(magnitude.max()))
    ys, xs = np.nonzero(magnitude > limit)
    if xs.size < 8:
        return None

    weights = magnitude[ys, xs].astype(np.float64)
    xs = xs + b
    ys = ys + b
    total = weights.sum()
    if total <= 0:
        return None
    cx = float(np.sum(xs * weights) / total)
    cy = float(np.sum(ys * weights) / total)

    dists = np.hypot(xs - cx, ys - cy)
    mean_dist = dists.mean()
    if mean_dist <= 0:
        return None
    radius = float(np.percentile(dists, cfg["gradient_percentile"]))
    circularity = 1.0 - dists.std() / mean_dist
    confidence = weights.mean() / cfg["gradient_confidence_scale"]
    return _candidate(cx, cy, 2 * radius, confidence, circularity, "gradient", cfg)


def hough_circle(gray, cfg) -> Optional[Candidate]:
    """Strongest Hough circle, accepted only if its inside is darker than its ring."""
    h, w = gray.shape
    min_r = max(1, int(cfg["min_diameter"] // 2))
    max_r = int(min(cfg["max_diameter"] / 2.0, min(h, w) / 2.0))
    if max_r <= min_r:
        return None

    blurred = _blur(gray, cfg)
    circles = cv2.HoughCircles(blurred, cv2.HOUGH_GRADIENT, dp=1, minDist=max(h, w),
                               param1=cfg["hough_param1"], param2=cfg["hough_param2"],
                               minRadius=min_r, maxRadius=max_r)
    if circles is None or len(circles[0]) == 0:
        return None

    cx, cy, r = (float(v) for v in circles[0][0])
    contrast = ring_contrast(gray, cx, cy, r, cfg["contrast_ring"])
    if contrast is None or contrast <= 0:
        return None
    return _candidate(cx, cy, 2 * r, contrast / cfg["hough_contrast_scale"],
                      cfg["hough_circularity"], "hough", cfg)


GENERATORS = {
    "adaptive": adaptive_threshold,
    "otsu": otsu_threshold,
    "darkest": darkest_region,
    "contrast": contrast_threshold,
    "gradient": gradient_centroid,
    "hough": hough_circle,
}


def run_generators(gray, cfg):
    """Run the configured generators in order and collect their candidates."""
    if gray is None or gray.size == 0:
        return []
    # Flat ROI (closed eye, blown-out frame): nothing to find
    if float(np.std(gray)) < cfg["min_region_std"]:
        return []

    candidates = []
    for name in cfg["methods"]:
        try:
            cand = GENERATORS[name](gray, cfg)
        except cv2.error as e:
            logger.warning("Generator %s failed: %s", name, e)
            continue
        if cand is not None:
            candidates.append(cand)
    return candidates
