"""
Synthetic eye frames with known pupils, plus matching face-mesh landmarks.
Used by the tests and by benchmark.py.
"""
import math

import cv2
import numpy as np

from eye_region import EYE_LANDMARKS

NUM_LANDMARKS = 478


def render_eye_frame(width=320, height=240, pupils=(), background=200, pupil_value=30,
                     noise=0.0, seed=0, color=True):
    """
    Uniform background with one dark filled disk per (cx, cy, diameter) in `pupils`.
    Gaussian noise of std `noise` is added with a fixed seed.
    """
    frame = np.full((height, width), background, dtype=np.uint8)
    for cx, cy, diameter in pupils:
        cv2.circle(frame, (int(round(cx)), int(round(cy))), int(round(diameter / 2.0)),
                   int(pupil_value), -1)
    if noise > 0:
        rng = np.random.default_rng(seed)
        noisy = frame.astype(np.float64) + rng.normal(0.0, noise, frame.shape)
        frame = np.clip(noisy, 0, 255).astype(np.uint8)
    if color:
        frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
    return frame


def iris_points(cx, cy, radius):
    """Center plus four boundary points, the layout of a face-mesh iris subset."""
    pts = [(cx, cy)]
    for angle in (0.0, math.pi / 2, math.pi, 3 * math.pi / 2):
        pts.append((cx + radius * math.cos(angle), cy + radius * math.sin(angle)))
    return pts


def make_landmarks(width, height, left=None, right=None, count=NUM_LANDMARKS):
    """
    Build a normalized landmark list. `left` / `right` are (cx, cy, iris_radius)
    in pixels; an eye passed as None keeps None entries (absent landmarks).
    """
    landmarks = [None] * count
    for eye, params in (("left", left), ("right", right)):
        if params is None:
            continue
        cx, cy, radius = params
        for idx, (px, py) in zip(EYE_LANDMARKS[eye]["iris"], iris_points(cx, cy, radius)):
            if idx < count:
                landmarks[idx] = (px / width, py / height)
        for i, idx in enumerate(EYE_LANDMARKS[eye]["contour"]):
            if idx >= count:
                continue
            angle = 2 * math.pi * i / len(EYE_LANDMARKS[eye]["contour"])
            landmarks[idx] = ((cx + 2.2 * radius * math.cos(angle)) / width,
                              (cy + 1.2 * radius * math.sin(angle)) / height)
    return landmarks
