"""Shared fixtures: a synthetic eye with a known pupil."""
import pytest

from detector import DEFAULT_CONFIG, to_gray
from eye_region import extract_eye_region
from synthetic import make_landmarks, render_eye_frame

WIDTH, HEIGHT = 320, 240
PUPIL_X, PUPIL_Y, PUPIL_D = 150, 110, 24
IRIS_R = 16


@pytest.fixture
def config():
    return {**DEFAULT_CONFIG}


@pytest.fixture
def eye_frame():
    return render_eye_frame(WIDTH, HEIGHT, pupils=[(PUPIL_X, PUPIL_Y, PUPIL_D)])


@pytest.fixture
def blank_frame():
    return render_eye_frame(WIDTH, HEIGHT)


@pytest.fixture
def left_landmarks():
    return make_landmarks(WIDTH, HEIGHT, left=(PUPIL_X, PUPIL_Y, IRIS_R))


@pytest.fixture
def left_region(left_landmarks, config):
    return extract_eye_region(left_landmarks, "left", WIDTH, HEIGHT, config)


@pytest.fixture
def eye_roi(eye_frame, left_region):
    """Grayscale ROI with the pupil near its center."""
    return to_gray(left_region.crop(eye_frame))
