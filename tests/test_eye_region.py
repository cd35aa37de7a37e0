"""
Unit tests for eye region extraction.

Run with: pytest tests/ -v
"""
from types import SimpleNamespace

import pytest

from eye_region import (EYE_LANDMARKS, EyeRegion, extract_eye_region, eyes_for_mode,
                        gather_points, iris_region, landmark_points)
from synthetic import make_landmarks

from conftest import HEIGHT, IRIS_R, PUPIL_X, PUPIL_Y, WIDTH


class TestEyesForMode:
    """Tests for eye mode resolution."""

    def test_single_eyes(self):
        assert eyes_for_mode("left") == ("left",)
        assert eyes_for_mode("right") == ("right",)

    def test_both_is_left_then_right(self):
        assert eyes_for_mode("both") == ("left", "right")

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="Unknown eye mode"):
            eyes_for_mode("cyclops")


class TestLandmarkAccess:
    """Tests for reading landmark containers."""

    def test_face_mesh_holder_is_unwrapped(self):
        pts = [SimpleNamespace(x=0.5, y=0.5)]
        holder = SimpleNamespace(landmark=pts)

        assert landmark_points(holder) is pts

    def test_none_is_empty(self):
        assert landmark_points(None) == []

    def test_objects_and_tuples_agree(self):
        as_tuples = [(0.25, 0.5), (0.75, 0.5)]
        as_objects = [SimpleNamespace(x=0.25, y=0.5), SimpleNamespace(x=0.75, y=0.5)]

        assert gather_points(as_tuples, [0, 1], 100, 100) == [(25.0, 50.0), (75.0, 50.0)]
        assert gather_points(as_objects, [0, 1], 100, 100) == [(25.0, 50.0), (75.0, 50.0)]

    def test_missing_index_is_absent(self):
        assert gather_points([(0.5, 0.5)], [0, 3], 100, 100) is None

    def test_none_or_nan_entry_is_absent(self):
        assert gather_points([(0.5, 0.5), None], [0, 1], 100, 100) is None
        assert gather_points([(0.5, float("nan"))], [0], 100, 100) is None


class TestIrisRegion:
    """Tests for the square iris ROI."""

    def test_centered_on_iris(self, left_landmarks, config):
        region = extract_eye_region(left_landmarks, "left", WIDTH, HEIGHT, config)

        cx, cy = region.center
        assert cx == pytest.approx(PUPIL_X, abs=1.0)
        assert cy == pytest.approx(PUPIL_Y, abs=1.0)

    def test_size_follows_iris_radius(self, config):
        small = extract_eye_region(make_landmarks(WIDTH, HEIGHT, left=(150, 110, 8)),
                                   "left", WIDTH, HEIGHT, config)
        large = extract_eye_region(make_landmarks(WIDTH, HEIGHT, left=(150, 110, 20)),
                                   "left", WIDTH, HEIGHT, config)

        assert large.width > small.width
        expected = 2 * (20 * config["iris_scale"] + config["region_padding"])
        assert large.width == pytest.approx(expected, abs=2)

    def test_clamped_to_frame(self):
        points = [(5.0, 5.0), (15.0, 5.0), (5.0, 15.0), (-5.0, 5.0), (5.0, -5.0)]
        region = iris_region(points, 100, 80, scale=1.5, padding=4)

        assert region.x == 0 and region.y == 0
        assert region.x + region.width <= 100
        assert region.y + region.height <= 80

    def test_degenerate_region_is_skipped(self):
        # Iris hanging off the corner leaves only a sliver inside the frame
        points = [(99.5, 79.5), (100.5, 79.5), (99.5, 80.5), (98.5, 79.5), (99.5, 78.5)]

        assert iris_region(points, 100, 80, scale=1.0, padding=2, min_size=10) is None

    def test_absent_eye_returns_none(self, config):
        landmarks = make_landmarks(WIDTH, HEIGHT, left=(PUPIL_X, PUPIL_Y, IRIS_R))

        assert extract_eye_region(landmarks, "right", WIDTH, HEIGHT, config) is None

    def test_truncated_landmark_list(self, config):
        landmarks = make_landmarks(WIDTH, HEIGHT, left=(PUPIL_X, PUPIL_Y, IRIS_R), count=470)

        assert extract_eye_region(landmarks, "left", WIDTH, HEIGHT, config) is None

    def test_zero_sized_frame(self, left_landmarks, config):
        assert extract_eye_region(left_landmarks, "left", 0, 0, config) is None


class TestContourRegion:
    """Tests for the eyelid-contour ROI."""

    def test_contour_box_contains_iris(self, left_landmarks, config):
        config["region_source"] = "contour"
        region = extract_eye_region(left_landmarks, "left", WIDTH, HEIGHT, config)

        assert isinstance(region, EyeRegion)
        assert region.x < PUPIL_X < region.x + region.width
        assert region.y < PUPIL_Y < region.y + region.height

    def test_unknown_source(self, left_landmarks, config):
        config["region_source"] = "eyebrow"

        with pytest.raises(ValueError, match="region source"):
            extract_eye_region(left_landmarks, "left", WIDTH, HEIGHT, config)


def test_landmark_subsets_are_disjoint():
    left = set(EYE_LANDMARKS["left"]["iris"]) | set(EYE_LANDMARKS["left"]["contour"])
    right = set(EYE_LANDMARKS["right"]["iris"]) | set(EYE_LANDMARKS["right"]["contour"])

    assert not left & right
