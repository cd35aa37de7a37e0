"""
Unit tests for candidate scoring and selection.

Run with: pytest tests/ -v
"""
import pytest

from candidates import Candidate
from selector import score_candidate, select_best, size_plausibility


def make(method="adaptive", diameter=20.0, confidence=0.8, circularity=0.8, cx=10.0, cy=10.0):
    return Candidate(cx, cy, diameter, confidence, circularity, method)


class TestSizePlausibility:
    """Tests for the mid-band size preference."""

    def test_inside_band(self, config):
        assert size_plausibility(30, config) == 1.0

    def test_outside_band(self, config):
        assert size_plausibility(5, config) == config["size_off_band"]
        assert size_plausibility(70, config) == config["size_off_band"]

    def test_band_edges_are_outside(self, config):
        low, high = config["size_band"]

        assert size_plausibility(low, config) == config["size_off_band"]
        assert size_plausibility(high, config) == config["size_off_band"]


class TestScore:
    """Tests for the weighted score."""

    def test_weighted_sum(self, config):
        cand = make(confidence=0.5, circularity=1.0, diameter=20)

        expected = 0.4 * 0.5 + 0.3 * 1.0 + 0.2 * 1.0
        assert score_candidate(cand, config) == pytest.approx(expected)

    def test_method_bonus(self, config):
        plain = make(method="otsu")
        favoured = make(method="hough")

        assert score_candidate(favoured, config) - score_candidate(plain, config) == \
            pytest.approx(config["method_bonus"]["hough"])


class TestSelectBest:
    """Tests for picking one candidate."""

    def test_empty(self, config):
        assert select_best([], config) is None

    def test_single_candidate_returned(self, config):
        cand = make(confidence=0.01, circularity=0.01)

        assert select_best([cand], config) == cand

    def test_highest_score_wins(self, config):
        weak = make(method="adaptive", confidence=0.3)
        strong = make(method="otsu", confidence=0.9)

        assert select_best([weak, strong], config).method == "otsu"

    def test_tie_keeps_first(self, config):
        first = make(method="adaptive")
        second = make(method="otsu")

        assert select_best([first, second], config).method == "adaptive"
        assert select_best([second, first], config).method == "otsu"

    def test_bonus_can_break_near_tie(self, config):
        threshold = make(method="adaptive", confidence=0.85)
        darkest = make(method="darkest", confidence=0.8)

        assert select_best([threshold, darkest], config).method == "darkest"

    def test_size_plausibility_penalizes(self, config):
        huge = make(method="adaptive", diameter=75, confidence=0.9)
        normal = make(method="otsu", diameter=25, confidence=0.8)

        assert select_best([huge, normal], config).method == "otsu"

    def test_translated_to_frame(self, config):
        cand = make(cx=12.0, cy=7.0)

        best = select_best([cand, make(confidence=0.1)], config, offset=(100, 40))

        assert (best.cx, best.cy) == (112.0, 47.0)
