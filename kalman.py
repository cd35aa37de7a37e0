"""
Temporal smoothing for pupil measurements.

Each eye gets three independent scalar Kalman filters (x, y, diameter); the
stability score compares consecutive raw measurements.
"""
import math


class ScalarKalman:
    """1D Kalman filter with a constant-value model."""

    def __init__(self, process_noise=0.1, meas_noise=2.0, initial_uncertainty=1.0):
        self.Q = process_noise
        self.R = meas_noise
        self.initial_uncertainty = initial_uncertainty
        self.estimate = 0.0
        self.P = initial_uncertainty
        self.initialized = False

    def update(self, measurement):
        if not self.initialized:
            self.estimate = float(measurement)
            self.P = self.initial_uncertainty
            self.initialized = True
            return self.estimate

        self.P += self.Q
        K = self.P / (self.P + self.R)
        self.estimate += K * (measurement - self.estimate)
        self.P *= (1 - K)
        return self.estimate

    def reset(self):
        self.estimate = 0.0
        self.P = self.initial_uncertainty
        self.initialized = False


class EyeFilter:
    """The x, y and diameter channels of one eye."""

    def __init__(self, cfg):
        init = cfg["initial_uncertainty"]
        self.x = ScalarKalman(cfg["position_q"], cfg["position_r"], init)
        self.y = ScalarKalman(cfg["position_q"], cfg["position_r"], init)
        self.diameter = ScalarKalman(cfg["diameter_q"], cfg["diameter_r"], init)

    @property
    def initialized(self):
        return self.x.initialized and self.y.initialized and self.diameter.initialized

    def update(self, cx, cy, diameter):
        return self.x.update(cx), self.y.update(cy), self.diameter.update(diameter)

    def reset(self):
        for channel in (self.x, self.y, self.diameter):
            channel.reset()


def compute_stability(current, previous, cfg):
    """
    Frame-to-frame consistency in [0, 1] from center and size deltas.
    The first measurement of an eye has no reference and gets a neutral score.
    """
    if previous is None:
        return cfg["stability_initial"]
    center_delta = math.hypot(current.cx - previous.cx, current.cy - previous.cy)
    size_delta = abs(current.diameter - previous.diameter)
    center_stability = max(0.0, 1.0 - center_delta / cfg["stability_center_scale"])
    size_stability = max(0.0, 1.0 - size_delta / cfg["stability_size_scale"])
    return (center_stability + size_stability) / 2
