"""
Pupil Detector Benchmark
Measures every candidate generator, and the full detector, against synthetic
eyes whose pupil position and diameter are known exactly.

Metrics per method:
  1. Hit Rate: % of frames where a candidate was returned within tolerance
  2. Diameter Error: mean |measured - true| diameter in px
  3. Latency: mean ms per call

Run: python benchmark.py [--noise 6] [--tolerance 0.15]
"""
import argparse
import itertools
import time

import numpy as np

from candidates import GENERATORS
from detector import DEFAULT_CONFIG, PupilDetector, to_gray
from eye_region import extract_eye_region
from synthetic import make_landmarks, render_eye_frame

WIDTH, HEIGHT = 320, 240
DIAMETERS = (8, 12, 16, 24, 32)
OFFSETS = ((0, 0), (3, -2), (-4, 3))      # pupil offset from the iris center
NOISE_LEVELS = (0.0, 4.0, 8.0)


class MethodStats:
    def __init__(self, name):
        self.name = name
        self.trials = 0
        self.hits = 0
        self.errors = []
        self.latencies = []

    def update(self, true_d, true_c, cand_d, cand_c, elapsed, tolerance):
        self.trials += 1
        self.latencies.append(elapsed * 1000.0)
        if cand_d is None:
            return
        err = abs(cand_d - true_d)
        self.errors.append(err)
        center_err = np.hypot(cand_c[0] - true_c[0], cand_c[1] - true_c[1])
        if err <= tolerance * true_d and center_err <= max(2.0, true_d / 4):
            self.hits += 1

    @property
    def hit_rate(self):
        return self.hits / self.trials * 100.0 if self.trials else 0.0

    @property
    def mean_error(self):
        return float(np.mean(self.errors)) if self.errors else float("nan")

    @property
    def mean_latency(self):
        return float(np.mean(self.latencies)) if self.latencies else 0.0


def scenarios(noise_levels):
    for i, (d, (ox, oy), noise) in enumerate(itertools.product(DIAMETERS, OFFSETS, noise_levels)):
        iris_c = (WIDTH / 2, HEIGHT / 2)
        pupil_c = (iris_c[0] + ox, iris_c[1] + oy)
        iris_r = max(d * 0.9, 8)
        frame = render_eye_frame(WIDTH, HEIGHT, pupils=[(pupil_c[0], pupil_c[1], d)],
                                 noise=noise, seed=i)
        landmarks = make_landmarks(WIDTH, HEIGHT, left=(iris_c[0], iris_c[1], iris_r))
        yield d, pupil_c, frame, landmarks


def run(noise_levels, tolerance):
    config = {**DEFAULT_CONFIG}
    stats = {name: MethodStats(name) for name in GENERATORS}
    engine = MethodStats("detector")

    for d, pupil_c, frame, landmarks in scenarios(noise_levels):
        region = extract_eye_region(landmarks, "left", WIDTH, HEIGHT, config)
        if region is None:
            continue
        gray = to_gray(region.crop(frame))

        for name, generator in GENERATORS.items():
            t0 = time.perf_counter()
            cand = generator(gray, config)
            elapsed = time.perf_counter() - t0
            if cand is None:
                stats[name].update(d, pupil_c, None, None, elapsed, tolerance)
            else:
                stats[name].update(d, pupil_c, cand.diameter,
                                   (cand.cx + region.x, cand.cy + region.y), elapsed, tolerance)

        detector = PupilDetector(config)
        t0 = time.perf_counter()
        est = detector.detect(frame, landmarks, "left").get("left")
        elapsed = time.perf_counter() - t0
        if est is None:
            engine.update(d, pupil_c, None, None, elapsed, tolerance)
        else:
            engine.update(d, pupil_c, est.raw_diameter, est.raw_center, elapsed, tolerance)

    return list(stats.values()) + [engine]


def main():
    parser = argparse.ArgumentParser(description="Synthetic pupil detection benchmark")
    parser.add_argument("--noise", type=float, action="append",
                        help="Noise std level(s); repeatable")
    parser.add_argument("--tolerance", type=float, default=0.15,
                        help="Relative diameter tolerance for a hit")
    args = parser.parse_args()

    print("=== Pupil Detector Benchmark ===")
    results = run(tuple(args.noise) if args.noise else NOISE_LEVELS, args.tolerance)

    print(f"\n{'='*58}")
    print(f"  {'method':<10} {'hit rate':>10} {'|d err| px':>12} {'latency ms':>12}")
    print(f"{'='*58}")
    for s in results:
        print(f"  {s.name:<10} {s.hit_rate:>9.1f}% {s.mean_error:>12.2f} {s.mean_latency:>12.3f}")
    print(f"{'='*58}")
    print(f"  Frames per method: {results[0].trials}")


if __name__ == "__main__":
    main()
