"""
Pupil Tracker: live webcam demo.

Face-mesh landmarks (mediapipe) locate the irises; PupilDetector measures the
pupils inside them and the result is drawn over the camera feed.

Controls:
  q / ESC  = Quit
  l / r / b = Track left / right / both eyes
  x        = Reset tracking
  d        = Toggle drawing of the eye regions

Environment overrides: PUPIL_<KEY>=value (see detector.DEFAULT_CONFIG).
"""
import argparse
import csv
import logging
import sys
import time

import cv2

from detector import PupilDetector, config_from_env
from eye_region import extract_eye_region, eyes_for_mode

logger = logging.getLogger(__name__)

CSV_FIELDS = ["timestamp", "eye", "x", "y", "smoothed_diameter", "raw_x", "raw_y",
              "raw_diameter", "confidence", "circularity", "stability",
              "source_method", "retained"]

EYE_KEYS = {ord("l"): "left", ord("r"): "right", ord("b"): "both"}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Live pupil diameter tracking from a webcam")
    parser.add_argument("--camera", type=int, default=0, help="Camera index")
    parser.add_argument("--eye", choices=["left", "right", "both"], default="both")
    parser.add_argument("--csv", dest="csv_path", help="Append every estimate to this CSV file")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


def open_camera(index):
    cap = cv2.VideoCapture(index)
    if not cap.isOpened():
        logger.warning("Could not open camera %d, trying %d", index, index + 1)
        cap = cv2.VideoCapture(index + 1)
    if not cap.isOpened():
        return None
    cap.set(cv2.CAP_PROP_FRAME_WIDTH, 1280)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, 720)
    # Keep only the newest frame so latency cannot build up
    cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
    return cap


def create_face_mesh():
    import mediapipe as mp

    return mp.solutions.face_mesh.FaceMesh(
        max_num_faces=1,
        refine_landmarks=True,     # iris points 468-477
        min_detection_confidence=0.5,
        min_tracking_confidence=0.5,
    )


def draw_estimate(frame, est):
    cx, cy = int(round(est.center[0])), int(round(est.center[1]))
    rx, ry = int(round(est.raw_center[0])), int(round(est.raw_center[1]))
    color = (0, 165, 255) if est.retained else (0, 255, 0)
    cv2.circle(frame, (rx, ry), max(1, int(est.raw_diameter / 2)), (0, 0, 255), 1, cv2.LINE_AA)
    cv2.circle(frame, (cx, cy), max(1, int(est.smoothed_diameter / 2)), color, 1, cv2.LINE_AA)
    cv2.circle(frame, (cx, cy), 1, color, -1)


def draw_panel(frame, estimates, eye_mode, fps):
    lines = [f"[{eye_mode.upper()}] FPS: {fps:.1f}"]
    for eye in eyes_for_mode(eye_mode):
        est = estimates.get(eye)
        if est is None:
            lines.append(f"{eye}: --")
        else:
            lines.append(f"{eye}: d={est.smoothed_diameter:.1f}px conf={est.confidence:.2f} "
                         f"stab={est.stability:.2f} ({est.source_method})")
    for i, text in enumerate(lines):
        cv2.putText(frame, text, (10, 25 + 22 * i), cv2.FONT_HERSHEY_SIMPLEX, 0.55,
                    (0, 255, 0), 1, cv2.LINE_AA)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    detector = PupilDetector(config_from_env())
    try:
        face_mesh = create_face_mesh()
    except ImportError:
        logger.error("mediapipe is required for the live demo: pip install '.[demo]'")
        return 1

    cap = open_camera(args.camera)
    if cap is None:
        logger.error("Could not open any camera")
        return 1

    csv_file = None
    writer = None
    if args.csv_path:
        csv_file = open(args.csv_path, "a", newline="")
        writer = csv.DictWriter(csv_file, fieldnames=CSV_FIELDS)
        if csv_file.tell() == 0:
            writer.writeheader()

    print("Pupil Tracker Started.")
    print("  l / r / b = left / right / both eyes, x = reset, d = regions, q = quit")

    eye_mode = args.eye
    show_regions = False
    try:
        while True:
            ret, frame = cap.read()
            if not ret:
                logger.error("Failed to grab frame")
                break

            results = face_mesh.process(cv2.cvtColor(frame, cv2.COLOR_BGR2RGB))
            landmarks = results.multi_face_landmarks[0] if results.multi_face_landmarks else None
            estimates = detector.detect(frame, landmarks, eye_mode)

            output = frame.copy()
            if show_regions and landmarks is not None:
                h, w = frame.shape[:2]
                for eye in eyes_for_mode(eye_mode):
                    region = extract_eye_region(landmarks.landmark, eye, w, h, detector.config)
                    if region is not None:
                        cv2.rectangle(output, (region.x, region.y),
                                      (region.x + region.width, region.y + region.height),
                                      (255, 255, 0), 1)
            for est in estimates.values():
                draw_estimate(output, est)
                if writer is not None:
                    writer.writerow({"timestamp": time.time(), **est.as_dict()})
            draw_panel(output, estimates, eye_mode, detector.fps)

            cv2.imshow("Pupil Tracker", output)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q") or key == 27:
                break
            elif key in EYE_KEYS:
                eye_mode = EYE_KEYS[key]
                logger.info("Eye mode: %s", eye_mode)
            elif key == ord("x"):
                detector.reset()
            elif key == ord("d"):
                show_regions = not show_regions
    finally:
        cap.release()
        face_mesh.close()
        if csv_file is not None:
            csv_file.close()
        cv2.destroyAllWindows()
        cv2.waitKey(1)  # Extra pump for macOS cleanup
    return 0


if __name__ == "__main__":
    sys.exit(main())
