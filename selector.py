"""
Candidate selection: fuse the ensemble's proposals into one pupil per eye.
"""
import logging

logger = logging.getLogger(__name__)


def size_plausibility(diameter, cfg):
    low, high = cfg["size_band"]
    return 1.0 if low < diameter < high else cfg["size_off_band"]


def score_candidate(cand, cfg):
    """Weighted confidence + circularity + size plausibility, plus a per-method bonus."""
    w_conf, w_circ, w_size = cfg["score_weights"]
    return (w_conf * cand.confidence +
            w_circ * cand.circularity +
            w_size * size_plausibility(cand.diameter, cfg) +
            cfg["method_bonus"].get(cand.method, 0.0))


def select_best(candidates, cfg, offset=(0, 0)):
    """
    Pick the best candidate and move it into frame coordinates.

    Ties keep the earliest candidate, so generator order is the tie-break.
    Returns None for an empty list.
    """
    if not candidates:
        return None

    if len(candidates) == 1:
        best = candidates[0]
    else:
        best = None
        best_score = float("-inf")
        for cand in candidates:
            score = score_candidate(cand, cfg)
            logger.debug("candidate %s d=%.1f score=%.3f", cand.method, cand.diameter, score)
            if score > best_score:
                best, best_score = cand, score

    return best.translated(offset[0], offset[1])
