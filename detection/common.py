"""
common.py — Small helpers shared by the detectors and the scorer.
"""

from __future__ import annotations

import math
import numpy as np
from typing import Optional, Sequence


HOUR_MS: int = 60 * 60 * 1000
SEVENTY_TWO_HOURS_MS: int = 72 * HOUR_MS

RING_ID_PREFIX: str = "RING_"


def format_ring_id(index: int) -> str:
    """``RING_001``-style identifier for the *index*-th ring of a run."""
    return f"{RING_ID_PREFIX}{index:03d}"


def clamp_score(score: float) -> float:
    """Clamp to [0, 100] and round to one decimal."""
    return round(min(100.0, max(0.0, float(score))), 1)


def coefficient_of_variation(values: Sequence[float]) -> Optional[float]:
    """Population std / mean, or None when undefined (no data or zero mean)."""
    if len(values) == 0:
        return None
    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    if mean == 0 or not math.isfinite(mean):
        return None
    return float(np.std(arr)) / mean
