from __future__ import annotations

import os

import numpy as np


def _peak_abs(wav: np.ndarray) -> float:
    """Return max absolute amplitude without allocating a full `abs(wav)` temp array."""
    if wav.size <= 0:
        return 0.0
    max_val = float(np.max(wav))
    min_val = float(np.min(wav))
    return max(abs(max_val), abs(min_val))


def _rms(wav: np.ndarray) -> float:
    if wav.size <= 0:
        return 0.0
    return float(np.sqrt(float(np.mean(np.square(wav, dtype=np.float64)))))


def _read_env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    raw = raw.strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError:
        return float(default)
