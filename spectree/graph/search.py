"""Search helpers over sorted integer id arrays."""
from __future__ import annotations

from typing import Optional

import numpy as np


def interpolation_search(arr: np.ndarray, key: int, lo: int = 0, hi: Optional[int] = None) -> int:
    """Return the index of ``key`` in the sorted slice ``arr[lo..hi]`` (inclusive) or -1.

    Probes are interpolated from the key distribution. Every probe shrinks the
    search window, and when interpolation degenerates the probe falls back to the
    midpoint, so skewed distributions still terminate in O(log n) probes.
    """
    if hi is None:
        hi = len(arr) - 1
    if lo < 0 or hi >= len(arr):
        raise IndexError(f"search window [{lo}, {hi}] outside array of length {len(arr)}")

    interpolate = True
    while lo <= hi:
        lo_val = int(arr[lo])
        hi_val = int(arr[hi])
        if key < lo_val or key > hi_val:
            return -1
        if lo_val == hi_val:
            return lo if lo_val == key else -1

        if interpolate:
            pos = lo + (key - lo_val) * (hi - lo) // (hi_val - lo_val)
        else:
            pos = (lo + hi) // 2
        # Alternate with bisection so that adversarial layouts cannot stall us
        interpolate = not interpolate

        val = int(arr[pos])
        if val == key:
            return pos
        if val < key:
            lo = pos + 1
        else:
            hi = pos - 1
    return -1


def locate(arr: np.ndarray, keys: np.ndarray, lo: int = 0, hi: Optional[int] = None) -> np.ndarray:
    """Vectorised lookup of ``keys`` in the sorted slice ``arr[lo:hi]`` (exclusive).

    Returns absolute positions into ``arr``, or -1 for keys that are absent.
    """
    if hi is None:
        hi = len(arr)
    keys = np.asarray(keys, dtype=np.int64)
    window = arr[lo:hi]
    if len(window) == 0 or len(keys) == 0:
        return np.full(len(keys), -1, dtype=np.int64)
    pos = np.searchsorted(window, keys)
    clipped = np.minimum(pos, len(window) - 1)
    found = window[clipped] == keys
    return np.where(found, clipped + lo, -1).astype(np.int64)
