"""Small pure helpers for core computations."""

from __future__ import annotations

import hashlib
from typing import Iterable

import numpy as np


def stable_hash_array(arr: np.ndarray, hasher=None):
    h = hashlib.sha256() if hasher is None else hasher
    contiguous = np.ascontiguousarray(arr)
    h.update(str(contiguous.dtype).encode("utf-8"))
    h.update(str(contiguous.shape).encode("utf-8"))
    h.update(contiguous.view(np.uint8).tobytes())
    return h


def stable_hash_labels(labels: Iterable[str], hasher=None):
    h = hashlib.sha256() if hasher is None else hasher
    for label in labels:
        h.update(str(label).encode("utf-8"))
        h.update(b"\x00")
    return h
