"""Threshold application: regulon AUC -> 0/1 activity calls."""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping

import numpy as np
import pandas as pd

from regact.core.types import AUCResult, Threshold


def _value(thr: Threshold | float) -> float:
    if isinstance(thr, Threshold):
        return float(thr.value)
    return float(thr)


def apply_overrides(
    thresholds: Mapping[str, Threshold | float],
    overrides: Mapping[str, float],
) -> dict[str, Threshold]:
    """Return a new threshold map with operator overrides applied.

    Overridden entries keep the computed candidates but are tagged
    ``source="override"``; the input map is not modified.
    """
    out: dict[str, Threshold] = {}
    for name, thr in thresholds.items():
        if isinstance(thr, Threshold):
            out[str(name)] = thr
        else:
            out[str(name)] = Threshold(
                regulon=str(name), value=float(thr), method="manual", source="override", label="override"
            )
    for name, value in overrides.items():
        key = str(name)
        if key not in out:
            raise KeyError(f"Override for unknown regulon '{key}'.")
        v = float(value)
        if not np.isfinite(v):
            raise ValueError(f"Override for regulon '{key}' must be finite.")
        out[key] = replace(out[key], value=v, source="override", label="override")
    return out


def binarize(
    auc: AUCResult | pd.DataFrame,
    thresholds: Mapping[str, Threshold | float],
    overrides: Mapping[str, float] | None = None,
) -> pd.DataFrame:
    """Regulons x cells int8 matrix, 1 iff AUC >= threshold (NaN -> 0).

    Args:
        auc: AUCResult or a regulons x cells DataFrame.
        thresholds: Regulon -> Threshold (or float).
        overrides: Optional regulon -> float replacing a subset of thresholds.

    Returns:
        Binary DataFrame with the same labels as the AUC matrix.
    """
    frame = auc.auc if isinstance(auc, AUCResult) else auc
    if overrides:
        unknown = [str(k) for k in overrides if str(k) not in thresholds]
        if unknown:
            raise KeyError(f"Override for unknown regulon '{unknown[0]}'.")
    missing = [str(r) for r in frame.index if str(r) not in thresholds]
    if missing:
        raise KeyError(f"No threshold for regulon '{missing[0]}'.")

    cut = np.array(
        [
            float(overrides[str(r)]) if overrides and str(r) in overrides else _value(thresholds[str(r)])
            for r in frame.index
        ],
        dtype=float,
    )
    values = frame.to_numpy(dtype=float)
    with np.errstate(invalid="ignore"):
        calls = np.greater_equal(values, cut[:, None])
    calls &= np.isfinite(values)
    return pd.DataFrame(calls.astype(np.int8), index=frame.index, columns=frame.columns)
