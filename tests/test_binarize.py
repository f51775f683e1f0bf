from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from regact.binarize import apply_overrides, binarize
from regact.core.types import Threshold
from regact.stats.thresholds import estimate_thresholds


def _auc() -> pd.DataFrame:
    return pd.DataFrame(
        [[0.1, 0.5, 0.3, np.nan], [0.0, 0.2, 0.9, 0.9]],
        index=pd.Index(["R1", "R2"], name="regulon"),
        columns=pd.Index(["c1", "c2", "c3", "c4"], name="cell"),
    )


def _thresholds() -> dict[str, Threshold]:
    return {
        "R1": Threshold(regulon="R1", value=0.3, method="crossing", confident=True),
        "R2": Threshold(regulon="R2", value=0.5, method="crossing", confident=True),
    }


def test_binarize_applies_greater_or_equal_and_nan_is_inactive():
    out = binarize(_auc(), _thresholds())
    assert out.dtypes.eq(np.int8).all()
    assert out.loc["R1"].tolist() == [0, 1, 1, 0]
    assert out.loc["R2"].tolist() == [0, 0, 1, 1]
    assert list(out.columns) == ["c1", "c2", "c3", "c4"]


def test_float_thresholds_accepted():
    out = binarize(_auc(), {"R1": 0.0, "R2": 1.0})
    assert out.loc["R1"].tolist() == [1, 1, 1, 0]
    assert out.loc["R2"].tolist() == [0, 0, 0, 0]


def test_overrides_at_binarize_time():
    out = binarize(_auc(), _thresholds(), overrides={"R2": 0.1})
    assert out.loc["R2"].tolist() == [0, 1, 1, 1]
    assert out.loc["R1"].tolist() == [0, 1, 1, 0]
    with pytest.raises(KeyError, match="unknown regulon"):
        binarize(_auc(), _thresholds(), overrides={"R9": 0.1})


def test_missing_threshold_raises():
    with pytest.raises(KeyError, match="No threshold for regulon 'R2'"):
        binarize(_auc(), {"R1": 0.3})


def test_apply_overrides_tags_provenance_and_keeps_input():
    base = _thresholds()
    out = apply_overrides(base, {"R1": 0.05})
    assert out["R1"].value == 0.05
    assert out["R1"].source == "override"
    assert out["R1"].label == "override"
    assert out["R2"] is base["R2"]
    assert base["R1"].value == 0.3
    with pytest.raises(KeyError):
        apply_overrides(base, {"missing": 0.1})
    with pytest.raises(ValueError, match="finite"):
        apply_overrides(base, {"R1": float("nan")})


def test_binarize_is_idempotent_with_estimated_thresholds_and_overrides():
    rng = np.random.default_rng(0)
    cells = [f"c{i}" for i in range(400)]
    bimodal = np.clip(
        np.concatenate([rng.normal(0.05, 0.01, 300), rng.normal(0.4, 0.03, 100)]), 0.0, 1.0
    )
    shifted = np.clip(
        np.concatenate([rng.normal(0.1, 0.02, 250), rng.normal(0.6, 0.04, 150)]), 0.0, 1.0
    )
    auc = pd.DataFrame(
        [bimodal, shifted, np.full(400, np.nan)],
        index=pd.Index(["R1", "R2", "MISSING"], name="regulon"),
        columns=pd.Index(cells, name="cell"),
    )
    overrides = {"R2": 0.3}

    first = binarize(auc, estimate_thresholds(auc), overrides=overrides)
    second = binarize(auc, estimate_thresholds(auc), overrides=overrides)
    pd.testing.assert_frame_equal(first, second)

    assert first.loc["MISSING"].sum() == 0
    assert first.loc["R2"].tolist() == (shifted >= 0.3).astype(int).tolist()
    assert first.loc["R1"].iloc[300:].sum() == 100
    assert first.loc["R1"].iloc[:300].sum() == 0

    thresholds = apply_overrides(estimate_thresholds(auc), overrides)
    pd.testing.assert_frame_equal(binarize(auc, thresholds), first)
