"""Bimodal (two-component Gaussian mixture) binarization thresholds."""

from __future__ import annotations

import logging
import math
import warnings
from typing import Any

import numpy as np
import pandas as pd
from sklearn.exceptions import ConvergenceWarning
from sklearn.mixture import GaussianMixture

from regact.core.types import AUCResult, Threshold, ThresholdConfig
from regact.errors import Diagnostic, InsufficientDataError
from regact.parallel import parallel_map

logger = logging.getLogger(__name__)

# Floor on component variance; AUC values live in [0, 1].
_VAR_FLOOR = 1e-10


def _finite_values(values: Any) -> np.ndarray:
    arr = np.asarray(values, dtype=float).ravel()
    return arr[np.isfinite(arr)]


def density_crossing(
    means: np.ndarray, sds: np.ndarray, weights: np.ndarray
) -> float | None:
    """Point between the two means where the weighted normal densities meet.

    Solves ``w1 N(x; m1, s1) = w2 N(x; m2, s2)``. Returns ``None`` when no root
    lies between the means.
    """
    m1, m2 = float(means[0]), float(means[1])
    s1, s2 = float(sds[0]), float(sds[1])
    w1, w2 = float(weights[0]), float(weights[1])
    lo, hi = min(m1, m2), max(m1, m2)

    a = 1.0 / (2.0 * s2 * s2) - 1.0 / (2.0 * s1 * s1)
    b = m1 / (s1 * s1) - m2 / (s2 * s2)
    c = (
        m2 * m2 / (2.0 * s2 * s2)
        - m1 * m1 / (2.0 * s1 * s1)
        + math.log((w1 * s2) / (w2 * s1))
    )
    if abs(a) < 1e-12:
        if abs(b) < 1e-12:
            return None
        roots = [-c / b]
    else:
        disc = b * b - 4.0 * a * c
        if disc < 0.0:
            return None
        sq = math.sqrt(disc)
        roots = [(-b - sq) / (2.0 * a), (-b + sq) / (2.0 * a)]

    inside = [r for r in roots if lo <= r <= hi and np.isfinite(r)]
    if not inside:
        return None
    mid = 0.5 * (lo + hi)
    return float(min(inside, key=lambda r: abs(r - mid)))


def ashman_d(means: np.ndarray, sds: np.ndarray) -> float:
    """Ashman's D separation; values above 2 indicate clean bimodality."""
    denom = math.sqrt(float(sds[0]) ** 2 + float(sds[1]) ** 2)
    if denom <= 0.0:
        return float("inf")
    return float(math.sqrt(2.0) * abs(float(means[0]) - float(means[1])) / denom)


def _fit_mixture(x: np.ndarray, n_components: int, cfg: ThresholdConfig) -> GaussianMixture:
    gmm = GaussianMixture(
        n_components=n_components,
        covariance_type="full",
        init_params="kmeans",
        n_init=int(cfg.n_init),
        max_iter=int(cfg.max_iter),
        tol=float(cfg.tol),
        reg_covar=_VAR_FLOOR,
        random_state=int(cfg.seed),
    )
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", category=ConvergenceWarning)
        gmm.fit(x.reshape(-1, 1))
    return gmm


def _fallback(
    regulon: str,
    x: np.ndarray,
    cfg: ThresholdConfig,
    label: str,
    candidates: dict[str, float] | None = None,
    fit: dict[str, Any] | None = None,
) -> Threshold:
    top = float(np.max(x)) if x.size else 0.0
    return Threshold(
        regulon=regulon,
        value=top + float(cfg.epsilon),
        method="fallback",
        candidates=dict(candidates or {}),
        confident=False,
        label=label,
        source="computed",
        fit=dict(fit or {}),
    )


def fit_threshold(
    values: Any,
    regulon: str = "regulon",
    config: ThresholdConfig | None = None,
) -> Threshold:
    """Fit a two-component mixture to one regulon's AUC values.

    Candidates are the density crossing of the components and the
    conservative ``mean_low + k * sd_low``. When the fit is not confidently
    bimodal the selected value falls back to ``max(AUC) + epsilon``.

    Raises:
        InsufficientDataError: fewer than ``min_cells`` finite values or zero
            variance.
    """
    cfg = config or ThresholdConfig()
    x = _finite_values(values)
    if x.size < int(cfg.min_cells):
        raise InsufficientDataError(
            f"Regulon '{regulon}': {x.size} finite AUC values, need at least {cfg.min_cells}."
        )
    if float(np.ptp(x)) <= 0.0:
        raise InsufficientDataError(f"Regulon '{regulon}': AUC values have zero variance.")

    try:
        gmm2 = _fit_mixture(x, 2, cfg)
        gmm1 = _fit_mixture(x, 1, cfg)
    except (ValueError, np.linalg.LinAlgError) as exc:
        logger.warning("Mixture fit failed for regulon %s: %s", regulon, exc)
        return _fallback(regulon, x, cfg, "fit_failed", fit={"error": str(exc)})

    means = gmm2.means_.ravel()
    sds = np.sqrt(np.maximum(gmm2.covariances_.ravel(), _VAR_FLOOR))
    weights = gmm2.weights_.ravel()
    if not (np.all(np.isfinite(means)) and np.all(np.isfinite(sds)) and np.all(np.isfinite(weights))):
        return _fallback(regulon, x, cfg, "fit_failed", fit={"error": "non-finite parameters"})

    order = np.argsort(means, kind="stable")
    means, sds, weights = means[order], sds[order], weights[order]
    x2 = x.reshape(-1, 1)
    bic_delta = float(gmm1.bic(x2) - gmm2.bic(x2))
    d = ashman_d(means, sds)

    crossing = density_crossing(means, sds, weights)
    if crossing is None:
        crossing = float(0.5 * (means[0] + means[1]))
    conservative = float(means[0] + float(cfg.conservative_k) * sds[0])
    conservative = float(np.clip(conservative, np.min(x), np.max(x)))
    candidates = {"crossing": float(crossing), "conservative": conservative}

    fit = {
        "means": [float(v) for v in means],
        "sds": [float(v) for v in sds],
        "weights": [float(v) for v in weights],
        "ashman_d": d,
        "bic_delta": bic_delta,
        "converged": bool(gmm2.converged_),
        "n_iter": int(gmm2.n_iter_),
        "n_cells": int(x.size),
    }

    confident = bool(
        gmm2.converged_
        and bic_delta >= float(cfg.min_bic_delta)
        and float(np.min(weights)) >= float(cfg.min_component_weight)
        and d >= float(cfg.min_ashman_d)
    )
    if not confident:
        return _fallback(regulon, x, cfg, "not_confidently_bimodal", candidates, fit)

    return Threshold(
        regulon=regulon,
        value=float(candidates[cfg.method]),
        method=cfg.method,
        candidates=candidates,
        confident=True,
        label="bimodal",
        source="computed",
        fit=fit,
    )


def estimate_thresholds(
    auc: AUCResult | pd.DataFrame,
    config: ThresholdConfig | None = None,
    diagnostics: list[Diagnostic] | None = None,
) -> dict[str, Threshold]:
    """Fit one threshold per regulon (rows of the regulons x cells AUC matrix).

    Regulons with insufficient data get the degenerate ``max + epsilon``
    threshold labelled ``"insufficient_data"``; a diagnostic is appended to
    `diagnostics` when given.
    """
    cfg = config or ThresholdConfig()
    frame = auc.auc if isinstance(auc, AUCResult) else auc
    names = [str(r) for r in frame.index]
    matrix = frame.to_numpy(dtype=float)
    logger.info("Estimating thresholds for %d regulons.", len(names))

    def _task(i: int):
        try:
            return fit_threshold(matrix[i, :], regulon=names[i], config=cfg)
        except InsufficientDataError as exc:
            return exc

    rows = parallel_map(_task, range(len(names)), n_jobs=cfg.n_jobs, backend=cfg.backend)

    out: dict[str, Threshold] = {}
    n_fallback = 0
    for i, row in enumerate(rows):
        name = names[i]
        if isinstance(row, InsufficientDataError):
            logger.warning("Threshold for regulon %s: %s", name, row)
            if diagnostics is not None:
                diagnostics.append(Diagnostic.from_error(name, row, "thresholds"))
            row = _fallback(name, _finite_values(matrix[i, :]), cfg, "insufficient_data")
        if not row.confident:
            n_fallback += 1
        out[name] = row
    if n_fallback:
        logger.info("%d of %d regulons use the fallback threshold.", n_fallback, len(names))
    return out


def thresholds_frame(thresholds: dict[str, Threshold]) -> pd.DataFrame:
    """One row per regulon: selected value, candidates, provenance."""
    rows = []
    for name, thr in thresholds.items():
        rows.append(
            {
                "regulon": name,
                "threshold": float(thr.value),
                "method": thr.method,
                "label": thr.label,
                "source": thr.source,
                "confident": bool(thr.confident),
                **{f"candidate_{k}": float(v) for k, v in thr.candidates.items()},
            }
        )
    return pd.DataFrame(rows).set_index("regulon") if rows else pd.DataFrame()
