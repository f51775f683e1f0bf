"""Regulon Specificity Score (RSS) against categorical cell annotations.

For a regulon and a category, the AUC values across cells are normalized into a
probability distribution ``p`` and the category membership indicator into
``q``. The score is ``1 - sqrt(JSD(p, q))`` with the Jensen-Shannon divergence
in base 2, so it lies in [0, 1] and reaches 1 when activity is spread exactly
over the category's cells.

Undefined scores are NaN, never 0:

- categories with fewer than ``min_category_size`` cells;
- regulons whose AUC sums to zero or that were not computed.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import numpy as np
import pandas as pd
from scipy.spatial.distance import jensenshannon

from regact.core.types import AUCResult, RSSConfig
from regact.errors import Diagnostic, InsufficientDataError
from regact.parallel import parallel_map

logger = logging.getLogger(__name__)

RSS_COLUMNS: tuple[str, ...] = ("regulon", "category", "rss", "n_cells")


def jensen_shannon_divergence(p: Any, q: Any) -> float:
    """Base-2 Jensen-Shannon divergence of two non-negative weight vectors."""
    p_arr = np.asarray(p, dtype=float).ravel()
    q_arr = np.asarray(q, dtype=float).ravel()
    if p_arr.size != q_arr.size:
        raise ValueError("p and q must have the same length.")
    if np.any(p_arr < 0.0) or np.any(q_arr < 0.0):
        raise ValueError("p and q must be non-negative.")
    if p_arr.sum() <= 0.0 or q_arr.sum() <= 0.0:
        raise InsufficientDataError("Cannot normalize an all-zero distribution.")
    dist = float(jensenshannon(p_arr / p_arr.sum(), q_arr / q_arr.sum(), base=2.0))
    return float(np.clip(dist * dist, 0.0, 1.0))


def regulon_specificity(activity: Any, in_category: Any) -> float:
    """RSS of one regulon for one category (boolean membership per cell)."""
    a = np.asarray(activity, dtype=float).ravel()
    member = np.asarray(in_category, dtype=bool).ravel()
    if a.size != member.size:
        raise ValueError("activity and in_category must have the same length.")
    if not np.all(np.isfinite(a)):
        raise InsufficientDataError("Activity contains non-finite values.")
    jsd = jensen_shannon_divergence(a, member.astype(float))
    return float(np.clip(1.0 - np.sqrt(jsd), 0.0, 1.0))


def _align_labels(annotation: Any, cells: pd.Index) -> pd.Series:
    if isinstance(annotation, pd.Series):
        labels = annotation.copy()
    elif isinstance(annotation, Mapping):
        labels = pd.Series(dict(annotation))
    else:
        raise TypeError("annotation must be a pandas Series or a mapping cell -> label.")
    labels.index = labels.index.astype(str)
    if labels.index.has_duplicates:
        raise ValueError("annotation has duplicated cell ids.")
    aligned = labels.reindex(cells.astype(str))
    n_missing = int(aligned.isna().sum())
    if n_missing:
        logger.warning("%d of %d cells have no annotation; excluded from RSS.", n_missing, cells.size)
    return aligned.dropna().astype(str)


def compute_rss(
    auc: AUCResult | pd.DataFrame,
    annotation: pd.Series | Mapping[str, Any],
    config: RSSConfig | None = None,
    diagnostics: list[Diagnostic] | None = None,
) -> pd.DataFrame:
    """Compute the RSS table for every (regulon, category) pair.

    Args:
        auc: AUCResult or regulons x cells DataFrame.
        annotation: Cell id -> category label.
        config: Minimum category size and worker pool settings.
        diagnostics: Optional list receiving per-entity problems.

    Returns:
        Long DataFrame with columns ``regulon, category, rss, n_cells``.
    """
    cfg = config or RSSConfig()
    frame = auc.auc if isinstance(auc, AUCResult) else auc
    labels = _align_labels(annotation, pd.Index(frame.columns))
    if labels.empty:
        raise InsufficientDataError("No annotated cells overlap the AUC matrix.")

    sub = frame.loc[:, labels.index]
    values = sub.to_numpy(dtype=float)
    categories = sorted(labels.unique())
    label_arr = labels.to_numpy()
    members = {c: label_arr == c for c in categories}
    sizes = {c: int(members[c].sum()) for c in categories}
    regulons = [str(r) for r in sub.index]

    notes: list[Diagnostic] = []
    for c in categories:
        if sizes[c] < int(cfg.min_category_size):
            notes.append(
                Diagnostic(
                    entity=c,
                    kind="small_category",
                    message=(
                        f"Category has {sizes[c]} cells (minimum {cfg.min_category_size}); "
                        "RSS undefined."
                    ),
                    stage="rss",
                )
            )
    scorable = [c for c in categories if sizes[c] >= int(cfg.min_category_size)]
    logger.info(
        "Computing RSS for %d regulons x %d categories (%d cells).",
        len(regulons),
        len(categories),
        labels.size,
    )

    def _task(i: int):
        row = values[i, :]
        if not np.all(np.isfinite(row)) or row.sum() <= 0.0:
            return None
        return {c: regulon_specificity(row, members[c]) for c in scorable}

    results = parallel_map(_task, range(len(regulons)), n_jobs=cfg.n_jobs, backend=cfg.backend)

    records = []
    for i, name in enumerate(regulons):
        scores = results[i]
        if scores is None:
            notes.append(
                Diagnostic(
                    entity=name,
                    kind="undefined_activity",
                    message="AUC not computed or zero in every annotated cell; RSS undefined.",
                    stage="rss",
                )
            )
            scores = {}
        for c in categories:
            records.append(
                {
                    "regulon": name,
                    "category": c,
                    "rss": float(scores.get(c, np.nan)),
                    "n_cells": sizes[c],
                }
            )

    for note in notes:
        logger.warning("RSS %s: %s", note.entity, note.message)
    if diagnostics is not None:
        diagnostics.extend(notes)
    return pd.DataFrame.from_records(records, columns=list(RSS_COLUMNS))


def rss_to_matrix(table: pd.DataFrame) -> pd.DataFrame:
    """Pivot an RSS table to categories x regulons."""
    missing = [c for c in ("regulon", "category", "rss") if c not in table.columns]
    if missing:
        raise KeyError(f"RSS table missing columns: {', '.join(missing)}.")
    return table.pivot(index="category", columns="regulon", values="rss")
