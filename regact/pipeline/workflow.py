"""End-to-end regulon activity stage: rank, score, threshold, binarize, RSS."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

import pandas as pd

from regact._version import __version__
from regact.binarize import apply_overrides, binarize
from regact.core.expression import (
    ExpressionMatrix,
    expression_from_anndata,
    expression_from_frame,
)
from regact.core.ranking import RankCache, rank_cells
from regact.core.recovery import score_regulons
from regact.core.types import PipelineConfig, PipelineResult
from regact.parallel import CancellationToken
from regact.regulons import Regulon, coerce_regulons, filter_regulons
from regact.stats.specificity import compute_rss
from regact.stats.thresholds import estimate_thresholds

logger = logging.getLogger(__name__)


def _as_expression(expression: Any, layer: str | None) -> ExpressionMatrix:
    if isinstance(expression, ExpressionMatrix):
        return expression
    if isinstance(expression, pd.DataFrame):
        return expression_from_frame(expression)
    if hasattr(expression, "obs_names") and hasattr(expression, "var_names"):
        return expression_from_anndata(expression, layer=layer)
    raise TypeError(
        "expression must be an ExpressionMatrix, a genes x cells DataFrame or an AnnData."
    )


def run_regulon_activity(
    expression: Any,
    regulons: Iterable[Regulon] | Mapping[str, Iterable[str]],
    annotation: pd.Series | Mapping[str, Any] | None = None,
    config: PipelineConfig | None = None,
    *,
    overrides: Mapping[str, float] | None = None,
    layer: str | None = None,
    cache: RankCache | None = None,
    cancel: CancellationToken | None = None,
) -> PipelineResult:
    """Run the full scoring stage on one expression matrix.

    Malformed expression input raises before any scoring. Regulon-level
    problems are collected in ``result.diagnostics``.
    """
    cfg = config or PipelineConfig()
    expr = _as_expression(expression, layer)
    regs, diagnostics = coerce_regulons(regulons)
    n_input = len(regs) + len(diagnostics)

    kept, report = filter_regulons(regs, expr.gene_ids, min_size=cfg.min_regulon_size)
    diagnostics.extend(report.diagnostics)

    if cache is not None:
        ranks = cache.get_or_compute(expr, cfg.ranking)
    else:
        ranks = rank_cells(expr, cfg.ranking)

    auc = score_regulons(ranks, kept, cfg.auc, cancel=cancel)
    diagnostics.extend(auc.diagnostics)

    thresholds = estimate_thresholds(auc, cfg.thresholds, diagnostics=diagnostics)
    if overrides:
        thresholds = apply_overrides(thresholds, overrides)
    binary = binarize(auc, thresholds)

    rss = None
    if annotation is not None:
        rss = compute_rss(auc, annotation, cfg.rss, diagnostics=diagnostics)

    metadata = {
        "regact_version": __version__,
        "n_genes": int(expr.shape[0]),
        "n_cells": int(expr.shape[1]),
        "n_regulons_input": int(n_input),
        "n_regulons_scored": int(auc.computed.any(axis=1).sum()),
        "excluded_regulons": dict(report.excluded),
        "rank_cutoff": int(auc.rank_cutoff),
        "min_regulon_size": int(cfg.min_regulon_size),
        "threshold_method": cfg.thresholds.method,
        "threshold_seed": int(cfg.thresholds.seed),
        "cancelled": bool(auc.cancelled),
        "n_diagnostics": len(diagnostics),
    }
    logger.info(
        "Scored %d of %d regulons in %d cells (%d diagnostics).",
        metadata["n_regulons_scored"],
        n_input,
        metadata["n_cells"],
        len(diagnostics),
    )
    return PipelineResult(
        auc=auc,
        thresholds=thresholds,
        binary=binary,
        rss=rss,
        diagnostics=diagnostics,
        metadata=metadata,
    )


def attach_to_anndata(adata: Any, result: PipelineResult, key_added: str = "regact") -> None:
    """Store results on an AnnData: cells x regulons frames in ``obsm``, rest in ``uns``."""
    cells = pd.Index(adata.obs_names).astype(str)
    auc = result.auc.auc.T
    if not pd.Index(auc.index).equals(cells):
        missing = cells.difference(pd.Index(auc.index))
        if len(missing) > 0:
            raise KeyError(f"{len(missing)} AnnData cells have no AUC values.")
        auc = auc.loc[cells]
    binary = result.binary.T.loc[auc.index]
    auc.index = adata.obs_names
    binary.index = adata.obs_names
    adata.obsm[f"{key_added}_auc"] = auc
    adata.obsm[f"{key_added}_binary"] = binary
    adata.uns[key_added] = {
        "thresholds": {name: thr.to_json() for name, thr in result.thresholds.items()},
        "rank_cutoff": int(result.auc.rank_cutoff),
        "metadata": dict(result.metadata),
    }
    if result.rss is not None:
        adata.uns[key_added]["rss"] = result.rss.copy()
