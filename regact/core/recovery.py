"""Recovery-curve AUC of regulon gene sets over per-cell gene rankings."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

from regact.core.types import AUCConfig, AUCResult, RankMatrix
from regact.errors import (
    ConfigurationError,
    Diagnostic,
    EmptyRegulonError,
)
from regact.parallel import CancellationToken, parallel_map
from regact.regulons import Regulon, coerce_regulons

logger = logging.getLogger(__name__)


def derive_rank_cutoff(n_genes: int, config: AUCConfig | None = None) -> int:
    """Rank cutoff R: `max_rank` when set, else the fraction of ranked genes
    bounded by `rank_cap`."""
    cfg = config or AUCConfig()
    n = int(n_genes)
    if n <= 0:
        raise ConfigurationError("Cannot derive a rank cutoff for zero genes.")
    if cfg.max_rank is not None:
        cutoff = int(cfg.max_rank)
    else:
        cutoff = int(round(float(cfg.rank_threshold_fraction) * n))
        if cfg.rank_cap is not None:
            cutoff = min(cutoff, int(cfg.rank_cap))
    cutoff = min(max(cutoff, 1), n)
    return cutoff


def max_recovery_area(n_genes: int, rank_cutoff: int) -> float:
    """Normalizing area ``R * min(n_genes, R)`` for a gene set under cutoff R."""
    m = min(int(n_genes), int(rank_cutoff))
    if m <= 0:
        raise EmptyRegulonError("Gene set is empty.")
    return float(int(rank_cutoff) * m)


def _gene_index(rank_matrix: RankMatrix) -> dict[str, int]:
    return {g: i for i, g in enumerate(rank_matrix.gene_ids)}


def _resolve(
    genes: Iterable[str], index: Mapping[str, int], name: str
) -> tuple[np.ndarray, int]:
    wanted = list(genes)
    idx = [index[g] for g in wanted if g in index]
    n_dropped = len(wanted) - len(idx)
    if not idx:
        raise EmptyRegulonError(
            f"Regulon '{name}' has no genes in the expression matrix "
            f"({n_dropped} genes absent)."
        )
    return np.asarray(idx, dtype=np.int64), n_dropped


def recovery_counts(
    rank_matrix: RankMatrix, genes: Iterable[str], rank_cutoff: int
) -> pd.Series:
    """Number of `genes` ranked within the top `rank_cutoff` in each cell."""
    if int(rank_cutoff) <= 0:
        raise ConfigurationError("rank_cutoff must be positive.")
    idx, _ = _resolve(genes, _gene_index(rank_matrix), "gene set")
    hits = (rank_matrix.ranks[idx, :] <= int(rank_cutoff)).sum(axis=0)
    return pd.Series(hits.astype(np.int64), index=pd.Index(rank_matrix.cell_ids, name="cell"))


def _auc_from_ranks(sub_ranks: np.ndarray, rank_cutoff: int) -> np.ndarray:
    # Each gene recovered within R fills one unit row of the R-wide window.
    r = int(rank_cutoff)
    hits = (sub_ranks <= r).sum(axis=0, dtype=np.int64)
    area = hits * r
    return area / max_recovery_area(sub_ranks.shape[0], r)


def score_regulon(
    rank_matrix: RankMatrix,
    regulon: Regulon,
    rank_cutoff: int,
    gene_index: Mapping[str, int] | None = None,
) -> tuple[np.ndarray, int, int]:
    """AUC of one regulon in every cell.

    Returns:
        ``(auc, n_genes_used, n_genes_dropped)`` where `auc` is aligned to
        ``rank_matrix.cell_ids``.

    Raises:
        EmptyRegulonError: if none of the regulon's genes are ranked.
    """
    if int(rank_cutoff) <= 0:
        raise ConfigurationError("rank_cutoff must be positive.")
    index = gene_index if gene_index is not None else _gene_index(rank_matrix)
    idx, n_dropped = _resolve(regulon.genes, index, regulon.name)
    auc = _auc_from_ranks(rank_matrix.ranks[idx, :], rank_cutoff)
    return auc, int(idx.size), int(n_dropped)


def score_regulons(
    rank_matrix: RankMatrix,
    regulons: Iterable[Regulon] | Mapping[str, Iterable[str]],
    config: AUCConfig | None = None,
    cancel: CancellationToken | None = None,
) -> AUCResult:
    """Compute the regulons x cells AUC matrix.

    Per-regulon failures (no scorable genes) leave a NaN row plus a diagnostic;
    cancelled regulons leave a NaN row with ``computed=False``.
    """
    cfg = config or AUCConfig()
    regs, diagnostics = coerce_regulons(regulons, stage="auc")
    cutoff = derive_rank_cutoff(rank_matrix.n_genes, cfg)
    index = _gene_index(rank_matrix)
    logger.info(
        "Scoring %d regulons in %d cells (rank cutoff %d of %d genes).",
        len(regs),
        rank_matrix.n_cells,
        cutoff,
        rank_matrix.n_genes,
    )

    def _task(reg: Regulon):
        try:
            return score_regulon(rank_matrix, reg, cutoff, gene_index=index)
        except EmptyRegulonError as exc:
            return exc

    rows = parallel_map(_task, regs, n_jobs=cfg.n_jobs, backend=cfg.backend, cancel=cancel)

    names = [r.name for r in regs] + [d.entity for d in diagnostics]
    values = np.full((len(names), rank_matrix.n_cells), np.nan, dtype=float)
    done = np.zeros(values.shape, dtype=bool)
    used: dict[str, int] = {d.entity: 0 for d in diagnostics}
    dropped: dict[str, int] = {d.entity: 0 for d in diagnostics}
    n_skipped = 0
    for i, (reg, row) in enumerate(zip(regs, rows)):
        if row is None:
            n_skipped += 1
            continue
        if isinstance(row, EmptyRegulonError):
            logger.warning("Regulon %s skipped: %s", reg.name, row)
            diagnostics.append(Diagnostic.from_error(reg.name, row, "auc"))
            used[reg.name] = 0
            dropped[reg.name] = reg.size
            continue
        auc, n_used, n_dropped = row
        values[i, :] = auc
        done[i, :] = True
        used[reg.name] = n_used
        dropped[reg.name] = n_dropped
        if n_dropped > 0:
            logger.info(
                "Regulon %s: %d of %d genes absent from expression matrix.",
                reg.name,
                n_dropped,
                reg.size,
            )
            diagnostics.append(
                Diagnostic(
                    entity=reg.name,
                    kind="dropped_genes",
                    message=f"{n_dropped} of {reg.size} genes absent from expression matrix.",
                    stage="auc",
                )
            )

    cancelled = bool(cancel is not None and cancel.cancelled and n_skipped > 0)
    if cancelled:
        logger.warning("AUC scoring cancelled; %d regulons not computed.", n_skipped)

    row_index = pd.Index(names, name="regulon")
    col_index = pd.Index(rank_matrix.cell_ids, name="cell")
    return AUCResult(
        auc=pd.DataFrame(values, index=row_index, columns=col_index),
        computed=pd.DataFrame(done, index=row_index, columns=col_index),
        rank_cutoff=int(cutoff),
        n_genes_used=used,
        n_genes_dropped=dropped,
        diagnostics=diagnostics,
        cancelled=cancelled,
    )
