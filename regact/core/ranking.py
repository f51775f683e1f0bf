"""Per-cell gene ranking by descending expression."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict

import numpy as np

from regact.core.expression import ExpressionMatrix
from regact.core.types import RankingConfig, RankMatrix
from regact.parallel import parallel_map

logger = logging.getLogger(__name__)


def _id_order(gene_ids: tuple[str, ...]) -> np.ndarray:
    return np.argsort(np.asarray(gene_ids, dtype=str), kind="stable")


def rank_block(values: np.ndarray, id_order: np.ndarray) -> np.ndarray:
    """Rank a dense genes x cells block; ties go to the smaller gene id.

    `id_order` is the permutation sorting genes by identifier. Sorting the
    id-ordered rows with a stable sort keeps that order among equal values.
    """
    block = np.asarray(values, dtype=float)
    n_genes = block.shape[0]
    dtype = np.int32 if n_genes < np.iinfo(np.int32).max else np.int64
    by_id = block[id_order, :]
    order = np.argsort(-by_id, axis=0, kind="stable")
    positions = np.broadcast_to(
        np.arange(1, n_genes + 1, dtype=dtype)[:, None], order.shape
    )
    ranks_by_id = np.empty(order.shape, dtype=dtype)
    np.put_along_axis(ranks_by_id, order, positions, axis=0)
    ranks = np.empty_like(ranks_by_id)
    ranks[id_order, :] = ranks_by_id
    return ranks


def rank_cells(
    expression: ExpressionMatrix,
    config: RankingConfig | None = None,
) -> RankMatrix:
    """Compute the genes x cells rank matrix (rank 1 = highest expression).

    Args:
        expression: Validated ExpressionMatrix; its values were checked for
            negative and non-finite entries at construction.
        config: Block size and worker pool settings.

    Returns:
        RankMatrix whose columns are permutations of 1..n_genes.
    """
    cfg = config or RankingConfig()
    n_genes, n_cells = expression.shape
    id_order = _id_order(expression.gene_ids)
    step = int(cfg.block_size)
    blocks = [(s, min(s + step, n_cells)) for s in range(0, n_cells, step)]
    logger.info(
        "Ranking %d genes in %d cells (%d blocks).", n_genes, n_cells, len(blocks)
    )

    def _rank(bounds: tuple[int, int]) -> np.ndarray:
        return rank_block(expression.column_block(*bounds), id_order)

    parts = parallel_map(_rank, blocks, n_jobs=cfg.n_jobs, backend=cfg.backend)
    ranks = np.concatenate(parts, axis=1)
    return RankMatrix(
        ranks=ranks,
        gene_ids=expression.gene_ids,
        cell_ids=expression.cell_ids,
        fingerprint=expression.fingerprint(),
    )


class RankCache:
    """In-memory LRU cache of rank matrices keyed by expression fingerprint."""

    def __init__(self, maxsize: int = 4) -> None:
        if int(maxsize) <= 0:
            raise ValueError("maxsize must be positive.")
        self.maxsize = int(maxsize)
        self.hits = 0
        self.misses = 0
        self._store: OrderedDict[str, RankMatrix] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._store)

    def get_or_compute(
        self,
        expression: ExpressionMatrix,
        config: RankingConfig | None = None,
    ) -> RankMatrix:
        key = expression.fingerprint()
        with self._lock:
            cached = self._store.get(key)
            if cached is not None:
                self._store.move_to_end(key)
                self.hits += 1
                return cached
            self.misses += 1

        result = rank_cells(expression, config)
        with self._lock:
            self._store[key] = result
            self._store.move_to_end(key)
            while len(self._store) > self.maxsize:
                self._store.popitem(last=False)
        return result

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self.hits = 0
            self.misses = 0
