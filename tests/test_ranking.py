from __future__ import annotations

import numpy as np
import pytest
import scipy.sparse as sp

from regact.core.expression import ExpressionMatrix
from regact.core.ranking import RankCache, rank_block, rank_cells
from regact.core.types import RankingConfig
from regact.errors import ConfigurationError


def _toy_expression(seed: int = 0, n_genes: int = 40, n_cells: int = 25, sparse: bool = False):
    rng = np.random.default_rng(seed)
    values = rng.poisson(0.7, size=(n_genes, n_cells)).astype(float)
    genes = [f"G{i:03d}" for i in range(n_genes)]
    cells = [f"cell{j}" for j in range(n_cells)]
    mat = sp.csr_matrix(values) if sparse else values
    return ExpressionMatrix.build(mat, genes, cells), values


def test_columns_are_permutations_of_one_to_n():
    expr, _ = _toy_expression()
    ranks = rank_cells(expr).ranks
    n_genes = expr.shape[0]
    expected = np.arange(1, n_genes + 1)
    for j in range(ranks.shape[1]):
        np.testing.assert_array_equal(np.sort(ranks[:, j]), expected)


def test_highest_expression_gets_rank_one():
    values = np.array([[0.5, 9.0], [3.0, 1.0], [1.0, 2.0]])
    expr = ExpressionMatrix.build(values, ["A", "B", "C"], ["c1", "c2"])
    ranks = rank_cells(expr).ranks
    np.testing.assert_array_equal(ranks[:, 0], [3, 1, 2])
    np.testing.assert_array_equal(ranks[:, 1], [1, 3, 2])


def test_ties_broken_by_ascending_gene_id():
    values = np.array([[0.0], [0.0], [1.0], [0.0]])
    expr = ExpressionMatrix.build(values, ["b", "a", "z", "c"], ["c1"])
    rm = rank_cells(expr)
    np.testing.assert_array_equal(rm.ranks[:, 0], [3, 2, 1, 4])
    assert rm.ranking("c1") == ["z", "a", "b", "c"]


def test_ranking_is_deterministic_and_block_independent():
    expr, _ = _toy_expression(seed=3)
    first = rank_cells(expr, RankingConfig(block_size=512)).ranks
    second = rank_cells(expr, RankingConfig(block_size=512)).ranks
    small_blocks = rank_cells(expr, RankingConfig(block_size=4)).ranks
    threaded = rank_cells(expr, RankingConfig(block_size=3, n_jobs=2)).ranks
    assert first.tobytes() == second.tobytes()
    np.testing.assert_array_equal(first, small_blocks)
    np.testing.assert_array_equal(first, threaded)


def test_sparse_and_dense_inputs_rank_identically():
    dense, _ = _toy_expression(seed=5)
    sparse, _ = _toy_expression(seed=5, sparse=True)
    np.testing.assert_array_equal(rank_cells(dense).ranks, rank_cells(sparse).ranks)


def test_rank_block_matches_manual_lexsort():
    rng = np.random.default_rng(11)
    values = rng.integers(0, 3, size=(15, 6)).astype(float)
    ids = np.array([f"g{i}" for i in rng.permutation(15)])
    id_order = np.argsort(ids, kind="stable")
    ranks = rank_block(values, id_order)
    for j in range(values.shape[1]):
        order = np.lexsort((ids, -values[:, j]))
        manual = np.empty(15, dtype=int)
        manual[order] = np.arange(1, 16)
        np.testing.assert_array_equal(ranks[:, j], manual)


def test_rank_matrix_frame_and_unknown_cell():
    expr, _ = _toy_expression(n_genes=5, n_cells=3)
    rm = rank_cells(expr)
    frame = rm.to_frame()
    assert list(frame.index) == list(expr.gene_ids)
    assert list(frame.columns) == list(expr.cell_ids)
    with pytest.raises(KeyError, match="not found"):
        rm.ranking("nope")


def test_rank_cache_reuses_and_invalidates():
    cache = RankCache(maxsize=2)
    expr, values = _toy_expression(seed=1)
    a = cache.get_or_compute(expr)
    b = cache.get_or_compute(ExpressionMatrix.build(values.copy(), expr.gene_ids, expr.cell_ids))
    assert a is b
    assert cache.hits == 1 and cache.misses == 1

    changed = values.copy()
    changed[0, 0] += 5.0
    c = cache.get_or_compute(ExpressionMatrix.build(changed, expr.gene_ids, expr.cell_ids))
    assert c is not a
    assert cache.misses == 2
    assert len(cache) == 2


def test_invalid_ranking_config():
    with pytest.raises(ConfigurationError):
        RankingConfig(block_size=0)
    with pytest.raises(ConfigurationError):
        RankingConfig(backend="dask")
