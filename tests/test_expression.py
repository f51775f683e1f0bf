from __future__ import annotations

import anndata as ad
import numpy as np
import pandas as pd
import pytest
import scipy.sparse as sp

from regact.core.expression import (
    ExpressionMatrix,
    expression_from_anndata,
    expression_from_frame,
    validate_expression,
)
from regact.errors import InvalidInputError


def test_negative_and_nonfinite_values_rejected():
    with pytest.raises(InvalidInputError, match="negative"):
        validate_expression(np.array([[1.0, -0.5], [0.0, 2.0]]))
    with pytest.raises(InvalidInputError, match="NaN/inf"):
        validate_expression(np.array([[1.0, np.nan], [0.0, 2.0]]))
    with pytest.raises(InvalidInputError, match="NaN/inf"):
        validate_expression(sp.csr_matrix(np.array([[np.inf, 0.0], [0.0, 1.0]])))
    with pytest.raises(InvalidInputError, match="2D"):
        validate_expression(np.array([1.0, 2.0]))


def test_sparse_input_is_csc_and_does_not_alias_caller():
    mat = sp.csr_matrix(np.array([[1.0, 0.0], [0.0, 3.0]]))
    out = validate_expression(mat)
    assert out.format == "csc"
    out.data[:] = 0.0
    assert mat.sum() == 4.0


def test_build_checks_ids_and_shape():
    with pytest.raises(InvalidInputError, match="gene_ids must be unique"):
        ExpressionMatrix.build(np.ones((2, 2)), ["g1", "g1"], ["c1", "c2"])
    with pytest.raises(InvalidInputError, match="does not match"):
        ExpressionMatrix.build(np.ones((2, 3)), ["g1", "g2"], ["c1", "c2"])


def test_from_frame_and_column_block():
    df = pd.DataFrame(
        [[1.0, 2.0, 3.0], [0.0, 0.0, 5.0]],
        index=["g1", "g2"],
        columns=["c1", "c2", "c3"],
    )
    expr = expression_from_frame(df)
    assert expr.shape == (2, 3)
    assert expr.gene_ids == ("g1", "g2")
    np.testing.assert_array_equal(expr.column_block(1, 3), np.array([[2.0, 3.0], [0.0, 5.0]]))

    expr_t = expression_from_frame(df.T, genes_as_rows=False)
    assert expr_t.gene_ids == expr.gene_ids
    assert expr_t.fingerprint() == expr.fingerprint()


def test_from_anndata_transposes_and_reads_layer():
    X = np.array([[1.0, 0.0, 2.0], [0.0, 4.0, 0.0]])
    adata = ad.AnnData(
        X=sp.csr_matrix(X),
        obs=pd.DataFrame(index=["c1", "c2"]),
        var=pd.DataFrame(index=["g1", "g2", "g3"]),
    )
    adata.layers["counts"] = X * 10.0

    expr = expression_from_anndata(adata)
    assert expr.shape == (3, 2)
    assert expr.cell_ids == ("c1", "c2")
    assert expr.is_sparse
    np.testing.assert_array_equal(expr.column_block(0, 2), X.T)

    layered = expression_from_anndata(adata, layer="counts")
    np.testing.assert_array_equal(layered.column_block(0, 2), X.T * 10.0)

    with pytest.raises(KeyError, match="Layer"):
        expression_from_anndata(adata, layer="missing")


def test_from_anndata_duplicate_symbols_warn_and_keep_first():
    adata = ad.AnnData(
        X=np.array([[1.0, 2.0, 3.0]]),
        obs=pd.DataFrame(index=["c1"]),
        var=pd.DataFrame({"symbol": ["A", "A", "B"]}, index=["e1", "e2", "e3"]),
    )
    with pytest.warns(RuntimeWarning, match="duplicated gene ids"):
        expr = expression_from_anndata(adata, gene_symbols="symbol")
    assert expr.gene_ids == ("A", "B")
    np.testing.assert_array_equal(expr.column_block(0, 1).ravel(), [1.0, 3.0])


def test_fingerprint_tracks_values_and_ids():
    values = np.array([[1.0, 2.0], [3.0, 4.0]])
    a = ExpressionMatrix.build(values, ["g1", "g2"], ["c1", "c2"])
    b = ExpressionMatrix.build(values.copy(), ["g1", "g2"], ["c1", "c2"])
    c = ExpressionMatrix.build(values, ["g1", "g2"], ["c1", "c3"])
    d = ExpressionMatrix.build(values + 1.0, ["g1", "g2"], ["c1", "c2"])
    assert a.fingerprint() == b.fingerprint()
    assert a.fingerprint() != c.fingerprint()
    assert a.fingerprint() != d.fingerprint()
