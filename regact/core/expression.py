"""Expression matrix container and adapters (genes x cells)."""

from __future__ import annotations

import hashlib
import warnings
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
import scipy.sparse as sp

from regact.core.utils import stable_hash_array, stable_hash_labels
from regact.errors import InvalidInputError


def _unique_ids(name: str, ids: Any) -> tuple[str, ...]:
    out = tuple(str(x) for x in ids)
    idx = pd.Index(out)
    if idx.has_duplicates:
        dup = idx[idx.duplicated()].unique()[:5]
        raise InvalidInputError(
            f"{name} must be unique; duplicated: {', '.join(map(str, dup))}."
        )
    return out


def validate_expression(values: Any) -> np.ndarray | sp.csc_matrix:
    """Check a genes x cells matrix is 2D, finite and non-negative.

    Sparse input is returned as CSC so that column (cell) slicing is cheap.
    """
    if sp.issparse(values):
        mat = sp.csc_matrix(values, dtype=float, copy=True)
        mat.sum_duplicates()
        mat.sort_indices()
        data = mat.data
    else:
        mat = np.asarray(values, dtype=float)
        data = mat
    if mat.ndim != 2:
        raise InvalidInputError(f"Expression matrix must be 2D, got shape {mat.shape}.")
    if mat.shape[0] == 0 or mat.shape[1] == 0:
        raise InvalidInputError(f"Expression matrix must be non-empty, got shape {mat.shape}.")
    if not np.all(np.isfinite(data)):
        raise InvalidInputError("Expression matrix contains NaN/inf values.")
    if np.any(data < 0.0):
        raise InvalidInputError("Expression matrix contains negative values.")
    return mat


@dataclass(frozen=True)
class ExpressionMatrix:
    """Validated genes x cells expression values with unique identifiers."""

    values: np.ndarray | sp.csc_matrix
    gene_ids: tuple[str, ...]
    cell_ids: tuple[str, ...]

    @staticmethod
    def build(values: Any, gene_ids: Any, cell_ids: Any) -> "ExpressionMatrix":
        mat = validate_expression(values)
        genes = _unique_ids("gene_ids", gene_ids)
        cells = _unique_ids("cell_ids", cell_ids)
        if mat.shape != (len(genes), len(cells)):
            raise InvalidInputError(
                f"Expression shape {mat.shape} does not match "
                f"{len(genes)} genes x {len(cells)} cells."
            )
        return ExpressionMatrix(values=mat, gene_ids=genes, cell_ids=cells)

    @property
    def shape(self) -> tuple[int, int]:
        return (len(self.gene_ids), len(self.cell_ids))

    @property
    def is_sparse(self) -> bool:
        return sp.issparse(self.values)

    def column_block(self, start: int, stop: int) -> np.ndarray:
        """Dense genes x (stop - start) slice of cells."""
        block = self.values[:, int(start) : int(stop)]
        if sp.issparse(block):
            return block.toarray()
        return np.asarray(block, dtype=float)

    def fingerprint(self) -> str:
        h = hashlib.sha256()
        if self.is_sparse:
            for part in (self.values.data, self.values.indices, self.values.indptr):
                stable_hash_array(part, h)
        else:
            stable_hash_array(self.values, h)
        stable_hash_labels(self.gene_ids, h)
        stable_hash_labels(self.cell_ids, h)
        return h.hexdigest()


def expression_from_frame(frame: pd.DataFrame, genes_as_rows: bool = True) -> ExpressionMatrix:
    """Build an ExpressionMatrix from a DataFrame (genes x cells by default)."""
    if not isinstance(frame, pd.DataFrame):
        raise TypeError("frame must be a pandas DataFrame.")
    df = frame if genes_as_rows else frame.T
    return ExpressionMatrix.build(df.to_numpy(dtype=float), df.index, df.columns)


def expression_from_anndata(
    adata: Any,
    layer: str | None = None,
    gene_symbols: str | None = None,
) -> ExpressionMatrix:
    """Build an ExpressionMatrix from an AnnData (cells x genes) container.

    Args:
        adata: AnnData object.
        layer: Optional layer name; defaults to ``adata.X``.
        gene_symbols: Optional ``adata.var`` column to use as gene ids instead of
            ``var_names``. Genes with duplicated symbols keep the first occurrence.

    Returns:
        Genes x cells ExpressionMatrix.
    """
    if layer is None:
        mat = adata.X
    else:
        if layer not in adata.layers:
            raise KeyError(f"Layer '{layer}' not found in adata.layers.")
        mat = adata.layers[layer]
    if mat is None:
        raise InvalidInputError("AnnData has no expression values.")

    if gene_symbols is None:
        genes = pd.Index(adata.var_names).astype(str)
    else:
        if gene_symbols not in adata.var.columns:
            raise KeyError(f"adata.var['{gene_symbols}'] not found.")
        genes = pd.Index(adata.var[gene_symbols].astype(str))

    keep = ~genes.duplicated()
    if not keep.all():
        warnings.warn(
            f"{int((~keep).sum())} duplicated gene ids; keeping first occurrence.",
            RuntimeWarning,
            stacklevel=2,
        )
        mat = mat[:, np.flatnonzero(keep)]
        genes = genes[keep]

    values = mat.T if sp.issparse(mat) else np.asarray(mat).T
    return ExpressionMatrix.build(values, genes, pd.Index(adata.obs_names).astype(str))
