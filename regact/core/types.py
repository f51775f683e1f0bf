"""Typed configuration and result containers for regact core operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from regact.errors import ConfigurationError, Diagnostic

BACKENDS: tuple[str, ...] = ("threading", "loky", "sequential")
THRESHOLD_METHODS: tuple[str, ...] = ("crossing", "conservative")


def _check_jobs(n_jobs: int, backend: str) -> None:
    if int(n_jobs) == 0 or int(n_jobs) < -1:
        raise ConfigurationError("n_jobs must be a positive integer or -1 (all cores).")
    if backend not in BACKENDS:
        raise ConfigurationError(
            f"Unknown backend '{backend}'. Use one of: {', '.join(BACKENDS)}."
        )


@dataclass(frozen=True)
class RankingConfig:
    """Configuration for per-cell gene ranking."""

    block_size: int = 512
    n_jobs: int = 1
    backend: str = "threading"

    def __post_init__(self) -> None:
        if int(self.block_size) <= 0:
            raise ConfigurationError("block_size must be positive.")
        _check_jobs(self.n_jobs, self.backend)


@dataclass(frozen=True)
class AUCConfig:
    """Recovery-curve AUC configuration.

    `max_rank` is an absolute cutoff that overrides `rank_threshold_fraction`.
    `rank_cap` keeps the fraction but bounds the cutoff it yields.
    """

    rank_threshold_fraction: float = 0.05
    max_rank: int | None = None
    rank_cap: int | None = None
    n_jobs: int = 1
    backend: str = "threading"

    def __post_init__(self) -> None:
        frac = float(self.rank_threshold_fraction)
        if not np.isfinite(frac) or frac <= 0.0 or frac > 1.0:
            raise ConfigurationError(
                f"rank_threshold_fraction must be in (0, 1], got {self.rank_threshold_fraction}."
            )
        if self.max_rank is not None and int(self.max_rank) <= 0:
            raise ConfigurationError(f"max_rank must be positive, got {self.max_rank}.")
        if self.rank_cap is not None and int(self.rank_cap) <= 0:
            raise ConfigurationError(f"rank_cap must be positive, got {self.rank_cap}.")
        _check_jobs(self.n_jobs, self.backend)


@dataclass(frozen=True)
class ThresholdConfig:
    """Two-component mixture threshold fitting configuration."""

    method: str = "crossing"
    seed: int = 0
    n_init: int = 3
    max_iter: int = 200
    tol: float = 1e-4
    conservative_k: float = 2.0
    min_cells: int = 2
    min_bic_delta: float = 10.0
    min_component_weight: float = 0.05
    min_ashman_d: float = 2.0
    epsilon: float = 1e-6
    n_jobs: int = 1
    backend: str = "threading"

    def __post_init__(self) -> None:
        if self.method not in THRESHOLD_METHODS:
            raise ConfigurationError(
                f"Unknown threshold method '{self.method}'. "
                f"Use one of: {', '.join(THRESHOLD_METHODS)}."
            )
        if int(self.n_init) <= 0 or int(self.max_iter) <= 0:
            raise ConfigurationError("n_init and max_iter must be positive.")
        if float(self.tol) <= 0.0 or float(self.epsilon) <= 0.0:
            raise ConfigurationError("tol and epsilon must be > 0.")
        if int(self.min_cells) < 2:
            raise ConfigurationError("min_cells must be at least 2.")
        if not (0.0 <= float(self.min_component_weight) < 0.5):
            raise ConfigurationError("min_component_weight must be in [0, 0.5).")
        if float(self.conservative_k) < 0.0:
            raise ConfigurationError("conservative_k must be non-negative.")
        _check_jobs(self.n_jobs, self.backend)


@dataclass(frozen=True)
class RSSConfig:
    """Regulon specificity scoring configuration."""

    min_category_size: int = 2
    n_jobs: int = 1
    backend: str = "threading"

    def __post_init__(self) -> None:
        if int(self.min_category_size) < 1:
            raise ConfigurationError("min_category_size must be at least 1.")
        _check_jobs(self.n_jobs, self.backend)


@dataclass(frozen=True)
class PipelineConfig:
    """Bundle of all stage configurations plus regulon size policy."""

    min_regulon_size: int = 10
    ranking: RankingConfig = field(default_factory=RankingConfig)
    auc: AUCConfig = field(default_factory=AUCConfig)
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    rss: RSSConfig = field(default_factory=RSSConfig)

    def __post_init__(self) -> None:
        if int(self.min_regulon_size) < 1:
            raise ConfigurationError("min_regulon_size must be at least 1.")


@dataclass(frozen=True)
class RankMatrix:
    """Genes x cells descending-expression ranks (1 = highest)."""

    ranks: np.ndarray
    gene_ids: tuple[str, ...]
    cell_ids: tuple[str, ...]
    fingerprint: str = ""

    @property
    def n_genes(self) -> int:
        return int(self.ranks.shape[0])

    @property
    def n_cells(self) -> int:
        return int(self.ranks.shape[1])

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            self.ranks,
            index=pd.Index(self.gene_ids, name="gene"),
            columns=pd.Index(self.cell_ids, name="cell"),
        )

    def ranking(self, cell: str) -> list[str]:
        """Gene ids of one cell, highest expression first."""
        try:
            j = self.cell_ids.index(str(cell))
        except ValueError:
            raise KeyError(f"Cell '{cell}' not found in rank matrix.") from None
        order = np.argsort(self.ranks[:, j], kind="stable")
        return [self.gene_ids[i] for i in order]


@dataclass(frozen=True)
class AUCResult:
    """Output of `score_regulons`.

    - `auc`: regulons x cells, NaN where not computed.
    - `computed`: regulons x cells boolean mask of valid entries.
    """

    auc: pd.DataFrame
    computed: pd.DataFrame
    rank_cutoff: int
    n_genes_used: dict[str, int]
    n_genes_dropped: dict[str, int]
    diagnostics: list[Diagnostic] = field(default_factory=list)
    cancelled: bool = False


@dataclass(frozen=True)
class Threshold:
    """Binarization threshold for one regulon with provenance.

    - `source`: ``"computed"`` or ``"override"``.
    - `label`: ``"bimodal"``, ``"not_confidently_bimodal"``,
      ``"insufficient_data"``, ``"fit_failed"`` or ``"override"``.
    """

    regulon: str
    value: float
    method: str
    candidates: dict[str, float] = field(default_factory=dict)
    confident: bool = False
    label: str = "bimodal"
    source: str = "computed"
    fit: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> dict[str, Any]:
        return {
            "regulon": self.regulon,
            "value": float(self.value),
            "method": self.method,
            "candidates": {k: float(v) for k, v in self.candidates.items()},
            "confident": bool(self.confident),
            "label": self.label,
            "source": self.source,
            "fit": self.fit,
        }


@dataclass(frozen=True)
class PipelineResult:
    """Everything produced by one `run_regulon_activity` call."""

    auc: AUCResult
    thresholds: dict[str, Threshold]
    binary: pd.DataFrame
    rss: pd.DataFrame | None
    diagnostics: list[Diagnostic]
    metadata: dict[str, Any] = field(default_factory=dict)
