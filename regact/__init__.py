"""regact public API."""

from regact._version import __version__
from regact.binarize import apply_overrides, binarize
from regact.core.expression import (
    ExpressionMatrix,
    expression_from_anndata,
    expression_from_frame,
)
from regact.core.ranking import RankCache, rank_cells
from regact.core.recovery import recovery_counts, score_regulons
from regact.core.types import (
    AUCConfig,
    AUCResult,
    PipelineConfig,
    RankingConfig,
    RankMatrix,
    RSSConfig,
    Threshold,
    ThresholdConfig,
)
from regact.errors import (
    ConfigurationError,
    EmptyRegulonError,
    InsufficientDataError,
    InvalidInputError,
)
from regact.parallel import CancellationToken
from regact.regulons import Regulon, filter_regulons, read_gmt
from regact.stats.specificity import compute_rss
from regact.stats.thresholds import estimate_thresholds, fit_threshold


def run_regulon_activity(*args, **kwargs):
    """Lazy wrapper around the end-to-end pipeline stage."""
    from regact.pipeline.workflow import run_regulon_activity as _run

    return _run(*args, **kwargs)


__all__ = [
    "__version__",
    "AUCConfig",
    "AUCResult",
    "CancellationToken",
    "ConfigurationError",
    "EmptyRegulonError",
    "ExpressionMatrix",
    "InsufficientDataError",
    "InvalidInputError",
    "PipelineConfig",
    "RankCache",
    "RankMatrix",
    "RankingConfig",
    "Regulon",
    "RSSConfig",
    "Threshold",
    "ThresholdConfig",
    "apply_overrides",
    "binarize",
    "compute_rss",
    "estimate_thresholds",
    "expression_from_anndata",
    "expression_from_frame",
    "filter_regulons",
    "fit_threshold",
    "rank_cells",
    "read_gmt",
    "recovery_counts",
    "run_regulon_activity",
    "score_regulons",
]
