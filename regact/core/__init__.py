"""Core compute subpackage."""

from regact.core.expression import (
    ExpressionMatrix,
    expression_from_anndata,
    expression_from_frame,
    validate_expression,
)
from regact.core.ranking import RankCache, rank_cells
from regact.core.recovery import (
    derive_rank_cutoff,
    max_recovery_area,
    recovery_counts,
    score_regulon,
    score_regulons,
)
from regact.core.types import (
    AUCConfig,
    AUCResult,
    PipelineConfig,
    PipelineResult,
    RankingConfig,
    RankMatrix,
    RSSConfig,
    Threshold,
    ThresholdConfig,
)

__all__ = [
    "AUCConfig",
    "AUCResult",
    "PipelineConfig",
    "PipelineResult",
    "RankingConfig",
    "RankMatrix",
    "RSSConfig",
    "Threshold",
    "ThresholdConfig",
    "ExpressionMatrix",
    "expression_from_anndata",
    "expression_from_frame",
    "validate_expression",
    "RankCache",
    "rank_cells",
    "derive_rank_cutoff",
    "max_recovery_area",
    "recovery_counts",
    "score_regulon",
    "score_regulons",
]
