"""Statistical estimators: binarization thresholds and regulon specificity."""

from regact.stats.specificity import (
    compute_rss,
    jensen_shannon_divergence,
    regulon_specificity,
    rss_to_matrix,
)
from regact.stats.thresholds import (
    ashman_d,
    density_crossing,
    estimate_thresholds,
    fit_threshold,
    thresholds_frame,
)

__all__ = [
    "ashman_d",
    "density_crossing",
    "estimate_thresholds",
    "fit_threshold",
    "thresholds_frame",
    "compute_rss",
    "jensen_shannon_divergence",
    "regulon_specificity",
    "rss_to_matrix",
]
