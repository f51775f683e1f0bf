"""Orchestration of the regulon activity stage and its I/O helpers."""

from regact.pipeline.io import setup_logger, write_results
from regact.pipeline.workflow import attach_to_anndata, run_regulon_activity

__all__ = [
    "attach_to_anndata",
    "run_regulon_activity",
    "setup_logger",
    "write_results",
]
