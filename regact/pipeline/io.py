"""Pipeline I/O, logging, and utility helpers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable

from regact.core.types import PipelineResult
from regact.stats.thresholds import thresholds_frame


def ensure_dir(path: str | Path) -> None:
    p = Path(path)
    p.mkdir(parents=True, exist_ok=True)


def write_json(path: str | Path, payload: dict[str, Any]) -> None:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)


def setup_logger(log_path: Path, logger_name: str) -> logging.Logger:
    ensure_dir(log_path.parent)
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    formatter = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
    fh = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    fh.setFormatter(formatter)
    logger.addHandler(fh)
    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    logger.addHandler(sh)
    return logger


def detect_obs_col(adata, provided: str | None, candidates: Iterable[str]) -> str:
    if provided is not None:
        if provided in adata.obs.columns:
            return str(provided)
        raise KeyError(f"adata.obs['{provided}'] not found.")
    for c in candidates:
        if c in adata.obs.columns:
            return str(c)
    raise KeyError(f"Required column not found. Tried: {', '.join(candidates)}")


def write_results(outdir: str | Path, result: PipelineResult) -> dict[str, Path]:
    """Write AUC, binary, threshold, RSS and diagnostic tables under `outdir`.

    Matrices are written cells x regulons, the orientation single-cell tools read.
    """
    root = Path(outdir)
    ensure_dir(root)
    paths = {
        "auc": root / "auc.csv",
        "binary": root / "binary.csv",
        "thresholds": root / "thresholds.csv",
        "thresholds_json": root / "thresholds.json",
        "diagnostics": root / "diagnostics.json",
        "metadata": root / "metadata.json",
    }
    result.auc.auc.T.to_csv(paths["auc"])
    result.binary.T.to_csv(paths["binary"])
    thresholds_frame(result.thresholds).to_csv(paths["thresholds"])
    write_json(
        paths["thresholds_json"],
        {name: thr.to_json() for name, thr in result.thresholds.items()},
    )
    write_json(
        paths["diagnostics"],
        {"diagnostics": [d.to_json() for d in result.diagnostics]},
    )
    write_json(paths["metadata"], result.metadata)
    if result.rss is not None:
        paths["rss"] = root / "rss.csv"
        result.rss.to_csv(paths["rss"], index=False)
    return paths
