"""Command-line interface for the regulon activity stage."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Iterable

import anndata as ad

from regact.config import load_pipeline_config
from regact.core.types import PipelineConfig
from regact.pipeline.io import detect_obs_col, setup_logger, write_results
from regact.pipeline.workflow import attach_to_anndata, run_regulon_activity
from regact.regulons import Regulon, read_gmt, regulons_from_mapping

ANNOTATION_CANDIDATES = ("cell_type", "celltype", "CellType", "cell_type_label")


def _read_adata(h5ad_path: str):
    path = Path(h5ad_path)
    if not path.exists():
        raise FileNotFoundError(f"Input file '{h5ad_path}' not found.")
    return ad.read_h5ad(path)


def _read_regulons(path: str) -> list[Regulon]:
    reg_path = Path(path)
    if reg_path.suffix.lower() == ".gmt":
        return read_gmt(reg_path)
    if reg_path.suffix.lower() == ".json":
        if not reg_path.exists():
            raise FileNotFoundError(f"Regulon file not found: {reg_path}")
        with open(reg_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError("Regulon JSON must map regulon names to gene lists.")
        return regulons_from_mapping(data)
    raise ValueError(f"Unsupported regulon file '{reg_path}'. Use .gmt or .json.")


def _parse_overrides(items: Iterable[str]) -> dict[str, float]:
    out: dict[str, float] = {}
    for item in items:
        name, sep, value = str(item).rpartition("=")
        if sep == "" or name == "":
            raise ValueError(f"Override '{item}' must look like REGULON=VALUE.")
        out[name] = float(value)
    return out


def score_main(argv: Iterable[str] | None = None) -> int:
    """Score regulons on an .h5ad file and write result tables.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code (0 for success).
    """
    parser = argparse.ArgumentParser(description="Score regulon activity per cell")
    parser.add_argument("--h5ad", required=True, help="Path to .h5ad file")
    parser.add_argument("--regulons", required=True, help="Regulons as .gmt or .json")
    parser.add_argument("--outdir", default="regact_out", help="Output directory")
    parser.add_argument("--config", default=None, help="JSON pipeline config")
    parser.add_argument("--layer", default=None, help="Expression layer (default: X)")
    parser.add_argument(
        "--annotation-key",
        default=None,
        help="adata.obs column with cell categories for RSS",
    )
    parser.add_argument("--no-rss", action="store_true", help="Skip RSS")
    parser.add_argument(
        "--override",
        action="append",
        default=[],
        help="Threshold override REGULON=VALUE (repeatable)",
    )
    parser.add_argument(
        "--write-h5ad",
        action="store_true",
        help="Also write the input AnnData with results attached",
    )
    args = parser.parse_args(list(argv) if argv is not None else None)

    outdir = Path(args.outdir)
    logger = setup_logger(outdir / "logs" / "regact.log", "regact")

    config = load_pipeline_config(args.config) if args.config else PipelineConfig()
    adata = _read_adata(args.h5ad)
    regulons = _read_regulons(args.regulons)
    logger.info("Loaded %d cells x %d genes, %d regulons.", adata.n_obs, adata.n_vars, len(regulons))

    annotation = None
    if not args.no_rss:
        try:
            col = detect_obs_col(adata, args.annotation_key, ANNOTATION_CANDIDATES)
        except KeyError as exc:
            if args.annotation_key is not None:
                raise
            logger.warning("No annotation column found (%s); skipping RSS.", exc)
        else:
            annotation = adata.obs[col].astype(str)
            annotation.index = annotation.index.astype(str)

    result = run_regulon_activity(
        adata,
        regulons,
        annotation=annotation,
        config=config,
        overrides=_parse_overrides(args.override),
        layer=args.layer,
    )
    paths = write_results(outdir, result)
    if args.write_h5ad:
        attach_to_anndata(adata, result)
        out_h5ad = outdir / "scored.h5ad"
        adata.write_h5ad(out_h5ad)
        paths["h5ad"] = out_h5ad

    for name, path in sorted(paths.items()):
        logger.info("Wrote %s: %s", name, path.as_posix())
    return 0


def main(argv: Iterable[str] | None = None) -> int:
    """Main CLI entry point.

    Args:
        argv: Command-line arguments (if None, uses sys.argv).

    Returns:
        Exit code.
    """
    parser = argparse.ArgumentParser(description="regact CLI")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("score", help="Score, binarize and rank regulons on an .h5ad file")

    args, remainder = parser.parse_known_args(list(argv) if argv is not None else None)
    if args.command == "score":
        return score_main(remainder)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
