"""Regulon gene sets: construction, GMT reading and size-policy filtering."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

from regact.errors import Diagnostic, EmptyRegulonError, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Regulon:
    """A transcription factor and its target genes.

    Names follow the ``TF(+)`` convention when they come from SCENIC-style
    tools; `tf` defaults to the name without that suffix.
    """

    name: str
    genes: tuple[str, ...]
    tf: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        name = str(self.name).strip()
        if name == "":
            raise InvalidInputError("Regulon name is empty.")
        genes = tuple(dict.fromkeys(str(g) for g in self.genes))
        if not genes:
            raise EmptyRegulonError(f"Regulon '{name}' has no genes.")
        object.__setattr__(self, "name", name)
        object.__setattr__(self, "genes", genes)
        if self.tf is None:
            object.__setattr__(self, "tf", name.split("(")[0].strip())

    @property
    def size(self) -> int:
        return len(self.genes)


@dataclass(frozen=True)
class RegulonFilterReport:
    """Which regulons passed the size policy and why others did not."""

    kept: tuple[str, ...]
    excluded: dict[str, str]
    n_genes_dropped: dict[str, int]
    diagnostics: list[Diagnostic] = field(default_factory=list)


def regulons_from_mapping(mapping: Mapping[str, Iterable[str]]) -> list[Regulon]:
    """Build regulons from ``{name: genes}``, preserving mapping order."""
    return [Regulon(name=str(name), genes=tuple(genes)) for name, genes in mapping.items()]


def read_gmt(path: str | Path) -> list[Regulon]:
    """Read regulons from a GMT file (``name<TAB>description<TAB>gene...``)."""
    gmt_path = Path(path)
    if not gmt_path.exists():
        raise FileNotFoundError(f"GMT file not found: {gmt_path}")

    out: list[Regulon] = []
    with open(gmt_path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            fields = [f.strip() for f in line.rstrip("\n").split("\t")]
            if len(fields) == 1 and fields[0] == "":
                continue
            if len(fields) < 3:
                raise InvalidInputError(
                    f"Malformed GMT line {lineno} in '{gmt_path}': expected "
                    "name, description and at least one gene."
                )
            genes = [g for g in fields[2:] if g != ""]
            try:
                out.append(
                    Regulon(
                        name=fields[0],
                        genes=tuple(genes),
                        metadata={"description": fields[1]},
                    )
                )
            except EmptyRegulonError as exc:
                raise InvalidInputError(f"GMT line {lineno}: {exc}") from exc
    return out


def filter_regulons(
    regulons: Iterable[Regulon],
    gene_ids: Iterable[str],
    min_size: int = 10,
) -> tuple[list[Regulon], RegulonFilterReport]:
    """Apply the minimum-size policy to regulons against a gene universe.

    Size is counted on genes present in `gene_ids`. Excluded regulons are
    reported, never silently dropped.
    """
    if int(min_size) < 1:
        raise ValueError("min_size must be at least 1.")
    universe = set(str(g) for g in gene_ids)

    kept: list[Regulon] = []
    excluded: dict[str, str] = {}
    dropped: dict[str, int] = {}
    diagnostics: list[Diagnostic] = []
    for reg in regulons:
        n_present = sum(1 for g in reg.genes if g in universe)
        dropped[reg.name] = reg.size - n_present
        if n_present == 0:
            reason = "no genes present in expression matrix"
        elif n_present < int(min_size):
            reason = f"{n_present} genes present, below minimum size {int(min_size)}"
        else:
            kept.append(reg)
            continue
        excluded[reg.name] = reason
        diagnostics.append(
            Diagnostic(entity=reg.name, kind="excluded_regulon", message=reason, stage="filter")
        )

    if excluded:
        logger.warning(
            "Excluded %d of %d regulons by size policy (min_size=%d).",
            len(excluded),
            len(excluded) + len(kept),
            int(min_size),
        )
    report = RegulonFilterReport(
        kept=tuple(r.name for r in kept),
        excluded=excluded,
        n_genes_dropped=dropped,
        diagnostics=diagnostics,
    )
    return kept, report


def coerce_regulons(
    regulons: Iterable[Regulon] | Mapping[str, Iterable[str]],
    stage: str = "input",
) -> tuple[list[Regulon], list[Diagnostic]]:
    """Normalize regulon input to a list; empty mapping entries become diagnostics.

    Raises:
        InvalidInputError: duplicated regulon names.
    """
    out: list[Regulon] = []
    diagnostics: list[Diagnostic] = []
    if isinstance(regulons, Mapping):
        for name, genes in regulons.items():
            try:
                out.append(Regulon(name=str(name), genes=tuple(genes)))
            except EmptyRegulonError as exc:
                logger.warning("Regulon %s skipped: %s", name, exc)
                diagnostics.append(Diagnostic.from_error(str(name), exc, stage))
    else:
        out = list(regulons)
    seen: set[str] = set()
    dup: list[str] = []
    for name in [r.name for r in out] + [d.entity for d in diagnostics]:
        if name in seen and name not in dup:
            dup.append(name)
        seen.add(name)
    if dup:
        raise InvalidInputError(f"Duplicated regulon names: {', '.join(dup[:5])}.")
    return out, diagnostics
