from __future__ import annotations

from pathlib import Path

import pytest

from regact.errors import EmptyRegulonError, InvalidInputError
from regact.regulons import (
    Regulon,
    coerce_regulons,
    filter_regulons,
    read_gmt,
    regulons_from_mapping,
)


def test_regulon_dedupes_genes_and_derives_tf():
    reg = Regulon("STAT1(+)", ("IRF1", "GBP1", "IRF1"))
    assert reg.genes == ("IRF1", "GBP1")
    assert reg.size == 2
    assert reg.tf == "STAT1"
    with pytest.raises(EmptyRegulonError):
        Regulon("EMPTY", ())
    with pytest.raises(InvalidInputError, match="name is empty"):
        Regulon("  ", ("A",))


def test_read_gmt(tmp_path: Path):
    gmt = tmp_path / "regs.gmt"
    gmt.write_text(
        "STAT1(+)\tfrom scenic\tIRF1\tGBP1\n\nMYC(+)\t\tNPM1\tNCL\tNPM1\n",
        encoding="utf-8",
    )
    regs = read_gmt(gmt)
    assert [r.name for r in regs] == ["STAT1(+)", "MYC(+)"]
    assert regs[1].genes == ("NPM1", "NCL")
    assert regs[0].metadata["description"] == "from scenic"


def test_read_gmt_errors(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        read_gmt(tmp_path / "missing.gmt")
    bad = tmp_path / "bad.gmt"
    bad.write_text("ONLYNAME\tdesc\n", encoding="utf-8")
    with pytest.raises(InvalidInputError, match="Malformed GMT line 1"):
        read_gmt(bad)


def test_filter_regulons_reports_exclusions(caplog):
    genes = [f"G{i}" for i in range(20)]
    regs = regulons_from_mapping(
        {
            "BIG": [f"G{i}" for i in range(12)] + ["ABSENT"],
            "SMALL": ["G1", "G2", "G3"],
            "GHOST": ["X1", "X2"],
        }
    )
    with caplog.at_level("WARNING"):
        kept, report = filter_regulons(regs, genes, min_size=10)
    assert [r.name for r in kept] == ["BIG"]
    assert report.kept == ("BIG",)
    assert set(report.excluded) == {"SMALL", "GHOST"}
    assert "below minimum size" in report.excluded["SMALL"]
    assert "no genes present" in report.excluded["GHOST"]
    assert report.n_genes_dropped["BIG"] == 1
    assert all(d.kind == "excluded_regulon" for d in report.diagnostics)
    assert "Excluded 2 of 3 regulons" in caplog.text
    with pytest.raises(ValueError):
        filter_regulons(regs, genes, min_size=0)


def test_coerce_regulons():
    regs, diags = coerce_regulons({"A": ["g1"], "B": []})
    assert [r.name for r in regs] == ["A"]
    assert [(d.entity, d.kind) for d in diags] == [("B", "EmptyRegulonError")]
    with pytest.raises(InvalidInputError, match="Duplicated regulon names"):
        coerce_regulons([Regulon("A", ("g1",)), Regulon("A", ("g2",))])
