from __future__ import annotations

import json
import logging
from pathlib import Path

import pandas as pd
import pytest

from regact.pipeline.io import detect_obs_col, setup_logger, write_json


class _DummyAdata:
    def __init__(self, columns: dict[str, list[str]]):
        self.obs = pd.DataFrame(columns)


def test_detect_obs_col_uses_provided_or_candidate():
    adata = _DummyAdata({"donor_id": ["d1", "d2"], "celltype": ["a", "b"]})
    assert detect_obs_col(adata, "donor_id", ["cell_type"]) == "donor_id"
    assert detect_obs_col(adata, None, ["cell_type", "celltype"]) == "celltype"
    with pytest.raises(KeyError):
        detect_obs_col(adata, "missing", ["cell_type"])
    with pytest.raises(KeyError, match="Tried"):
        detect_obs_col(adata, None, ["cell_type"])


def test_write_json_creates_parent(tmp_path: Path):
    out = tmp_path / "nested" / "payload.json"
    write_json(out, {"b": 1, "a": [1, 2]})
    assert json.loads(out.read_text(encoding="utf-8")) == {"a": [1, 2], "b": 1}


def test_setup_logger_writes_file(tmp_path: Path):
    log_path = tmp_path / "logs" / "run.log"
    logger = setup_logger(log_path, "regact.test_io")
    logger.info("scored %d regulons", 3)
    for handler in logger.handlers:
        handler.flush()
    text = log_path.read_text(encoding="utf-8")
    assert "| INFO | scored 3 regulons" in text
    assert logger.level == logging.INFO
    setup_logger(log_path, "regact.test_io")
    assert len(logger.handlers) == 2
