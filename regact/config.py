"""Configuration loading utilities for regact pipelines."""

from __future__ import annotations

import json
from dataclasses import fields
from pathlib import Path
from typing import Any

from regact.core.types import (
    AUCConfig,
    PipelineConfig,
    RankingConfig,
    RSSConfig,
    ThresholdConfig,
)
from regact.errors import ConfigurationError

_SECTIONS: dict[str, type] = {
    "ranking": RankingConfig,
    "auc": AUCConfig,
    "thresholds": ThresholdConfig,
    "rss": RSSConfig,
}


def load_json_config(path: str | Path) -> dict[str, Any]:
    """Load and validate a pipeline config from a JSON file."""
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path.suffix.lower() != ".json":
        raise ValueError(
            f"Unsupported config format for '{config_path}'. Use a .json config file."
        )

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ValueError(
            f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
            f"column {exc.colno}: {exc.msg}"
        ) from exc

    if not isinstance(data, dict):
        raise ValueError(
            f"Invalid config root in '{config_path}': expected JSON object, got {type(data).__name__}."
        )
    return data


def _build_section(name: str, cls: type, payload: Any) -> Any:
    if payload is None:
        return cls()
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Config section '{name}' must be an object.")
    allowed = {f.name for f in fields(cls)}
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in config section '{name}': {', '.join(unknown)}."
        )
    return cls(**payload)


def configs_from_dict(data: dict[str, Any]) -> PipelineConfig:
    """Build the frozen PipelineConfig from a parsed config mapping."""
    allowed = set(_SECTIONS) | {"min_regulon_size"}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigurationError(f"Unknown config keys: {', '.join(unknown)}.")
    sections = {name: _build_section(name, cls, data.get(name)) for name, cls in _SECTIONS.items()}
    return PipelineConfig(min_regulon_size=int(data.get("min_regulon_size", 10)), **sections)


def load_pipeline_config(path: str | Path) -> PipelineConfig:
    return configs_from_dict(load_json_config(path))
