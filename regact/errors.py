"""Error kinds and per-entity diagnostic records."""

from __future__ import annotations

from dataclasses import dataclass


class RegactError(Exception):
    """Base class for all regact errors."""


class InvalidInputError(RegactError, ValueError):
    """Malformed expression input (negative, non-finite, misshapen, duplicated ids)."""


class EmptyRegulonError(RegactError, ValueError):
    """A regulon has no scorable genes left after filtering."""


class InsufficientDataError(RegactError, ValueError):
    """Too few cells or a degenerate distribution for fitting."""


class ConfigurationError(RegactError, ValueError):
    """Out-of-range or unknown configuration value."""


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal, per-entity problem recorded while a batch proceeds.

    - `entity`: regulon name, cell id or ``"regulon/category"`` pair.
    - `kind`: error class name (or a short tag such as ``"dropped_genes"``).
    """

    entity: str
    kind: str
    message: str
    stage: str

    @staticmethod
    def from_error(entity: str, error: Exception, stage: str) -> "Diagnostic":
        return Diagnostic(
            entity=str(entity),
            kind=type(error).__name__,
            message=str(error),
            stage=str(stage),
        )

    def to_json(self) -> dict[str, str]:
        return {
            "entity": self.entity,
            "kind": self.kind,
            "message": self.message,
            "stage": self.stage,
        }
