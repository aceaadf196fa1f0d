from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class CvtsudoersError(Exception):
    """
    Base for every failure the driver reports.

    `code` is a dotted identifier (`usage.invalid`, `config.schema_invalid`,
    `parse.error`, ...); `data` carries structured context for the trace.
    """

    code: str
    message: str
    data: dict[str, Any] | None = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class UsageError(CvtsudoersError):
    """Bad command line; main() prints the usage line and exits 1."""


class ValidationError(CvtsudoersError):
    """Driver config failed to load or match its schema."""


class ContextError(CvtsudoersError):
    """Invoking identity could not be resolved."""


class DefaultsError(CvtsudoersError):
    pass


class ConversionError(CvtsudoersError):
    @property
    def path(self) -> Optional[str]:
        return (self.data or {}).get("path")

    @property
    def line(self) -> Optional[int]:
        return (self.data or {}).get("line")

    @property
    def is_parse_error(self) -> bool:
        return self.code == "parse.error"
