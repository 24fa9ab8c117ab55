"""Error taxonomy shared by the loader, the cache and the validation engine.

Only :class:`ConfigurationError` and :class:`DiscoveryError` abort a run.
Every other class is recovered where it occurs and turned into data
(a recorded load error or a synthetic violation).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class SmithValidationError(Exception):
    """Base class for all smith-validation errors."""


class ConfigurationError(SmithValidationError):
    """Raised for invalid configuration: duplicate rule names, bad globs, bad smith.yml."""


class DiscoveryError(SmithValidationError):
    """Raised when a directory to analyse does not exist."""


class ParseError(SmithValidationError):
    """Raised when a source file cannot be read or parsed."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class RuleLoadError(SmithValidationError):
    """A script rule could not be compiled or registered.

    Recorded against the offending rule only; sibling rules keep loading.
    """

    def __init__(self, message: str, *, name: str, path: Path | str | None = None) -> None:
        super().__init__(message)
        self.name = name
        self.path = str(path) if path is not None else None

    def __str__(self) -> str:
        location = f" ({self.path})" if self.path else ""
        return f"{self.name}{location}: {self.args[0]}"


class RuleExecutionError(SmithValidationError):
    """An uncaught failure inside a rule body."""

    def __init__(self, rule_name: str, cause: BaseException) -> None:
        super().__init__(f"Rule '{rule_name}' failed: {type(cause).__name__}: {cause}")
        self.rule_name = rule_name
        self.cause = cause


class CacheError(SmithValidationError):
    """Internal cache failure; callers treat it as a cache miss."""
