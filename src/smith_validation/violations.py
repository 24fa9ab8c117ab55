"""Violation model: the uniform value threaded through every component boundary."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, overload

# Findings at or above this confidence are candidates for automated fixes.
AUTOMATION_THRESHOLD: float = 0.8


class Severity(enum.IntEnum):
    """Ordered severity: ``LOW < MEDIUM < HIGH < CRITICAL``."""

    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str | Severity) -> Severity:
        """Return the severity named by *value* (case-insensitive).

        Raises ``ValueError`` for unknown names.
        """
        if isinstance(value, Severity):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            names = sorted(s.name.lower() for s in cls)
            msg = f"invalid severity '{value}', must be one of {names}"
            raise ValueError(msg) from None


def _freeze_metadata(metadata: Mapping[str, str] | None) -> Mapping[str, str]:
    return MappingProxyType({str(k): str(v) for k, v in (metadata or {}).items()})


@dataclass(frozen=True)
class ArchitecturalViolation:
    """A single finding produced by a rule."""

    severity: Severity
    rule: str
    file: str
    line: int
    message: str
    recommendation: str = ""
    metadata: Mapping[str, str] = field(default_factory=dict, hash=False)
    automation_confidence: float = 0.5

    def __post_init__(self) -> None:
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        confidence = float(self.automation_confidence)
        if not (0.0 <= confidence <= 1.0):
            msg = f"automation_confidence must be between 0.0 and 1.0, got {confidence}"
            raise ValueError(msg)
        object.__setattr__(self, "automation_confidence", confidence)
        object.__setattr__(self, "metadata", _freeze_metadata(self.metadata))

    @property
    def is_auto_fix_candidate(self) -> bool:
        return self.automation_confidence >= AUTOMATION_THRESHOLD

    def to_dict(self) -> dict[str, Any]:
        """Emitted report record."""
        return {
            "rule": self.rule,
            "severity": str(self.severity),
            "file": self.file,
            "line": self.line,
            "message": self.message,
            "recommendation": self.recommendation,
            "automation_confidence": self.automation_confidence,
            "metadata": dict(self.metadata),
        }

    def __str__(self) -> str:
        text = f"{str(self.severity).upper()}: {self.file}:{self.line} [{self.rule}] {self.message}"
        if self.recommendation:
            text += f"\n  Recommendation: {self.recommendation}"
        return text


class ViolationCollection(Sequence[ArchitecturalViolation]):
    """Immutable ordered sequence of violations.

    Order is the order violations were merged in; sorting never mutates,
    it returns a new collection.
    """

    __slots__ = ("_items",)

    def __init__(self, violations: Iterable[ArchitecturalViolation] = ()) -> None:
        self._items: tuple[ArchitecturalViolation, ...] = tuple(violations)

    @classmethod
    def merge(cls, collections: Iterable[ViolationCollection]) -> ViolationCollection:
        """Concatenate *collections* in the given order."""
        items: list[ArchitecturalViolation] = []
        for collection in collections:
            items.extend(collection)
        return cls(items)

    # -- Sequence protocol ---------------------------------------------------

    @overload
    def __getitem__(self, index: int) -> ArchitecturalViolation: ...

    @overload
    def __getitem__(self, index: slice) -> ViolationCollection: ...

    def __getitem__(self, index: int | slice) -> ArchitecturalViolation | ViolationCollection:
        if isinstance(index, slice):
            return ViolationCollection(self._items[index])
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ArchitecturalViolation]:
        return iter(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ViolationCollection):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __add__(self, other: ViolationCollection) -> ViolationCollection:
        return ViolationCollection(self._items + tuple(other))

    def __repr__(self) -> str:
        return f"ViolationCollection({len(self._items)} violations)"

    def __str__(self) -> str:
        if not self._items:
            return "No violations found"
        return "\n\n".join(str(v) for v in self._items)

    # -- Queries ---------------------------------------------------------------

    @property
    def violations(self) -> tuple[ArchitecturalViolation, ...]:
        return self._items

    def filter(
        self,
        *,
        severity: Severity | str | None = None,
        rule: str | None = None,
        file: str | None = None,
        min_severity: Severity | str | None = None,
    ) -> ViolationCollection:
        """Return violations matching every given criterion (original order kept)."""
        sev = Severity.parse(severity) if severity is not None else None
        floor = Severity.parse(min_severity) if min_severity is not None else None
        return ViolationCollection(
            v
            for v in self._items
            if (sev is None or v.severity == sev)
            and (floor is None or v.severity >= floor)
            and (rule is None or v.rule == rule)
            and (file is None or v.file == file)
        )

    def count_by(
        self,
        *,
        severity: Severity | str | None = None,
        rule: str | None = None,
        file: str | None = None,
    ) -> int:
        return len(self.filter(severity=severity, rule=rule, file=file))

    def sorted_by_severity(self) -> ViolationCollection:
        """Stable sort, most severe first; ties keep insertion order."""
        return ViolationCollection(sorted(self._items, key=lambda v: v.severity, reverse=True))

    def sorted_by_rule(self) -> ViolationCollection:
        return ViolationCollection(sorted(self._items, key=lambda v: v.rule))

    def sorted_by_file(self) -> ViolationCollection:
        return ViolationCollection(sorted(self._items, key=lambda v: (v.file, v.line)))

    def automatable(self, threshold: float = AUTOMATION_THRESHOLD) -> ViolationCollection:
        """Violations whose automation confidence reaches *threshold*."""
        return ViolationCollection(v for v in self._items if v.automation_confidence >= threshold)

    def by_severity(self) -> dict[Severity, ViolationCollection]:
        """Group violations by severity, most severe first, every level present."""
        return {
            sev: ViolationCollection(v for v in self._items if v.severity == sev)
            for sev in sorted(Severity, reverse=True)
        }

    def severity_breakdown(self) -> dict[str, int]:
        return {str(sev): len(group) for sev, group in self.by_severity().items()}

    @property
    def has_critical(self) -> bool:
        return any(v.severity == Severity.CRITICAL for v in self._items)

    def to_list(self) -> list[dict[str, Any]]:
        return [v.to_dict() for v in self._items]
