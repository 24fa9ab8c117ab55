"""Validation report and its output formats (rich text, JSON, porcelain)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from smith_validation.violations import AUTOMATION_THRESHOLD, ViolationCollection

if TYPE_CHECKING:
    from smith_validation.cache import CacheStatistics
    from smith_validation.errors import RuleLoadError

_SEVERITY_MARKERS = {
    "critical": "✖",
    "high": "✗",
    "medium": "!",
    "low": "·",
}


@dataclass(frozen=True)
class ValidationReport:
    """Everything one run produced."""

    violations: ViolationCollection = field(default_factory=ViolationCollection)
    rules_evaluated: int = 0
    files_scanned: int = 0
    elapsed_ms: float = 0.0
    load_errors: tuple[RuleLoadError, ...] = ()
    cache: CacheStatistics | None = None

    @property
    def auto_fix_candidates(self) -> int:
        return len(self.violations.automatable(AUTOMATION_THRESHOLD))

    def summary(self) -> dict[str, object]:
        summary: dict[str, object] = {
            "rules_evaluated": self.rules_evaluated,
            "files_scanned": self.files_scanned,
            "violations_count": len(self.violations),
            "by_severity": self.violations.severity_breakdown(),
            "auto_fix_candidates": self.auto_fix_candidates,
            "load_errors": len(self.load_errors),
            "elapsed_ms": round(self.elapsed_ms, 1),
        }
        if self.cache is not None:
            summary["cache"] = {
                "hits": self.cache.hits,
                "misses": self.cache.misses,
                "size": self.cache.size,
                "hit_rate": round(self.cache.hit_rate, 3),
            }
        return summary


def format_rich(report: ValidationReport) -> str:
    """Format a report as human-readable text.

    Example output::

        Rules: 4 loaded
        Files: 12 scanned

        ✗ TCA-1.1-MonolithicFeatures [high, 0.85]
          Sources/Feature.swift:3 → State struct 'State' has 16 properties (threshold: 15)
          Split the feature into child features and scope the state ...

        1 violations found (4 rules evaluated, 0.2s)
    """
    lines: list[str] = [
        f"Rules: {report.rules_evaluated} loaded",
        f"Files: {report.files_scanned} scanned",
        "",
    ]
    for error in report.load_errors:
        lines.append(f"! failed to load {error}")
    if report.load_errors:
        lines.append("")

    elapsed_str = f"{report.elapsed_ms / 1000:.1f}s"
    if not report.violations:
        lines.append(
            f"✓ No violations found ({report.rules_evaluated} rules evaluated, {elapsed_str})"
        )
        return "\n".join(lines)

    for v in report.violations:
        marker = _SEVERITY_MARKERS[str(v.severity)]
        lines.append(f"{marker} {v.rule} [{v.severity}, {v.automation_confidence:.2f}]")
        lines.append(f"  {v.file}:{v.line} → {v.message}")
        if v.recommendation:
            lines.append(f"  {v.recommendation}")
        lines.append("")

    breakdown = ", ".join(
        f"{count} {name}" for name, count in report.violations.severity_breakdown().items() if count
    )
    lines.append(
        f"{len(report.violations)} violations found ({breakdown}; "
        f"{report.auto_fix_candidates} auto-fixable; "
        f"{report.rules_evaluated} rules evaluated, {elapsed_str})"
    )
    return "\n".join(lines)


def format_json(report: ValidationReport) -> str:
    """Format a report as JSON with a ``violations`` array and a ``summary`` object."""
    output: dict[str, object] = {
        "violations": report.violations.to_list(),
        "load_errors": [
            {"name": e.name, "path": e.path, "message": str(e.args[0])} for e in report.load_errors
        ],
        "summary": report.summary(),
    }
    return json.dumps(output, indent=2)


def format_porcelain(report: ValidationReport) -> str:
    """One line per violation: ``rule:severity:file:line:confidence:message``.

    Returns an empty string when there are no violations.
    """
    return "\n".join(
        f"{v.rule}:{v.severity}:{v.file}:{v.line}:{v.automation_confidence:.2f}:{v.message}"
        for v in report.violations
    )


FORMATTERS = {
    "rich": format_rich,
    "json": format_json,
    "porcelain": format_porcelain,
}
