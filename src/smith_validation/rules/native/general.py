"""General pack: language-agnostic maintainability checks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from smith_validation.rules.base import NativeRule, RuleCategory, RuleConfiguration
from smith_validation.violations import Severity

if TYPE_CHECKING:
    from smith_validation.context.source_context import SourceContext
    from smith_validation.violations import ArchitecturalViolation


class FileSize(NativeRule):
    @dataclass(frozen=True)
    class Configuration(RuleConfiguration):
        severity: Severity = Severity.HIGH
        confidence: float = 0.85
        max_lines: int = 150

    name = "General-1.1-FileSize"
    category = RuleCategory.GENERAL
    description = "Files longer than the line budget should be split."

    configuration: FileSize.Configuration

    def check(self, context: SourceContext) -> list[ArchitecturalViolation]:
        meta = context.file_metadata()
        limit = self.configuration.max_lines
        if meta.line_count <= limit:
            return []
        return [
            self.violation(
                context,
                line=1,
                message=f"{meta.name} has {meta.line_count} lines (threshold: {limit})",
                recommendation="Extract smaller components from the file.",
                metadata={"line_count": str(meta.line_count), "threshold": str(limit)},
            )
        ]
