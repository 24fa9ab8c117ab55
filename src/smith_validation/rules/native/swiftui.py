"""SwiftUI pack: view body size and view state rules."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from smith_validation.rules.base import NativeRule, RuleCategory, RuleConfiguration
from smith_validation.violations import Severity

if TYPE_CHECKING:
    from smith_validation.context.source_context import SourceContext
    from smith_validation.violations import ArchitecturalViolation

_BODY_START = re.compile(r"\bvar\s+body\s*:\s*some\s+View\s*\{")
_VIEW_TOKENS = re.compile(
    r"\b(?:Text|Button|Image|HStack|VStack|ZStack|LazyVStack|LazyHStack|Spacer|"
    r"Rectangle|Circle|ScrollView|List|NavigationView|NavigationStack|TabView|ForEach)\b"
)
_CONDITIONAL_TOKENS = re.compile(r"\b(?:if|switch|guard)\b")
_CLOSURE_TOKENS = re.compile(r"\.\s*\w+\s*(?:\([^)]*\))?\s*\{")


def _body_blocks(text: str) -> list[tuple[int, str]]:
    """Return ``(line, body text)`` for every ``var body: some View`` block.

    Brace matching is textual; braces inside string literals count too.
    """
    blocks: list[tuple[int, str]] = []
    for match in _BODY_START.finditer(text):
        depth = 1
        i = match.end()
        while i < len(text) and depth:
            ch = text[i]
            if ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
            i += 1
        line = text.count("\n", 0, match.start()) + 1
        blocks.append((line, text[match.end() : i - 1]))
    return blocks


class ViewBodyComplexity(NativeRule):
    """Scores each view body as ``views + 2 * conditionals + 1.5 * closures``."""

    @dataclass(frozen=True)
    class Configuration(RuleConfiguration):
        severity: Severity = Severity.MEDIUM
        confidence: float = 0.8
        max_complexity: float = 15.0

    name = "SwiftUI-1.1-ViewBodyComplexity"
    category = RuleCategory.SWIFTUI
    description = "SwiftUI view bodies should be split before they become hard to read."

    configuration: ViewBodyComplexity.Configuration

    def check(self, context: SourceContext) -> list[ArchitecturalViolation]:
        found: list[ArchitecturalViolation] = []
        threshold = self.configuration.max_complexity
        for line, body in _body_blocks(context.raw_source_text()):
            views = len(_VIEW_TOKENS.findall(body))
            conditionals = len(_CONDITIONAL_TOKENS.findall(body))
            closures = len(_CLOSURE_TOKENS.findall(body))
            score = views + conditionals * 2 + closures * 1.5
            if score <= threshold:
                continue
            found.append(
                self.violation(
                    context,
                    line=line,
                    message=(
                        f"View body complexity {score:g} exceeds {threshold:g} "
                        f"({views} views, {conditionals} conditionals, {closures} closures)"
                    ),
                    recommendation="Extract parts of the body into smaller subviews.",
                    metadata={
                        "score": f"{score:g}",
                        "views": str(views),
                        "conditionals": str(conditionals),
                        "closures": str(closures),
                        "threshold": f"{threshold:g}",
                    },
                )
            )
        return found


class StateManagement(NativeRule):
    """Flags views that hold too much ``@State`` or too much structure overall."""

    @dataclass(frozen=True)
    class Configuration(RuleConfiguration):
        severity: Severity = Severity.MEDIUM
        confidence: float = 0.7
        max_state_properties: int = 12
        max_methods: int = 12
        max_properties: int = 20

    name = "SwiftUI-1.2-StateManagement"
    category = RuleCategory.SWIFTUI
    description = "Views with many @State properties should move state into a model or reducer."

    configuration: StateManagement.Configuration

    def check(self, context: SourceContext) -> list[ArchitecturalViolation]:
        config = self.configuration
        found: list[ArchitecturalViolation] = []
        for view in context.declarations("struct"):
            if not view.conforms_to("View"):
                continue

            state = [p.name for p in view.properties if "State" in p.attributes]
            if len(state) > config.max_state_properties:
                found.append(
                    self.violation(
                        context,
                        line=view.line,
                        message=(
                            f"View '{view.name}' has {len(state)} @State properties "
                            f"(threshold: {config.max_state_properties})"
                        ),
                        recommendation=(
                            "Move related state into an @Observable model or a TCA feature "
                            "and split the view into smaller components."
                        ),
                        metadata={
                            "finding": "state_properties",
                            "view": view.name,
                            "state_property_count": str(len(state)),
                            "threshold": str(config.max_state_properties),
                        },
                    )
                )

            overgrown = view.property_count > config.max_properties or (
                view.method_count > config.max_methods
                and view.property_count > config.max_methods
            )
            if overgrown:
                found.append(
                    self.violation(
                        context,
                        line=view.line,
                        message=(
                            f"View '{view.name}' has {view.property_count} stored properties "
                            f"and {view.method_count} methods"
                        ),
                        recommendation=(
                            "Keep views declarative: move logic into a model and derive "
                            "values with computed properties."
                        ),
                        metadata={
                            "finding": "overgrown_view",
                            "view": view.name,
                            "property_count": str(view.property_count),
                            "method_count": str(view.method_count),
                        },
                    )
                )
        return found
