"""TCA pack: rules for the shape and coupling of The Composable Architecture features."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from smith_validation.errors import ConfigurationError
from smith_validation.rules.base import NativeRule, RuleCategory, RuleConfiguration
from smith_validation.violations import Severity

if TYPE_CHECKING:
    from smith_validation.context.declarations import DeclarationInfo, PropertyInfo
    from smith_validation.context.source_context import SourceContext
    from smith_validation.violations import ArchitecturalViolation


def _is_state_name(name: str) -> bool:
    return name == "State" or name.endswith("State")


def _is_action_name(name: str) -> bool:
    return name == "Action" or name.endswith("Action")


class MonolithicFeatures(NativeRule):
    """Flags State structs and Action enums that have grown past a feature's budget."""

    @dataclass(frozen=True)
    class Configuration(RuleConfiguration):
        severity: Severity = Severity.HIGH
        confidence: float = 0.85
        max_state_properties: int = 15
        max_action_cases: int = 40

    name = "TCA-1.1-MonolithicFeatures"
    category = RuleCategory.TCA
    description = "State structs and Action enums should stay small enough to reason about."

    configuration: MonolithicFeatures.Configuration

    def check(self, context: SourceContext) -> list[ArchitecturalViolation]:
        config = self.configuration
        found: list[ArchitecturalViolation] = []

        for decl in context.declarations("struct"):
            if not _is_state_name(decl.name) or decl.property_count <= config.max_state_properties:
                continue
            found.append(
                self.violation(
                    context,
                    line=decl.line,
                    message=(
                        f"State struct '{decl.name}' has {decl.property_count} properties "
                        f"(threshold: {config.max_state_properties})"
                    ),
                    recommendation=(
                        "Split the feature into child features and scope the state "
                        "they own into their own State types."
                    ),
                    metadata={
                        "declaration": decl.name,
                        "property_count": str(decl.property_count),
                        "threshold": str(config.max_state_properties),
                        "excess": str(decl.property_count - config.max_state_properties),
                    },
                )
            )

        for decl in context.declarations("enum"):
            if not _is_action_name(decl.name) or decl.case_count <= config.max_action_cases:
                continue
            found.append(
                self.violation(
                    context,
                    line=decl.line,
                    message=(
                        f"Action enum '{decl.name}' has {decl.case_count} cases "
                        f"(threshold: {config.max_action_cases})"
                    ),
                    recommendation=(
                        "Group related cases into nested action enums owned by child features."
                    ),
                    metadata={
                        "declaration": decl.name,
                        "case_count": str(decl.case_count),
                        "threshold": str(config.max_action_cases),
                        "excess": str(decl.case_count - config.max_action_cases),
                    },
                )
            )
        return found


_CLOSURE_CALL_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("sink", re.compile(r"\.sink\s*\(")),
    ("onReceive", re.compile(r"\bonReceive\s*\([^)]*\)\s*\{")),
    ("onChange", re.compile(r"\bonChange\s*\([^)]*\)\s*\{")),
    ("onAppear", re.compile(r"\bonAppear\s*(?:\([^)]*\)\s*)?\{")),
)
_CAPTURE_LIST = re.compile(r"\[\s*(?:weak|unowned)\s+self\s*\]")


class ClosureInjection(NativeRule):
    """Flags escaping closure calls whose capture list does not weaken ``self``.

    Textual heuristic: a closure call on one line is considered safe when
    the same line carries ``[weak self]`` or ``[unowned self]``.
    """

    @dataclass(frozen=True)
    class Configuration(RuleConfiguration):
        severity: Severity = Severity.MEDIUM
        confidence: float = 0.75

    name = "TCA-1.2-ClosureInjection"
    category = RuleCategory.TCA
    description = "Closures stored by publishers or view modifiers should not capture self strongly."

    def check(self, context: SourceContext) -> list[ArchitecturalViolation]:
        found: list[ArchitecturalViolation] = []
        for number, text in enumerate(context.lines, start=1):
            if text.lstrip().startswith("//") or _CAPTURE_LIST.search(text):
                continue
            for label, pattern in _CLOSURE_CALL_PATTERNS:
                if pattern.search(text):
                    found.append(
                        self.violation(
                            context,
                            line=number,
                            message=f"'{label}' closure without [weak self] or [unowned self]",
                            recommendation=(
                                "Add a [weak self] or [unowned self] capture list to avoid "
                                "retain cycles."
                            ),
                            metadata={"pattern": label},
                        )
                    )
                    break
        return found


# Checked in order; the first keyword found in a property's name or type wins.
_DOMAIN_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("user", "User"),
    ("article", "Article"),
    ("search", "Search"),
    ("filter", "Filter"),
    ("folder", "Folder"),
    ("tag", "Tag"),
    ("share", "Share"),
    ("import", "Import"),
    ("export", "Export"),
    ("insight", "Insight"),
    ("analytic", "Analytics"),
    ("setting", "Settings"),
    ("cache", "Cache"),
    ("network", "Network"),
    ("sync", "Sync"),
    ("auth", "Authentication"),
    ("theme", "Theme"),
    ("loading", "Loading"),
    ("error", "Error"),
)


def _infer_domain(prop: PropertyInfo) -> str | None:
    name = prop.name.lower()
    type_name = prop.type_name.lower()
    for keyword, domain in _DOMAIN_KEYWORDS:
        if keyword in name or keyword in type_name:
            return domain
    if "ui" in name or "view" in type_name:
        return "UI"
    return None


def _is_reducer(decl: DeclarationInfo | None) -> bool:
    return decl is not None and (decl.has_attribute("Reducer") or decl.conforms_to("Reducer"))


class TightlyCoupledState(NativeRule):
    """Flags reducer State structs that embed many child features or mix domains.

    A property counts as a child feature when its type contains one of
    ``child_feature_patterns`` (case-insensitive) or it is marked
    ``@Presents``.  Domains are inferred from property names and types.
    """

    @dataclass(frozen=True)
    class Configuration(RuleConfiguration):
        severity: Severity = Severity.MEDIUM
        confidence: float = 0.6
        max_child_features: int = 5
        max_domains: int = 2
        child_feature_patterns: tuple[str, ...] = ("Feature", "State", "Model", "Data")

        def __post_init__(self) -> None:
            super().__post_init__()
            patterns = self.child_feature_patterns
            if not isinstance(patterns, (list, tuple)) or not all(
                isinstance(p, str) and p for p in patterns
            ):
                msg = f"'child_feature_patterns' must be a list of strings, got {patterns!r}"
                raise ConfigurationError(msg)
            object.__setattr__(self, "child_feature_patterns", tuple(patterns))

    name = "TCA-1.5-TightlyCoupledState"
    category = RuleCategory.TCA
    description = "Reducer state should not bundle many child features or unrelated domains."

    configuration: TightlyCoupledState.Configuration

    def _is_child_feature(self, prop: PropertyInfo) -> bool:
        if "Presents" in prop.attributes:
            return True
        type_name = prop.type_name.lower()
        return any(p.lower() in type_name for p in self.configuration.child_feature_patterns)

    def check(self, context: SourceContext) -> list[ArchitecturalViolation]:
        config = self.configuration
        found: list[ArchitecturalViolation] = []

        for state in context.declarations("struct"):
            if state.name != "State" or state.parent is None:
                continue
            reducer = context.find_declaration(state.parent)
            if not _is_reducer(reducer):
                continue

            children = [p.name for p in state.properties if self._is_child_feature(p)]
            if len(children) >= config.max_child_features:
                found.append(
                    self.violation(
                        context,
                        line=state.line,
                        message=(
                            f"State of '{state.parent}' contains {len(children)} child feature "
                            f"properties (threshold: {config.max_child_features})"
                        ),
                        recommendation=(
                            "Extract child features into separate reducers composed with "
                            "Scope, or present them with @Presents."
                        ),
                        metadata={
                            "finding": "child_features",
                            "reducer": state.parent,
                            "child_feature_count": str(len(children)),
                            "child_features": ", ".join(children),
                            "threshold": str(config.max_child_features),
                        },
                    )
                )

            domains = sorted({d for d in map(_infer_domain, state.properties) if d is not None})
            if len(domains) > config.max_domains:
                found.append(
                    self.violation(
                        context,
                        line=state.line,
                        message=(
                            f"State of '{state.parent}' mixes {len(domains)} domains: "
                            f"{', '.join(domains)}"
                        ),
                        recommendation=(
                            "Split the reducer into domain-specific features or move "
                            "cross-cutting values into @Shared state."
                        ),
                        metadata={
                            "finding": "domain_mixing",
                            "reducer": state.parent,
                            "domains": ", ".join(domains),
                            "domain_count": str(len(domains)),
                        },
                        severity=Severity.LOW,
                    )
                )
        return found
