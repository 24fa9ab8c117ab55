"""Built-in native rule packs."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from smith_validation.rules.native.general import FileSize
from smith_validation.rules.native.swiftui import StateManagement, ViewBodyComplexity
from smith_validation.rules.native.tca import (
    ClosureInjection,
    MonolithicFeatures,
    TightlyCoupledState,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from smith_validation.rules.base import NativeRule
    from smith_validation.rules.registry import RuleRegistry

# Pack name -> rule classes, in registration order.
BUILTIN_PACKS: dict[str, tuple[type[NativeRule], ...]] = {
    "TCA": (MonolithicFeatures, ClosureInjection, TightlyCoupledState),
    "SwiftUI": (ViewBodyComplexity, StateManagement),
    "General": (FileSize,),
}


def builtin_rule_names() -> set[str]:
    return {cls.name for classes in BUILTIN_PACKS.values() for cls in classes}


def build_builtin_packs(
    rule_options: Mapping[str, Mapping[str, Any]] | None = None,
) -> dict[str, list[NativeRule]]:
    """Instantiate every built-in rule, applying per-rule option maps.

    Raises :class:`ConfigurationError` when an option map does not fit the
    rule's configuration.
    """
    options = rule_options or {}
    return {
        pack: [cls.from_options(options.get(cls.name, {})) for cls in classes]
        for pack, classes in BUILTIN_PACKS.items()
    }


def register_builtin_packs(
    registry: RuleRegistry,
    rule_options: Mapping[str, Mapping[str, Any]] | None = None,
    *,
    disabled_packs: set[str] | frozenset[str] = frozenset(),
) -> None:
    for pack, rules in build_builtin_packs(rule_options).items():
        registry.register_pack(pack, rules, enabled=pack not in disabled_packs)


__all__ = [
    "BUILTIN_PACKS",
    "ClosureInjection",
    "FileSize",
    "MonolithicFeatures",
    "StateManagement",
    "TightlyCoupledState",
    "ViewBodyComplexity",
    "build_builtin_packs",
    "builtin_rule_names",
    "register_builtin_packs",
]
