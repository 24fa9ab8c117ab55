"""Tests for smith_validation.rules.registry: pack loading and rule lifecycle."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from smith_validation.errors import ConfigurationError, DiscoveryError, RuleLoadError
from smith_validation.rules.base import RuleCategory, RuleState
from smith_validation.rules.native import MonolithicFeatures, register_builtin_packs
from smith_validation.rules.registry import RuleRegistry

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from tests.conftest import KeywordRule


VALID_A = '''RULE_NAME = "Script-A"
CATEGORY = "maintainability"

def validate(ast, sink):
    if "TODO" in ast.raw_source_text():
        sink.add_violation("todo left in file")
'''

VALID_B = '''RULE_NAME = "Script-B"
CATEGORY = "performance"
SEVERITY = "low"

def validate(ast, sink):
    pass
'''

MALFORMED = "def validate(ast, sink)\n    pass\n"


def _script_pack(root: Path) -> Path:
    pack = root / "pack"
    (pack / "nested").mkdir(parents=True)
    (pack / "a_rule.py").write_text(VALID_A)
    (pack / "nested" / "b_rule.py").write_text(VALID_B)
    (pack / "broken.py").write_text(MALFORMED)
    (pack / "_helpers.py").write_text("this is not python at all")
    (pack / "notes.txt").write_text("ignored")
    return pack


class TestScriptPacks:
    def test_two_valid_one_malformed(self, tmp_path: Path) -> None:
        registry = RuleRegistry()
        registry.add_script_pack("custom", _script_pack(tmp_path))
        descriptors = registry.load_rules()

        assert [d.name for d in descriptors] == ["Script-A", "Script-B"]
        assert len(registry.active_rules()) == 2
        assert len(registry.load_errors) == 1
        error = registry.load_errors[0]
        assert isinstance(error, RuleLoadError)
        assert error.name == "broken"
        assert error.path is not None and error.path.endswith("broken.py")
        assert registry.state("broken") is RuleState.LOAD_FAILED

    def test_load_is_idempotent(self, tmp_path: Path) -> None:
        registry = RuleRegistry()
        registry.add_script_pack("custom", _script_pack(tmp_path))
        first = registry.load_rules()
        second = registry.load_rules()
        assert first == second
        assert [d.rule for d in first] == [d.rule for d in second]

    def test_reload_returns_same_names(self, tmp_path: Path) -> None:
        registry = RuleRegistry()
        registry.add_script_pack("custom", _script_pack(tmp_path))
        registry.load_rules()
        names_1 = [d.name for d in registry.reload_rules()]
        names_2 = [d.name for d in registry.reload_rules()]
        assert names_1 == names_2 == ["Script-A", "Script-B"]

    def test_reload_picks_up_new_script(self, tmp_path: Path) -> None:
        pack = _script_pack(tmp_path)
        registry = RuleRegistry()
        registry.add_script_pack("custom", pack)
        registry.load_rules()
        (pack / "c_rule.py").write_text('RULE_NAME = "Script-C"\ndef validate(ast, sink):\n    pass\n')
        assert registry.metadata("Script-C") is None
        registry.reload_rules()
        assert registry.metadata("Script-C") is not None

    def test_failed_reload_keeps_previous_rules(self, tmp_path: Path) -> None:
        pack = _script_pack(tmp_path)
        registry = RuleRegistry()
        registry.add_script_pack("custom", pack)
        before = [d.name for d in registry.load_rules()]
        (pack / "dup.py").write_text(VALID_A)
        with pytest.raises(ConfigurationError, match="Duplicate rule name 'Script-A'"):
            registry.reload_rules()
        assert [d.name for d in registry.load_rules()] == before

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(DiscoveryError):
            RuleRegistry().add_script_pack("custom", tmp_path / "missing")

    def test_metadata_and_categories(self, tmp_path: Path) -> None:
        registry = RuleRegistry()
        registry.add_script_pack("custom", _script_pack(tmp_path))
        d = registry.metadata("Script-B")
        assert d is None  # not loaded yet
        registry.load_rules()
        d = registry.metadata("Script-B")
        assert d is not None
        assert d.pack == "custom"
        assert d.is_script
        assert [x.name for x in registry.rules_by_category("performance")] == ["Script-B"]
        assert registry.rules_by_category(RuleCategory.TCA) == []


class TestNativePacks:
    def test_registration_order(self, keyword_rule: Callable[..., KeywordRule]) -> None:
        registry = RuleRegistry()
        registry.register_pack("first", [keyword_rule("b", "x"), keyword_rule("a", "y")])
        registry.register_pack("second", [keyword_rule("c", "z")])
        assert [d.name for d in registry.load_rules()] == ["b", "a", "c"]
        assert [d.pack for d in registry.load_rules()] == ["first", "first", "second"]

    def test_duplicate_across_packs(self, keyword_rule: Callable[..., KeywordRule]) -> None:
        registry = RuleRegistry()
        registry.register_pack("first", [keyword_rule("same", "x")])
        registry.register_pack("second", [keyword_rule("same", "y")])
        with pytest.raises(ConfigurationError, match="Duplicate rule name 'same'"):
            registry.load_rules()

    def test_duplicate_native_and_script(
        self, tmp_path: Path, keyword_rule: Callable[..., KeywordRule]
    ) -> None:
        registry = RuleRegistry()
        registry.register_pack("native", [keyword_rule("Script-A", "x")])
        registry.add_script_pack("custom", _script_pack(tmp_path))
        with pytest.raises(ConfigurationError, match="Script-A"):
            registry.load_rules()

    def test_duplicate_pack_name(self, keyword_rule: Callable[..., KeywordRule]) -> None:
        registry = RuleRegistry()
        registry.register_pack("p", [keyword_rule("a", "x")])
        with pytest.raises(ConfigurationError, match="Duplicate pack name"):
            registry.register_pack("p", [keyword_rule("b", "x")])

    def test_rejects_non_rules(self) -> None:
        with pytest.raises(ConfigurationError, match="Rule protocol"):
            RuleRegistry().register_pack("p", [object()])  # type: ignore[list-item]

    def test_builtin_packs(self) -> None:
        registry = RuleRegistry()
        register_builtin_packs(registry)
        names = [d.name for d in registry.load_rules()]
        assert names == [
            "TCA-1.1-MonolithicFeatures",
            "TCA-1.2-ClosureInjection",
            "TCA-1.5-TightlyCoupledState",
            "SwiftUI-1.1-ViewBodyComplexity",
            "SwiftUI-1.2-StateManagement",
            "General-1.1-FileSize",
        ]
        d = registry.metadata("TCA-1.1-MonolithicFeatures")
        assert d is not None
        assert d.origin.startswith("native:")
        assert isinstance(d.rule, MonolithicFeatures)


class TestLifecycle:
    def test_states(self, keyword_rule: Callable[..., KeywordRule]) -> None:
        registry = RuleRegistry()
        registry.register_pack("p", [keyword_rule("a", "x")])
        assert registry.state("a") is RuleState.UNLOADED
        registry.load_rules()
        assert registry.state("a") is RuleState.ACTIVE
        registry.deactivate("a")
        assert registry.state("a") is RuleState.DEACTIVATED
        assert registry.active_rules() == []
        registry.activate("a")
        assert registry.state("a") is RuleState.ACTIVE
        assert registry.state("unknown") is RuleState.UNLOADED

    def test_deactivation_survives_reload(self, tmp_path: Path) -> None:
        registry = RuleRegistry()
        registry.add_script_pack("custom", _script_pack(tmp_path))
        registry.load_rules()
        registry.deactivate("Script-A")
        registry.reload_rules()
        assert registry.state("Script-A") is RuleState.DEACTIVATED
        assert [r.descriptor.name for r in registry.active_rules()] == ["Script-B"]

    def test_failed_rule_cannot_be_activated(self, tmp_path: Path) -> None:
        registry = RuleRegistry()
        registry.add_script_pack("custom", _script_pack(tmp_path))
        registry.load_rules()
        with pytest.raises(ConfigurationError, match="failed to load"):
            registry.activate("broken")

    def test_pack_toggle(self, keyword_rule: Callable[..., KeywordRule]) -> None:
        registry = RuleRegistry()
        registry.register_pack("p", [keyword_rule("a", "x")])
        registry.register_pack("q", [keyword_rule("b", "x")], enabled=False)
        assert [r.descriptor.name for r in registry.active_rules()] == ["a"]
        registry.enable_pack("q")
        registry.disable_pack("p")
        assert [r.descriptor.name for r in registry.active_rules()] == ["b"]
        assert registry.state("a") is RuleState.DEACTIVATED

    def test_unknown_pack_toggle(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown rule pack"):
            RuleRegistry().disable_pack("nope")

    def test_registries_are_independent(self, keyword_rule: Callable[..., KeywordRule]) -> None:
        one = RuleRegistry()
        two = RuleRegistry()
        one.register_pack("p", [keyword_rule("a", "x")])
        assert len(one) == 1
        assert len(two) == 0


class TestScriptSources:
    def test_register_source_like_a_file(self) -> None:
        registry = RuleRegistry()
        descriptor = registry.register_script_source(VALID_A, "stored_a")
        assert descriptor is not None
        assert descriptor.name == "Script-A"
        assert descriptor.pack == "store"
        assert descriptor.origin == "<store:stored_a>"
        assert registry.state("Script-A") is RuleState.ACTIVE

    def test_malformed_source_is_recorded_like_a_file(self) -> None:
        registry = RuleRegistry()
        registry.register_script_source(VALID_A, "stored_a")
        assert registry.register_script_source(MALFORMED, "broken") is None
        assert [d.name for d in registry.load_rules()] == ["Script-A"]
        (error,) = registry.load_errors
        assert isinstance(error, RuleLoadError)
        assert error.name == "broken"
        assert error.path is None
        assert registry.state("broken") is RuleState.LOAD_FAILED
        assert registry.state("Script-A") is RuleState.ACTIVE

    def test_duplicate_source_is_rolled_back(self) -> None:
        registry = RuleRegistry()
        registry.register_script_source(VALID_A, "one")
        with pytest.raises(ConfigurationError):
            registry.register_script_source(VALID_A, "two")
        assert [d.origin for d in registry.load_rules()] == ["<store:one>"]

    def test_summary_groups_by_category(self, tmp_path: Path) -> None:
        registry = RuleRegistry()
        register_builtin_packs(registry)
        registry.add_script_pack("custom", _script_pack(tmp_path))
        text = registry.summary()
        assert text.startswith("Rule registry: 8 rules (8 active)")
        assert "[tca] 3 rule(s)" in text
        assert "[performance] 1 rule(s)" in text
        assert "Load errors: 1" in text
