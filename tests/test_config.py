"""Tests for smith_validation.config: smith.yml parsing and registry assembly."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from smith_validation.config import (
    CONFIG_FILENAME,
    ProjectConfig,
    build_registry,
    load_config,
    parse_config,
    resolve_config,
)
from smith_validation.discovery import DEFAULT_INCLUDE_GLOBS
from smith_validation.errors import ConfigurationError, DiscoveryError
from smith_validation.rules.base import RuleState
from smith_validation.violations import Severity

SCRIPT_RULE = '''RULE_NAME = "Custom-1.1-NoPrint"
CATEGORY = "maintainability"

def validate(ast, sink):
    for number, line in enumerate(ast.lines(), start=1):
        if "print(" in line:
            sink.add_violation("print statement", line=number)
'''


def _write_config(root: Path, data: dict[str, object]) -> Path:
    path = root / CONFIG_FILENAME
    path.write_text(yaml.dump(data, default_flow_style=False))
    return path


def _script_pack(root: Path, name: str = "custom") -> Path:
    pack = root / "rules" / name
    pack.mkdir(parents=True)
    (pack / "no_print.py").write_text(SCRIPT_RULE)
    return pack


class TestParseConfig:
    def test_empty_document_gives_defaults(self, tmp_path: Path) -> None:
        config = parse_config(None, base_dir=tmp_path)
        assert config.files.include == DEFAULT_INCLUDE_GLOBS
        assert config.engine.max_workers == 1
        assert config.packs == ()
        assert config.disabled_rules == frozenset()

    def test_full_document(self, tmp_path: Path) -> None:
        config = parse_config(
            {
                "version": 1,
                "files": {"include": ["Sources/**/*.swift"], "exclude": ["**/Generated/**"]},
                "engine": {"workers": 4, "cache": False, "strict_parsing": True},
                "packs": [
                    {"name": "SwiftUI", "enabled": False},
                    {"name": "custom", "path": "rules/custom"},
                ],
                "rules": {
                    "General-1.1-FileSize": {"max_lines": 300},
                    "TCA-1.2-ClosureInjection": {"enabled": False},
                },
            },
            base_dir=tmp_path,
        )
        assert config.files.include == ("Sources/**/*.swift",)
        assert config.files.exclude == ("**/Generated/**",)
        assert config.engine.max_workers == 4
        assert config.engine.use_cache is False
        assert config.engine.strict_parsing is True
        assert [(p.name, p.enabled, p.is_script) for p in config.packs] == [
            ("SwiftUI", False, False),
            ("custom", True, True),
        ]
        assert config.packs[1].path == tmp_path / "rules" / "custom"
        assert dict(config.rules["General-1.1-FileSize"]) == {"max_lines": 300}
        assert dict(config.rules["TCA-1.2-ClosureInjection"]) == {}
        assert config.disabled_rules == frozenset({"TCA-1.2-ClosureInjection"})

    @pytest.mark.parametrize(
        ("data", "reason"),
        [
            ([1, 2], "YAML mapping"),
            ({"files": {}}, "missing required 'version'"),
            ({"version": 2}, "unsupported version"),
            ({"version": 1, "extra": True}, "unknown top-level"),
            ({"version": 1, "files": {"include": "*.swift"}}, "files.include"),
            ({"version": 1, "files": {"depth": 2}}, "unknown key"),
            ({"version": 1, "files": {"recursive": "yes"}}, "files.recursive"),
            ({"version": 1, "engine": {"workers": 0}}, "workers must be at least 1"),
            ({"version": 1, "engine": {"threads": 2}}, "unknown key"),
            ({"version": 1, "packs": {"name": "TCA"}}, "must be a list"),
            ({"version": 1, "packs": [{"enabled": True}]}, "missing required 'name'"),
            ({"version": 1, "packs": [{"name": "Nope"}]}, "not a built-in pack"),
            ({"version": 1, "packs": [{"name": "TCA", "path": "x"}]}, "shadows a built-in"),
            ({"version": 1, "packs": [{"name": "TCA"}, {"name": "TCA"}]}, "duplicate pack"),
            ({"version": 1, "rules": {"X": 3}}, "options must be a mapping"),
            ({"version": 1, "rules": {"X": {"enabled": "no"}}}, "'enabled' must be a boolean"),
        ],
    )
    def test_invalid_documents(self, tmp_path: Path, data: object, reason: str) -> None:
        with pytest.raises(ConfigurationError, match=reason):
            parse_config(data, base_dir=tmp_path)

    def test_absolute_pack_path_kept(self, tmp_path: Path) -> None:
        absolute = tmp_path / "elsewhere"
        config = parse_config(
            {"version": 1, "packs": [{"name": "abs", "path": str(absolute)}]},
            base_dir=tmp_path / "project",
        )
        assert config.packs[0].path == absolute


class TestLoadConfig:
    def test_load_from_file(self, tmp_path: Path) -> None:
        path = _write_config(tmp_path, {"version": 1, "engine": {"workers": 2}})
        config = load_config(path)
        assert config.engine.max_workers == 2
        assert config.source == path

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / CONFIG_FILENAME
        path.write_text("version: [1\n")
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_config(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="cannot read"):
            load_config(tmp_path / CONFIG_FILENAME)

    def test_resolve_without_file_uses_defaults(self, tmp_path: Path) -> None:
        assert resolve_config(tmp_path) == ProjectConfig()

    def test_resolve_finds_project_file(self, tmp_path: Path) -> None:
        _write_config(tmp_path, {"version": 1, "files": {"recursive": False}})
        assert resolve_config(tmp_path).files.recursive is False

    def test_explicit_path_wins(self, tmp_path: Path) -> None:
        _write_config(tmp_path, {"version": 1, "engine": {"workers": 2}})
        other = tmp_path / "ci.yml"
        other.write_text("version: 1\nengine:\n  workers: 3\n")
        assert resolve_config(tmp_path, other).engine.max_workers == 3


class TestBuildRegistry:
    def test_defaults_register_builtins(self) -> None:
        registry = build_registry(ProjectConfig())
        assert registry.pack_names == ["TCA", "SwiftUI", "General"]
        assert len(registry.active_rules()) == 6

    def test_rule_options_and_disabled_rules(self, tmp_path: Path) -> None:
        config = parse_config(
            {
                "version": 1,
                "rules": {
                    "General-1.1-FileSize": {"max_lines": 80, "severity": "critical"},
                    "TCA-1.2-ClosureInjection": {"enabled": False},
                },
            },
            base_dir=tmp_path,
        )
        registry = build_registry(config)
        file_size = registry.metadata("General-1.1-FileSize")
        assert file_size is not None
        assert file_size.default_severity is Severity.CRITICAL
        assert registry.state("TCA-1.2-ClosureInjection") is RuleState.DEACTIVATED

    def test_bad_rule_options(self, tmp_path: Path) -> None:
        config = parse_config(
            {"version": 1, "rules": {"General-1.1-FileSize": {"max_lines": -5}}},
            base_dir=tmp_path,
        )
        with pytest.raises(ConfigurationError, match="General-1.1-FileSize"):
            build_registry(config)

    def test_disabled_builtin_pack(self, tmp_path: Path) -> None:
        config = parse_config(
            {"version": 1, "packs": [{"name": "TCA", "enabled": False}]}, base_dir=tmp_path
        )
        registry = build_registry(config)
        assert registry.state("TCA-1.1-MonolithicFeatures") is RuleState.DEACTIVATED
        assert registry.state("General-1.1-FileSize") is RuleState.ACTIVE

    def test_script_pack_from_config(self, tmp_path: Path) -> None:
        _script_pack(tmp_path)
        config = parse_config(
            {"version": 1, "packs": [{"name": "custom", "path": "rules/custom"}]},
            base_dir=tmp_path,
        )
        registry = build_registry(config)
        descriptor = registry.metadata("Custom-1.1-NoPrint")
        assert descriptor is not None
        assert descriptor.pack == "custom"

    def test_extra_rule_dirs(self, tmp_path: Path) -> None:
        pack = _script_pack(tmp_path, "extra")
        registry = build_registry(ProjectConfig(), extra_rule_dirs=[pack])
        assert "extra" in registry.pack_names
        assert "Custom-1.1-NoPrint" in registry

    def test_only_packs(self) -> None:
        registry = build_registry(ProjectConfig(), only_packs=["General"])
        assert [r.descriptor.name for r in registry.active_rules()] == ["General-1.1-FileSize"]

    def test_unknown_only_pack(self) -> None:
        with pytest.raises(ConfigurationError, match="Unknown rule pack"):
            build_registry(ProjectConfig(), only_packs=["Nope"])

    def test_script_rule_options_rejected(self, tmp_path: Path) -> None:
        _script_pack(tmp_path)
        config = parse_config(
            {
                "version": 1,
                "packs": [{"name": "custom", "path": "rules/custom"}],
                "rules": {"Custom-1.1-NoPrint": {"threshold": 3}},
            },
            base_dir=tmp_path,
        )
        with pytest.raises(ConfigurationError, match="takes no options"):
            build_registry(config)

    def test_disable_script_rule(self, tmp_path: Path) -> None:
        _script_pack(tmp_path)
        config = parse_config(
            {
                "version": 1,
                "packs": [{"name": "custom", "path": "rules/custom"}],
                "rules": {"Custom-1.1-NoPrint": {"enabled": False}},
            },
            base_dir=tmp_path,
        )
        registry = build_registry(config)
        assert registry.state("Custom-1.1-NoPrint") is RuleState.DEACTIVATED

    def test_missing_script_pack_directory(self, tmp_path: Path) -> None:
        config = parse_config(
            {"version": 1, "packs": [{"name": "custom", "path": "missing"}]}, base_dir=tmp_path
        )
        with pytest.raises(DiscoveryError):
            build_registry(config)
