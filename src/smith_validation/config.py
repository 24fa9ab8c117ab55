"""Project configuration: ``smith.yml`` loading and registry assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from smith_validation.discovery import DEFAULT_EXCLUDE_GLOBS, DEFAULT_INCLUDE_GLOBS
from smith_validation.engine import EngineSettings
from smith_validation.errors import ConfigurationError
from smith_validation.rules.native import BUILTIN_PACKS, builtin_rule_names, register_builtin_packs
from smith_validation.rules.registry import RuleRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "smith.yml"
SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})

_ENGINE_KEYS: dict[str, str] = {
    "workers": "max_workers",
    "cache": "use_cache",
    "cache_max_entries": "cache_max_entries",
    "strict_parsing": "strict_parsing",
    "hash_contents": "hash_contents",
}
_TOP_LEVEL_KEYS = frozenset({"version", "files", "engine", "packs", "rules"})


@dataclass(frozen=True)
class FileSettings:
    include: tuple[str, ...] = DEFAULT_INCLUDE_GLOBS
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE_GLOBS
    recursive: bool = True


@dataclass(frozen=True)
class PackConfig:
    """A ``packs:`` entry: a built-in pack toggle, or a script pack when *path* is set."""

    name: str
    enabled: bool = True
    path: Path | None = None

    @property
    def is_script(self) -> bool:
        return self.path is not None


@dataclass(frozen=True)
class ProjectConfig:
    files: FileSettings = field(default_factory=FileSettings)
    engine: EngineSettings = field(default_factory=EngineSettings)
    packs: tuple[PackConfig, ...] = ()
    rules: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    disabled_rules: frozenset[str] = frozenset()
    source: Path | None = None


def _string_list(value: object, where: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        msg = f"smith.yml: '{where}' must be a list of non-empty strings"
        raise ConfigurationError(msg)
    return tuple(value)


def _parse_files(data: object) -> FileSettings:
    if data is None:
        return FileSettings()
    if not isinstance(data, dict):
        msg = "smith.yml: 'files' must be a mapping"
        raise ConfigurationError(msg)
    unknown = sorted(set(data) - {"include", "exclude", "recursive"})
    if unknown:
        msg = f"smith.yml: unknown key(s) in 'files': {unknown}"
        raise ConfigurationError(msg)
    recursive = data.get("recursive", True)
    if not isinstance(recursive, bool):
        msg = "smith.yml: 'files.recursive' must be a boolean"
        raise ConfigurationError(msg)
    return FileSettings(
        include=(
            _string_list(data["include"], "files.include")
            if "include" in data
            else DEFAULT_INCLUDE_GLOBS
        ),
        exclude=(
            _string_list(data["exclude"], "files.exclude")
            if "exclude" in data
            else DEFAULT_EXCLUDE_GLOBS
        ),
        recursive=recursive,
    )


def _parse_engine(data: object) -> EngineSettings:
    if data is None:
        return EngineSettings()
    if not isinstance(data, dict):
        msg = "smith.yml: 'engine' must be a mapping"
        raise ConfigurationError(msg)
    unknown = sorted(set(data) - set(_ENGINE_KEYS))
    if unknown:
        msg = f"smith.yml: unknown key(s) in 'engine': {unknown}, expected some of {sorted(_ENGINE_KEYS)}"
        raise ConfigurationError(msg)
    kwargs = {_ENGINE_KEYS[key]: value for key, value in data.items()}
    try:
        return EngineSettings(**kwargs)
    except ConfigurationError as exc:
        raise ConfigurationError(f"smith.yml: engine: {exc}") from exc


def _parse_packs(data: object, base_dir: Path) -> tuple[PackConfig, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        msg = "smith.yml: 'packs' must be a list"
        raise ConfigurationError(msg)
    packs: list[PackConfig] = []
    seen: set[str] = set()
    for idx, entry in enumerate(data):
        if not isinstance(entry, dict):
            msg = f"smith.yml: pack at index {idx} must be a mapping"
            raise ConfigurationError(msg)
        name = entry.get("name")
        if not isinstance(name, str) or not name.strip():
            msg = f"smith.yml: pack at index {idx} missing required 'name' field"
            raise ConfigurationError(msg)
        if name in seen:
            msg = f"smith.yml: duplicate pack '{name}'"
            raise ConfigurationError(msg)
        seen.add(name)
        enabled = entry.get("enabled", True)
        if not isinstance(enabled, bool):
            msg = f"smith.yml: pack '{name}': 'enabled' must be a boolean"
            raise ConfigurationError(msg)
        raw_path = entry.get("path")
        if raw_path is None:
            if name not in BUILTIN_PACKS:
                msg = (
                    f"smith.yml: pack '{name}' has no 'path' and is not a built-in pack "
                    f"(built-in: {sorted(BUILTIN_PACKS)})"
                )
                raise ConfigurationError(msg)
            packs.append(PackConfig(name=name, enabled=enabled))
            continue
        if not isinstance(raw_path, str) or not raw_path:
            msg = f"smith.yml: pack '{name}': 'path' must be a non-empty string"
            raise ConfigurationError(msg)
        if name in BUILTIN_PACKS:
            msg = f"smith.yml: pack '{name}' shadows a built-in pack; choose another name"
            raise ConfigurationError(msg)
        path = Path(raw_path)
        packs.append(
            PackConfig(name=name, enabled=enabled, path=path if path.is_absolute() else base_dir / path)
        )
    return tuple(packs)


def _parse_rules(data: object) -> tuple[dict[str, Mapping[str, Any]], frozenset[str]]:
    if data is None:
        return {}, frozenset()
    if not isinstance(data, dict):
        msg = "smith.yml: 'rules' must be a mapping of rule name to options"
        raise ConfigurationError(msg)
    options: dict[str, Mapping[str, Any]] = {}
    disabled: set[str] = set()
    for name, entry in data.items():
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            msg = f"smith.yml: rule '{name}' options must be a mapping"
            raise ConfigurationError(msg)
        entry = dict(entry)
        enabled = entry.pop("enabled", True)
        if not isinstance(enabled, bool):
            msg = f"smith.yml: rule '{name}': 'enabled' must be a boolean"
            raise ConfigurationError(msg)
        if not enabled:
            disabled.add(str(name))
        options[str(name)] = MappingProxyType(entry)
    return options, frozenset(disabled)


def parse_config(data: object, *, base_dir: Path, source: Path | None = None) -> ProjectConfig:
    """Validate a decoded ``smith.yml`` document.

    Raises :class:`ConfigurationError` on any schema problem.
    """
    if data is None:
        data = {"version": 1}
    if not isinstance(data, dict):
        msg = "smith.yml must be a YAML mapping"
        raise ConfigurationError(msg)

    version = data.get("version")
    if version is None:
        msg = "smith.yml: missing required 'version' field"
        raise ConfigurationError(msg)
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        msg = f"smith.yml: unsupported version {version!r}, expected one of {sorted(SUPPORTED_SCHEMA_VERSIONS)}"
        raise ConfigurationError(msg)

    unknown = sorted(set(data) - _TOP_LEVEL_KEYS)
    if unknown:
        msg = f"smith.yml: unknown top-level key(s): {unknown}"
        raise ConfigurationError(msg)

    rules, disabled = _parse_rules(data.get("rules"))
    return ProjectConfig(
        files=_parse_files(data.get("files")),
        engine=_parse_engine(data.get("engine")),
        packs=_parse_packs(data.get("packs"), base_dir),
        rules=MappingProxyType(rules),
        disabled_rules=disabled,
        source=source,
    )


def load_config(path: Path) -> ProjectConfig:
    """Load and validate a ``smith.yml`` file.

    Relative script pack paths resolve against the file's directory.
    """
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        msg = f"smith.yml: cannot read {path}: {exc.strerror or exc}"
        raise ConfigurationError(msg) from exc
    except yaml.YAMLError as exc:
        msg = f"smith.yml: invalid YAML in {path}: {exc}"
        raise ConfigurationError(msg) from exc
    return parse_config(data, base_dir=path.parent, source=path)


def find_config(project_root: Path) -> Path | None:
    candidate = project_root / CONFIG_FILENAME
    return candidate if candidate.is_file() else None


def resolve_config(project_root: Path, explicit: Path | None = None) -> ProjectConfig:
    """Load *explicit*, else ``<project_root>/smith.yml``, else defaults."""
    path = explicit or find_config(project_root)
    if path is None:
        logger.debug("No %s under %s; using defaults", CONFIG_FILENAME, project_root)
        return ProjectConfig()
    logger.debug("Loading configuration from %s", path)
    return load_config(path)


def build_registry(
    config: ProjectConfig,
    *,
    extra_rule_dirs: Iterable[Path] = (),
    only_packs: Iterable[str] = (),
) -> RuleRegistry:
    """Assemble a loaded :class:`RuleRegistry` from *config*.

    Built-in packs are registered first, then configured script packs, then
    *extra_rule_dirs* (named after the directory).  *only_packs*, when
    given, disables every other pack.
    """
    registry = RuleRegistry()

    builtin_names = builtin_rule_names()
    builtin_options = {k: v for k, v in config.rules.items() if k in builtin_names}
    disabled_builtin = {p.name for p in config.packs if not p.is_script and not p.enabled}
    register_builtin_packs(registry, builtin_options, disabled_packs=disabled_builtin)

    for pack in config.packs:
        if pack.path is not None:
            registry.add_script_pack(pack.name, pack.path, enabled=pack.enabled)
    for directory in extra_rule_dirs:
        registry.add_script_pack(directory.name or str(directory), directory)

    wanted = set(only_packs)
    if wanted:
        unknown = sorted(wanted - set(registry.pack_names))
        if unknown:
            msg = f"Unknown rule pack(s): {unknown}, available: {registry.pack_names}"
            raise ConfigurationError(msg)
        for name in registry.pack_names:
            if name not in wanted:
                registry.disable_pack(name)

    registry.load_rules()

    for name in sorted(config.rules):
        if name in builtin_names:
            continue
        descriptor = registry.metadata(name)
        if descriptor is None:
            logger.warning("smith.yml: rule '%s' is not registered", name)
        elif config.rules[name]:
            msg = f"smith.yml: rule '{name}' is a script rule and takes no options"
            raise ConfigurationError(msg)

    for name in sorted(config.disabled_rules):
        registry.deactivate(name)
    return registry
