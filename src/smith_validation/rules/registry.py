"""Rule registry: named packs of native and script rules with a shared lifecycle."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from smith_validation.discovery import find_files
from smith_validation.errors import ConfigurationError, DiscoveryError, RuleLoadError
from smith_validation.rules.base import Rule, RuleCategory, RuleDescriptor, RuleState
from smith_validation.rules.script import compile_script_rule, load_script_file

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

SCRIPT_GLOBS: tuple[str, ...] = ("**/*.py",)


@dataclass
class _Pack:
    name: str
    kind: str  # "native" | "script" | "store"
    enabled: bool = True
    rules: tuple[Rule, ...] = ()
    directory: Path | None = None
    sources: dict[str, str] = field(default_factory=dict)


@dataclass
class _Catalog:
    """Result of one load pass; committed to the registry as a whole."""

    descriptors: dict[str, RuleDescriptor] = field(default_factory=dict)
    failed: dict[str, RuleLoadError] = field(default_factory=dict)


class RuleRegistry:
    """Catalog of rules grouped into independently toggleable packs.

    Nothing is global: create one registry per engine or per test.  Packs
    keep their registration order and so do the rules inside them; script
    files within a pack are ordered by relative path.

    Rule states follow ``UNLOADED -> LOADED -> ACTIVE <-> DEACTIVATED``.
    ``LOADED`` only exists inside a load pass.  Scripts that fail to compile
    end in ``LOAD_FAILED``.  Deactivation is remembered by name and survives
    :meth:`reload_rules`.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._packs: dict[str, _Pack] = {}
        self._catalog = _Catalog()
        self._deactivated: set[str] = set()
        self._loaded = False

    # -- pack registration -----------------------------------------------------

    def _add_pack(self, pack: _Pack) -> None:
        if not pack.name or not pack.name.strip():
            msg = "pack name must be a non-empty string"
            raise ConfigurationError(msg)
        with self._lock:
            if pack.name in self._packs:
                msg = f"Duplicate pack name: '{pack.name}'"
                raise ConfigurationError(msg)
            self._packs[pack.name] = pack
            self._loaded = False

    def register_pack(self, name: str, rules: Iterable[Rule], *, enabled: bool = True) -> None:
        """Register a pack of native (in-process) rules."""
        rules = tuple(rules)
        for rule in rules:
            if not isinstance(rule, Rule):
                msg = f"Pack '{name}': {rule!r} does not implement the Rule protocol"
                raise ConfigurationError(msg)
        self._add_pack(_Pack(name=name, kind="native", enabled=enabled, rules=rules))

    def add_script_pack(self, name: str, directory: str | Path, *, enabled: bool = True) -> None:
        """Register a directory of ``*.py`` script rules.

        Raises :class:`DiscoveryError` if *directory* does not exist.
        """
        path = Path(directory)
        if not path.is_dir():
            msg = f"Rule pack directory not found: {path}"
            raise DiscoveryError(msg)
        self._add_pack(_Pack(name=name, kind="script", enabled=enabled, directory=path))

    def register_script_source(
        self, source: str, name: str, *, pack: str = "store"
    ) -> RuleDescriptor | None:
        """Add a rule source string to *pack* and load it like a script file named *name*.

        A source that does not compile is recorded in :attr:`load_errors`
        (state ``LOAD_FAILED``) and ``None`` is returned.  Raises
        :class:`ConfigurationError` if its rule name is already taken, in
        which case the registry is unchanged.
        """
        origin = f"<store:{name}>"
        with self._lock:
            target = self._packs.get(pack)
            if target is None:
                target = _Pack(name=pack, kind="store")
            elif target.kind != "store":
                msg = f"Pack '{pack}' is a {target.kind} pack and cannot hold stored sources"
                raise ConfigurationError(msg)
            created = pack not in self._packs
            previous = target.sources.get(name)
            target.sources[name] = source
            self._packs[pack] = target
            try:
                self._commit(self._build())
            except (ConfigurationError, DiscoveryError):
                if created:
                    del self._packs[pack]
                elif previous is None:
                    del target.sources[name]
                else:
                    target.sources[name] = previous
                raise
            for descriptor in self._catalog.descriptors.values():
                if descriptor.origin == origin:
                    return descriptor
            return None

    # -- loading ---------------------------------------------------------------

    def _load_pack(self, pack: _Pack) -> tuple[list[RuleDescriptor], list[RuleLoadError]]:
        if pack.kind == "native":
            return [rule.descriptor.with_rule(rule, pack=pack.name) for rule in pack.rules], []

        loaded: list[RuleDescriptor] = []
        errors: list[RuleLoadError] = []
        if pack.kind == "script":
            if pack.directory is None or not pack.directory.is_dir():
                msg = f"Rule pack directory not found: {pack.directory}"
                raise DiscoveryError(msg)
            for path in find_files(pack.directory, SCRIPT_GLOBS, ()):
                if path.name.startswith("_"):
                    continue
                try:
                    rule = load_script_file(path, pack=pack.name)
                except RuleLoadError as exc:
                    errors.append(exc)
                    continue
                loaded.append(rule.descriptor)
        else:
            for name, source in pack.sources.items():
                try:
                    rule = compile_script_rule(
                        source, name_hint=name, origin=f"<store:{name}>", pack=pack.name
                    )
                except RuleLoadError as exc:
                    errors.append(exc)
                    continue
                loaded.append(rule.descriptor)
        return loaded, errors

    def _build(self) -> _Catalog:
        catalog = _Catalog()
        for pack in self._packs.values():
            descriptors, errors = self._load_pack(pack)
            for descriptor in descriptors:
                existing = catalog.descriptors.get(descriptor.name)
                if existing is not None:
                    msg = (
                        f"Duplicate rule name '{descriptor.name}': "
                        f"{existing.origin or existing.pack} and {descriptor.origin or pack.name}"
                    )
                    raise ConfigurationError(msg)
                catalog.descriptors[descriptor.name] = descriptor
            for error in errors:
                logger.warning("Failed to load rule %s", error)
                catalog.failed[error.name] = error
        return catalog

    def _commit(self, catalog: _Catalog) -> None:
        self._catalog = catalog
        self._loaded = True
        logger.info(
            "Loaded %d rules from %d packs (%d failed)",
            len(catalog.descriptors),
            len(self._packs),
            len(catalog.failed),
        )

    def load_rules(self) -> list[RuleDescriptor]:
        """Load every registered pack once and return descriptors in registration order.

        Idempotent: later calls return the same catalog until a pack is
        added or :meth:`reload_rules` is called.  Raises
        :class:`ConfigurationError` on duplicate rule names.
        """
        with self._lock:
            if not self._loaded:
                self._commit(self._build())
            return list(self._catalog.descriptors.values())

    def reload_rules(self) -> list[RuleDescriptor]:
        """Re-scan script packs and recompile every script rule.

        The new catalog replaces the old one only if the whole pass
        succeeds; on error the previous rules stay in place.
        """
        with self._lock:
            self._commit(self._build())
            return list(self._catalog.descriptors.values())

    # -- lifecycle -------------------------------------------------------------

    def _pack_enabled(self, descriptor: RuleDescriptor) -> bool:
        pack = self._packs.get(descriptor.pack)
        return pack is None or pack.enabled

    def state(self, name: str) -> RuleState:
        with self._lock:
            if not self._loaded:
                return RuleState.UNLOADED
            if name in self._catalog.failed and name not in self._catalog.descriptors:
                return RuleState.LOAD_FAILED
            descriptor = self._catalog.descriptors.get(name)
            if descriptor is None:
                return RuleState.UNLOADED
            if name in self._deactivated or not self._pack_enabled(descriptor):
                return RuleState.DEACTIVATED
            return RuleState.ACTIVE

    def deactivate(self, name: str) -> None:
        """Mark *name* inactive; the mark persists across reloads."""
        with self._lock:
            self._deactivated.add(name)
        logger.debug("Deactivated rule %s", name)

    def activate(self, name: str) -> None:
        with self._lock:
            if self._loaded and self.state(name) is RuleState.LOAD_FAILED:
                msg = f"Rule '{name}' failed to load and cannot be activated"
                raise ConfigurationError(msg)
            self._deactivated.discard(name)
        logger.debug("Activated rule %s", name)

    def _set_pack_enabled(self, name: str, enabled: bool) -> None:
        with self._lock:
            pack = self._packs.get(name)
            if pack is None:
                msg = f"Unknown rule pack: '{name}'"
                raise ConfigurationError(msg)
            pack.enabled = enabled

    def enable_pack(self, name: str) -> None:
        self._set_pack_enabled(name, True)

    def disable_pack(self, name: str) -> None:
        self._set_pack_enabled(name, False)

    # -- queries ---------------------------------------------------------------

    @property
    def pack_names(self) -> list[str]:
        with self._lock:
            return list(self._packs)

    def pack_enabled(self, name: str) -> bool:
        with self._lock:
            pack = self._packs.get(name)
            return pack is not None and pack.enabled

    @property
    def load_errors(self) -> tuple[RuleLoadError, ...]:
        with self._lock:
            return tuple(self._catalog.failed.values())

    def metadata(self, name: str) -> RuleDescriptor | None:
        with self._lock:
            return self._catalog.descriptors.get(name)

    def descriptors(self) -> list[RuleDescriptor]:
        return self.load_rules()

    def rules_by_category(self, category: str | RuleCategory) -> list[RuleDescriptor]:
        wanted = RuleCategory.parse(category)
        return [d for d in self.load_rules() if d.category is wanted]

    def active_descriptors(self) -> list[RuleDescriptor]:
        descriptors = self.load_rules()
        with self._lock:
            return [d for d in descriptors if self.state(d.name) is RuleState.ACTIVE]

    def active_rules(self) -> list[Rule]:
        """Active rules in registration order, ready to hand to the engine."""
        return [d.rule for d in self.active_descriptors() if d.rule is not None]

    def summary(self) -> str:
        """Human-readable listing grouped by category."""
        descriptors = self.load_rules()
        by_category: dict[RuleCategory, list[RuleDescriptor]] = defaultdict(list)
        for descriptor in descriptors:
            by_category[descriptor.category].append(descriptor)

        active = sum(1 for d in descriptors if self.state(d.name) is RuleState.ACTIVE)
        lines = [f"Rule registry: {len(descriptors)} rules ({active} active)"]
        for category in RuleCategory:
            group = by_category.get(category)
            if not group:
                continue
            lines.append(f"[{category}] {len(group)} rule(s)")
            for d in group:
                lines.append(
                    f"  - {d.name} v{d.version} ({d.default_severity}, "
                    f"{d.default_confidence:.2f}) {self.state(d.name).value}"
                )
        if self.load_errors:
            lines.append(f"Load errors: {len(self.load_errors)}")
            lines.extend(f"  - {error}" for error in self.load_errors)
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self.load_rules())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.metadata(name) is not None
