"""Validation engine: runs a rule set over a file set and merges the results."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING

from smith_validation.cache import CacheStatistics, ParseCache
from smith_validation.context.parser import SwiftParser
from smith_validation.context.source_context import SourceContext
from smith_validation.discovery import DEFAULT_EXCLUDE_GLOBS, DEFAULT_INCLUDE_GLOBS, find_files
from smith_validation.errors import ConfigurationError, ParseError, RuleExecutionError
from smith_validation.rules.base import Rule, failure_violation
from smith_validation.violations import ArchitecturalViolation, Severity, ViolationCollection

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from smith_validation.context.parser import SourceParser

logger = logging.getLogger(__name__)

PARSE_ERROR_RULE = "parse-error"


@dataclass(frozen=True)
class EngineSettings:
    """Execution knobs for :class:`ValidationEngine`."""

    max_workers: int = 1
    use_cache: bool = True
    cache_max_entries: int | None = None
    strict_parsing: bool = False
    hash_contents: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int):
            msg = f"workers must be an integer, got {self.max_workers!r}"
            raise ConfigurationError(msg)
        if self.max_workers < 1:
            msg = f"workers must be at least 1, got {self.max_workers}"
            raise ConfigurationError(msg)
        if self.cache_max_entries is not None and self.cache_max_entries < 1:
            msg = f"cache_max_entries must be positive, got {self.cache_max_entries}"
            raise ConfigurationError(msg)


@dataclass(frozen=True)
class EngineStatistics:
    """Counters for the most recent run plus the cache totals."""

    files_scanned: int
    files_failed: int
    rules_evaluated: int
    rule_failures: int
    violations: int
    elapsed_ms: float
    cache: CacheStatistics


def parse_error_violation(path: str, error: ParseError) -> ArchitecturalViolation:
    return ArchitecturalViolation(
        severity=Severity.LOW,
        rule=PARSE_ERROR_RULE,
        file=path,
        line=0,
        message=f"File could not be analysed: {error}",
        recommendation="Check that the file is valid UTF-8 Swift source.",
        metadata={"error_type": type(error.__cause__ or error).__name__},
        automation_confidence=0.0,
    )


def _is_synthetic(violation: ArchitecturalViolation) -> bool:
    return violation.metadata.get("synthetic") == "true"


class ValidationEngine:
    """Runs rules against files and returns one ordered collection.

    The result is ordered by file (as supplied) and then by rule (as
    supplied), whatever the number of workers.  Parse failures and rule
    failures become violations; only :class:`ConfigurationError` and
    :class:`DiscoveryError` escape, and both are raised before any rule
    runs.
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        *,
        parser: SourceParser | None = None,
        cache: ParseCache | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.parser: SourceParser = parser or SwiftParser(strict=self.settings.strict_parsing)
        self.cache = cache if cache is not None else ParseCache(
            max_entries=self.settings.cache_max_entries,
            hash_contents=self.settings.hash_contents,
        )
        self._stats_lock = threading.Lock()
        self._last_run = (0, 0, 0, 0, 0, 0.0)

    # -- public API ------------------------------------------------------------

    def validate(
        self,
        rules: Iterable[Rule],
        file_paths: Iterable[str | Path],
        *,
        cancel: threading.Event | None = None,
    ) -> ViolationCollection:
        """Run *rules* over *file_paths*.

        A set *cancel* event stops the run at the next file boundary; files
        already processed stay in the result.
        """
        rule_list = self._check_rules(rules)
        paths = [str(p) for p in file_paths]
        if not rule_list:
            logger.warning("No active rules configured; nothing to validate")
            self._record(files=0, failed=0, rules=0, failures=0, violations=0, elapsed=0.0)
            return ViolationCollection()

        started = time.perf_counter()
        slots = self._execute(rule_list, paths, cancel)
        merged = ViolationCollection.merge(
            collection for per_file in slots if per_file is not None for collection in per_file
        )
        elapsed = (time.perf_counter() - started) * 1000

        scanned = sum(1 for s in slots if s is not None)
        failed = sum(1 for v in merged if v.rule == PARSE_ERROR_RULE)
        failures = sum(1 for v in merged if _is_synthetic(v))
        if scanned < len(paths):
            logger.info("Run cancelled after %d of %d files", scanned, len(paths))
        logger.info(
            "Validated %d files with %d rules: %d violations in %.1f ms",
            scanned,
            len(rule_list),
            len(merged),
            elapsed,
        )
        self._record(
            files=scanned,
            failed=failed,
            rules=len(rule_list),
            failures=failures,
            violations=len(merged),
            elapsed=elapsed,
        )
        return merged

    def validate_directory(
        self,
        rules: Iterable[Rule],
        directory: str | Path,
        *,
        recursive: bool = True,
        include_globs: Sequence[str] = DEFAULT_INCLUDE_GLOBS,
        exclude_globs: Sequence[str] = DEFAULT_EXCLUDE_GLOBS,
        cancel: threading.Event | None = None,
    ) -> ViolationCollection:
        """Discover files under *directory* and validate them.

        Raises :class:`DiscoveryError` if *directory* does not exist.
        """
        rule_list = self._check_rules(rules)
        files = find_files(directory, include_globs, exclude_globs, recursive=recursive)
        logger.debug("Discovered %d files under %s", len(files), directory)
        return self.validate(rule_list, files, cancel=cancel)

    def validate_context(
        self, rules: Iterable[Rule], context: SourceContext
    ) -> ViolationCollection:
        """Run *rules* over an already parsed file."""
        rule_list = self._check_rules(rules)
        return ViolationCollection.merge(self._run_rule(rule, context) for rule in rule_list)

    def statistics(self) -> EngineStatistics:
        with self._stats_lock:
            files, failed, rules, failures, violations, elapsed = self._last_run
        return EngineStatistics(
            files_scanned=files,
            files_failed=failed,
            rules_evaluated=rules,
            rule_failures=failures,
            violations=violations,
            elapsed_ms=elapsed,
            cache=self.cache.statistics(),
        )

    def clear_cache(self) -> None:
        self.cache.clear()

    # -- internals -------------------------------------------------------------

    @staticmethod
    def _check_rules(rules: Iterable[Rule]) -> list[Rule]:
        rule_list = list(rules)
        seen: set[str] = set()
        for rule in rule_list:
            if not isinstance(rule, Rule):
                msg = f"Not a rule: {rule!r}"
                raise ConfigurationError(msg)
            name = rule.descriptor.name
            if name in seen:
                msg = f"Duplicate rule name in rule set: '{name}'"
                raise ConfigurationError(msg)
            seen.add(name)
        return rule_list

    def _record(
        self, *, files: int, failed: int, rules: int, failures: int, violations: int, elapsed: float
    ) -> None:
        with self._stats_lock:
            self._last_run = (files, failed, rules, failures, violations, elapsed)

    def _execute(
        self, rules: list[Rule], paths: list[str], cancel: threading.Event | None
    ) -> list[list[ViolationCollection] | None]:
        """Fill one slot per file; ``None`` marks a file skipped by cancellation."""
        if self.settings.max_workers == 1 or len(paths) < 2:
            slots: list[list[ViolationCollection] | None] = []
            for path in paths:
                slots.append(self._run_file(rules, path, cancel))
            return slots

        with ThreadPoolExecutor(
            max_workers=self.settings.max_workers, thread_name_prefix="smith-validate"
        ) as pool:
            futures = [pool.submit(self._run_file, rules, path, cancel) for path in paths]
            return [future.result() for future in futures]

    def _load_context(self, path: str) -> SourceContext:
        if not self.settings.use_cache:
            return SourceContext.from_file(path, self.parser)
        return self.cache.get_or_load(path, lambda: SourceContext.from_file(path, self.parser))

    def _run_file(
        self, rules: list[Rule], path: str, cancel: threading.Event | None
    ) -> list[ViolationCollection] | None:
        if cancel is not None and cancel.is_set():
            return None
        try:
            context = self._load_context(path)
        except ParseError as exc:
            logger.warning("Skipping %s: %s", path, exc)
            return [ViolationCollection([parse_error_violation(path, exc)])]
        return [self._run_rule(rule, context) for rule in rules]

    @staticmethod
    def _run_rule(rule: Rule, context: SourceContext) -> ViolationCollection:
        name = rule.descriptor.name
        try:
            result = rule.validate(context)
            if not isinstance(result, ViolationCollection):
                result = ViolationCollection(result)
            for violation in result:
                if not isinstance(violation, ArchitecturalViolation):
                    msg = f"rule returned {type(violation).__name__}, not a violation"
                    raise TypeError(msg)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s in %s", RuleExecutionError(name, exc), context.path)
            return ViolationCollection([failure_violation(name, context.path, exc)])
        return result
