"""Shared test fixtures for smith-validation."""

from __future__ import annotations

from types import SimpleNamespace
from typing import TYPE_CHECKING

import pytest

from smith_validation.errors import ParseError
from smith_validation.rules.base import RuleCategory, RuleDescriptor
from smith_validation.violations import ArchitecturalViolation, Severity, ViolationCollection

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from smith_validation.context.source_context import SourceContext

UNPARSABLE_MARKER = "#unparsable"


class TextParser:
    """Stand-in parser: keeps the text, fails on a marker line, counts calls."""

    def __init__(self) -> None:
        self.calls = 0

    def parse(self, source_text: str) -> SimpleNamespace:
        self.calls += 1
        if UNPARSABLE_MARKER in source_text:
            msg = "syntax error near line 1"
            raise ParseError(msg)
        return SimpleNamespace(text=source_text)


class KeywordRule:
    """Flags every line containing *keyword*."""

    def __init__(self, name: str, keyword: str, severity: Severity = Severity.MEDIUM) -> None:
        self._descriptor = RuleDescriptor(
            name=name,
            category=RuleCategory.GENERAL,
            default_severity=severity,
            default_confidence=0.9,
            origin=f"native:tests.{name}",
            rule=self,
        )
        self.keyword = keyword

    @property
    def descriptor(self) -> RuleDescriptor:
        return self._descriptor

    def validate(self, context: SourceContext) -> ViolationCollection:
        return ViolationCollection(
            ArchitecturalViolation(
                severity=self._descriptor.default_severity,
                rule=self._descriptor.name,
                file=context.path,
                line=number,
                message=f"found {self.keyword}",
                automation_confidence=self._descriptor.default_confidence,
            )
            for number, text in enumerate(context.lines, start=1)
            if self.keyword in text
        )


class ExplodingRule(KeywordRule):
    """Raises on files containing *keyword*, reports nothing elsewhere."""

    def validate(self, context: SourceContext) -> ViolationCollection:
        if self.keyword in context.source_text:
            msg = "boom"
            raise RuntimeError(msg)
        return ViolationCollection()


@pytest.fixture()
def text_parser() -> TextParser:
    return TextParser()


@pytest.fixture()
def keyword_rule() -> Callable[..., KeywordRule]:
    return KeywordRule


@pytest.fixture()
def exploding_rule() -> Callable[..., ExplodingRule]:
    return ExplodingRule


@pytest.fixture()
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write *text* to ``tmp_path / rel`` (creating parents) and return the path."""

    def _write(rel: str, text: str) -> Path:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


STATE_16_PROPERTIES = (
    "import ComposableArchitecture\n"
    "\n"
    "@Reducer\n"
    "struct Feature {\n"
    "    @ObservableState\n"
    "    struct State {\n"
    + "".join(f"        var field{i}: Int = 0\n" for i in range(16))
    + "        var total: Int { field0 + field1 }\n"
    "    }\n"
    "\n"
    "    enum Action {\n"
    "        case tapped\n"
    "        case loaded(Int), failed\n"
    "    }\n"
    "}\n"
)


@pytest.fixture()
def monolithic_swift() -> str:
    """A feature whose State has 16 stored and 1 computed property."""
    return STATE_16_PROPERTIES
