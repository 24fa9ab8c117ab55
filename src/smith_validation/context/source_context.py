"""SourceContext: one parsed file behind a read-only query surface."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from functools import cached_property
from pathlib import Path
from typing import TYPE_CHECKING, Any

from smith_validation.context.declarations import DeclarationInfo, extract_declarations
from smith_validation.errors import ParseError

if TYPE_CHECKING:
    from smith_validation.context.parser import SourceParser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileMetadata:
    """Name, path and size of the analysed file."""

    name: str
    path: str
    line_count: int


class SourceContext:
    """Wraps one parsed file.

    The tree is owned exclusively by the context and never handed to rules
    that run in the script sandbox.  Declaration lists and structural
    counters are derived lazily and memoised; nothing else changes after
    construction.
    """

    def __init__(self, path: str | Path, source_text: str, tree: Any) -> None:
        self._path = str(path)
        self._source_text = source_text
        self._tree = tree
        self._counters: dict[tuple[str, str], int] = {}

    @classmethod
    def from_file(cls, path: str | Path, parser: SourceParser) -> SourceContext:
        """Read and parse *path*.

        Raises :class:`ParseError` if the file cannot be read, decoded or parsed.
        """
        try:
            text = Path(path).read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            msg = f"{path}: not valid UTF-8 ({exc.reason})"
            raise ParseError(msg, path=str(path)) from exc
        except OSError as exc:
            msg = f"{path}: cannot read file ({exc.strerror or exc})"
            raise ParseError(msg, path=str(path)) from exc
        return cls.from_source(path, text, parser)

    @classmethod
    def from_source(cls, path: str | Path, text: str, parser: SourceParser) -> SourceContext:
        try:
            tree = parser.parse(text)
        except ParseError as exc:
            if exc.path is None:
                raise ParseError(f"{path}: {exc}", path=str(path)) from exc
            raise
        except ValueError as exc:
            raise ParseError(f"{path}: {exc}", path=str(path)) from exc
        return cls(path, text, tree)

    # -- identity ------------------------------------------------------------

    @property
    def path(self) -> str:
        return self._path

    @property
    def tree(self) -> Any:
        """The underlying parse tree (native rules only)."""
        return self._tree

    @property
    def source_text(self) -> str:
        return self._source_text

    def raw_source_text(self) -> str:
        return self._source_text

    @cached_property
    def lines(self) -> tuple[str, ...]:
        return tuple(self._source_text.splitlines())

    def file_metadata(self) -> FileMetadata:
        return FileMetadata(
            name=Path(self._path).name,
            path=self._path,
            line_count=len(self.lines),
        )

    # -- declarations ----------------------------------------------------------

    @cached_property
    def _all_declarations(self) -> tuple[DeclarationInfo, ...]:
        try:
            return extract_declarations(self._tree)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.debug("No declarations derivable for %s: %s", self._path, exc)
            return ()

    def declarations(self, kind: str | Iterable[str] | None = None) -> tuple[DeclarationInfo, ...]:
        """Declarations in source order, optionally restricted to *kind*.

        Never raises; an empty tuple means nothing matched.
        """
        if kind is None:
            return self._all_declarations
        kinds = {kind} if isinstance(kind, str) else set(kind)
        return tuple(d for d in self._all_declarations if d.kind in kinds)

    def find_declaration(self, name: str, kind: str | None = None) -> DeclarationInfo | None:
        for decl in self.declarations(kind):
            if decl.name == name:
                return decl
        return None

    def _counter(self, metric: str, decl_name: str) -> int:
        key = (metric, decl_name)
        if key not in self._counters:
            decl = self.find_declaration(decl_name)
            self._counters[key] = getattr(decl, metric) if decl is not None else 0
        return self._counters[key]

    def property_count(self, decl_name: str) -> int:
        return self._counter("property_count", decl_name)

    def method_count(self, decl_name: str) -> int:
        return self._counter("method_count", decl_name)

    def case_count(self, decl_name: str) -> int:
        return self._counter("case_count", decl_name)

    def __repr__(self) -> str:
        return f"SourceContext({self._path!r})"
