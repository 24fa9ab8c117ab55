"""Swift source parser: tree-sitter with the tree-sitter-swift grammar."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from tree_sitter import Language, Parser

from smith_validation.errors import ParseError

if TYPE_CHECKING:
    from tree_sitter import Tree

logger = logging.getLogger(__name__)

# Cache for the loaded grammar (None means "tried and failed").
_LANGUAGE_CACHE: dict[str, Language | None] = {}


class SourceParser(Protocol):
    """The narrow parsing capability the engine depends on."""

    def parse(self, source_text: str) -> Tree: ...


def _load_swift() -> Language:
    import tree_sitter_swift as tsswift

    return Language(tsswift.language())


def get_swift_language() -> Language | None:
    """Return the Swift grammar, or ``None`` if tree-sitter-swift is not installed."""
    if "swift" in _LANGUAGE_CACHE:
        return _LANGUAGE_CACHE["swift"]

    try:
        language: Language | None = _load_swift()
    except ImportError:
        logger.warning("tree-sitter-swift is not installed; Swift files cannot be parsed")
        language = None

    _LANGUAGE_CACHE["swift"] = language
    return language


def clear_cache() -> None:
    """Clear the grammar cache (useful for testing)."""
    _LANGUAGE_CACHE.clear()


class SwiftParser:
    """Parse Swift source text into a tree-sitter tree.

    tree-sitter recovers from syntax errors and always yields a tree.  With
    *strict* set, a tree containing ERROR nodes is rejected with
    :class:`ParseError`; otherwise the recovered tree is used as-is.
    """

    def __init__(self, *, strict: bool = False) -> None:
        self.strict = strict

    def parse(self, source_text: str) -> Tree:
        # Parser objects are not thread-safe; one per call.
        language = get_swift_language()
        if language is None:
            msg = "Swift grammar unavailable (install tree-sitter-swift)"
            raise ParseError(msg)
        tree = Parser(language).parse(source_text.encode("utf-8"))

        if tree.root_node.has_error:
            if self.strict:
                row = _first_error_row(tree)
                msg = f"syntax error near line {row}"
                raise ParseError(msg)
            logger.debug("Recovered from syntax errors while parsing Swift source")
        return tree


def _first_error_row(tree: Tree) -> int:
    """Return the 1-based line of the first ERROR or MISSING node."""
    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return node.start_point.row + 1
        if node.has_error:
            stack.extend(reversed(node.children))
    return 1
