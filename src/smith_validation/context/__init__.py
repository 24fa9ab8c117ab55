"""Source context domain: Swift parser, declaration extraction, read-only query surface."""

from smith_validation.context.declarations import (
    DECLARATION_KINDS,
    DeclarationInfo,
    PropertyInfo,
    extract_declarations,
)
from smith_validation.context.parser import (
    SourceParser,
    SwiftParser,
    clear_cache,
    get_swift_language,
)
from smith_validation.context.source_context import FileMetadata, SourceContext

__all__ = [
    "DECLARATION_KINDS",
    "DeclarationInfo",
    "FileMetadata",
    "PropertyInfo",
    "SourceContext",
    "SourceParser",
    "SwiftParser",
    "clear_cache",
    "extract_declarations",
    "get_swift_language",
]
