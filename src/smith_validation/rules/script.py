"""Script rules: Python rule files run in a restricted namespace.

A script rule is a ``.py`` file (or a source string from a rule store)
that exports ``validate(ast, sink)`` plus optional metadata::

    RULE_NAME = "Perf-1.1-ForceUnwrap"
    CATEGORY = "performance"
    SEVERITY = "medium"
    CONFIDENCE = 0.6

    def validate(ast, sink):
        for number, line in enumerate(ast.lines(), start=1):
            if "!." in line:
                sink.add_violation("Force unwrap", line=number)

The source is compiled once, checked statically, and its module body runs
once at load time.  Per file, ``validate`` receives exactly two objects: a
read-only :class:`AstBridge` and a write-only :class:`ViolationSink`.

Rules get no filesystem or network access.  Builtins are cut down to pure
functions, imports are limited to an allowlist of computation modules, and
the static check rejects dunder names along with the frame, code and
traceback attributes that lead back to module globals.  Generator and
coroutine functions are rejected outright.
"""

from __future__ import annotations

import ast as pyast
import builtins
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from smith_validation.errors import RuleExecutionError, RuleLoadError
from smith_validation.rules.base import (
    RuleCategory,
    RuleDescriptor,
    failure_violation,
)
from smith_validation.violations import ArchitecturalViolation, Severity, ViolationCollection

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from smith_validation.context.declarations import DeclarationInfo
    from smith_validation.context.source_context import FileMetadata, SourceContext

logger = logging.getLogger(__name__)

BRIDGE_VERSION = 1

# string is left out: string.Formatter resolves "{0.attr}" fields with getattr.
ALLOWED_IMPORTS: frozenset[str] = frozenset({"re", "math", "collections", "itertools", "functools"})

_SAFE_BUILTINS: tuple[str, ...] = (
    "abs", "all", "any", "bool", "dict", "divmod", "enumerate", "filter", "float",
    "frozenset", "int", "isinstance", "len", "list", "map", "max", "min", "range",
    "repr", "reversed", "round", "set", "sorted", "str", "sum", "tuple", "zip",
    "ArithmeticError", "Exception", "IndexError", "KeyError", "LookupError",
    "RuntimeError", "TypeError", "ValueError", "ZeroDivisionError",
)

# str.format can reach attributes through "{0.attr}" fields.
_FORBIDDEN_ATTRIBUTES: frozenset[str] = frozenset({"format", "format_map"})

# Frame, code, traceback, generator and function internals
# (gi_frame.f_back.f_globals and friends) reach the host's module globals.
_INTROSPECTION_PREFIXES: tuple[str, ...] = ("f_", "gi_", "cr_", "ag_", "tb_", "co_", "func_")

_GENERATOR_NODES: tuple[type[pyast.AST], ...] = (
    pyast.Yield,
    pyast.YieldFrom,
    pyast.Await,
    pyast.AsyncFunctionDef,
    pyast.AsyncFor,
    pyast.AsyncWith,
)

_DEFAULT_SEVERITY = Severity.MEDIUM
_DEFAULT_CONFIDENCE = 0.5


def _guarded_import(
    name: str,
    globals: Mapping[str, Any] | None = None,  # noqa: A002
    locals: Mapping[str, Any] | None = None,  # noqa: A002
    fromlist: tuple[str, ...] = (),
    level: int = 0,
) -> Any:
    if level != 0 or name.split(".")[0] not in ALLOWED_IMPORTS:
        msg = f"import of '{name}' is not allowed in rule scripts"
        raise ImportError(msg)
    return builtins.__import__(name, globals, locals, fromlist, level)


def _restricted_builtins() -> dict[str, Any]:
    namespace = {name: getattr(builtins, name) for name in _SAFE_BUILTINS}
    namespace["__import__"] = _guarded_import
    return namespace


def _check_source_tree(tree: pyast.AST) -> None:
    """Reject constructs that reach past the bridge API.

    Raises ``ValueError`` describing the first offending construct.
    """
    for node in pyast.walk(tree):
        line = getattr(node, "lineno", 0)
        if isinstance(node, pyast.Name) and node.id.startswith("__"):
            msg = f"line {line}: use of dunder name '{node.id}' is not allowed"
            raise ValueError(msg)
        if isinstance(node, pyast.Attribute):
            if node.attr.startswith("_"):
                msg = f"line {line}: access to private attribute '{node.attr}' is not allowed"
                raise ValueError(msg)
            if node.attr in _FORBIDDEN_ATTRIBUTES:
                msg = f"line {line}: '.{node.attr}()' is not allowed, use f-strings"
                raise ValueError(msg)
            if node.attr.startswith(_INTROSPECTION_PREFIXES):
                msg = f"line {line}: access to introspection attribute '{node.attr}' is not allowed"
                raise ValueError(msg)
        if isinstance(node, _GENERATOR_NODES):
            msg = f"line {line}: generators and coroutines are not supported in rule scripts"
            raise ValueError(msg)
        if isinstance(node, pyast.ClassDef):
            msg = f"line {line}: class definitions are not supported in rule scripts"
            raise ValueError(msg)
        if isinstance(node, pyast.FunctionDef) and node.name.startswith("__"):
            msg = f"line {line}: dunder function '{node.name}' is not allowed"
            raise ValueError(msg)
        if isinstance(node, pyast.Import):
            for alias in node.names:
                if alias.name.split(".")[0] not in ALLOWED_IMPORTS:
                    msg = f"line {line}: import of '{alias.name}' is not allowed"
                    raise ValueError(msg)
        if isinstance(node, pyast.ImportFrom):
            module = node.module or ""
            if node.level or module.split(".")[0] not in ALLOWED_IMPORTS:
                msg = f"line {line}: import from '{module or '.'}' is not allowed"
                raise ValueError(msg)


# ---------------------------------------------------------------------------
# Capabilities handed to validate()
# ---------------------------------------------------------------------------


class AstBridge:
    """Read-only view of one parsed file for script rules.

    Exposes declarations, structural counters, raw text and file metadata;
    never the parse tree itself.
    """

    __slots__ = ("_context",)

    version = BRIDGE_VERSION

    def __init__(self, context: SourceContext) -> None:
        self._context = context

    @property
    def current_file(self) -> str:
        return self._context.path

    def declarations(self, kind: str | None = None) -> tuple[DeclarationInfo, ...]:
        return self._context.declarations(kind)

    def find_declaration(self, name: str, kind: str | None = None) -> DeclarationInfo | None:
        return self._context.find_declaration(name, kind)

    def property_count(self, decl_name: str) -> int:
        return self._context.property_count(decl_name)

    def method_count(self, decl_name: str) -> int:
        return self._context.method_count(decl_name)

    def case_count(self, decl_name: str) -> int:
        return self._context.case_count(decl_name)

    def raw_source_text(self) -> str:
        return self._context.raw_source_text()

    def lines(self) -> tuple[str, ...]:
        return self._context.lines

    def file_metadata(self) -> FileMetadata:
        return self._context.file_metadata()


class ViolationSink:
    """Write-only collector for one (rule, file) invocation."""

    __slots__ = ("_descriptor", "_file", "_items")

    def __init__(self, descriptor: RuleDescriptor, file: str) -> None:
        self._descriptor = descriptor
        self._file = file
        self._items: list[ArchitecturalViolation] = []

    def add_violation(
        self,
        message: str,
        severity: str | None = None,
        line: int = 1,
        recommendation: str = "",
        confidence: float | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> None:
        """Record one finding for the current file.

        Defaults for *severity* and *confidence* come from the rule's exported
        ``SEVERITY`` / ``CONFIDENCE``.  Invalid values raise ``ValueError``.
        """
        self._items.append(
            ArchitecturalViolation(
                severity=(
                    Severity.parse(severity)
                    if severity is not None
                    else self._descriptor.default_severity
                ),
                rule=self._descriptor.name,
                file=self._file,
                line=int(line),
                message=str(message),
                recommendation=str(recommendation),
                metadata={str(k): str(v) for k, v in (metadata or {}).items()},
                automation_confidence=(
                    float(confidence)
                    if confidence is not None
                    else self._descriptor.default_confidence
                ),
            )
        )

    def _drain(self) -> list[ArchitecturalViolation]:
        items, self._items = self._items, []
        return items


# ---------------------------------------------------------------------------
# ScriptRule
# ---------------------------------------------------------------------------


class ScriptRule:
    """A compiled script rule; satisfies the :class:`Rule` protocol."""

    def __init__(
        self, descriptor: RuleDescriptor, validate_fn: Callable[[AstBridge, ViolationSink], Any]
    ) -> None:
        self._validate_fn = validate_fn
        self._descriptor = descriptor.with_rule(self)

    @property
    def descriptor(self) -> RuleDescriptor:
        return self._descriptor

    @property
    def name(self) -> str:
        return self._descriptor.name

    def validate(self, context: SourceContext) -> ViolationCollection:
        sink = ViolationSink(self._descriptor, context.path)
        try:
            self._validate_fn(AstBridge(context), sink)
        except Exception as exc:  # noqa: BLE001
            # Partial sink output from a failed call is discarded.
            sink._drain()
            logger.warning("%s in %s", RuleExecutionError(self.name, exc), context.path)
            return ViolationCollection([failure_violation(self.name, context.path, exc)])
        return ViolationCollection(sink._drain())

    def __repr__(self) -> str:
        return f"ScriptRule({self.name!r}, origin={self._descriptor.origin!r})"


def _export(namespace: dict[str, Any], key: str, default: Any) -> Any:
    value = namespace.get(key, default)
    return default if value is None else value


def compile_script_rule(
    source: str, *, name_hint: str, origin: str, pack: str = ""
) -> ScriptRule:
    """Compile a rule source string into a :class:`ScriptRule`.

    Raises :class:`RuleLoadError` for syntax errors, forbidden constructs,
    failures while running the module body, a missing ``validate`` function
    or invalid metadata.
    """
    path = None if origin.startswith("<") else origin

    def fail(reason: str) -> RuleLoadError:
        return RuleLoadError(reason, name=name_hint, path=path)

    try:
        tree = pyast.parse(source, filename=origin)
    except SyntaxError as exc:
        raise fail(f"syntax error at line {exc.lineno}: {exc.msg}") from exc
    try:
        _check_source_tree(tree)
    except ValueError as exc:
        raise fail(str(exc)) from exc

    code = compile(tree, origin, "exec")
    namespace: dict[str, Any] = {
        "__builtins__": _restricted_builtins(),
        "__name__": f"smith_rule_{name_hint}",
    }
    try:
        exec(code, namespace)  # noqa: S102
    except Exception as exc:  # noqa: BLE001
        raise fail(f"module body raised {type(exc).__name__}: {exc}") from exc

    validate_fn = namespace.get("validate")
    if not callable(validate_fn):
        raise fail("script must define a 'validate(ast, sink)' function")

    rule_name = _export(namespace, "RULE_NAME", name_hint)
    if not isinstance(rule_name, str) or not rule_name.strip():
        raise fail("RULE_NAME must be a non-empty string")
    try:
        descriptor = RuleDescriptor(
            name=rule_name.strip(),
            category=RuleCategory.parse(_export(namespace, "CATEGORY", RuleCategory.GENERAL)),
            default_severity=Severity.parse(_export(namespace, "SEVERITY", _DEFAULT_SEVERITY)),
            default_confidence=float(_export(namespace, "CONFIDENCE", _DEFAULT_CONFIDENCE)),
            version=str(_export(namespace, "VERSION", "1.0.0")),
            origin=origin,
            pack=pack,
            description=str(_export(namespace, "DESCRIPTION", "")),
        )
    except (TypeError, ValueError) as exc:
        raise fail(f"invalid metadata: {exc}") from exc

    logger.debug("Compiled script rule %s from %s", descriptor.name, origin)
    return ScriptRule(descriptor, validate_fn)


def load_script_file(path: str | Path, *, pack: str = "") -> ScriptRule:
    """Read and compile one script rule file; the file stem is the default name."""
    file_path = Path(path)
    try:
        source = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise RuleLoadError(f"cannot read script: {exc}", name=file_path.stem, path=file_path) from exc
    return compile_script_rule(source, name_hint=file_path.stem, origin=str(file_path), pack=pack)
