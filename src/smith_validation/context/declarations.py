"""Type declaration extraction from a tree-sitter-swift syntax tree."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tree_sitter import Node as TSNode
    from tree_sitter import Tree

DECLARATION_KINDS: frozenset[str] = frozenset(
    {"struct", "class", "enum", "actor", "extension", "protocol"}
)

# tree-sitter-swift models struct/class/enum/actor/extension as class_declaration.
_DECLARATION_NODE_TYPES: frozenset[str] = frozenset({"class_declaration", "protocol_declaration"})
_BODY_NODE_TYPES: frozenset[str] = frozenset({"class_body", "enum_class_body", "protocol_body"})
_PROPERTY_NODE_TYPES: frozenset[str] = frozenset({"property_declaration"})
_METHOD_NODE_TYPES: frozenset[str] = frozenset({"function_declaration"})
_TYPE_LEVEL_MODIFIERS: frozenset[str] = frozenset({"static", "class"})


@dataclass(frozen=True)
class PropertyInfo:
    """One stored instance property binding (`let a, b: Int` yields two)."""

    name: str
    type_name: str  # annotation text, "" when inferred
    line: int
    attributes: tuple[str, ...] = ()  # property wrappers, e.g. ("State",)


@dataclass(frozen=True)
class DeclarationInfo:
    """Descriptor of one struct/class/enum/actor/extension/protocol declaration."""

    name: str
    kind: str
    line: int  # 1-based, line of the declared name
    property_count: int  # stored properties only
    method_count: int
    case_count: int
    parent: str | None = None  # enclosing declaration, if nested
    inherited_types: tuple[str, ...] = ()
    attributes: tuple[str, ...] = ()  # e.g. ("Reducer",) for @Reducer
    properties: tuple[PropertyInfo, ...] = ()

    def conforms_to(self, type_name: str) -> bool:
        return type_name in self.inherited_types

    def has_attribute(self, name: str) -> bool:
        return name.lstrip("@") in self.attributes


def _text(node: TSNode | None) -> str:
    if node is None or not node.text:
        return ""
    return node.text.decode("utf-8")


def _declaration_kind(node: TSNode) -> str | None:
    kind_node = node.child_by_field_name("declaration_kind")
    if kind_node is not None and kind_node.type in DECLARATION_KINDS:
        return kind_node.type
    for child in node.children:
        if child.type in DECLARATION_KINDS:
            return child.type
    return None


def _declaration_body(node: TSNode) -> TSNode | None:
    body = node.child_by_field_name("body")
    if body is not None:
        return body
    for child in node.children:
        if child.type in _BODY_NODE_TYPES:
            return child
    return None


def _is_computed_property(node: TSNode) -> bool:
    if node.child_by_field_name("computed_value") is not None:
        return True
    return any(child.type == "computed_property" for child in node.children)


def _is_type_level(member: TSNode) -> bool:
    for child in member.children:
        if child.type != "modifiers":
            continue
        for modifier in child.children:
            if modifier.type != "attribute" and _text(modifier).strip() in _TYPE_LEVEL_MODIFIERS:
                return True
    return False


def _annotation_text(node: TSNode) -> str:
    type_node = node.child_by_field_name("type")
    if type_node is not None:
        return _text(type_node).strip()
    return _text(node).lstrip(":").strip()


@dataclass
class _Binding:
    pattern: TSNode
    type_name: str = ""
    computed: bool = False


def _stored_properties(member: TSNode) -> list[PropertyInfo]:
    """Split a ``property_declaration`` into its stored instance bindings.

    ``static``/``class`` members and computed properties yield nothing.
    """
    if _is_type_level(member):
        return []
    attributes = _attributes(member)

    bindings: list[_Binding] = []
    for child in member.named_children:
        if child.type == "pattern":
            bindings.append(_Binding(child))
        elif bindings and child.type == "type_annotation":
            bindings[-1].type_name = _annotation_text(child)
        elif bindings and child.type == "computed_property":
            bindings[-1].computed = True

    if not bindings:
        if _is_computed_property(member):
            return []
        return [PropertyInfo("", "", member.start_point.row + 1, attributes)]
    return [
        PropertyInfo(
            name=_text(b.pattern).strip(),
            type_name=b.type_name,
            line=b.pattern.start_point.row + 1,
            attributes=attributes,
        )
        for b in bindings
        if not b.computed
    ]


def _count_cases(member: TSNode) -> int:
    """Count the cases of one ``case a, b, c`` entry."""
    names = member.children_by_field_name("name")
    if names:
        return len(names)
    return sum(1 for child in member.children if child.type == "simple_identifier") or 1


def _attributes(node: TSNode) -> tuple[str, ...]:
    attrs: list[str] = []
    for child in node.children:
        if child.type != "modifiers":
            continue
        for modifier in child.children:
            if modifier.type == "attribute":
                attrs.append(_text(modifier).lstrip("@").split("(")[0].strip())
    return tuple(attrs)


def _inherited_types(node: TSNode) -> tuple[str, ...]:
    return tuple(
        _text(child).strip() for child in node.children if child.type == "inheritance_specifier"
    )


def _describe(node: TSNode, kind: str, parent: str | None) -> DeclarationInfo:
    body = _declaration_body(node)
    members = body.named_children if body is not None else []

    properties: list[PropertyInfo] = []
    method_count = 0
    case_count = 0
    for member in members:
        if member.type in _PROPERTY_NODE_TYPES:
            properties.extend(_stored_properties(member))
        elif member.type in _METHOD_NODE_TYPES:
            method_count += 1
        elif member.type == "enum_entry":
            case_count += _count_cases(member)

    name_node = node.child_by_field_name("name")
    anchor = name_node if name_node is not None else node
    return DeclarationInfo(
        name=_text(name_node).strip(),
        kind=kind,
        line=anchor.start_point.row + 1,
        property_count=len(properties),
        method_count=method_count,
        case_count=case_count,
        parent=parent,
        inherited_types=_inherited_types(node),
        attributes=_attributes(node),
        properties=tuple(properties),
    )


def extract_declarations(tree: Tree) -> tuple[DeclarationInfo, ...]:
    """Return every type declaration in source order (parents before nested types)."""
    results: list[DeclarationInfo] = []

    def visit(node: TSNode, parent: str | None) -> None:
        for child in node.named_children:
            if child.type in _DECLARATION_NODE_TYPES:
                kind = _declaration_kind(child)
                if kind is None:
                    continue
                info = _describe(child, kind, parent)
                results.append(info)
                body = _declaration_body(child)
                if body is not None:
                    visit(body, info.name)

    visit(tree.root_node, None)
    return tuple(results)
