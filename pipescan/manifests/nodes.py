"""Shape-aware access to composed YAML nodes.

Pipeline schemas let the same field appear as a scalar, a sequence or a
mapping. Decoders therefore work on the composed node graph rather than on
constructed Python objects: :func:`dispatch` inspects a node's shape and
hands it to the rule registered for that shape, and every node keeps its
source mark for line provenance.
"""

from __future__ import annotations

import collections.abc as cabc
import enum

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError
from ruamel.yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from .errors import ManifestDecodeError

YAML_VERSION = (1, 2)
NULL_TAG = "tag:yaml.org,2002:null"
REFERENCE_TAG = "!reference"
MERGE_KEY = "<<"

type DecodeRule[T] = cabc.Callable[[Node], T]


class NodeShape(enum.StrEnum):
    """Structural kind of a YAML node."""

    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"


def _yaml() -> YAML:
    yaml = YAML(typ="safe", pure=True)
    yaml.version = YAML_VERSION
    return yaml


def compose_documents(data: bytes | str) -> list[Node]:
    """Compose every YAML document in ``data`` into a node graph.

    Raises
    ------
    ManifestDecodeError
        If ``data`` is not UTF-8 or not well-formed YAML.

    """
    try:
        text = data.decode("utf-8") if isinstance(data, bytes) else data
        return list(_yaml().compose_all(text))
    except (UnicodeDecodeError, YAMLError) as exc:
        raise ManifestDecodeError.invalid_yaml(exc) from exc


def compose_first(data: bytes | str) -> Node | None:
    """Return the first document's root node, or ``None`` for empty input."""
    documents = compose_documents(data)
    return documents[0] if documents else None


def shape_of(node: Node) -> NodeShape:
    """Return the structural kind of ``node``."""
    if isinstance(node, MappingNode):
        return NodeShape.MAPPING
    if isinstance(node, SequenceNode):
        return NodeShape.SEQUENCE
    return NodeShape.SCALAR


def line_of(node: Node) -> int:
    """Return the 1-based line where ``node`` starts."""
    return node.start_mark.line + 1


def is_null(node: Node | None) -> bool:
    """Return True for a missing node or an explicit YAML null."""
    return node is None or (isinstance(node, ScalarNode) and node.tag == NULL_TAG)


def is_reference(node: Node) -> bool:
    """Return True for a GitLab ``!reference [...]`` sequence."""
    return isinstance(node, SequenceNode) and node.tag == REFERENCE_TAG


def dispatch[T](
    node: Node,
    rules: cabc.Mapping[NodeShape, DecodeRule[T]],
    *,
    field: str,
) -> T:
    """Decode ``node`` with the rule registered for its shape.

    Parameters
    ----------
    node : Node
        Node to decode.
    rules : Mapping[NodeShape, DecodeRule[T]]
        One decode rule per supported shape.
    field : str
        Field name used in error messages.

    Returns
    -------
    T
        Whatever the selected rule returns.

    Raises
    ------
    ManifestDecodeError
        If no rule handles the node's shape.

    """
    shape = shape_of(node)
    rule = rules.get(shape)
    if rule is None:
        raise ManifestDecodeError.unexpected_shape(field, shape, line=line_of(node))
    return rule(node)


def scalar_text(node: Node, *, field: str) -> str:
    """Return the literal text of a scalar node; nulls decode to ``""``."""
    if not isinstance(node, ScalarNode):
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )
    if node.tag == NULL_TAG:
        return ""
    return str(node.value)


def _merged_pairs(node: Node, *, field: str) -> list[tuple[Node, Node]]:
    merged: list[tuple[Node, Node]] = []
    sources = node.value if isinstance(node, SequenceNode) else [node]
    for source in sources:
        if not isinstance(source, MappingNode):
            raise ManifestDecodeError.unexpected_shape(
                f"{field}.<<", shape_of(source), line=line_of(source)
            )
        merged.extend(_pairs(source, field=field))
    return merged


def _pairs(node: MappingNode, *, field: str) -> list[tuple[Node, Node]]:
    own: list[tuple[Node, Node]] = []
    merged: list[tuple[Node, Node]] = []
    for key, value in node.value:
        if isinstance(key, ScalarNode) and key.value == MERGE_KEY:
            merged.extend(_merged_pairs(value, field=field))
        else:
            own.append((key, value))
    if not merged:
        return own
    own_keys = {key.value for key, _ in own if isinstance(key, ScalarNode)}
    kept = [
        (key, value)
        for key, value in merged
        if not (isinstance(key, ScalarNode) and key.value in own_keys)
    ]
    return kept + own


def mapping_items(node: Node, *, field: str) -> list[tuple[str, Node, Node]]:
    """Return ``(key, key_node, value_node)`` triples of a mapping node.

    ``<<`` merge keys are expanded, with the mapping's own entries taking
    precedence over merged ones.
    """
    if not isinstance(node, MappingNode):
        raise ManifestDecodeError.unexpected_shape(
            field, shape_of(node), line=line_of(node)
        )
    return [
        (scalar_text(key, field=f"{field} key"), key, value)
        for key, value in _pairs(node, field=field)
    ]


def get(node: Node, key: str, *, field: str) -> Node | None:
    """Return the value node stored under ``key`` in a mapping node."""
    for name, _, value in mapping_items(node, field=field):
        if name == key:
            return value
    return None


def get_entry(node: Node, key: str, *, field: str) -> tuple[Node, Node] | None:
    """Return the ``(key_node, value_node)`` pair stored under ``key``."""
    for name, key_node, value in mapping_items(node, field=field):
        if name == key:
            return (key_node, value)
    return None


def decode_string(node: Node | None, *, field: str) -> str:
    """Decode a scalar string field; missing or null values give ``""``."""
    if node is None:
        return ""
    return scalar_text(node, field=field)


def decode_bool(node: Node | None, *, field: str, default: bool = False) -> bool:
    """Decode a YAML 1.2 boolean scalar."""
    if node is None or is_null(node):
        return default
    text = scalar_text(node, field=field).strip().lower()
    if text in {"true", "false"}:
        return text == "true"
    raise ManifestDecodeError.invalid_value(
        field, f"expected a boolean, got {text!r}", line=line_of(node)
    )


def decode_string_list(node: Node | None, *, field: str) -> list[str]:
    """Decode a field that is either one string or a list of strings."""
    if node is None or is_null(node):
        return []
    return dispatch(
        node,
        {
            NodeShape.SCALAR: lambda scalar: [scalar_text(scalar, field=field)],
            NodeShape.SEQUENCE: lambda seq: [
                scalar_text(item, field=field) for item in seq.value
            ],
        },
        field=field,
    )


def to_builtins(node: Node) -> object:
    """Convert ``node`` to plain Python data.

    Scalars become strings (or ``None`` for nulls) so that typed conversion
    decides how to read them; mapping entries with null values are dropped
    so struct defaults apply.
    """
    if isinstance(node, MappingNode):
        result: dict[str, object] = {}
        for key, _, value in mapping_items(node, field="mapping"):
            if not is_null(value):
                result[key] = to_builtins(value)
        return result
    if isinstance(node, SequenceNode):
        return [to_builtins(item) for item in node.value]
    if is_null(node):
        return None
    return str(node.value)


def convert_node[T](node: Node | None, type_: type[T], *, field: str) -> T:
    """Convert ``node`` to ``type_`` with msgspec's lax coercion rules.

    Raises
    ------
    ManifestDecodeError
        If the node does not fit ``type_``.

    """
    raw = {} if node is None or is_null(node) else to_builtins(node)
    try:
        return msgspec.convert(raw, type=type_, strict=False)
    except msgspec.ValidationError as exc:
        line = None if node is None else line_of(node)
        raise ManifestDecodeError.invalid_value(field, exc, line=line) from exc


def reference_marker(node: SequenceNode) -> str:
    """Render a ``!reference`` sequence as an opaque, unevaluated marker."""
    parts = ", ".join(str(to_builtins(item)) for item in node.value)
    return f"{REFERENCE_TAG} [{parts}]"
