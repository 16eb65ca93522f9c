"""
SchemaNode - typed view of a connector's JSON schema.

Connector definitions expose their configuration as JSON schema. Before
compiling, the raw mapping is parsed into a closed set of node types:

- ScalarNode: any property that is not an object (string, integer, ...)
- ObjectNode: an object with a properties map and an optional required list
- UnionNode: an object whose oneOf lists mutually exclusive ObjectNode variants

Keywords the compiler does not interpret are kept in `extras` so that leaf
fields can pass them through to the form renderer.
"""

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union


# Keywords consumed structurally; everything else lands in extras
_STRUCTURAL_KEYS = frozenset({
    "type", "properties", "required", "oneOf", "const", "order", "title", "description",
})


@dataclass(frozen=True)
class ScalarNode:
    """A non-object property."""
    schema_type: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None
    const: Any = None
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ObjectNode:
    """
    An object schema.

    Attributes:
        properties: Child nodes by property name, in declaration order
        required: Required property names, or None when the schema omits the list
    """
    properties: dict[str, "SchemaNode"] = field(default_factory=dict)
    required: Optional[tuple[str, ...]] = None
    title: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None
    const: Any = None
    extras: dict[str, Any] = field(default_factory=dict)

    def is_required(self, key: str) -> bool:
        return self.required is not None and key in self.required


@dataclass(frozen=True)
class UnionNode:
    """An object property whose value is one of several variants."""
    variants: tuple[ObjectNode, ...] = ()
    title: Optional[str] = None
    description: Optional[str] = None
    order: Optional[int] = None
    const: Any = None
    extras: dict[str, Any] = field(default_factory=dict)


SchemaNode = Union[ScalarNode, ObjectNode, UnionNode]


def _explicit_order(raw: Mapping[str, Any]) -> Optional[int]:
    """Return the declared order if it is a non-negative integer."""
    order = raw.get("order")
    if isinstance(order, bool) or not isinstance(order, int):
        return None
    return order if order >= 0 else None


def _extras(raw: Mapping[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in _STRUCTURAL_KEYS}


def _parse_object(raw: Mapping[str, Any]) -> ObjectNode:
    if not isinstance(raw, Mapping):
        raise ValueError(f"Object schema must be a mapping, got {type(raw).__name__}")

    properties_raw = raw.get("properties") or {}
    if not isinstance(properties_raw, Mapping):
        raise ValueError(f"'properties' must be a mapping, got {type(properties_raw).__name__}")

    required_raw = raw.get("required")
    required: Optional[tuple[str, ...]]
    if required_raw is None:
        required = None
    elif isinstance(required_raw, (list, tuple)):
        required = tuple(str(r) for r in required_raw)
    else:
        raise ValueError(f"'required' must be a list, got {type(required_raw).__name__}")

    return ObjectNode(
        properties={str(k): parse_schema_node(v) for k, v in properties_raw.items()},
        required=required,
        title=raw.get("title"),
        description=raw.get("description"),
        order=_explicit_order(raw),
        const=raw.get("const"),
        extras=_extras(raw),
    )


def parse_schema_node(raw: Mapping[str, Any]) -> SchemaNode:
    """
    Parse a raw JSON schema mapping into a SchemaNode.

    Args:
        raw: JSON schema mapping (as returned by the connector specification endpoint)

    Returns:
        UnionNode for an object carrying a oneOf list, ObjectNode for any
        other object, ScalarNode otherwise (a scalar oneOf stays in extras)

    Raises:
        ValueError: If the mapping is structurally invalid
    """
    if not isinstance(raw, Mapping):
        raise ValueError(f"Schema node must be a mapping, got {type(raw).__name__}")

    one_of = raw.get("oneOf")
    if raw.get("type") == "object" and one_of is not None:
        if not isinstance(one_of, (list, tuple)):
            raise ValueError(f"'oneOf' must be a list, got {type(one_of).__name__}")
        return UnionNode(
            variants=tuple(_parse_object(v) for v in one_of),
            title=raw.get("title"),
            description=raw.get("description"),
            order=_explicit_order(raw),
            const=raw.get("const"),
            extras=_extras(raw),
        )

    if raw.get("type") == "object":
        return _parse_object(raw)

    extras = _extras(raw)
    if one_of is not None:
        extras["oneOf"] = one_of

    return ScalarNode(
        schema_type=raw.get("type"),
        title=raw.get("title"),
        description=raw.get("description"),
        order=_explicit_order(raw),
        const=raw.get("const"),
        extras=extras,
    )


def parse_root_schema(raw: Mapping[str, Any]) -> ObjectNode:
    """Parse the top-level specification, which is always treated as an object."""
    if not isinstance(raw, Mapping):
        raise ValueError(f"Schema must be a mapping, got {type(raw).__name__}")
    return _parse_object(raw)
