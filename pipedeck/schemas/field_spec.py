"""
FieldSpec - compiled descriptor of one form field or field group.

The compiler flattens a connector schema into a tree of FieldSpecs that a
form renderer can walk in order. Conditional visibility is expressed through
parent_discriminator_value: a field is shown only when the nearest enclosing
dropdown is set to that value.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional


class FieldKind(str, Enum):
    """Kind of a compiled field."""
    SCALAR = "scalar"
    GROUP = "group"


@dataclass(frozen=True)
class FieldSpec:
    """
    A compiled form field.

    Attributes:
        path: Dot-delimited address into the config object
        kind: scalar (leaf input) or group (dropdown / nested section)
        title: Display title
        description: Help text
        required: Whether the enclosing object lists this property as required
        order: Resolved sort position among siblings
        parent_discriminator_value: Constant the nearest enclosing dropdown must
            hold for this field to be active ("" when unconditional)
        enum_values: Variant constants, for groups acting as dropdowns
        discriminator: Property name carrying the variant constant (groups only)
        children: Nested fields (groups only)
        schema_type: JSON type of a leaf ("string", "integer", ...)
        default: Declared default value
        secret: Whether the value should be masked
        extras: Other schema keywords passed through untouched
    """
    path: str
    kind: FieldKind
    title: Optional[str] = None
    description: Optional[str] = None
    required: bool = False
    order: int = 0
    parent_discriminator_value: Any = ""
    enum_values: tuple[Any, ...] = ()
    discriminator: Optional[str] = None
    children: tuple["FieldSpec", ...] = ()
    schema_type: Optional[str] = None
    default: Any = None
    secret: bool = False
    extras: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.kind == FieldKind.SCALAR and self.children:
            raise ValueError(f"Scalar field '{self.path}' cannot have children")

    @property
    def is_group(self) -> bool:
        return self.kind == FieldKind.GROUP

    @property
    def is_conditional(self) -> bool:
        return self.parent_discriminator_value != ""

    def walk(self) -> Iterator["FieldSpec"]:
        """Yield this field and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def leaves(self) -> Iterator["FieldSpec"]:
        """Yield the scalar fields under (or equal to) this field."""
        for spec in self.walk():
            if spec.kind == FieldKind.SCALAR:
                yield spec

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "path": self.path,
            "kind": self.kind.value,
            "required": self.required,
            "order": self.order,
            "parent_discriminator_value": self.parent_discriminator_value,
        }
        if self.title is not None:
            result["title"] = self.title
        if self.description is not None:
            result["description"] = self.description
        if self.kind == FieldKind.GROUP:
            result["enum_values"] = list(self.enum_values)
            result["discriminator"] = self.discriminator
            result["children"] = [c.to_dict() for c in self.children]
        else:
            if self.schema_type is not None:
                result["type"] = self.schema_type
            if self.default is not None:
                result["default"] = self.default
            if self.secret:
                result["secret"] = True
            if self.extras:
                result["extras"] = dict(self.extras)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FieldSpec":
        """Deserialize from dictionary."""
        return cls(
            path=data["path"],
            kind=FieldKind(data["kind"]),
            title=data.get("title"),
            description=data.get("description"),
            required=data.get("required", False),
            order=data.get("order", 0),
            parent_discriminator_value=data.get("parent_discriminator_value", ""),
            enum_values=tuple(data.get("enum_values", ())),
            discriminator=data.get("discriminator"),
            children=tuple(cls.from_dict(c) for c in data.get("children", ())),
            schema_type=data.get("type"),
            default=data.get("default"),
            secret=data.get("secret", False),
            extras=dict(data.get("extras", {})),
        )
