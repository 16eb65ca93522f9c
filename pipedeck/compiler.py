"""
Compiler - Transform a connector's JSON schema into ordered form fields.

The compiler resolves:
- property order (explicit `order` hints first, the rest appended in declaration order)
- discriminated unions (oneOf) into dropdown groups with conditional children
- required flags from the object that declares each property

The resulting FieldSpec tree has:
- A total order among siblings
- One group per union, whose enum_values list the variant constants
- parent_discriminator_value on every field below a dropdown, naming the
  nearest enclosing choice that makes the field visible

Compilation is pure: the same schema always yields the same fields.
"""

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Union

from pipedeck.errors import SchemaAmbiguityError
from pipedeck.schemas import (
    FieldKind,
    FieldSpec,
    ObjectNode,
    ScalarNode,
    SchemaNode,
    UnionNode,
    parse_root_schema,
)


DEFAULT_BASE_PATH = "config"

_MISSING = object()


@dataclass(frozen=True)
class _Scope:
    """
    State threaded through recursion.

    excluded_keys: properties not emitted (the discriminator of the variant being walked)
    discriminator_value: constant of the nearest enclosing dropdown choice ("" at top level)
    """
    excluded_keys: frozenset[str] = frozenset()
    discriminator_value: Any = ""


def _join(base_path: str, key: str) -> str:
    return f"{base_path}.{key}" if base_path else key


def resolve_property_orders(properties: Mapping[str, SchemaNode]) -> dict[str, int]:
    """
    Assign an order to every property.

    Explicit non-negative orders are kept. The remaining properties get
    max(explicit) + 1, + 2, ... in declaration order, so they sort after all
    explicitly ordered ones. The maximum must be known before backfilling.

    Args:
        properties: Property nodes in declaration order

    Returns:
        Mapping of property name to resolved order
    """
    max_order = -1
    for node in properties.values():
        if node.order is not None and node.order > max_order:
            max_order = node.order

    orders: dict[str, int] = {}
    for key, node in properties.items():
        if node.order is not None:
            orders[key] = node.order
        else:
            max_order += 1
            orders[key] = max_order
    return orders


def _variant_constant(variant: ObjectNode, discriminator: str) -> Any:
    """Constant identifying a variant: the discriminator's const, else the variant's own."""
    prop = variant.properties.get(discriminator)
    if prop is not None and prop.const is not None:
        return prop.const
    return variant.const


def resolve_discriminator(path: str, variants: Sequence[ObjectNode]) -> str:
    """
    Find the property shared by every variant's required list.

    The intersection is taken pairwise, preserving the first variant's order.
    When several fields survive, the one carrying a const in every variant
    is chosen.

    Args:
        path: Path of the union property (for error messages)
        variants: The union's variants, at least two

    Returns:
        The discriminator property name

    Raises:
        SchemaAmbiguityError: If no single discriminator can be determined
    """
    for idx, variant in enumerate(variants):
        if variant.required is None:
            raise SchemaAmbiguityError(
                path, f"variant {idx} has no 'required' list; cannot resolve discriminator"
            )

    common = list(variants[0].required)
    for variant in variants[1:]:
        common = [key for key in common if key in variant.required]

    if not common:
        raise SchemaAmbiguityError(path, "variants share no required field to discriminate on")

    if len(common) == 1:
        return common[0]

    with_constants = [
        key for key in common
        if all(
            variant.properties.get(key) is not None
            and variant.properties[key].const is not None
            for variant in variants
        )
    ]
    if len(with_constants) == 1:
        return with_constants[0]

    raise SchemaAmbiguityError(
        path, f"ambiguous discriminator, candidates: {', '.join(common)}"
    )


class SchemaSpecCompiler:
    """
    Compiler for turning connector schemas into FieldSpec trees.

    Usage:
        compiler = SchemaSpecCompiler()
        fields = compiler.compile(spec_json, "config")
    """

    def compile(
        self,
        schema: Union[Mapping[str, Any], ObjectNode],
        base_path: str = DEFAULT_BASE_PATH,
    ) -> list[FieldSpec]:
        """
        Compile a schema into ordered top-level fields.

        Args:
            schema: Raw JSON schema mapping or an already parsed ObjectNode
            base_path: Prefix for every field path

        Returns:
            Top-level FieldSpecs sorted by resolved order

        Raises:
            SchemaAmbiguityError: If a union has no resolvable discriminator
            ValueError: If the schema is structurally invalid
        """
        root = schema if isinstance(schema, ObjectNode) else parse_root_schema(schema)
        return self._compile_object(root, base_path, _Scope())

    def _compile_object(self, node: ObjectNode, base_path: str, scope: _Scope) -> list[FieldSpec]:
        """Compile the properties of one object, sorted by resolved order."""
        orders = resolve_property_orders(node.properties)
        keys = [k for k in node.properties if k not in scope.excluded_keys]
        # sorted() is stable: equal orders keep declaration order
        keys = sorted(keys, key=lambda k: orders[k])

        result: list[FieldSpec] = []
        for key in keys:
            prop = node.properties[key]
            path = _join(base_path, key)
            required = node.is_required(key)

            if isinstance(prop, UnionNode):
                result.append(self._compile_union(prop, path, required, orders[key], scope))
            elif isinstance(prop, ObjectNode):
                result.append(FieldSpec(
                    path=path,
                    kind=FieldKind.GROUP,
                    title=prop.title,
                    description=prop.description,
                    required=required,
                    order=orders[key],
                    parent_discriminator_value=scope.discriminator_value,
                    children=tuple(self._compile_object(
                        prop, path, _Scope(discriminator_value=scope.discriminator_value)
                    )),
                ))
            else:
                result.append(self._compile_leaf(prop, path, required, orders[key], scope))

        return result

    def _compile_union(
        self,
        node: UnionNode,
        path: str,
        required: bool,
        order: int,
        scope: _Scope,
    ) -> FieldSpec:
        """Compile a oneOf property into a group."""
        if not node.variants:
            raise SchemaAmbiguityError(path, "'oneOf' has no variants")

        if len(node.variants) == 1:
            # Single variant: no choice to make, children inherit the enclosing choice
            children = self._compile_object(
                node.variants[0], path, _Scope(discriminator_value=scope.discriminator_value)
            )
            return FieldSpec(
                path=path,
                kind=FieldKind.GROUP,
                title=node.title,
                description=node.description,
                required=required,
                order=order,
                parent_discriminator_value=scope.discriminator_value,
                children=tuple(children),
            )

        discriminator = resolve_discriminator(path, node.variants)

        enum_values: list[Any] = []
        children: list[FieldSpec] = []
        for idx, variant in enumerate(node.variants):
            constant = _variant_constant(variant, discriminator)
            if constant is None:
                raise SchemaAmbiguityError(
                    path, f"variant {idx} has no constant for discriminator '{discriminator}'"
                )
            enum_values.append(constant)
            variant_scope = _Scope(
                excluded_keys=frozenset({discriminator}),
                discriminator_value=constant,
            )
            children.extend(self._compile_object(variant, path, variant_scope))

        return FieldSpec(
            path=_join(path, discriminator),
            kind=FieldKind.GROUP,
            title=node.title,
            description=node.description,
            required=required,
            order=order,
            parent_discriminator_value=scope.discriminator_value,
            enum_values=tuple(enum_values),
            discriminator=discriminator,
            children=tuple(children),
        )

    def _compile_leaf(
        self,
        node: ScalarNode,
        path: str,
        required: bool,
        order: int,
        scope: _Scope,
    ) -> FieldSpec:
        extras = dict(node.extras)
        default = extras.pop("default", None)
        secret = bool(extras.pop("airbyte_secret", False))
        if node.const is not None:
            extras["const"] = node.const

        return FieldSpec(
            path=path,
            kind=FieldKind.SCALAR,
            title=node.title,
            description=node.description,
            required=required,
            order=order,
            parent_discriminator_value=scope.discriminator_value,
            schema_type=node.schema_type,
            default=default,
            secret=secret,
            extras=extras,
        )


def compile_schema(
    schema: Union[Mapping[str, Any], ObjectNode],
    base_path: str = DEFAULT_BASE_PATH,
) -> list[FieldSpec]:
    """
    Convenience function to compile a schema without holding a compiler.

    Args:
        schema: Raw JSON schema mapping or parsed ObjectNode
        base_path: Prefix for every field path

    Returns:
        Top-level FieldSpecs sorted by resolved order
    """
    return SchemaSpecCompiler().compile(schema, base_path)


def _lookup(configuration: Mapping[str, Any], path: str, base_path: str) -> Any:
    """Resolve a field path inside a configuration object."""
    if base_path:
        prefix = f"{base_path}."
        if not path.startswith(prefix):
            return _MISSING
        path = path[len(prefix):]

    value: Any = configuration
    for part in path.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return _MISSING
    return value


def prefill_values(
    fields: Sequence[FieldSpec],
    configuration: Mapping[str, Any],
    base_path: str = DEFAULT_BASE_PATH,
) -> dict[str, Any]:
    """
    Map field paths to the values an existing configuration holds for them.

    Only fields active under the configuration's own dropdown choices are
    returned, so a value stored for one variant never fills a sibling
    variant's field of the same name.

    Args:
        fields: Compiled top-level fields
        configuration: Existing connector configuration (without the base path)
        base_path: Base path the fields were compiled with

    Returns:
        Mapping of field path to value
    """
    values: dict[str, Any] = {}
    _prefill(fields, configuration, base_path, None, values)
    return values


def _prefill(
    fields: Sequence[FieldSpec],
    configuration: Mapping[str, Any],
    base_path: str,
    selected: Optional[Any],
    values: dict[str, Any],
) -> None:
    for spec in fields:
        if spec.is_conditional and spec.parent_discriminator_value != selected:
            continue

        if spec.kind == FieldKind.SCALAR:
            value = _lookup(configuration, spec.path, base_path)
            if value is not _MISSING:
                values[spec.path] = value
            continue

        if spec.discriminator is None:
            _prefill(spec.children, configuration, base_path, selected, values)
            continue

        choice = _lookup(configuration, spec.path, base_path)
        if choice is _MISSING:
            continue
        values[spec.path] = choice
        _prefill(spec.children, configuration, base_path, choice, values)
