"""Tests for pipedeck.compiler module.

Tests property ordering, discriminated-union flattening, required flags,
ambiguity rejection, and prefilling values from an existing configuration.
"""

import pytest

from pipedeck.compiler import (
    SchemaSpecCompiler,
    compile_schema,
    prefill_values,
    resolve_discriminator,
    resolve_property_orders,
)
from pipedeck.errors import SchemaAmbiguityError
from pipedeck.schemas import FieldKind, FieldSpec, parse_root_schema, parse_schema_node


CONNECTOR_SCHEMA = {
    "type": "object",
    "required": ["host", "connection"],
    "properties": {
        "host": {"type": "string", "title": "Host", "order": 0},
        "connection": {
            "type": "object",
            "title": "Connection",
            "order": 1,
            "oneOf": [
                {
                    "title": "API key",
                    "required": ["connector_type", "api_key"],
                    "properties": {
                        "connector_type": {"type": "string", "const": "a"},
                        "api_key": {"type": "string", "airbyte_secret": True},
                        "region": {"type": "string", "default": "us"},
                    },
                },
                {
                    "title": "Password",
                    "required": ["connector_type", "username"],
                    "properties": {
                        "connector_type": {"type": "string", "const": "b"},
                        "username": {"type": "string"},
                        "region": {"type": "string"},
                    },
                },
            ],
        },
    },
}


def _variant(const, **props):
    return {
        "required": ["kind"],
        "properties": {"kind": {"type": "string", "const": const}, **props},
    }


def _union(*variants):
    return {"type": "object", "oneOf": list(variants)}


def _leaves(fields):
    return [leaf for spec in fields for leaf in spec.leaves()]


class TestResolvePropertyOrders:
    """Tests for resolve_property_orders."""

    def _orders(self, properties):
        node = parse_root_schema({"properties": properties})
        return resolve_property_orders(node.properties)

    def test_declaration_order_without_hints(self):
        orders = self._orders({"a": {}, "b": {}, "c": {}})
        assert orders == {"a": 0, "b": 1, "c": 2}

    def test_unordered_properties_follow_max_explicit_order(self):
        orders = self._orders({
            "w": {"order": 2},
            "x": {},
            "y": {"order": 0},
            "z": {},
        })
        assert orders == {"w": 2, "x": 3, "y": 0, "z": 4}

    def test_negative_and_boolean_orders_are_ignored(self):
        orders = self._orders({"a": {"order": -1}, "b": {"order": 1}, "c": {"order": True}})
        assert orders == {"a": 2, "b": 1, "c": 3}


class TestOrdering:
    """Tests for sibling ordering in compiled output."""

    def test_no_hints_keeps_declaration_order(self):
        fields = compile_schema({"properties": {"b": {}, "a": {}, "c": {}}})
        assert [f.path for f in fields] == ["config.b", "config.a", "config.c"]

    def test_mixed_hints_sort_unordered_after_explicit(self):
        fields = compile_schema({
            "properties": {
                "late1": {"type": "string"},
                "second": {"type": "string", "order": 2},
                "late2": {"type": "string"},
                "first": {"type": "string", "order": 0},
            }
        })
        assert [f.path for f in fields] == [
            "config.first", "config.second", "config.late1", "config.late2",
        ]
        assert [f.order for f in fields] == [0, 2, 3, 4]

    def test_equal_orders_keep_declaration_order(self):
        fields = compile_schema({"properties": {"b": {"order": 1}, "a": {"order": 1}}})
        assert [f.path for f in fields] == ["config.b", "config.a"]

    def test_variant_children_are_ordered(self):
        fields = compile_schema({
            "properties": {
                "mode": _union(
                    _variant("x", late={"type": "string"}, early={"type": "string", "order": 0}),
                    _variant("y"),
                )
            }
        })
        assert [c.path for c in fields[0].children] == ["config.mode.early", "config.mode.late"]


class TestDiscriminatedUnion:
    """Tests for oneOf flattening."""

    def test_group_for_union(self):
        fields = compile_schema(CONNECTOR_SCHEMA)
        host, connection = fields

        assert host.kind == FieldKind.SCALAR
        assert connection.kind == FieldKind.GROUP
        assert connection.path == "config.connection.connector_type"
        assert connection.discriminator == "connector_type"
        assert connection.enum_values == ("a", "b")
        assert connection.title == "Connection"
        assert connection.required is True

    def test_leaves_record_nearest_discriminator_value(self):
        connection = compile_schema(CONNECTOR_SCHEMA)[1]
        by_value = {}
        for child in connection.children:
            by_value.setdefault(child.parent_discriminator_value, []).append(child.path)

        assert by_value == {
            "a": ["config.connection.api_key", "config.connection.region"],
            "b": ["config.connection.username", "config.connection.region"],
        }

    def test_discriminator_property_is_not_emitted(self):
        fields = compile_schema(CONNECTOR_SCHEMA)
        assert not any(leaf.path.endswith(".connector_type") for leaf in _leaves(fields))

    def test_top_level_fields_are_unconditional(self):
        for spec in compile_schema(CONNECTOR_SCHEMA):
            assert spec.parent_discriminator_value == ""
            assert not spec.is_conditional

    def test_required_comes_from_declaring_variant(self):
        connection = compile_schema(CONNECTOR_SCHEMA)[1]
        required = {(c.path, c.parent_discriminator_value): c.required for c in connection.children}
        assert required[("config.connection.api_key", "a")] is True
        assert required[("config.connection.region", "a")] is False
        assert required[("config.connection.username", "b")] is True

    def test_leaf_attributes(self):
        connection = compile_schema(CONNECTOR_SCHEMA)[1]
        api_key, region = connection.children[:2]
        assert api_key.secret is True
        assert api_key.schema_type == "string"
        assert "airbyte_secret" not in api_key.extras
        assert region.default == "us"

    def test_colliding_keys_are_distinguished_by_parent_value(self):
        fields = compile_schema(CONNECTOR_SCHEMA)
        keys = [(leaf.path, leaf.parent_discriminator_value) for leaf in _leaves(fields)]
        assert len(keys) == len(set(keys))
        assert ("config.connection.region", "a") in keys
        assert ("config.connection.region", "b") in keys

    def test_three_levels_of_nesting(self):
        schema = {
            "properties": {
                "outer": _union(
                    _variant("one", middle=_union(
                        _variant("m1", inner=_union(
                            _variant("i1", value={"type": "string"}),
                            _variant("i2", other={"type": "integer"}),
                        )),
                        _variant("m2"),
                    )),
                    _variant("two"),
                )
            }
        }
        outer = compile_schema(schema)[0]
        middle = outer.children[0]
        inner = middle.children[0]

        assert outer.path == "config.outer.kind"
        assert middle.path == "config.outer.middle.kind"
        assert middle.parent_discriminator_value == "one"
        assert inner.path == "config.outer.middle.inner.kind"
        assert inner.parent_discriminator_value == "m1"
        assert [(leaf.path, leaf.parent_discriminator_value) for leaf in inner.children] == [
            ("config.outer.middle.inner.value", "i1"),
            ("config.outer.middle.inner.other", "i2"),
        ]

    def test_variant_level_const_scenario(self):
        """Variants identified by their own const, sharing required field x."""
        fields = compile_schema({
            "properties": {
                "name": {"type": "string", "order": 0},
                "mode": {
                    "type": "object",
                    "oneOf": [
                        {"const": "x", "required": ["x"]},
                        {"const": "y", "required": ["x"]},
                    ],
                },
            }
        })
        name, mode = fields
        assert name.path == "config.name"
        assert mode.discriminator == "x"
        assert mode.path == "config.mode.x"
        assert mode.enum_values == ("x", "y")


class TestPassthroughGroups:
    """Tests for single-variant unions and plain nested objects."""

    def test_single_variant_has_no_discriminator(self):
        fields = compile_schema({
            "properties": {
                "ssh": {
                    "type": "object",
                    "oneOf": [{"required": ["host"], "properties": {"host": {"type": "string"}}}],
                }
            }
        })
        ssh = fields[0]
        assert ssh.path == "config.ssh"
        assert ssh.discriminator is None
        assert ssh.enum_values == ()
        assert [(c.path, c.required, c.parent_discriminator_value) for c in ssh.children] == [
            ("config.ssh.host", True, ""),
        ]

    def test_single_variant_inherits_enclosing_choice(self):
        fields = compile_schema({
            "properties": {
                "mode": _union(
                    _variant("x", tunnel={"type": "object", "oneOf": [
                        {"properties": {"port": {"type": "integer"}}},
                    ]}),
                    _variant("y"),
                )
            }
        })
        tunnel = fields[0].children[0]
        assert tunnel.parent_discriminator_value == "x"
        assert tunnel.children[0].parent_discriminator_value == "x"

    def test_nested_object(self):
        fields = compile_schema({
            "properties": {
                "creds": {
                    "type": "object",
                    "required": ["user"],
                    "properties": {"user": {"type": "string"}, "pw": {"type": "string"}},
                }
            }
        })
        creds = fields[0]
        assert creds.kind == FieldKind.GROUP
        assert [(c.path, c.required) for c in creds.children] == [
            ("config.creds.user", True),
            ("config.creds.pw", False),
        ]


class TestAmbiguity:
    """Tests for rejection of unresolvable unions."""

    def test_variant_without_required_list(self):
        schema = {"properties": {"mode": _union(
            _variant("x"),
            {"properties": {"kind": {"const": "y"}}},
        )}}
        with pytest.raises(SchemaAmbiguityError, match="config.mode"):
            compile_schema(schema)

    def test_empty_intersection(self):
        schema = {"properties": {"mode": _union(
            {"required": ["a"], "properties": {"a": {"const": "x"}}},
            {"required": ["b"], "properties": {"b": {"const": "y"}}},
        )}}
        with pytest.raises(SchemaAmbiguityError, match="no required field"):
            compile_schema(schema)

    def test_empty_one_of(self):
        with pytest.raises(SchemaAmbiguityError):
            compile_schema({"properties": {"mode": {"type": "object", "oneOf": []}}})

    def test_missing_constant(self):
        schema = {"properties": {"mode": _union(
            _variant("x"),
            {"required": ["kind"], "properties": {"kind": {"type": "string"}}},
        )}}
        with pytest.raises(SchemaAmbiguityError, match="no constant"):
            compile_schema(schema)

    def test_several_common_fields_without_constants(self):
        schema = {"properties": {"mode": _union(
            {"required": ["a", "b"], "properties": {}},
            {"required": ["a", "b"], "properties": {}},
        )}}
        with pytest.raises(SchemaAmbiguityError, match="ambiguous"):
            compile_schema(schema)


class TestResolveDiscriminator:
    """Tests for resolve_discriminator."""

    def _variants(self, *raw):
        return [parse_schema_node(r) for r in raw]

    def test_single_common_field(self):
        variants = self._variants(
            {"type": "object", "required": ["kind", "a"]},
            {"type": "object", "required": ["b", "kind"]},
        )
        assert resolve_discriminator("p", variants) == "kind"

    def test_narrows_to_constant_bearing_field(self):
        variants = self._variants(
            {"type": "object", "required": ["auth", "kind"],
             "properties": {"auth": {"type": "string"}, "kind": {"const": "x"}}},
            {"type": "object", "required": ["auth", "kind"],
             "properties": {"auth": {"type": "string"}, "kind": {"const": "y"}}},
        )
        assert resolve_discriminator("p", variants) == "kind"


class TestSchemaSpecCompiler:
    """Tests for the compiler entry points."""

    def test_compile_is_idempotent(self):
        compiler = SchemaSpecCompiler()
        first = compiler.compile(CONNECTOR_SCHEMA)
        second = compiler.compile(CONNECTOR_SCHEMA)
        assert first == second
        assert [f.to_dict() for f in first] == [f.to_dict() for f in second]

    def test_accepts_parsed_root(self):
        root = parse_root_schema(CONNECTOR_SCHEMA)
        assert SchemaSpecCompiler().compile(root) == compile_schema(CONNECTOR_SCHEMA)

    def test_custom_and_empty_base_path(self):
        assert compile_schema({"properties": {"a": {}}}, "settings")[0].path == "settings.a"
        assert compile_schema({"properties": {"a": {}}}, "")[0].path == "a"

    def test_invalid_schema(self):
        with pytest.raises(ValueError):
            compile_schema({"properties": ["not", "a", "mapping"]})

    def test_scalar_one_of_is_a_leaf(self):
        choices = [{"const": 5432}, {"const": 5433}]
        fields = compile_schema({
            "required": ["port"],
            "properties": {"port": {"type": "integer", "oneOf": choices}},
        })

        assert len(fields) == 1
        port = fields[0]
        assert port.path == "config.port"
        assert port.kind == FieldKind.SCALAR
        assert port.required is True
        assert port.schema_type == "integer"
        assert port.extras == {"oneOf": choices}

    def test_non_mapping_variant_is_invalid(self):
        with pytest.raises(ValueError, match="must be a mapping"):
            compile_schema({"properties": {"mode": {"type": "object", "oneOf": ["a", "b"]}}})

    def test_leaf_const_kept_in_extras(self):
        spec = compile_schema({"properties": {"fixed": {"type": "string", "const": "v"}}})[0]
        assert spec.extras == {"const": "v"}

    def test_round_trip_through_dict(self):
        for spec in compile_schema(CONNECTOR_SCHEMA):
            assert FieldSpec.from_dict(spec.to_dict()) == spec


class TestPrefillValues:
    """Tests for prefill_values."""

    def test_only_selected_variant_is_prefilled(self):
        fields = compile_schema(CONNECTOR_SCHEMA)
        values = prefill_values(fields, {
            "host": "db.internal",
            "connection": {
                "connector_type": "b",
                "username": "loader",
                "region": "eu",
                "api_key": "stale",
            },
        })
        assert values == {
            "config.host": "db.internal",
            "config.connection.connector_type": "b",
            "config.connection.username": "loader",
            "config.connection.region": "eu",
        }

    def test_missing_choice_skips_conditional_fields(self):
        fields = compile_schema(CONNECTOR_SCHEMA)
        assert prefill_values(fields, {"host": "h"}) == {"config.host": "h"}

    def test_empty_configuration(self):
        assert prefill_values(compile_schema(CONNECTOR_SCHEMA), {}) == {}
