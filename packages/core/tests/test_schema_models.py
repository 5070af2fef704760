"""Tests for the attribute schema models."""

import pytest
from pydantic import ValidationError as PydanticValidationError
from tfweave.schema import AttributeKind, AttributeSchema, BlockSchema, ResourceSchema


class TestAttributeSchema:
    def test_defaults_to_optional_string_scalar(self):
        attr = AttributeSchema(name="bucket")
        assert attr.kind == AttributeKind.SCALAR
        assert attr.type == "string"
        assert attr.required is False

    def test_enum_needs_choices(self):
        with pytest.raises(PydanticValidationError, match="choices"):
            AttributeSchema(name="acl", kind="enum")

    def test_empty_enum_set_rejected(self):
        with pytest.raises(PydanticValidationError, match="empty enum"):
            AttributeSchema(name="acl", kind="enum", choices=[])

    def test_nested_needs_schema(self):
        with pytest.raises(PydanticValidationError, match="needs a schema"):
            AttributeSchema(name="versioning", kind="nested")

    def test_nested_schema_alias(self):
        attr = AttributeSchema.model_validate(
            {"name": "versioning", "kind": "nested", "schema": {"attributes": [{"name": "enabled", "type": "boolean"}]}}
        )
        assert attr.block is not None
        assert attr.block.names == ["enabled"]

    def test_array_items_default_to_any_scalar(self):
        attr = AttributeSchema(name="layers", kind="array")
        assert attr.items is not None
        assert attr.items.type == "any"
        assert not attr.is_block_array

    def test_block_array_detected(self):
        attr = AttributeSchema.model_validate(
            {
                "name": "ingress",
                "kind": "array",
                "items": {"kind": "nested", "schema": {"attributes": [{"name": "from_port", "type": "integer"}]}},
            }
        )
        assert attr.is_block_array

    def test_required_and_default_conflict(self):
        with pytest.raises(PydanticValidationError, match="both required and defaulted"):
            AttributeSchema(name="x", required=True, default="y")

    def test_invalid_pattern_rejected(self):
        with pytest.raises(PydanticValidationError, match="Invalid pattern"):
            AttributeSchema(name="x", pattern="[unclosed")

    def test_unknown_keys_rejected(self):
        with pytest.raises(PydanticValidationError):
            AttributeSchema.model_validate({"name": "x", "requried": True})


class TestBlockSchema:
    def test_duplicate_attribute_names_rejected(self):
        with pytest.raises(PydanticValidationError, match="Duplicate attribute"):
            BlockSchema(attributes=[AttributeSchema(name="a"), AttributeSchema(name="a")])

    def test_unnamed_attribute_rejected(self):
        with pytest.raises(PydanticValidationError, match="must be named"):
            BlockSchema(attributes=[AttributeSchema()])

    def test_invariant_must_name_declared_attributes(self):
        with pytest.raises(PydanticValidationError, match="undeclared attribute"):
            BlockSchema.model_validate(
                {
                    "attributes": [{"name": "a"}, {"name": "b"}],
                    "invariants": [{"type": "exclusive", "members": ["a", "c"]}],
                }
            )

    def test_exclusive_group_needs_two_members(self):
        with pytest.raises(PydanticValidationError, match="at least two"):
            BlockSchema.model_validate(
                {"attributes": [{"name": "a"}], "invariants": [{"type": "exclusive", "members": ["a"]}]}
            )

    def test_invariants_keep_declared_order(self):
        block = BlockSchema.model_validate(
            {
                "attributes": [{"name": "a"}, {"name": "b"}, {"name": "c"}],
                "invariants": [
                    {"type": "conditional", "require": "c", "when": "a"},
                    {"type": "exclusive", "members": ["a", "b"]},
                    {"type": "member_of", "path": "a", "collection": "c"},
                ],
            }
        )
        assert [inv.type for inv in block.invariants] == ["conditional", "exclusive", "member_of"]

    def test_attribute_lookup(self):
        block = BlockSchema(attributes=[AttributeSchema(name="a"), AttributeSchema(name="b")])
        assert block.attribute("b").name == "b"
        assert block.attribute("missing") is None


class TestResourceSchema:
    def test_open_schema_accepts_anything(self):
        schema = ResourceSchema.open("aws_unlisted_thing")
        assert schema.kind == "aws_unlisted_thing"
        assert schema.additional_attributes is True
        assert schema.attributes == []

    def test_outputs_loaded(self):
        schema = ResourceSchema.model_validate({"kind": "k", "outputs": ["id", "arn"], "attributes": []})
        assert schema.outputs == ["id", "arn"]
