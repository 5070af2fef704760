"""Tests for the attribute validator."""

import pytest
from tfweave.errors import (
    ConditionalRequirementViolation,
    ConstraintViolation,
    InvalidFieldType,
    MissingRequiredField,
    MutualExclusivityViolation,
    ReferentialConsistencyViolation,
)
from tfweave.reference import Reference, ref
from tfweave.schema import ResourceSchema
from tfweave.validator import AttributeValidator, ValidatedAttributes, is_present, validate


def _schema(attributes, invariants=None, **extra):
    return ResourceSchema.model_validate(
        {"kind": "test_thing", "attributes": attributes, "invariants": invariants or [], **extra}
    )


class TestRequiredAndDefaults:
    def test_empty_map_against_required_name(self):
        schema = _schema([{"name": "name", "required": True}, {"name": "description"}])
        with pytest.raises(MissingRequiredField) as exc:
            validate(schema, {})
        assert exc.value.field == "name"

    def test_empty_map_reports_first_required_field(self, lambda_schema):
        with pytest.raises(MissingRequiredField) as exc:
            validate(lambda_schema, {})
        assert exc.value.field == "function_name"
        assert str(exc.value) == "Missing required field: function_name"

    def test_none_counts_as_absent(self):
        schema = _schema([{"name": "name", "required": True}])
        with pytest.raises(MissingRequiredField):
            validate(schema, {"name": None})

    def test_defaults_filled(self, lambda_schema):
        attrs = validate(lambda_schema, {"function_name": "api", "filename": "api.zip"})
        assert attrs["package_type"] == "Zip"

    def test_missing_optional_is_none(self, lambda_schema):
        attrs = validate(lambda_schema, {"function_name": "api", "filename": "api.zip"})
        assert attrs["s3_key"] is None

    def test_result_follows_declaration_order(self):
        schema = _schema([{"name": "b"}, {"name": "a"}, {"name": "c"}])
        attrs = validate(schema, {"c": "3", "a": "1", "b": "2"})
        assert list(attrs) == ["b", "a", "c"]

    def test_nested_required_field_path(self, schemas):
        schema = schemas.require("aws_cloudfront_distribution").schema
        with pytest.raises(MissingRequiredField) as exc:
            validate(
                schema,
                {
                    "enabled": True,
                    "origin": [{"domain_name": "example.com"}],
                    "default_cache_behavior": {"target_origin_id": "web"},
                    "restrictions": {"geo_restriction": {"restriction_type": "none"}},
                    "viewer_certificate": {"cloudfront_default_certificate": True},
                },
            )
        assert exc.value.field == "origin[0].origin_id"


class TestTypes:
    def test_integer_rejects_string(self):
        schema = _schema([{"name": "timeout", "type": "integer"}])
        with pytest.raises(InvalidFieldType) as exc:
            validate(schema, {"timeout": "slow"})
        assert exc.value.field == "timeout"

    def test_integer_accepts_whole_float(self):
        schema = _schema([{"name": "timeout", "type": "integer"}])
        assert validate(schema, {"timeout": 30.0})["timeout"] == 30

    def test_boolean_is_not_an_integer(self):
        schema = _schema([{"name": "timeout", "type": "integer"}])
        with pytest.raises(InvalidFieldType):
            validate(schema, {"timeout": True})

    def test_string_accepts_numbers(self):
        schema = _schema([{"name": "version"}])
        assert validate(schema, {"version": 3})["version"] == "3"

    def test_boolean_rejects_string(self):
        schema = _schema([{"name": "enabled", "type": "boolean"}])
        with pytest.raises(InvalidFieldType):
            validate(schema, {"enabled": "yes"})

    def test_unknown_attribute_rejected(self):
        schema = _schema([{"name": "bucket"}])
        with pytest.raises(InvalidFieldType, match="unknown attribute") as exc:
            validate(schema, {"bucket": "b", "buckett": "c"})
        assert exc.value.field == "buckett"

    def test_open_schema_keeps_extras(self):
        schema = ResourceSchema.open("aws_thing")
        attrs = validate(schema, {"name": "x", "settings": {"a": 1}, "list": [1, 2]})
        assert attrs["name"] == "x"
        assert isinstance(attrs["settings"], ValidatedAttributes)
        assert attrs["list"] == (1, 2)

    def test_map_requires_mapping(self):
        schema = _schema([{"name": "tags", "kind": "map"}])
        with pytest.raises(InvalidFieldType):
            validate(schema, {"tags": ["a"]})

    def test_map_coerces_values(self):
        schema = _schema([{"name": "tags", "kind": "map"}])
        attrs = validate(schema, {"tags": {"Name": "web", "Tier": 2}})
        assert attrs["tags"].to_dict() == {"Name": "web", "Tier": "2"}


class TestConstraints:
    def test_enum_choice(self):
        schema = _schema([{"name": "acl", "kind": "enum", "choices": ["private", "public-read"]}])
        with pytest.raises(ConstraintViolation) as exc:
            validate(schema, {"acl": "world"})
        assert exc.value.constraint == "enum"

    def test_pattern_must_match_whole_value(self):
        schema = _schema([{"name": "instance_class", "pattern": r"db\..+"}])
        assert validate(schema, {"instance_class": "db.t3.micro"})["instance_class"] == "db.t3.micro"
        with pytest.raises(ConstraintViolation) as exc:
            validate(schema, {"instance_class": "t3.micro"})
        assert exc.value.constraint == "pattern"

    @pytest.mark.parametrize("value", [0, 901])
    def test_range(self, value):
        schema = _schema([{"name": "timeout", "type": "integer", "minimum": 1, "maximum": 900}])
        with pytest.raises(ConstraintViolation) as exc:
            validate(schema, {"timeout": value})
        assert exc.value.constraint == "range"

    def test_range_bounds_inclusive(self):
        schema = _schema([{"name": "timeout", "type": "integer", "minimum": 1, "maximum": 900}])
        assert validate(schema, {"timeout": 900})["timeout"] == 900

    def test_string_length(self):
        schema = _schema([{"name": "name", "min_length": 3, "max_length": 5}])
        with pytest.raises(ConstraintViolation, match="at least 3"):
            validate(schema, {"name": "ab"})
        with pytest.raises(ConstraintViolation, match="at most 5"):
            validate(schema, {"name": "abcdef"})

    def test_defaults_are_checked(self):
        schema = _schema([{"name": "acl", "kind": "enum", "choices": ["private"], "default": "public"}])
        with pytest.raises(ConstraintViolation):
            validate(schema, {})


class TestArrays:
    def test_items_validated_with_index(self):
        schema = _schema([{"name": "ports", "kind": "array", "items": {"type": "integer"}}])
        with pytest.raises(InvalidFieldType) as exc:
            validate(schema, {"ports": [80, "http"]})
        assert exc.value.field == "ports[1]"

    def test_lone_scalar_wrapped(self):
        schema = _schema([{"name": "subnet_ids", "kind": "array", "items": {"type": "string"}}])
        assert validate(schema, {"subnet_ids": "subnet-1"})["subnet_ids"] == ("subnet-1",)

    def test_mapping_is_not_a_list(self):
        schema = _schema([{"name": "subnet_ids", "kind": "array", "items": {"type": "string"}}])
        with pytest.raises(InvalidFieldType, match="a list"):
            validate(schema, {"subnet_ids": {"a": "b"}})

    def test_item_count_bounds(self):
        schema = _schema([{"name": "azs", "kind": "array", "min_length": 1, "max_length": 2}])
        with pytest.raises(ConstraintViolation, match="at least 1 items"):
            validate(schema, {"azs": []})
        with pytest.raises(ConstraintViolation, match="at most 2 items"):
            validate(schema, {"azs": ["a", "b", "c"]})

    def test_block_array_entries_become_blocks(self):
        schema = _schema(
            [
                {
                    "name": "rule",
                    "kind": "array",
                    "items": {"kind": "nested", "schema": {"attributes": [{"name": "id", "required": True}]}},
                }
            ]
        )
        attrs = validate(schema, {"rule": [{"id": "a"}, {"id": "b"}]})
        assert [r["id"] for r in attrs["rule"]] == ["a", "b"]


class TestDeferredValues:
    def test_reference_skips_type_check(self):
        schema = _schema([{"name": "port", "type": "integer", "minimum": 1}])
        port = ref("aws_db_instance", "main", "port")
        assert validate(schema, {"port": port})["port"] is port

    def test_interpolation_string_skips_pattern(self):
        schema = _schema([{"name": "instance_class", "pattern": r"db\..+"}])
        attrs = validate(schema, {"instance_class": "${var.instance_class}"})
        assert attrs["instance_class"] == "${var.instance_class}"

    def test_reference_for_whole_array(self):
        schema = _schema([{"name": "subnet_ids", "kind": "array"}])
        ids = ref("aws_subnet", "all", "ids")
        assert isinstance(validate(schema, {"subnet_ids": ids})["subnet_ids"], Reference)

    def test_interpolation_for_whole_nested_block(self, schemas):
        schema = schemas.require("aws_iam_policy").schema
        attrs = validate(schema, {"name": "p", "policy": "${data.aws_iam_policy_document.p.json}"})
        assert attrs["policy"] == "${data.aws_iam_policy_document.p.json}"

    def test_deferred_counts_as_present(self, lambda_schema):
        attrs = validate(
            lambda_schema,
            {"function_name": "api", "s3_bucket": ref("aws_s3_bucket", "code", "bucket"), "s3_key": "api.zip"},
        )
        assert is_present(attrs["s3_bucket"])


class TestExclusiveGroups:
    @pytest.mark.parametrize(
        "sources",
        [
            {},
            {"filename": "a.zip", "s3_bucket": "b", "s3_key": "k"},
            {"filename": "a.zip", "image_uri": "repo:1", "package_type": "Image"},
            {"filename": "a.zip", "s3_bucket": "b", "s3_key": "k", "image_uri": "repo:1", "package_type": "Image"},
        ],
    )
    def test_exactly_one_violated(self, lambda_schema, sources):
        with pytest.raises(MutualExclusivityViolation) as exc:
            validate(lambda_schema, {"function_name": "api", **sources})
        assert exc.value.fields == ["filename", "s3_bucket", "image_uri"]
        assert len(exc.value.present) == len([k for k in ("filename", "s3_bucket", "image_uri") if k in sources])

    @pytest.mark.parametrize(
        "sources",
        [
            {"filename": "a.zip"},
            {"s3_bucket": "b", "s3_key": "k"},
            {"image_uri": "repo:1", "package_type": "Image"},
        ],
    )
    def test_exactly_one_satisfied(self, lambda_schema, sources):
        attrs = validate(lambda_schema, {"function_name": "api", **sources})
        assert attrs["function_name"] == "api"

    def test_empty_string_is_absent(self, lambda_schema):
        with pytest.raises(MutualExclusivityViolation):
            validate(lambda_schema, {"function_name": "api", "filename": ""})

    def test_at_most_one_allows_none(self):
        schema = _schema(
            [{"name": "a"}, {"name": "b"}],
            [{"type": "exclusive", "members": ["a", "b"], "mode": "at_most_one"}],
        )
        assert validate(schema, {})["a"] is None
        with pytest.raises(MutualExclusivityViolation, match="at most one"):
            validate(schema, {"a": "1", "b": "2"})


class TestConditionalRequirements:
    def test_required_when_present(self, lambda_schema):
        with pytest.raises(ConditionalRequirementViolation) as exc:
            validate(lambda_schema, {"function_name": "api", "s3_bucket": "code"})
        assert exc.value.field == "s3_key"
        assert "s3_bucket is set" in str(exc.value)

    def test_required_when_equals(self, lambda_schema):
        with pytest.raises(ConditionalRequirementViolation):
            validate(lambda_schema, {"function_name": "api", "filename": "a.zip", "package_type": "Image"})

    def test_forbidden_otherwise(self, lambda_schema):
        # image_uri alone satisfies the exclusive group, but package_type defaults to Zip
        with pytest.raises(ConditionalRequirementViolation, match="can only be set"):
            validate(lambda_schema, {"function_name": "api", "image_uri": "repo:1"})

    def test_deferred_trigger_skips_check(self):
        schema = _schema(
            [{"name": "mode"}, {"name": "endpoint"}],
            [{"type": "conditional", "require": "endpoint", "when": "mode", "equals": "remote"}],
        )
        assert validate(schema, {"mode": "${var.mode}"})["endpoint"] is None

    def test_custom_message(self):
        schema = _schema(
            [{"name": "a"}, {"name": "b"}],
            [{"type": "conditional", "require": "b", "when": "a", "message": "b goes with a"}],
        )
        with pytest.raises(ConditionalRequirementViolation, match="b goes with a"):
            validate(schema, {"a": "1"})


class TestMemberOf:
    def _schema(self):
        return _schema(
            [
                {
                    "name": "origin",
                    "kind": "array",
                    "items": {"kind": "nested", "schema": {"attributes": [{"name": "origin_id", "required": True}]}},
                },
                {
                    "name": "behavior",
                    "kind": "nested",
                    "schema": {"attributes": [{"name": "target_origin_id", "required": True}]},
                },
            ],
            [{"type": "member_of", "path": "behavior.target_origin_id", "collection": "origin.origin_id"}],
        )

    def test_known_member(self):
        attrs = validate(self._schema(), {"origin": [{"origin_id": "a"}, {"origin_id": "b"}], "behavior": {"target_origin_id": "b"}})
        assert attrs["behavior"]["target_origin_id"] == "b"

    def test_unknown_member(self):
        with pytest.raises(ReferentialConsistencyViolation) as exc:
            validate(self._schema(), {"origin": [{"origin_id": "a"}], "behavior": {"target_origin_id": "z"}})
        assert exc.value.field == "behavior.target_origin_id"

    def test_deferred_member_skipped(self):
        attrs = validate(
            self._schema(), {"origin": [{"origin_id": "a"}], "behavior": {"target_origin_id": "${var.origin}"}}
        )
        assert attrs["behavior"]["target_origin_id"] == "${var.origin}"


class TestValidatedAttributes:
    def test_immutable(self, lambda_schema):
        attrs = validate(lambda_schema, {"function_name": "api", "filename": "a.zip"})
        with pytest.raises(TypeError):
            attrs["function_name"] = "other"
        with pytest.raises(AttributeError):
            attrs.extra = 1

    def test_cannot_be_built_directly(self):
        with pytest.raises(TypeError):
            ValidatedAttributes({"a": 1})

    def test_idempotent(self, lambda_schema):
        raw = {"function_name": "api", "s3_bucket": "code", "s3_key": "api.zip"}
        first = validate(lambda_schema, raw)
        second = validate(lambda_schema, first)
        assert first.to_dict() == second.to_dict()

    def test_to_dict_renders_references(self):
        schema = _schema([{"name": "vpc_id"}])
        attrs = validate(schema, {"vpc_id": ref("aws_vpc", "main", "id")})
        assert attrs.to_dict() == {"vpc_id": "${aws_vpc.main.id}"}

    def test_validator_is_reusable(self, lambda_schema):
        validator = AttributeValidator()
        a = validator.validate(lambda_schema, {"function_name": "a", "filename": "a.zip"})
        b = validator.validate(lambda_schema, {"function_name": "b", "filename": "b.zip"})
        assert (a["function_name"], b["function_name"]) == ("a", "b")
