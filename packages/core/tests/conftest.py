"""Shared fixtures for core tests."""

from __future__ import annotations

import pytest
from tfweave.compiler import Template
from tfweave.registry import SchemaRegistry
from tfweave.schema import ResourceSchema

NETWORK_SOURCE = """\
# network layer
template :network do
  provider aws:
    region: us-east-1
  resource aws_vpc main:
    cidr_block: 10.0.0.0/16
    tags:
      Name: main
  resource aws_subnet public:
    vpc_id: ${aws_vpc.main.id}
    cidr_block: 10.0.1.0/24
    map_public_ip_on_launch: true
  output vpc_id:
    value: ${aws_vpc.main.id}
end

template :storage do
  provider aws:
    region: us-east-1
  resource aws_s3_bucket assets:
    bucket: acme-assets
    versioning:
      enabled: true
    tags:
      Team: web
end
"""


@pytest.fixture(scope="session")
def schemas() -> SchemaRegistry:
    """The bundled kind catalog. Read-only after load, so shared across tests."""
    return SchemaRegistry()


@pytest.fixture
def template(schemas) -> Template:
    return Template("test", schemas)


@pytest.fixture
def lambda_schema() -> ResourceSchema:
    """A trimmed function schema with a three-way exclusive source group."""
    return ResourceSchema.model_validate(
        {
            "kind": "example_function",
            "outputs": ["arn"],
            "attributes": [
                {"name": "function_name", "required": True},
                {"name": "package_type", "kind": "enum", "choices": ["Zip", "Image"], "default": "Zip"},
                {"name": "filename"},
                {"name": "s3_bucket"},
                {"name": "s3_key"},
                {"name": "image_uri"},
            ],
            "invariants": [
                {"type": "exclusive", "members": ["filename", "s3_bucket", "image_uri"]},
                {"type": "conditional", "require": "s3_key", "when": "s3_bucket"},
                {
                    "type": "conditional",
                    "require": "image_uri",
                    "when": "package_type",
                    "equals": "Image",
                    "forbid_otherwise": True,
                },
            ],
        }
    )


@pytest.fixture
def network_source() -> str:
    return NETWORK_SOURCE
