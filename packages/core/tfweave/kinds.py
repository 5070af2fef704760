"""Computed properties for the bundled resource kinds.

Each property is a pure function of a resource's validated attributes. Values
that are still deferred (references, interpolations) count as unknown: a
property never branches on them, it answers from what is already known.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Callable, Mapping
from typing import Any

from tfweave.validator import ValidatedAttributes, is_deferred, is_present

ComputedProperty = Callable[[ValidatedAttributes], Any]

_DANGEROUS_ACTIONS = (
    "iam:*",
    "iam:PassRole",
    "iam:CreateAccessKey",
    "iam:AttachUserPolicy",
    "iam:PutUserPolicy",
    "sts:AssumeRole",
    "s3:DeleteBucket",
    "ec2:TerminateInstances",
    "kms:Decrypt",
)


def _get(attrs: Mapping[str, Any] | None, *path: str) -> Any:
    """Walk a path of nested blocks; None when any step is absent or deferred."""
    value: Any = attrs
    for key in path:
        if value is None or is_deferred(value) or not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return None if is_deferred(value) else value


def _items(value: Any) -> tuple:
    return value if isinstance(value, tuple) else ()


def _is_true(value: Any) -> bool:
    return value is True


# --- aws_s3_bucket ---


def s3_encryption_enabled(attrs: ValidatedAttributes) -> bool:
    rule = _get(attrs, "server_side_encryption_configuration", "rule", "apply_server_side_encryption_by_default")
    return rule is not None and is_present(rule.get("sse_algorithm"))


def s3_kms_encrypted(attrs: ValidatedAttributes) -> bool:
    algo = _get(
        attrs, "server_side_encryption_configuration", "rule", "apply_server_side_encryption_by_default", "sse_algorithm"
    )
    return isinstance(algo, str) and algo.startswith("aws:kms")


def s3_versioning_enabled(attrs: ValidatedAttributes) -> bool:
    return _is_true(_get(attrs, "versioning", "enabled"))


def s3_website_enabled(attrs: ValidatedAttributes) -> bool:
    return _get(attrs, "website") is not None


def s3_lifecycle_rules_count(attrs: ValidatedAttributes) -> int:
    return len(_items(attrs.get("lifecycle_rule")))


def s3_is_public(attrs: ValidatedAttributes) -> bool:
    acl = _get(attrs, "acl")
    return acl in ("public-read", "public-read-write")


# --- aws_lambda_function ---


def lambda_is_container_based(attrs: ValidatedAttributes) -> bool:
    return _get(attrs, "package_type") == "Image"


def lambda_requires_vpc(attrs: ValidatedAttributes) -> bool:
    return attrs.get("vpc_config") is not None


def lambda_has_dlq(attrs: ValidatedAttributes) -> bool:
    return is_present(attrs.get("dead_letter_config"))


def lambda_architecture(attrs: ValidatedAttributes) -> str:
    archs = _items(attrs.get("architectures"))
    return archs[0] if archs and isinstance(archs[0], str) else "x86_64"


def lambda_estimated_monthly_cost(attrs: ValidatedAttributes) -> float:
    """Rough compute cost for one million 100ms invocations, in USD."""
    memory = _get(attrs, "memory_size") or 128
    gb_seconds = memory / 1024 * 0.1 * 1_000_000
    rate = 0.0000133334 if lambda_architecture(attrs) == "arm64" else 0.0000166667
    return round(gb_seconds * rate + 0.20, 2)


# --- aws_iam_policy ---


def _statements(attrs: ValidatedAttributes) -> tuple:
    return _items(_get(attrs, "policy", "Statement"))


def iam_all_actions(attrs: ValidatedAttributes) -> list[str]:
    actions: list[str] = []
    for stmt in _statements(attrs):
        for action in _items(stmt.get("Action")):
            if isinstance(action, str) and action not in actions:
                actions.append(action)
    return actions


def iam_has_wildcard_permissions(attrs: ValidatedAttributes) -> bool:
    for stmt in _statements(attrs):
        if stmt.get("Effect") != "Allow":
            continue
        actions = [a for a in _items(stmt.get("Action")) if isinstance(a, str)]
        resources = [r for r in _items(stmt.get("Resource")) if isinstance(r, str)]
        if "*" in actions or any(a.endswith(":*") for a in actions) or "*" in resources:
            return True
    return False


def iam_allows_dangerous_action(attrs: ValidatedAttributes) -> bool:
    for stmt in _statements(attrs):
        if stmt.get("Effect") != "Allow":
            continue
        for action in _items(stmt.get("Action")):
            if action == "*" or action in _DANGEROUS_ACTIONS:
                return True
    return False


def iam_security_level(attrs: ValidatedAttributes) -> str:
    if iam_has_wildcard_permissions(attrs) or iam_allows_dangerous_action(attrs):
        return "high_risk"
    if any(stmt.get("Condition") is not None for stmt in _statements(attrs)):
        return "restricted"
    return "standard"


# --- aws_security_group ---


def sg_allows_all_ingress(attrs: ValidatedAttributes) -> bool:
    for rule in _items(attrs.get("ingress")):
        all_ports = rule.get("from_port") in (0, -1) and rule.get("to_port") in (0, -1, 65535)
        all_protocols = rule.get("protocol") in ("-1", "all")
        if "0.0.0.0/0" in _items(rule.get("cidr_blocks")) and (all_ports or all_protocols):
            return True
    return False


def sg_ingress_rule_count(attrs: ValidatedAttributes) -> int:
    return len(_items(attrs.get("ingress")))


# --- aws_db_instance ---


def db_is_multi_az(attrs: ValidatedAttributes) -> bool:
    return _is_true(_get(attrs, "multi_az"))


def db_is_encrypted(attrs: ValidatedAttributes) -> bool:
    return _is_true(_get(attrs, "storage_encrypted"))


def db_is_publicly_accessible(attrs: ValidatedAttributes) -> bool:
    return _is_true(_get(attrs, "publicly_accessible"))


# --- aws_vpc / aws_subnet ---


def cidr_ip_count(attrs: ValidatedAttributes) -> int | None:
    cidr = _get(attrs, "cidr_block")
    if not isinstance(cidr, str):
        return None
    try:
        return ipaddress.ip_network(cidr, strict=False).num_addresses
    except ValueError:
        return None


def cidr_is_private(attrs: ValidatedAttributes) -> bool | None:
    cidr = _get(attrs, "cidr_block")
    if not isinstance(cidr, str):
        return None
    try:
        return ipaddress.ip_network(cidr, strict=False).is_private
    except ValueError:
        return None


def subnet_is_public(attrs: ValidatedAttributes) -> bool:
    return _is_true(_get(attrs, "map_public_ip_on_launch"))


# --- aws_instance ---


def instance_family(attrs: ValidatedAttributes) -> str | None:
    itype = _get(attrs, "instance_type")
    return itype.split(".")[0] if isinstance(itype, str) else None


def instance_root_volume_encrypted(attrs: ValidatedAttributes) -> bool:
    return _is_true(_get(attrs, "root_block_device", "encrypted"))


# --- aws_cloudfront_distribution ---


def cdn_origin_count(attrs: ValidatedAttributes) -> int:
    return len(_items(attrs.get("origin")))


def cdn_uses_default_certificate(attrs: ValidatedAttributes) -> bool:
    return _is_true(_get(attrs, "viewer_certificate", "cloudfront_default_certificate"))


COMPUTED_PROPERTIES: dict[str, dict[str, ComputedProperty]] = {
    "aws_s3_bucket": {
        "encryption_enabled": s3_encryption_enabled,
        "kms_encrypted": s3_kms_encrypted,
        "versioning_enabled": s3_versioning_enabled,
        "website_enabled": s3_website_enabled,
        "lifecycle_rules_count": s3_lifecycle_rules_count,
        "is_public": s3_is_public,
    },
    "aws_lambda_function": {
        "is_container_based": lambda_is_container_based,
        "requires_vpc": lambda_requires_vpc,
        "has_dlq": lambda_has_dlq,
        "architecture": lambda_architecture,
        "estimated_monthly_cost": lambda_estimated_monthly_cost,
    },
    "aws_iam_policy": {
        "all_actions": iam_all_actions,
        "has_wildcard_permissions": iam_has_wildcard_permissions,
        "allows_dangerous_action": iam_allows_dangerous_action,
        "security_level": iam_security_level,
    },
    "aws_security_group": {
        "allows_all_ingress": sg_allows_all_ingress,
        "ingress_rule_count": sg_ingress_rule_count,
    },
    "aws_db_instance": {
        "is_multi_az": db_is_multi_az,
        "is_encrypted": db_is_encrypted,
        "is_publicly_accessible": db_is_publicly_accessible,
    },
    "aws_vpc": {
        "ip_count": cidr_ip_count,
        "is_private": cidr_is_private,
    },
    "aws_subnet": {
        "ip_count": cidr_ip_count,
        "is_public": subnet_is_public,
    },
    "aws_instance": {
        "family": instance_family,
        "root_volume_encrypted": instance_root_volume_encrypted,
    },
    "aws_cloudfront_distribution": {
        "origin_count": cdn_origin_count,
        "uses_default_certificate": cdn_uses_default_certificate,
    },
}
