"""Heuristic issue detectors for template bodies.

Every detector is independent: it takes one template body (or its synthesized
document) and returns zero or more issues. A detector that finds nothing
returns an empty list. Document detectors replace their text counterparts
when a synthesized document is available, since they cannot be fooled by
comments or strings that merely look like configuration.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tfweave.document import Block, ListNode, Scalar, to_data


def declaration_pattern(keyword: str, labels: int) -> re.Pattern[str]:
    """Match a declaration header, YAML-key or HCL style, quoted or bare: ``resource aws_vpc main:``."""
    label = r"""[ \t]+["']?([\w-]+)["']?"""
    return re.compile(
        r"""^[ \t]*["']?""" + re.escape(keyword) + label * labels + r"""[ \t]*["']?[ \t]*[:{]""",
        re.MULTILINE,
    )


_RESOURCE_DECL = declaration_pattern("resource", 2)
_ALL_PORTS = re.compile(r"ingress.*?from_port\s*[=:]\s*0\b.*?to_port\s*[=:]\s*65535\b", re.DOTALL)
_OPEN_CIDR = re.compile(r"""cidr_blocks\s*[=:]\s*[\[-]?\s*["']?0\.0\.0\.0/0""")
_ENCRYPTION = re.compile(r"encryption")
_DB_ENCRYPTED = re.compile(r"storage_encrypted\s*[=:]\s*true\b", re.IGNORECASE)
_TAGS = re.compile(r"\btags\b")
_AWS_ACCESS_KEY = re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")
_PRIVATE_KEY = re.compile(r"-----BEGIN (?:RSA |EC |DSA |OPENSSH |ENCRYPTED )?PRIVATE KEY-----")
_SECRET_ASSIGN = re.compile(
    r"""^[ \t]*["']?(\w*(?:password|passwd|secret|secret_key|access_key|api_key|token))["']?[ \t]*[:=][ \t]*["']?([^\s"'#]{4,})""",
    re.IGNORECASE | re.MULTILINE,
)
_AMI = re.compile(r"\bami-[0-9a-f]{17}\b|\bami-[0-9a-f]{8}\b")
_CIDR = re.compile(r"(?<![\d.])(\d{1,3}(?:\.\d{1,3}){3}/\d{1,2})(?![\d.])")
_LARGE_INSTANCE = re.compile(
    r"""instance_(?:type|class)\s*[=:]\s*["']?((?:db\.)?[a-z][a-z0-9-]*\.(?:(?:[2-9]|[1-9]\d+)xlarge|metal[\w-]*))"""
)
_NON_SECRET_VALUES = ("true", "false", "null", "none")


@dataclass
class Issue:
    detector: str
    severity: str  # "high", "medium", "low"
    message: str
    remediation: str
    template: str = ""
    value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        d = {
            "template": self.template,
            "detector": self.detector,
            "severity": self.severity,
            "message": self.message,
            "remediation": self.remediation,
        }
        if self.value is not None:
            d["value"] = self.value
        return d


def declared_resource_types(content: str) -> list[str]:
    return [m.group(1) for m in _RESOURCE_DECL.finditer(content)]


# --- text detectors ---


def detect_unrestricted_ingress(content: str) -> list[Issue]:
    if not _ALL_PORTS.search(content):
        return []
    return [
        Issue(
            detector="unrestricted_ingress",
            severity="high",
            message="Security group allows all ports",
            remediation="Restrict ingress to the specific ports the service needs",
        )
    ]


def detect_open_cidr(content: str) -> list[Issue]:
    if not _OPEN_CIDR.search(content):
        return []
    return [
        Issue(
            detector="open_cidr",
            severity="medium",
            message="Security group allows traffic from anywhere (0.0.0.0/0)",
            remediation="Restrict to known IP ranges",
            value="0.0.0.0/0",
        )
    ]


def detect_unencrypted_storage(content: str) -> list[Issue]:
    types = set(declared_resource_types(content))
    out = []
    if "aws_s3_bucket" in types and not _ENCRYPTION.search(content):
        out.append(
            Issue(
                detector="unencrypted_storage",
                severity="medium",
                message="S3 bucket without encryption",
                remediation="Enable server-side encryption",
                value="aws_s3_bucket",
            )
        )
    if "aws_db_instance" in types and not _DB_ENCRYPTED.search(content):
        out.append(
            Issue(
                detector="unencrypted_storage",
                severity="medium",
                message="Database instance without storage encryption",
                remediation="Set storage_encrypted: true",
                value="aws_db_instance",
            )
        )
    return out


def detect_missing_tags(content: str) -> list[Issue]:
    if not declared_resource_types(content) or _TAGS.search(content):
        return []
    return [
        Issue(
            detector="missing_tags",
            severity="low",
            message="No resource in the template declares tags",
            remediation="Add tags for cost allocation and management",
        )
    ]


def detect_embedded_credentials(content: str) -> list[Issue]:
    out = []
    for m in _AWS_ACCESS_KEY.finditer(content):
        out.append(
            Issue(
                detector="embedded_credentials",
                severity="high",
                message="AWS access key id embedded in template",
                remediation="Use an IAM role or a secrets manager instead of static keys",
                value=m.group(0)[:8] + "...",
            )
        )
    if _PRIVATE_KEY.search(content):
        out.append(
            Issue(
                detector="embedded_credentials",
                severity="high",
                message="Private key material embedded in template",
                remediation="Load key material from a secrets manager at apply time",
            )
        )
    for m in _SECRET_ASSIGN.finditer(content):
        key, value = m.group(1), m.group(2)
        if value.startswith("${") or value.lower() in _NON_SECRET_VALUES:
            continue
        out.append(
            Issue(
                detector="embedded_credentials",
                severity="high",
                message=f"Literal value assigned to '{key}'",
                remediation="Reference a variable or a secrets manager entry instead of a literal",
                value=key,
            )
        )
    return out


def detect_hard_coded_ami(content: str) -> list[Issue]:
    return [
        Issue(
            detector="hard_coded_ami",
            severity="low",
            message=f"Hard-coded AMI id {ami}",
            remediation="Use a data source to look up the AMI dynamically",
            value=ami,
        )
        for ami in dict.fromkeys(m.group(0) for m in _AMI.finditer(content))
    ]


def detect_hard_coded_cidr(content: str) -> list[Issue]:
    return [
        Issue(
            detector="hard_coded_cidr",
            severity="low",
            message=f"Hard-coded CIDR block {cidr}",
            remediation="Consider using a variable for CIDR blocks",
            value=cidr,
        )
        for cidr in dict.fromkeys(m.group(1) for m in _CIDR.finditer(content))
        if cidr != "0.0.0.0/0"
    ]


def detect_large_instance_type(content: str) -> list[Issue]:
    return [
        Issue(
            detector="large_instance_type",
            severity="low",
            message=f"Large instance type {itype}",
            remediation="Consider smaller instance types for non-production environments",
            value=itype,
        )
        for itype in dict.fromkeys(m.group(1) for m in _LARGE_INSTANCE.finditer(content))
    ]


# --- document detectors ---


def _resources(document: Block, resource_type: str) -> list[tuple[str, Block]]:
    section = document.get("resource")
    if not isinstance(section, Block):
        return []
    by_type = section.get(resource_type)
    if not isinstance(by_type, Block):
        return []
    return [(name, body) for name, body in by_type.entries if isinstance(body, Block)]


def _scalar(block: Block, key: str) -> Any:
    node = block.get(key)
    return node.value if isinstance(node, Scalar) else None


def _strings(node: Any) -> list[str]:
    if isinstance(node, ListNode):
        return [v for v in to_data(node) if isinstance(v, str)]
    if isinstance(node, Scalar) and isinstance(node.value, str):
        return [node.value]
    return []


def _ingress_rules(document: Block) -> list[tuple[str, Block]]:
    out = []
    for name, body in _resources(document, "aws_security_group"):
        out.extend((name, rule) for rule in body.get_all("ingress") if isinstance(rule, Block))
    return out


def document_unrestricted_ingress(document: Block) -> list[Issue]:
    out = []
    for name, rule in _ingress_rules(document):
        from_port, to_port = _scalar(rule, "from_port"), _scalar(rule, "to_port")
        if from_port in (0, -1) and (to_port == 65535 or _scalar(rule, "protocol") in ("-1", "all")):
            out.append(
                Issue(
                    detector="unrestricted_ingress",
                    severity="high",
                    message=f"Security group {name} allows all ports",
                    remediation="Restrict ingress to the specific ports the service needs",
                    value=f"aws_security_group.{name}",
                )
            )
    return out


def document_open_cidr(document: Block) -> list[Issue]:
    out = []
    for name, rule in _ingress_rules(document):
        if "0.0.0.0/0" in _strings(rule.get("cidr_blocks")):
            out.append(
                Issue(
                    detector="open_cidr",
                    severity="medium",
                    message=f"Security group {name} allows ingress from anywhere (0.0.0.0/0)",
                    remediation="Restrict to known IP ranges",
                    value=f"aws_security_group.{name}",
                )
            )
    return out


def document_unencrypted_storage(document: Block) -> list[Issue]:
    out = []
    for name, body in _resources(document, "aws_s3_bucket"):
        if body.get("server_side_encryption_configuration") is None:
            out.append(
                Issue(
                    detector="unencrypted_storage",
                    severity="medium",
                    message=f"S3 bucket {name} without encryption",
                    remediation="Enable server-side encryption",
                    value=f"aws_s3_bucket.{name}",
                )
            )
    for name, body in _resources(document, "aws_db_instance"):
        if _scalar(body, "storage_encrypted") is not True:
            out.append(
                Issue(
                    detector="unencrypted_storage",
                    severity="medium",
                    message=f"Database instance {name} without storage encryption",
                    remediation="Set storage_encrypted: true",
                    value=f"aws_db_instance.{name}",
                )
            )
    return out


TextDetector = Callable[[str], list[Issue]]
DocumentDetector = Callable[[Block], list[Issue]]

TEXT_DETECTORS: dict[str, TextDetector] = {
    "unrestricted_ingress": detect_unrestricted_ingress,
    "open_cidr": detect_open_cidr,
    "unencrypted_storage": detect_unencrypted_storage,
    "missing_tags": detect_missing_tags,
    "embedded_credentials": detect_embedded_credentials,
    "hard_coded_ami": detect_hard_coded_ami,
    "hard_coded_cidr": detect_hard_coded_cidr,
    "large_instance_type": detect_large_instance_type,
}

DOCUMENT_DETECTORS: dict[str, DocumentDetector] = {
    "unrestricted_ingress": document_unrestricted_ingress,
    "open_cidr": document_open_cidr,
    "unencrypted_storage": document_unencrypted_storage,
}
