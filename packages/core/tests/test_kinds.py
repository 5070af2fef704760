"""Tests for computed properties on the bundled kinds."""

import pytest
from tfweave.reference import ref


def _lambda(template, **extra):
    return template.resource(
        "aws_lambda_function",
        "api",
        {"function_name": "api", "role": "arn:aws:iam::123456789012:role/api", "handler": "app.handler",
         "runtime": "python3.12", "filename": "api.zip", **extra},
    )


class TestS3Properties:
    def test_plain_bucket(self, template):
        bucket = template.resource("aws_s3_bucket", "logs", {"bucket": "acme-logs"})
        assert bucket.computed("encryption_enabled") is False
        assert bucket.computed("versioning_enabled") is False
        assert bucket.computed("is_public") is False
        assert bucket.computed("lifecycle_rules_count") == 0

    def test_kms_encrypted_versioned_bucket(self, template):
        bucket = template.resource(
            "aws_s3_bucket",
            "data",
            {
                "bucket": "acme-data",
                "versioning": {"enabled": True},
                "server_side_encryption_configuration": {
                    "rule": {"apply_server_side_encryption_by_default": {"sse_algorithm": "aws:kms"}}
                },
                "lifecycle_rule": [{"id": "archive", "enabled": True, "transition": [{"days": 30, "storage_class": "GLACIER"}]}],
            },
        )
        assert bucket.computed("encryption_enabled") is True
        assert bucket.computed("kms_encrypted") is True
        assert bucket.computed("versioning_enabled") is True
        assert bucket.computed("lifecycle_rules_count") == 1

    def test_public_acl(self, template):
        bucket = template.resource("aws_s3_bucket", "site", {"bucket": "acme-site", "acl": "public-read", "website": {"index_document": "index.html"}})
        assert bucket.computed("is_public") is True
        assert bucket.computed("website_enabled") is True


class TestLambdaProperties:
    def test_defaults(self, template):
        fn = _lambda(template)
        assert fn.computed("is_container_based") is False
        assert fn.computed("requires_vpc") is False
        assert fn.computed("has_dlq") is False
        assert fn.computed("architecture") == "x86_64"

    def test_arm_is_cheaper(self, template):
        x86 = _lambda(template, memory_size=1024)
        arm = template.resource(
            "aws_lambda_function",
            "arm",
            {"function_name": "arm", "role": "r", "handler": "h", "runtime": "python3.12",
             "filename": "arm.zip", "memory_size": 1024, "architectures": "arm64"},
        )
        assert arm.computed("architecture") == "arm64"
        assert arm.computed("estimated_monthly_cost") < x86.computed("estimated_monthly_cost")

    def test_vpc_and_dlq(self, template):
        fn = _lambda(
            template,
            vpc_config={"subnet_ids": ["subnet-1"], "security_group_ids": ["sg-1"]},
            dead_letter_config={"target_arn": "arn:aws:sqs:us-east-1:123456789012:dlq"},
        )
        assert fn.computed("requires_vpc") is True
        assert fn.computed("has_dlq") is True

    def test_deferred_memory_counts_as_unknown(self, template):
        fn = _lambda(template, memory_size="${var.memory}")
        # priced at the minimum size
        assert fn.computed("estimated_monthly_cost") == 0.41


class TestIamProperties:
    def _policy(self, template, statements):
        return template.resource("aws_iam_policy", "p", {"name": "p", "policy": {"Statement": statements}})

    def test_standard(self, template):
        policy = self._policy(template, [{"Effect": "Allow", "Action": ["s3:GetObject"], "Resource": ["arn:aws:s3:::b/*"]}])
        assert policy.computed("security_level") == "standard"
        assert policy.computed("all_actions") == ["s3:GetObject"]

    def test_wildcard(self, template):
        policy = self._policy(template, [{"Effect": "Allow", "Action": "s3:*", "Resource": "*"}])
        assert policy.computed("has_wildcard_permissions") is True
        assert policy.computed("security_level") == "high_risk"

    def test_denied_wildcard_is_not_risky(self, template):
        policy = self._policy(template, [{"Effect": "Deny", "Action": "*", "Resource": "*"}])
        assert policy.computed("has_wildcard_permissions") is False
        assert policy.computed("allows_dangerous_action") is False

    def test_dangerous_action(self, template):
        policy = self._policy(template, [{"Effect": "Allow", "Action": ["iam:PassRole"], "Resource": ["arn:aws:iam::1:role/x"]}])
        assert policy.computed("allows_dangerous_action") is True

    def test_conditioned_is_restricted(self, template):
        policy = self._policy(
            template,
            [
                {
                    "Effect": "Allow",
                    "Action": ["s3:GetObject"],
                    "Resource": ["arn:aws:s3:::b/*"],
                    "Condition": {"Bool": {"aws:SecureTransport": "true"}},
                }
            ],
        )
        assert policy.computed("security_level") == "restricted"


class TestNetworkProperties:
    def test_vpc_ip_count(self, template):
        vpc = template.resource("aws_vpc", "main", {"cidr_block": "10.0.0.0/16"})
        assert vpc.computed("ip_count") == 65536
        assert vpc.computed("is_private") is True

    def test_subnet(self, template):
        vpc = template.resource("aws_vpc", "main", {"cidr_block": "10.0.0.0/16"})
        subnet = template.resource(
            "aws_subnet", "a", {"vpc_id": vpc.output("id"), "cidr_block": "10.0.1.0/24", "map_public_ip_on_launch": True}
        )
        assert subnet.computed("ip_count") == 256
        assert subnet.computed("is_public") is True

    def test_deferred_cidr_is_unknown(self, template):
        vpc = template.resource("aws_vpc", "main", {"cidr_block": "${var.cidr}"})
        assert vpc.computed("ip_count") is None

    @pytest.mark.parametrize(
        "rule,expected",
        [
            ({"from_port": 0, "to_port": 65535, "protocol": "tcp", "cidr_blocks": ["0.0.0.0/0"]}, True),
            ({"from_port": 443, "to_port": 443, "protocol": "-1", "cidr_blocks": ["0.0.0.0/0"]}, True),
            ({"from_port": 443, "to_port": 443, "protocol": "tcp", "cidr_blocks": ["0.0.0.0/0"]}, False),
            ({"from_port": 0, "to_port": 65535, "protocol": "tcp", "cidr_blocks": ["10.0.0.0/8"]}, False),
        ],
    )
    def test_security_group_all_ingress(self, template, rule, expected):
        sg = template.resource("aws_security_group", "web", {"name": "web", "ingress": [rule]})
        assert sg.computed("allows_all_ingress") is expected
        assert sg.computed("ingress_rule_count") == 1


class TestOtherProperties:
    def test_db_instance(self, template):
        db = template.resource(
            "aws_db_instance",
            "main",
            {"engine": "postgres", "instance_class": "db.t3.micro", "multi_az": True, "storage_encrypted": True},
        )
        assert db.computed("is_multi_az") is True
        assert db.computed("is_encrypted") is True
        assert db.computed("is_publicly_accessible") is False

    def test_instance(self, template):
        vm = template.resource(
            "aws_instance",
            "web",
            {"ami": "ami-0abcdef1234567890", "instance_type": "m5.large", "root_block_device": {"encrypted": True}},
        )
        assert vm.computed("family") == "m5"
        assert vm.computed("root_volume_encrypted") is True

    def test_cloudfront(self, template):
        cdn = template.resource(
            "aws_cloudfront_distribution",
            "site",
            {
                "enabled": True,
                "origin": [{"domain_name": "b.s3.amazonaws.com", "origin_id": "s3"}],
                "default_cache_behavior": {
                    "target_origin_id": "s3",
                    "viewer_protocol_policy": "redirect-to-https",
                    "allowed_methods": ["GET", "HEAD"],
                    "cached_methods": ["GET", "HEAD"],
                },
                "restrictions": {"geo_restriction": {"restriction_type": "none"}},
                "viewer_certificate": {"cloudfront_default_certificate": True},
            },
        )
        assert cdn.computed("origin_count") == 1
        assert cdn.computed("uses_default_certificate") is True

    def test_reference_inputs_do_not_branch(self, template):
        vpc = template.resource("aws_vpc", "main", {"cidr_block": "10.0.0.0/16"})
        db = template.resource(
            "aws_db_instance",
            "replica",
            {"engine": "postgres", "instance_class": "db.t3.micro", "multi_az": ref("aws_vpc", "main", "id")},
        )
        assert vpc.computed("ip_count") == 65536
        assert db.computed("is_multi_az") is False
