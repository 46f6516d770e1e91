"""
Tests for configuration payload parsing.

Tests cover:
- ConfigView parsing, key lookups and raw-text fallback
- InstanceSizing per provider and service
- LambdaFunctionConfig VPC and environment parsing
- IAMPolicyConfig wildcard detection
"""

from __future__ import annotations

import pytest

from cloudrecon.analysis.schema import (
    ConfigView,
    IAMPolicyConfig,
    InstanceSizing,
    LambdaFunctionConfig,
)


class TestConfigView:
    """Tests for ConfigView."""

    def test_parses_json_object(self):
        """Test a JSON object payload is parsed."""
        view = ConfigView('{"VpcId": "vpc-1"}')
        assert view.parsed
        assert view.get("VpcId") == "vpc-1"

    def test_non_object_json_is_unparsed(self):
        """Test a JSON array is kept as raw text."""
        view = ConfigView('["a", "b"]')
        assert not view.parsed
        assert view.get("a") is None

    def test_invalid_json_is_unparsed(self):
        """Test non-JSON text is kept as raw text."""
        view = ConfigView("VpcId=vpc-1; SubnetId=subnet-2")
        assert not view.parsed
        assert view.raw.startswith("VpcId")

    def test_empty_payload(self):
        """Test an empty payload."""
        view = ConfigView("")
        assert not view.parsed
        assert not view.has_key("VpcId")
        assert view.strings_at("VpcId") == []

    def test_has_key_parsed_is_exact(self):
        """Test key presence on parsed payloads only checks top-level keys."""
        view = ConfigView('{"Nested": {"VpcId": "vpc-1"}, "Name": "VpcId"}')
        assert view.has_key("Nested")
        assert not view.has_key("VpcId")

    def test_has_key_unparsed_falls_back_to_text(self):
        """Test key presence on unparsed payloads searches the raw text."""
        view = ConfigView("legacy VpcId=vpc-1")
        assert view.has_key("VpcId")
        assert not view.has_key("SecurityGroupIds")

    def test_get_nested_path_with_default(self):
        """Test nested lookups and defaults."""
        view = ConfigView('{"Environment": {"Variables": {"STAGE": "prod"}}}')
        assert view.get("Environment", "Variables", "STAGE") == "prod"
        assert view.get("Environment", "Missing", default="x") == "x"
        assert view.get("Environment", "Variables", "STAGE", "deeper") is None

    def test_strings_at_flattens_values(self):
        """Test string leaves are collected from lists and dicts."""
        view = ConfigView(
            '{"networkInterfaces": [{"network": "global/networks/default", '
            '"accessConfigs": [{"natIP": "1.2.3.4"}]}, {"network": ""}], "count": 3}'
        )
        assert view.strings_at("networkInterfaces") == ["global/networks/default", "1.2.3.4"]
        assert view.strings_at("count") == []

    def test_walk_dicts(self):
        """Test every nested object is visited."""
        view = ConfigView('{"a": {"b": [{"c": 1}]}}')
        visited = list(view.walk_dicts())
        assert len(visited) == 3
        assert visited[0] == {"a": {"b": [{"c": 1}]}}
        assert {"c": 1} in visited


class TestInstanceSizing:
    """Tests for InstanceSizing."""

    def test_aws_ec2(self, resource_factory):
        """Test EC2 instance type."""
        resource = resource_factory("i-1", configuration={"InstanceType": "M5.Large"})
        assert InstanceSizing.from_resource(resource).identifier == "m5.large"

    def test_aws_rds(self, resource_factory):
        """Test RDS instance class."""
        resource = resource_factory(
            "db-1", service="rds", configuration={"DBInstanceClass": "db.t3.small"}
        )
        assert InstanceSizing.from_resource(resource).identifier == "db.t3.small"

    @pytest.mark.parametrize(
        "provider,configuration",
        [
            ("azure", {"hardwareProfile": {"vmSize": "Standard_B2s"}}),
            ("gcp", {"machineType": "zones/us-central1-a/machineTypes/n1-standard-1"}),
        ],
    )
    def test_flat_priced_compute_is_unsized(self, resource_factory, provider, configuration):
        """Test Azure and GCP compute carry no size identifier."""
        resource = resource_factory(
            "vm-1", provider=provider, service="compute", configuration=configuration
        )
        assert InstanceSizing.from_resource(resource).identifier == ""

    @pytest.mark.parametrize(
        "configuration",
        [None, "not json", {"InstanceType": ""}, {"InstanceType": 42}],
    )
    def test_missing_identifier(self, resource_factory, configuration):
        """Test missing or malformed identifiers yield an empty identifier."""
        resource = resource_factory("i-1", configuration=configuration)
        assert InstanceSizing.from_resource(resource).identifier == ""

    def test_unsized_service(self, resource_factory):
        """Test services without sizing return an empty identifier."""
        resource = resource_factory(
            "b-1", service="s3", configuration={"InstanceType": "t3.micro"}
        )
        assert InstanceSizing.from_resource(resource).identifier == ""


class TestLambdaFunctionConfig:
    """Tests for LambdaFunctionConfig."""

    def test_in_vpc(self, resource_factory):
        """Test VPC attachment detection."""
        resource = resource_factory(
            "fn-1", service="lambda", resource_type="function",
            configuration={"VpcConfig": {"VpcId": "vpc-1", "SubnetIds": ["subnet-1"]}},
        )
        assert LambdaFunctionConfig.from_resource(resource).in_vpc

    def test_empty_vpc_config_is_not_in_vpc(self, resource_factory):
        """Test an empty VpcConfig does not count as VPC attachment."""
        resource = resource_factory(
            "fn-1", service="lambda", resource_type="function",
            configuration={"VpcConfig": {"VpcId": "", "SubnetIds": []}},
        )
        assert not LambdaFunctionConfig.from_resource(resource).in_vpc

    def test_unparsed_payload_uses_text(self, resource_factory):
        """Test unparsed payloads fall back to a text search."""
        resource = resource_factory(
            "fn-1", service="lambda", configuration="VpcConfig: subnet-1"
        )
        assert LambdaFunctionConfig.from_resource(resource).in_vpc

    def test_sensitive_variables(self, resource_factory):
        """Test credential-like variable names are reported sorted."""
        resource = resource_factory(
            "fn-1", service="lambda",
            configuration={
                "Environment": {
                    "Variables": {
                        "STAGE": "prod",
                        "DB_PASSWORD": "hunter2",
                        "api_token": "abc",
                    }
                }
            },
        )
        config = LambdaFunctionConfig.from_resource(resource)
        assert config.sensitive_variables() == ["DB_PASSWORD", "api_token"]

    def test_no_environment(self, resource_factory):
        """Test functions without environment variables."""
        resource = resource_factory("fn-1", service="lambda", configuration={})
        config = LambdaFunctionConfig.from_resource(resource)
        assert config.environment == {}
        assert config.sensitive_variables() == []


class TestIAMPolicyConfig:
    """Tests for IAMPolicyConfig."""

    def test_wildcard_resource(self, resource_factory):
        """Test an Allow statement on every resource is detected."""
        resource = resource_factory(
            "policy-1", service="iam", resource_type="policy",
            configuration={
                "PolicyDocument": {
                    "Statement": [{"Effect": "Allow", "Action": "s3:*", "Resource": "*"}]
                }
            },
        )
        assert IAMPolicyConfig.from_resource(resource).allows_all_resources

    def test_wildcard_in_resource_list(self, resource_factory):
        """Test a wildcard inside a resource list is detected."""
        resource = resource_factory(
            "policy-1", service="iam",
            configuration={
                "Statement": [{"Effect": "Allow", "Resource": ["arn:aws:s3:::a", "*"]}]
            },
        )
        assert IAMPolicyConfig.from_resource(resource).allows_all_resources

    def test_deny_wildcard_is_not_permissive(self, resource_factory):
        """Test a Deny statement on every resource is not flagged."""
        resource = resource_factory(
            "policy-1", service="iam",
            configuration={"Statement": [{"Effect": "Deny", "Resource": "*"}]},
        )
        assert not IAMPolicyConfig.from_resource(resource).allows_all_resources

    def test_scoped_policy(self, resource_factory):
        """Test a scoped Allow statement is not flagged."""
        resource = resource_factory(
            "policy-1", service="iam",
            configuration={"Statement": [{"Effect": "Allow", "Resource": "arn:aws:s3:::a"}]},
        )
        assert not IAMPolicyConfig.from_resource(resource).allows_all_resources

    def test_unparsed_payload_uses_text(self, resource_factory):
        """Test unparsed payloads fall back to literal matching."""
        resource = resource_factory(
            "policy-1", service="iam",
            configuration='Statement: {"Effect": "Allow", "Resource": "*"}',
        )
        assert IAMPolicyConfig.from_resource(resource).allows_all_resources
