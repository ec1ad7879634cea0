import json

import pytest

from devbox.components.iam import IdentityKind, identity_profiles
from devbox.config.models import DeploymentTopology, DevboxSettings
from devbox.constants import (
    POLICY_CLOUDWATCH_AGENT,
    POLICY_ECS_TASK_EXECUTION,
    POLICY_SSM_MANAGED_INSTANCE,
)


def _by_kind(topology, **overrides):
    return {p.kind: p for p in identity_profiles(topology, DevboxSettings(**overrides))}


def test_standalone_host_has_single_runtime_identity():
    profiles = _by_kind(DeploymentTopology.STANDALONE_HOST)

    assert set(profiles) == {IdentityKind.RUNTIME}
    runtime = profiles[IdentityKind.RUNTIME]
    assert runtime.principal == "ec2.amazonaws.com"
    assert {"ec2:DescribeInstances", "ec2:StartInstances", "ec2:StopInstances"} <= set(runtime.actions)
    assert not any(a.startswith("ecr:") for a in runtime.actions)
    assert "ec2:DescribeKeyPairs" not in runtime.actions
    assert "ec2:GetKeyPair" not in runtime.actions


def test_scheduled_service_has_execution_and_runtime_identities():
    profiles = _by_kind(DeploymentTopology.SCHEDULED_SERVICE)

    assert set(profiles) == {IdentityKind.EXECUTION, IdentityKind.RUNTIME}
    for profile in profiles.values():
        assert profile.principal == "ecs-tasks.amazonaws.com"
        assert not any(a in profile.actions for a in ("ec2:StartInstances", "ec2:StopInstances", "ec2:DescribeInstances"))

    runtime = set(profiles[IdentityKind.RUNTIME].actions)
    assert "ecr:GetAuthorizationToken" in runtime
    assert {"ec2:DescribeKeyPairs", "ec2:GetKeyPair"} <= runtime
    assert {"ssm:GetParameter", "ssm:GetParameters", "kms:Decrypt"} <= runtime

    execution = set(profiles[IdentityKind.EXECUTION].actions)
    assert "ec2:DescribeKeyPairs" not in execution
    assert POLICY_ECS_TASK_EXECUTION in profiles[IdentityKind.EXECUTION].managed_policies


def test_exact_runtime_permission_difference():
    host = set(_by_kind(DeploymentTopology.STANDALONE_HOST)[IdentityKind.RUNTIME].actions)
    task = set(_by_kind(DeploymentTopology.SCHEDULED_SERVICE)[IdentityKind.RUNTIME].actions)

    assert host & task == {"ssm:GetParameters", "ssm:GetParameter", "kms:Decrypt"}
    assert host - task == {
        "ec2:DescribeInstances",
        "ec2:StartInstances",
        "ec2:StopInstances",
        "ec2:ModifyInstanceAttribute",
    }
    assert task - host == {
        "ecr:GetAuthorizationToken",
        "ecr:BatchCheckLayerAvailability",
        "ecr:GetDownloadUrlForLayer",
        "ecr:BatchGetImage",
        "ec2:DescribeKeyPairs",
        "ec2:GetKeyPair",
    }


@pytest.mark.parametrize("topology", list(DeploymentTopology))
def test_telemetry_toggles_cloudwatch_policy(topology):
    on = identity_profiles(topology, DevboxSettings(telemetry_agent=True))
    off = identity_profiles(topology, DevboxSettings(telemetry_agent=False))

    assert all(POLICY_CLOUDWATCH_AGENT in p.managed_policies for p in on)
    assert all(POLICY_CLOUDWATCH_AGENT not in p.managed_policies for p in off)


def test_ssm_managed_instance_is_host_only_breadth():
    wide = _by_kind(DeploymentTopology.STANDALONE_HOST, ssm_managed_instance=True)[IdentityKind.RUNTIME]
    narrow = _by_kind(DeploymentTopology.STANDALONE_HOST, ssm_managed_instance=False)[IdentityKind.RUNTIME]
    assert POLICY_SSM_MANAGED_INSTANCE in wide.managed_policies
    assert POLICY_SSM_MANAGED_INSTANCE not in narrow.managed_policies

    for profile in identity_profiles(DeploymentTopology.SCHEDULED_SERVICE, DevboxSettings()):
        assert POLICY_SSM_MANAGED_INSTANCE not in profile.managed_policies


def test_policy_documents():
    runtime = _by_kind(DeploymentTopology.SCHEDULED_SERVICE)[IdentityKind.RUNTIME]

    trust = json.loads(runtime.assume_role_policy())
    assert trust["Statement"][0]["Principal"] == {"Service": "ecs-tasks.amazonaws.com"}
    assert trust["Statement"][0]["Action"] == "sts:AssumeRole"

    inline = json.loads(runtime.inline_policy())
    statement = inline["Statement"][0]
    assert statement["Effect"] == "Allow"
    assert statement["Action"] == list(runtime.actions)
