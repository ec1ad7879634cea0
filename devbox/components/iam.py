from __future__ import annotations

import enum
import json
from dataclasses import dataclass

import pulumi
import pulumi_aws as aws

from ..config.models import DeploymentTopology, DevboxSettings, ProvisioningContext
from ..constants import (
    EC2_PRINCIPAL,
    ECS_TASKS_PRINCIPAL,
    POLICY_CLOUDWATCH_AGENT,
    POLICY_ECS_TASK_EXECUTION,
    POLICY_SSM_MANAGED_INSTANCE,
)


class IdentityKind(enum.Enum):
    EXECUTION = "execution"  # how the platform pulls and launches the workload
    RUNTIME = "runtime"  # what the running workload may call


PARAMETER_READ_ACTIONS = ("ssm:GetParameters", "ssm:GetParameter", "kms:Decrypt")
INSTANCE_SELF_ACTIONS = (
    "ec2:DescribeInstances",
    "ec2:StartInstances",
    "ec2:StopInstances",
    "ec2:ModifyInstanceAttribute",
)
IMAGE_PULL_ACTIONS = (
    "ecr:GetAuthorizationToken",
    "ecr:BatchCheckLayerAvailability",
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
)
KEY_PAIR_DESCRIBE_ACTIONS = ("ec2:DescribeKeyPairs", "ec2:GetKeyPair")


@dataclass(frozen=True)
class IdentityProfile:
    kind: IdentityKind
    principal: str
    managed_policies: tuple[str, ...]
    actions: tuple[str, ...]

    def assume_role_policy(self) -> str:
        return json.dumps(
            {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"Service": self.principal},
                        "Action": "sts:AssumeRole",
                    }
                ],
            }
        )

    def inline_policy(self) -> str:
        return json.dumps(
            {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Action": list(self.actions),
                        "Resource": "*",
                    }
                ],
            }
        )


def identity_profiles(topology: DeploymentTopology, settings: DevboxSettings) -> tuple[IdentityProfile, ...]:
    """
    Least-privilege identities for a topology.

    StandaloneHost gets a single runtime identity that can manage its own
    instance. ScheduledService gets an execution identity for the ECS agent and
    a runtime identity for the container, which alone may pull images and
    resolve the key pair at boot.
    """
    telemetry = (POLICY_CLOUDWATCH_AGENT,) if settings.telemetry_agent else ()

    if topology is DeploymentTopology.STANDALONE_HOST:
        ssm = (POLICY_SSM_MANAGED_INSTANCE,) if settings.ssm_managed_instance else ()
        return (
            IdentityProfile(
                kind=IdentityKind.RUNTIME,
                principal=EC2_PRINCIPAL,
                managed_policies=ssm + telemetry,
                actions=INSTANCE_SELF_ACTIONS + PARAMETER_READ_ACTIONS,
            ),
        )

    return (
        IdentityProfile(
            kind=IdentityKind.EXECUTION,
            principal=ECS_TASKS_PRINCIPAL,
            managed_policies=(POLICY_ECS_TASK_EXECUTION,) + telemetry,
            actions=PARAMETER_READ_ACTIONS,
        ),
        IdentityProfile(
            kind=IdentityKind.RUNTIME,
            principal=ECS_TASKS_PRINCIPAL,
            managed_policies=telemetry,
            actions=PARAMETER_READ_ACTIONS + IMAGE_PULL_ACTIONS + KEY_PAIR_DESCRIBE_ACTIONS,
        ),
    )


@dataclass(frozen=True)
class IdentityResult:
    roles: dict[IdentityKind, aws.iam.Role]
    instance_profile: aws.iam.InstanceProfile | None = None

    def role(self, kind: IdentityKind) -> aws.iam.Role:
        try:
            return self.roles[kind]
        except KeyError:
            raise ValueError(f"No {kind.value} identity was declared for this topology") from None


def create_identities(
    *,
    ctx: ProvisioningContext,
    profiles: tuple[IdentityProfile, ...],
    parent: pulumi.Resource | None = None,
) -> IdentityResult:
    opts = pulumi.ResourceOptions(parent=parent)
    roles: dict[IdentityKind, aws.iam.Role] = {}

    for profile in profiles:
        base = ctx.resource_name(f"{profile.kind.value}-role")
        role = aws.iam.Role(
            base,
            assume_role_policy=profile.assume_role_policy(),
            description=f"{profile.kind.value} identity for {ctx.topology.value} dev environment",
            tags=ctx.tags(),
            opts=opts,
        )
        for arn in profile.managed_policies:
            policy_name = arn.rsplit("/", 1)[-1]
            aws.iam.RolePolicyAttachment(
                f"{base}-{policy_name}",
                role=role.name,
                policy_arn=arn,
                opts=opts,
            )
        aws.iam.RolePolicy(
            f"{base}-inline",
            role=role.id,
            policy=profile.inline_policy(),
            opts=opts,
        )
        roles[profile.kind] = role

    instance_profile = None
    if ctx.topology is DeploymentTopology.STANDALONE_HOST:
        instance_profile = aws.iam.InstanceProfile(
            ctx.resource_name("instance-profile"),
            role=roles[IdentityKind.RUNTIME].name,
            tags=ctx.tags(),
            opts=opts,
        )

    return IdentityResult(roles=roles, instance_profile=instance_profile)
