from dataclasses import dataclass

import pulumi
import pulumi_aws as aws
import pulumi_aws_native as aws_native

from ..config.models import ProvisioningContext
from ..constants import AL2023_AMI_NAME_FILTER, ANY_IPV4, HTTPS_PORT, SSH_PORT
from .bootstrap import BootstrapProcedure
from .iam import IdentityResult
from .network import NetworkResult


@dataclass(frozen=True)
class StandaloneHostResult:
    security_group: aws.ec2.SecurityGroup
    instance: aws.ec2.Instance


def latest_al2023_ami() -> str:
    ami = aws.ec2.get_ami(
        most_recent=True,
        owners=["amazon"],
        filters=[
            aws.ec2.GetAmiFilterArgs(name="name", values=[AL2023_AMI_NAME_FILTER]),
            aws.ec2.GetAmiFilterArgs(name="architecture", values=["x86_64"]),
        ],
    )
    return ami.id


def create_standalone_host(
    *,
    ctx: ProvisioningContext,
    network: NetworkResult,
    identities: IdentityResult,
    key_pair: aws_native.ec2.KeyPair,
    procedure: BootstrapProcedure,
    parent: pulumi.Resource | None = None,
) -> StandaloneHostResult:
    """
    One EC2 instance, directly reachable on its public address.

    The key pair is attached by EC2 at launch, so the bootstrap does not resolve
    it. User data is only delivered at creation; changing it replaces the instance.
    """
    if identities.instance_profile is None:
        raise ValueError("StandaloneHost needs an instance profile for its runtime identity.")

    opts = pulumi.ResourceOptions(parent=parent)
    settings = ctx.settings

    ingress = [
        aws.ec2.SecurityGroupIngressArgs(
            protocol="tcp",
            from_port=SSH_PORT,
            to_port=SSH_PORT,
            cidr_blocks=[settings.ingress_cidr],
            description="SSH",
        )
    ]
    if settings.allow_https_ingress:
        ingress.append(
            aws.ec2.SecurityGroupIngressArgs(
                protocol="tcp",
                from_port=HTTPS_PORT,
                to_port=HTTPS_PORT,
                cidr_blocks=[settings.ingress_cidr],
                description="HTTPS management access",
            )
        )

    sg = aws.ec2.SecurityGroup(
        ctx.resource_name("instance-sg"),
        vpc_id=network.vpc.id,
        description="Security group for development instance",
        ingress=ingress,
        egress=[
            aws.ec2.SecurityGroupEgressArgs(
                protocol="-1",
                from_port=0,
                to_port=0,
                cidr_blocks=[ANY_IPV4],
            )
        ],
        tags=ctx.tags(Name=ctx.resource_name("instance-sg")),
        opts=opts,
    )

    instance = aws.ec2.Instance(
        ctx.resource_name("instance"),
        ami=latest_al2023_ami(),
        instance_type=settings.instance_type,
        subnet_id=network.public_subnets[0].id,
        vpc_security_group_ids=[sg.id],
        associate_public_ip_address=True,
        key_name=key_pair.key_name,
        iam_instance_profile=identities.instance_profile.name,
        user_data=procedure.render_user_data(),
        user_data_replace_on_change=True,
        root_block_device=aws.ec2.InstanceRootBlockDeviceArgs(
            volume_size=settings.root_volume_gb,
            volume_type="gp3",
            encrypted=settings.encrypt_root_volume,
            delete_on_termination=True,
        ),
        metadata_options=aws.ec2.InstanceMetadataOptionsArgs(
            http_endpoint="enabled",
            http_tokens="required",
        ),
        tags=ctx.tags(Name=ctx.resource_name("instance")),
        opts=opts,
    )

    return StandaloneHostResult(security_group=sg, instance=instance)
