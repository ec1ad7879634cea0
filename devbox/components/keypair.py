import pulumi
import pulumi_aws_native as aws_native

from ..config.models import DeploymentTopology, ProvisioningContext


def key_pair_name(stack_identity: str, topology: DeploymentTopology) -> str:
    """Same stack + topology always resolves to the same key pair."""
    return f"{stack_identity}-{topology.alias}-key"


def provision_key_pair(
    *,
    ctx: ProvisioningContext,
    name: str,
    parent: pulumi.Resource | None = None,
) -> aws_native.ec2.KeyPair:
    """
    Declare an AWS-generated key pair.

    No public key material is passed in, so AWS creates the pair and stores the
    private half as a SecureString at /ec2/keypair/<key-pair-id>. The private key
    never passes through Pulumi state.

    The key pair is destroyed with the stack. There is no rotation: one private
    key per name.
    """
    provider = aws_native.Provider(
        ctx.resource_name("aws-native"),
        region=ctx.region,
        opts=pulumi.ResourceOptions(parent=parent),
    )
    pulumi.log.info(f"Declaring key pair {name} ({ctx.topology.value})")
    return aws_native.ec2.KeyPair(
        ctx.resource_name("keypair"),
        key_name=name,
        key_type="rsa",
        opts=pulumi.ResourceOptions(
            parent=parent,
            provider=provider,
            protect=False,
            retain_on_delete=False,
        ),
    )
