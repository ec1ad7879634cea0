from __future__ import annotations

import shlex
from dataclasses import dataclass

import pulumi

from .config.models import DeploymentTopology, ProvisioningContext
from .constants import CONTAINER_SSH_USER, EC2_SSH_USER, KEYPAIR_PARAMETER_PREFIX
from .stack import EnvironmentResult


@dataclass(frozen=True)
class ProvisioningOutput:
    value: pulumi.Input[str]
    description: str


def retrieval_command(key_name: str, region: str) -> str:
    """
    Shell one-liner that writes the decrypted private key to <key_name>.pem.

    The key pair id is resolved first, since SSM stores the key under the id and
    not under the name. The parameter value goes straight into the final file,
    created under umask 077, then made read-only. A previous read-only copy is
    removed first so the command can be re-run.
    """
    pem = shlex.quote(f"{key_name}.pem")
    region = shlex.quote(region)
    return (
        f"rm -f {pem} && (umask 077 && aws ec2 describe-key-pairs --region {region} --key-names {shlex.quote(key_name)}"
        " --query 'KeyPairs[0].KeyPairId' --output text"
        f" | xargs -I {{}} aws ssm get-parameter --region {region} --name {KEYPAIR_PARAMETER_PREFIX}{{}}"
        " --with-decryption --query 'Parameter.Value' --output text"
        f" > {pem}) && chmod 400 {pem}"
    )


def ssh_command(key_name: str, user: str, host: pulumi.Input[str]) -> pulumi.Output[str]:
    return pulumi.Output.concat("ssh -i ", shlex.quote(f"{key_name}.pem"), " ", user, "@", host)


def compose_outputs(ctx: ProvisioningContext, result: EnvironmentResult) -> dict[str, ProvisioningOutput]:
    outputs: dict[str, ProvisioningOutput] = {}

    if ctx.topology is DeploymentTopology.STANDALONE_HOST:
        if result.host is None:
            raise ValueError("StandaloneHost environment has no instance to expose.")
        public_ip = result.host.instance.public_ip
        outputs["InstancePublicIP"] = ProvisioningOutput(
            value=public_ip,
            description="Public IP address for SSH connection",
        )
        outputs["SSHCommand"] = ProvisioningOutput(
            value=ssh_command(result.key_name, EC2_SSH_USER, public_ip),
            description="SSH command to connect to the instance",
        )
    else:
        if result.service is None:
            raise ValueError("ScheduledService environment has no load balancer to expose.")
        dns_name = result.service.exposure.load_balancer.dns_name
        outputs["LoadBalancerDNS"] = ProvisioningOutput(
            value=dns_name,
            description="Network Load Balancer DNS name for SSH connection",
        )
        outputs["SSHCommand"] = ProvisioningOutput(
            value=ssh_command(result.key_name, CONTAINER_SSH_USER, dns_name),
            description="SSH command to connect to the container through the load balancer",
        )

    outputs["SSHKeyName"] = ProvisioningOutput(
        value=result.key_name,
        description="Name of SSH key pair",
    )
    outputs["SSHKeyCommand"] = ProvisioningOutput(
        value=retrieval_command(result.key_name, ctx.region),
        description="Command to retrieve private key",
    )
    return outputs


def export_outputs(outputs: dict[str, ProvisioningOutput]) -> None:
    for name, output in outputs.items():
        pulumi.log.debug(f"Export {name}: {output.description}")
        pulumi.export(name, output.value)
