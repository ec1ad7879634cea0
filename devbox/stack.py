from __future__ import annotations

from dataclasses import dataclass

import pulumi
import pulumi_aws_native as aws_native

from .components.bootstrap import BootstrapProcedure, build_bootstrap
from .components.compute import StandaloneHostResult, create_standalone_host
from .components.iam import IdentityProfile, IdentityResult, create_identities, identity_profiles
from .components.keypair import key_pair_name, provision_key_pair
from .components.network import NetworkResult, create_network
from .components.service import ScheduledServiceResult, create_scheduled_service
from .config.models import DeploymentTopology, ProvisioningContext
from .constants import ENVIRONMENT_TYPE


@dataclass(frozen=True)
class EnvironmentResult:
    topology: DeploymentTopology
    key_name: str
    key_pair: aws_native.ec2.KeyPair
    network: NetworkResult
    profiles: tuple[IdentityProfile, ...]
    identities: IdentityResult
    bootstrap: BootstrapProcedure
    host: StandaloneHostResult | None = None
    service: ScheduledServiceResult | None = None


def build_environment(ctx: ProvisioningContext) -> EnvironmentResult:
    """
    Declare the whole dev environment for ctx.topology.

    Order: network -> key pair -> identities -> bootstrap -> compute. The engine
    derives the real creation order from resource references; this is only the
    declaration order.
    """
    if not isinstance(ctx.topology, DeploymentTopology):
        raise TypeError(f"ctx.topology must be a DeploymentTopology, got {type(ctx.topology).__name__}")

    pulumi.log.info(f"Declaring {ctx.topology.value} dev environment for {ctx.stack_identity} in {ctx.region}")

    component = pulumi.ComponentResource(ENVIRONMENT_TYPE, ctx.stack_identity, None)

    network = create_network(ctx=ctx, parent=component)

    key_name = key_pair_name(ctx.stack_identity, ctx.topology)
    key_pair = provision_key_pair(ctx=ctx, name=key_name, parent=component)

    profiles = identity_profiles(ctx.topology, ctx.settings)
    identities = create_identities(ctx=ctx, profiles=profiles, parent=component)

    procedure = build_bootstrap(ctx.topology, ctx.settings)
    pulumi.log.debug(f"Bootstrap stages: {', '.join(procedure.stage_names)}")

    host = None
    service = None
    if ctx.topology is DeploymentTopology.STANDALONE_HOST:
        host = create_standalone_host(
            ctx=ctx,
            network=network,
            identities=identities,
            key_pair=key_pair,
            procedure=procedure,
            parent=component,
        )
    else:
        service = create_scheduled_service(
            ctx=ctx,
            network=network,
            identities=identities,
            key_pair=key_pair,
            procedure=procedure,
            parent=component,
        )

    component.register_outputs({})
    return EnvironmentResult(
        topology=ctx.topology,
        key_name=key_name,
        key_pair=key_pair,
        network=network,
        profiles=profiles,
        identities=identities,
        bootstrap=procedure,
        host=host,
        service=service,
    )
