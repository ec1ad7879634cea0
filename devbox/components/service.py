import json
from dataclasses import dataclass

import pulumi
import pulumi_aws as aws
import pulumi_aws_native as aws_native

from ..config.models import ProvisioningContext
from ..constants import ANY_IPV4, CONTAINER_NAME, SSH_PORT
from .bootstrap import BootstrapProcedure
from .iam import IdentityKind, IdentityResult
from .network import NetworkResult


@dataclass(frozen=True)
class ExposureLayer:
    load_balancer: aws.lb.LoadBalancer
    target_group: aws.lb.TargetGroup
    listener: aws.lb.Listener


@dataclass(frozen=True)
class ScheduledServiceResult:
    cluster: aws.ecs.Cluster
    log_group: aws.cloudwatch.LogGroup
    task_definition: aws.ecs.TaskDefinition
    security_group: aws.ec2.SecurityGroup
    service: aws.ecs.Service
    exposure: ExposureLayer


def container_definitions(
    *,
    ctx: ProvisioningContext,
    image: str,
    key_name: str,
    log_group_name: str,
    command: list[str],
) -> str:
    return json.dumps(
        [
            {
                "name": CONTAINER_NAME,
                "image": image,
                "essential": True,
                "portMappings": [{"containerPort": SSH_PORT, "protocol": "tcp"}],
                "environment": [
                    {"name": "AWS_DEFAULT_REGION", "value": ctx.region},
                    {"name": "KEY_NAME", "value": key_name},
                ],
                "command": command,
                "logConfiguration": {
                    "logDriver": "awslogs",
                    "options": {
                        "awslogs-group": log_group_name,
                        "awslogs-region": ctx.region,
                        "awslogs-stream-prefix": CONTAINER_NAME,
                    },
                },
            }
        ]
    )


def _create_exposure_layer(
    *,
    ctx: ProvisioningContext,
    network: NetworkResult,
    opts: pulumi.ResourceOptions,
) -> ExposureLayer:
    nlb = aws.lb.LoadBalancer(
        ctx.resource_name("nlb"),
        load_balancer_type="network",
        internal=False,
        subnets=network.public_subnet_ids,
        enable_cross_zone_load_balancing=True,
        tags=ctx.tags(),
        opts=opts,
    )

    target_group = aws.lb.TargetGroup(
        ctx.resource_name("ssh-tg"),
        port=SSH_PORT,
        protocol="TCP",
        target_type="ip",
        # ip targets default to the NLB address as source; keep the client's so ingressCidr applies
        preserve_client_ip="true",
        vpc_id=network.vpc.id,
        health_check=aws.lb.TargetGroupHealthCheckArgs(
            enabled=True,
            port=str(SSH_PORT),
            protocol="TCP",
        ),
        tags=ctx.tags(),
        opts=opts,
    )

    listener = aws.lb.Listener(
        ctx.resource_name("ssh-listener"),
        load_balancer_arn=nlb.arn,
        port=SSH_PORT,
        protocol="TCP",
        default_actions=[
            aws.lb.ListenerDefaultActionArgs(
                type="forward",
                target_group_arn=target_group.arn,
            )
        ],
        tags=ctx.tags(),
        opts=opts,
    )

    return ExposureLayer(load_balancer=nlb, target_group=target_group, listener=listener)


def create_scheduled_service(
    *,
    ctx: ProvisioningContext,
    network: NetworkResult,
    identities: IdentityResult,
    key_pair: aws_native.ec2.KeyPair,
    procedure: BootstrapProcedure,
    parent: pulumi.Resource | None = None,
) -> ScheduledServiceResult:
    """
    Fargate task in a private subnet behind an internet-facing NLB.

    The task never gets a public address; the NLB listener on port 22 is the
    only public ingress. The bootstrap procedure is the container command and
    resolves the authorized key from SSM itself.
    """
    if not network.private_subnets:
        raise ValueError("ScheduledService needs the private subnet tier.")

    opts = pulumi.ResourceOptions(parent=parent)
    settings = ctx.settings

    cluster = aws.ecs.Cluster(
        ctx.resource_name("cluster"),
        settings=[
            aws.ecs.ClusterSettingArgs(
                name="containerInsights",
                value="enabled" if settings.telemetry_agent else "disabled",
            )
        ],
        tags=ctx.tags(),
        opts=opts,
    )

    log_group = aws.cloudwatch.LogGroup(
        ctx.resource_name("container-logs"),
        retention_in_days=settings.log_retention_days,
        tags=ctx.tags(),
        opts=opts,
    )

    command = procedure.render_container_command()
    task_definition = aws.ecs.TaskDefinition(
        ctx.resource_name("task"),
        family=ctx.resource_name("dev"),
        cpu=str(settings.task_cpu),
        memory=str(settings.task_memory_mib),
        network_mode="awsvpc",
        requires_compatibilities=["FARGATE"],
        execution_role_arn=identities.role(IdentityKind.EXECUTION).arn,
        task_role_arn=identities.role(IdentityKind.RUNTIME).arn,
        container_definitions=pulumi.Output.all(key_pair.key_name, log_group.name).apply(
            lambda args: container_definitions(
                ctx=ctx,
                image=settings.container_image,
                key_name=args[0],
                log_group_name=args[1],
                command=command,
            )
        ),
        tags=ctx.tags(),
        opts=opts,
    )

    # Client addresses are preserved through the NLB; its health checks come from inside the VPC.
    sg = aws.ec2.SecurityGroup(
        ctx.resource_name("task-sg"),
        vpc_id=network.vpc.id,
        description="Security group for Fargate tasks",
        ingress=[
            aws.ec2.SecurityGroupIngressArgs(
                protocol="tcp",
                from_port=SSH_PORT,
                to_port=SSH_PORT,
                cidr_blocks=[settings.ingress_cidr],
                description="SSH clients via load balancer",
            ),
            aws.ec2.SecurityGroupIngressArgs(
                protocol="tcp",
                from_port=SSH_PORT,
                to_port=SSH_PORT,
                cidr_blocks=[settings.vpc_cidr],
                description="Load balancer health checks",
            ),
        ],
        egress=[
            aws.ec2.SecurityGroupEgressArgs(
                protocol="-1",
                from_port=0,
                to_port=0,
                cidr_blocks=[ANY_IPV4],
            )
        ],
        tags=ctx.tags(Name=ctx.resource_name("task-sg")),
        opts=opts,
    )

    exposure = _create_exposure_layer(ctx=ctx, network=network, opts=opts)

    depends_on: list[pulumi.Resource] = [exposure.listener]
    if network.nat_gateway is not None:
        depends_on.append(network.nat_gateway)

    service = aws.ecs.Service(
        ctx.resource_name("service"),
        cluster=cluster.arn,
        task_definition=task_definition.arn,
        desired_count=1,
        launch_type="FARGATE",
        network_configuration=aws.ecs.ServiceNetworkConfigurationArgs(
            subnets=network.private_subnet_ids,
            security_groups=[sg.id],
            assign_public_ip=False,
        ),
        load_balancers=[
            aws.ecs.ServiceLoadBalancerArgs(
                target_group_arn=exposure.target_group.arn,
                container_name=CONTAINER_NAME,
                container_port=SSH_PORT,
            )
        ],
        tags=ctx.tags(),
        opts=pulumi.ResourceOptions(parent=parent, depends_on=depends_on),
    )

    return ScheduledServiceResult(
        cluster=cluster,
        log_group=log_group,
        task_definition=task_definition,
        security_group=sg,
        service=service,
        exposure=exposure,
    )
