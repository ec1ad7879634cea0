import json
from dataclasses import dataclass

import pulumi
import pulumi_aws as aws

from ..config.models import DeploymentTopology, ProvisioningContext
from ..constants import ANY_IPV4, AZ_COUNT, FLOW_LOGS_PRINCIPAL, SUBNET_PREFIX
from ..utils.net import subnet_cidrs


@dataclass(frozen=True)
class NetworkResult:
    vpc: aws.ec2.Vpc
    public_subnets: list[aws.ec2.Subnet]
    private_subnets: list[aws.ec2.Subnet]
    nat_gateway: aws.ec2.NatGateway | None
    flow_log_group: aws.cloudwatch.LogGroup
    flow_log: aws.ec2.FlowLog

    @property
    def public_subnet_ids(self) -> list[pulumi.Output[str]]:
        return [s.id for s in self.public_subnets]

    @property
    def private_subnet_ids(self) -> list[pulumi.Output[str]]:
        return [s.id for s in self.private_subnets]


def create_network(
    *,
    ctx: ProvisioningContext,
    parent: pulumi.Resource | None = None,
) -> NetworkResult:
    """
    Build the VPC for the selected topology.

    Layout:
      - StandaloneHost: one public subnet per AZ, no NAT, no private tier
      - ScheduledService: public + private-with-egress per AZ, exactly one NAT gateway

    Flow logs go to CloudWatch regardless of topology.
    """
    opts = pulumi.ResourceOptions(parent=parent)
    settings = ctx.settings
    with_private_tier = ctx.topology is DeploymentTopology.SCHEDULED_SERVICE

    azs = aws.get_availability_zones(state="available").names[:AZ_COUNT]
    if len(azs) < AZ_COUNT:
        raise ValueError(f"Region {ctx.region} exposes {len(azs)} availability zones; need {AZ_COUNT}.")

    public_cidrs = subnet_cidrs(settings.vpc_cidr, AZ_COUNT, prefix=SUBNET_PREFIX)
    private_cidrs = (
        subnet_cidrs(settings.vpc_cidr, AZ_COUNT, prefix=SUBNET_PREFIX, offset=AZ_COUNT)
        if with_private_tier
        else []
    )

    vpc = aws.ec2.Vpc(
        ctx.resource_name("vpc"),
        cidr_block=settings.vpc_cidr,
        enable_dns_hostnames=True,
        enable_dns_support=True,
        tags=ctx.tags(Name=ctx.resource_name("vpc")),
        opts=opts,
    )

    igw = aws.ec2.InternetGateway(
        ctx.resource_name("igw"),
        vpc_id=vpc.id,
        tags=ctx.tags(Name=ctx.resource_name("igw")),
        opts=opts,
    )

    public_rt = aws.ec2.RouteTable(
        ctx.resource_name("public-rt"),
        vpc_id=vpc.id,
        routes=[aws.ec2.RouteTableRouteArgs(cidr_block=ANY_IPV4, gateway_id=igw.id)],
        tags=ctx.tags(Name=ctx.resource_name("public-rt")),
        opts=opts,
    )

    public_subnets: list[aws.ec2.Subnet] = []
    for i, (az, cidr) in enumerate(zip(azs, public_cidrs)):
        name = ctx.resource_name(f"public-{i + 1}")
        subnet = aws.ec2.Subnet(
            name,
            vpc_id=vpc.id,
            cidr_block=cidr,
            availability_zone=az,
            map_public_ip_on_launch=True,
            tags=ctx.tags(Name=name, Tier="public"),
            opts=opts,
        )
        aws.ec2.RouteTableAssociation(
            f"{name}-rta",
            subnet_id=subnet.id,
            route_table_id=public_rt.id,
            opts=opts,
        )
        public_subnets.append(subnet)

    private_subnets: list[aws.ec2.Subnet] = []
    nat_gateway: aws.ec2.NatGateway | None = None
    if with_private_tier:
        eip = aws.ec2.Eip(
            ctx.resource_name("nat-eip"),
            domain="vpc",
            tags=ctx.tags(Name=ctx.resource_name("nat-eip")),
            opts=opts,
        )
        nat_gateway = aws.ec2.NatGateway(
            ctx.resource_name("nat"),
            allocation_id=eip.id,
            subnet_id=public_subnets[0].id,
            tags=ctx.tags(Name=ctx.resource_name("nat")),
            opts=pulumi.ResourceOptions(parent=parent, depends_on=[igw]),
        )
        private_rt = aws.ec2.RouteTable(
            ctx.resource_name("private-rt"),
            vpc_id=vpc.id,
            routes=[aws.ec2.RouteTableRouteArgs(cidr_block=ANY_IPV4, nat_gateway_id=nat_gateway.id)],
            tags=ctx.tags(Name=ctx.resource_name("private-rt")),
            opts=opts,
        )
        for i, (az, cidr) in enumerate(zip(azs, private_cidrs)):
            name = ctx.resource_name(f"private-{i + 1}")
            subnet = aws.ec2.Subnet(
                name,
                vpc_id=vpc.id,
                cidr_block=cidr,
                availability_zone=az,
                map_public_ip_on_launch=False,
                tags=ctx.tags(Name=name, Tier="private"),
                opts=opts,
            )
            aws.ec2.RouteTableAssociation(
                f"{name}-rta",
                subnet_id=subnet.id,
                route_table_id=private_rt.id,
                opts=opts,
            )
            private_subnets.append(subnet)

    flow_log_group, flow_log = _create_flow_logs(ctx=ctx, vpc=vpc, opts=opts)

    return NetworkResult(
        vpc=vpc,
        public_subnets=public_subnets,
        private_subnets=private_subnets,
        nat_gateway=nat_gateway,
        flow_log_group=flow_log_group,
        flow_log=flow_log,
    )


def _create_flow_logs(
    *,
    ctx: ProvisioningContext,
    vpc: aws.ec2.Vpc,
    opts: pulumi.ResourceOptions,
) -> tuple[aws.cloudwatch.LogGroup, aws.ec2.FlowLog]:
    log_group = aws.cloudwatch.LogGroup(
        ctx.resource_name("flow-logs"),
        retention_in_days=ctx.settings.log_retention_days,
        tags=ctx.tags(),
        opts=opts,
    )

    role = aws.iam.Role(
        ctx.resource_name("flow-logs-role"),
        assume_role_policy=json.dumps(
            {
                "Version": "2012-10-17",
                "Statement": [
                    {
                        "Effect": "Allow",
                        "Principal": {"Service": FLOW_LOGS_PRINCIPAL},
                        "Action": "sts:AssumeRole",
                    }
                ],
            }
        ),
        tags=ctx.tags(),
        opts=opts,
    )

    aws.iam.RolePolicy(
        ctx.resource_name("flow-logs-policy"),
        role=role.id,
        policy=log_group.arn.apply(
            lambda arn: json.dumps(
                {
                    "Version": "2012-10-17",
                    "Statement": [
                        {
                            "Effect": "Allow",
                            "Action": [
                                "logs:CreateLogStream",
                                "logs:PutLogEvents",
                                "logs:DescribeLogGroups",
                                "logs:DescribeLogStreams",
                            ],
                            "Resource": [arn, f"{arn}:*"],
                        }
                    ],
                }
            )
        ),
        opts=opts,
    )

    flow_log = aws.ec2.FlowLog(
        ctx.resource_name("flow-log"),
        vpc_id=vpc.id,
        traffic_type="ALL",
        log_destination_type="cloud-watch-logs",
        log_destination=log_group.arn,
        iam_role_arn=role.arn,
        tags=ctx.tags(),
        opts=opts,
    )
    return log_group, flow_log
