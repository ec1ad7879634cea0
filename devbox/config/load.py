import ipaddress

import pulumi

from ..constants import AZ_COUNT, SUBNET_PREFIX
from .models import ConfigError, DeploymentTopology, DevboxSettings, ProvisioningContext


def _positive_int(c: pulumi.Config, key: str, default: int) -> int:
    value = c.get_int(key)
    if value is None:
        return default
    if value <= 0:
        raise ConfigError(f"Config key {key} must be a positive integer. Got: {value!r}")
    return value


def _ipv4_cidr(c: pulumi.Config, key: str, default: str) -> ipaddress.IPv4Network:
    value = c.get(key) or default
    try:
        return ipaddress.IPv4Network(value, strict=True)
    except ValueError as e:
        raise ConfigError(f"Config key {key} is not a valid IPv4 CIDR block: {value!r}") from e


def _vpc_cidr(c: pulumi.Config, key: str, default: str) -> str:
    network = _ipv4_cidr(c, key, default)
    # public + private tier, one /SUBNET_PREFIX per AZ each
    needed = 2 * AZ_COUNT
    if network.prefixlen > SUBNET_PREFIX or 2 ** (SUBNET_PREFIX - network.prefixlen) < needed:
        raise ConfigError(
            f"Config key {key} must have room for {needed} /{SUBNET_PREFIX} subnets. Got: {str(network)!r}"
        )
    return str(network)


def _bool(c: pulumi.Config, key: str, default: bool) -> bool:
    value = c.get_bool(key)
    return default if value is None else value


def load_settings(c: pulumi.Config) -> DevboxSettings:
    defaults = DevboxSettings()
    return DevboxSettings(
        instance_type=c.get("instanceType") or defaults.instance_type,
        root_volume_gb=_positive_int(c, "rootVolumeGb", defaults.root_volume_gb),
        encrypt_root_volume=_bool(c, "encryptRootVolume", defaults.encrypt_root_volume),
        telemetry_agent=_bool(c, "telemetryAgent", defaults.telemetry_agent),
        ssm_managed_instance=_bool(c, "ssmManagedInstance", defaults.ssm_managed_instance),
        allow_https_ingress=_bool(c, "allowHttpsIngress", defaults.allow_https_ingress),
        ingress_cidr=str(_ipv4_cidr(c, "ingressCidr", defaults.ingress_cidr)),
        vpc_cidr=_vpc_cidr(c, "vpcCidr", defaults.vpc_cidr),
        task_cpu=_positive_int(c, "taskCpu", defaults.task_cpu),
        task_memory_mib=_positive_int(c, "taskMemoryMib", defaults.task_memory_mib),
        container_image=c.get("containerImage") or defaults.container_image,
        log_retention_days=_positive_int(c, "logRetentionDays", defaults.log_retention_days),
        nvm_version=c.get("nvmVersion") or defaults.nvm_version,
    )


def load_context() -> ProvisioningContext:
    """
    Reads stack config from Pulumi.<stack>.yaml.

    Required keys:
      - aws:region

    Optional keys (project namespace):
      - deploymentType: StandaloneHost | ScheduledService (aliases ec2 | fargate), default ec2
      - instanceType, rootVolumeGb, encryptRootVolume, telemetryAgent, ssmManagedInstance,
        allowHttpsIngress, ingressCidr, vpcCidr, taskCpu, taskMemoryMib, containerImage,
        logRetentionDays, nvmVersion

    The topology is validated first so a bad token aborts the run before
    anything else is read or declared.
    """
    c = pulumi.Config()
    token = c.get("deploymentType")
    # Unset means the default; set-but-empty is rejected like any other bad token.
    topology = (
        DeploymentTopology.STANDALONE_HOST if token is None else DeploymentTopology.parse(token)
    )

    region = pulumi.Config("aws").get("region")
    if not region:
        raise ConfigError("Missing required config key: aws:region")

    return ProvisioningContext(
        project=pulumi.get_project(),
        stack=pulumi.get_stack(),
        region=region,
        topology=topology,
        settings=load_settings(c),
    )
