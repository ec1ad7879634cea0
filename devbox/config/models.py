from __future__ import annotations

import enum
from dataclasses import dataclass, field

from ..constants import ANY_IPV4, DEFAULT_CONTAINER_IMAGE


class ConfigError(ValueError):
    """Raised for invalid stack configuration, before any resource is declared."""


class DeploymentTopology(enum.Enum):
    STANDALONE_HOST = "StandaloneHost"
    SCHEDULED_SERVICE = "ScheduledService"

    @property
    def alias(self) -> str:
        return _ALIASES[self]

    @classmethod
    def parse(cls, token: str) -> DeploymentTopology:
        """
        Resolve a topology token.

        Accepts the canonical names and the short aliases ("ec2", "fargate"),
        case-insensitively. Anything else is a ConfigError.
        """
        value = (token or "").strip().lower()
        for topology in cls:
            if value in (topology.value.lower(), topology.alias):
                return topology
        accepted = sorted([t.value for t in cls] + [t.alias for t in cls])
        raise ConfigError(f"Invalid deploymentType {token!r}. Must be one of {accepted}")


_ALIASES = {
    DeploymentTopology.STANDALONE_HOST: "ec2",
    DeploymentTopology.SCHEDULED_SERVICE: "fargate",
}


@dataclass(frozen=True)
class DevboxSettings:
    instance_type: str = "t3.medium"
    root_volume_gb: int = 30
    encrypt_root_volume: bool = True
    telemetry_agent: bool = True
    ssm_managed_instance: bool = True
    allow_https_ingress: bool = False
    ingress_cidr: str = ANY_IPV4
    vpc_cidr: str = "10.0.0.0/16"
    task_cpu: int = 1024
    task_memory_mib: int = 2048
    container_image: str = DEFAULT_CONTAINER_IMAGE
    log_retention_days: int = 30
    nvm_version: str = "v0.39.7"


@dataclass(frozen=True)
class ProvisioningContext:
    """
    Everything a component needs to know about the current run.

    Read-only once the topology is selected; threaded explicitly through
    every component call.
    """
    project: str
    stack: str
    region: str
    topology: DeploymentTopology
    settings: DevboxSettings = field(default_factory=DevboxSettings)

    @property
    def stack_identity(self) -> str:
        return f"{self.project}-{self.stack}"

    def resource_name(self, suffix: str) -> str:
        return f"{self.stack_identity}-{suffix}"

    def tags(self, **extra: str) -> dict[str, str]:
        return {
            "Project": self.project,
            "Stack": self.stack,
            "Topology": self.topology.value,
            "ManagedBy": "pulumi",
            **extra,
        }
