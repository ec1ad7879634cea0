from __future__ import annotations

import enum
import shlex
from dataclasses import dataclass

from ..config.models import DeploymentTopology, DevboxSettings
from ..constants import AWSCLI_URL, KEYPAIR_PARAMETER_PREFIX, NVM_INSTALL_URL, SSH_PORT


class BootstrapOrderError(ValueError):
    pass


class StagePhase(enum.IntEnum):
    PROVISION = 1  # package baseline, language toolchains, CLI tooling
    HARDEN = 2  # sshd hardening
    CONFIGURE = 3  # telemetry agent, authorized key resolution
    START = 4  # final sshd (re)start


@dataclass(frozen=True)
class Stage:
    name: str
    phase: StagePhase
    commands: tuple[str, ...]


@dataclass(frozen=True)
class BootstrapProcedure:
    """
    Ordered first-boot procedure for one compute resource.

    Construction fails unless every provisioning stage comes before the single
    hardening stage, and the single sshd start stage comes last. It runs once,
    best-effort, with no feedback to the provisioning run.
    """
    topology: DeploymentTopology
    stages: tuple[Stage, ...]

    def __post_init__(self) -> None:
        phases = [s.phase for s in self.stages]
        if StagePhase.PROVISION not in phases:
            raise BootstrapOrderError("Bootstrap needs at least one provisioning stage.")
        if phases.count(StagePhase.HARDEN) != 1:
            raise BootstrapOrderError("Bootstrap needs exactly one sshd hardening stage.")
        if phases.count(StagePhase.START) != 1 or phases[-1] is not StagePhase.START:
            raise BootstrapOrderError("Bootstrap must end with exactly one sshd start stage.")
        for prev, cur in zip(self.stages, self.stages[1:]):
            if cur.phase < prev.phase:
                raise BootstrapOrderError(
                    f"Stage {cur.name!r} ({cur.phase.name}) cannot run after {prev.name!r} ({prev.phase.name})"
                )
        names = [s.name for s in self.stages]
        if len(set(names)) != len(names):
            raise BootstrapOrderError(f"Duplicate stage names: {names}")

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in self.stages]

    def stage(self, name: str) -> Stage:
        for s in self.stages:
            if s.name == name:
                return s
        raise KeyError(name)

    def commands(self) -> list[str]:
        return [cmd for s in self.stages for cmd in s.commands]

    def render_user_data(self) -> str:
        """Instance user data: one command per line, a failing line does not stop the rest."""
        lines = ["#!/bin/bash"]
        for s in self.stages:
            lines.append(f"# {s.name}")
            lines.extend(s.commands)
        return "\n".join(lines) + "\n"

    def render_container_command(self) -> list[str]:
        """Container command: commands chained with && so sshd only starts if everything before it succeeded."""
        return ["/bin/bash", "-c", " && ".join(self.commands())]


def build_bootstrap(topology: DeploymentTopology, settings: DevboxSettings) -> BootstrapProcedure:
    if topology is DeploymentTopology.STANDALONE_HOST:
        return _standalone_host_procedure(settings)
    return _scheduled_service_procedure(settings)


# --- shared toolchain stages -------------------------------------------------

def _python_stage(pkg: str) -> Stage:
    return Stage(
        "python",
        StagePhase.PROVISION,
        (
            f"{pkg} install -y python3 python3-pip python3-devel",
            "pip3 install --upgrade pip setuptools wheel virtualenv",
        ),
    )


def _java_stage(pkg: str) -> Stage:
    return Stage(
        "java",
        StagePhase.PROVISION,
        (f"{pkg} install -y java-17-amazon-corretto java-17-amazon-corretto-devel maven",),
    )


def _node_stage(settings: DevboxSettings, *, persist_profile: bool) -> Stage:
    url = NVM_INSTALL_URL.format(version=settings.nvm_version)
    commands = [
        "export HOME=/root",
        f"curl -o- {url} | bash",
    ]
    if persist_profile:
        commands.append('echo "source /root/.nvm/nvm.sh" >> /etc/profile')
    commands.append('export NVM_DIR="$HOME/.nvm" && [ -s "$NVM_DIR/nvm.sh" ] && . "$NVM_DIR/nvm.sh" && nvm install --lts && nvm use --lts')
    return Stage("node", StagePhase.PROVISION, tuple(commands))


def _aws_cli_stage() -> Stage:
    return Stage(
        "aws-cli",
        StagePhase.PROVISION,
        (
            f'curl -s "{AWSCLI_URL}" -o "/tmp/awscliv2.zip"',
            "unzip -q -o /tmp/awscliv2.zip -d /tmp",
            "/tmp/aws/install --update",
            "rm -rf /tmp/aws /tmp/awscliv2.zip",
        ),
    )


# --- StandaloneHost (Amazon Linux 2023 user data) ---------------------------

def _standalone_host_procedure(settings: DevboxSettings) -> BootstrapProcedure:
    stages = [
        Stage(
            "packages",
            StagePhase.PROVISION,
            (
                "dnf update -y",
                'dnf groupinstall -y "Development Tools"',
                "dnf install -y git curl wget gcc gcc-c++ make openssl-devel unzip tar",
            ),
        ),
        _python_stage("dnf"),
        _java_stage("dnf"),
        _node_stage(settings, persist_profile=True),
        _aws_cli_stage(),
        # The AMI already ships an sshd_config; append overrides.
        Stage(
            "ssh-hardening",
            StagePhase.HARDEN,
            (
                'echo "PermitRootLogin no" >> /etc/ssh/sshd_config',
                'echo "PasswordAuthentication no" >> /etc/ssh/sshd_config',
                'echo "PubkeyAuthentication yes" >> /etc/ssh/sshd_config',
            ),
        ),
    ]
    if settings.telemetry_agent:
        stages.append(
            Stage(
                "cloudwatch-agent",
                StagePhase.CONFIGURE,
                (
                    "dnf install -y amazon-cloudwatch-agent",
                    "/opt/aws/amazon-cloudwatch-agent/bin/amazon-cloudwatch-agent-ctl -a fetch-config -m ec2 -c default -s",
                ),
            )
        )
    stages.append(Stage("sshd", StagePhase.START, ("systemctl restart sshd",)))
    return BootstrapProcedure(DeploymentTopology.STANDALONE_HOST, tuple(stages))


# --- ScheduledService (Amazon Linux 2 container command) ---------------------

SSHD_CONFIG_LINES = (
    f"Port {SSH_PORT}",
    "Protocol 2",
    "HostKey /etc/ssh/ssh_host_rsa_key",
    "HostKey /etc/ssh/ssh_host_ecdsa_key",
    "HostKey /etc/ssh/ssh_host_ed25519_key",
    "SyslogFacility AUTHPRIV",
    "PermitRootLogin prohibit-password",
    "PubkeyAuthentication yes",
    "PasswordAuthentication no",
    "ChallengeResponseAuthentication no",
    "GSSAPIAuthentication no",
    "UseDNS no",
    "X11Forwarding no",
    "PrintMotd no",
    "AcceptEnv LANG LC_*",
    "Subsystem sftp /usr/libexec/openssh/sftp-server",
)


def _sshd_config_writer() -> str:
    quoted = " ".join(shlex.quote(line) for line in SSHD_CONFIG_LINES)
    return f"printf '%s\\n' {quoted} > /etc/ssh/sshd_config"


def _key_resolution_commands() -> tuple[str, ...]:
    # KEY_NAME and AWS_DEFAULT_REGION come from the task definition environment.
    fetch = (
        "aws ec2 describe-key-pairs --region $AWS_DEFAULT_REGION --key-names $KEY_NAME"
        ' --query "KeyPairs[0].KeyPairId" --output text --no-cli-pager'
        " | xargs -I {} aws ssm get-parameter --region $AWS_DEFAULT_REGION"
        f" --name {KEYPAIR_PARAMETER_PREFIX}{{}} --with-decryption"
        ' --query "Parameter.Value" --output text --no-cli-pager'
        " > /root/.ssh/key.pem"
    )
    return (
        f"(umask 077 && {fetch})",
        "ssh-keygen -y -f /root/.ssh/key.pem > /root/.ssh/authorized_keys",
        "chmod 600 /root/.ssh/authorized_keys",
        "rm -f /root/.ssh/key.pem",
    )


def _scheduled_service_procedure(settings: DevboxSettings) -> BootstrapProcedure:
    stages = (
        Stage(
            "packages",
            StagePhase.PROVISION,
            (
                "yum update -y",
                "yum install -y openssh-server git curl wget gcc gcc-c++ make openssl-devel unzip tar procps",
            ),
        ),
        _python_stage("yum"),
        _java_stage("yum"),
        _node_stage(settings, persist_profile=False),
        _aws_cli_stage(),
        # The base image has no usable sshd_config; replace it wholesale.
        Stage(
            "ssh-hardening",
            StagePhase.HARDEN,
            (
                "mkdir -p /run/sshd /root/.ssh",
                "chmod 700 /root/.ssh",
                "ssh-keygen -A",
                _sshd_config_writer(),
                "chmod 600 /etc/ssh/sshd_config",
            ),
        ),
        Stage("ssh-key", StagePhase.CONFIGURE, _key_resolution_commands()),
        Stage("sshd", StagePhase.START, ("exec /usr/sbin/sshd -D -e",)),
    )
    return BootstrapProcedure(DeploymentTopology.SCHEDULED_SERVICE, stages)
