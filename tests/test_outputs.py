import pulumi
import pytest

from devbox.components.keypair import key_pair_name
from devbox.config.models import DeploymentTopology
from devbox.outputs import compose_outputs, retrieval_command
from devbox.stack import build_environment


# ── Key naming ──────────────────────────────────────────────────────


@pytest.mark.parametrize("topology", list(DeploymentTopology))
def test_key_pair_name_is_deterministic(topology):
    assert key_pair_name("devbox-dev", topology) == key_pair_name("devbox-dev", topology)


def test_key_pair_name_depends_on_stack_and_topology():
    names = {
        key_pair_name(stack, topology)
        for stack in ("devbox-dev", "devbox-prod")
        for topology in DeploymentTopology
    }
    assert len(names) == 4
    assert key_pair_name("devbox-dev", DeploymentTopology.STANDALONE_HOST) == "devbox-dev-ec2-key"


# ── Retrieval command ───────────────────────────────────────────────


def test_retrieval_command_resolves_id_then_fetches_decrypted_key():
    cmd = retrieval_command("devbox-dev-ec2-key", "us-east-1")

    describe = cmd.index("aws ec2 describe-key-pairs")
    fetch = cmd.index("aws ssm get-parameter")
    assert describe < fetch
    assert "--key-names devbox-dev-ec2-key" in cmd
    assert "--name /ec2/keypair/{}" in cmd
    assert "--with-decryption" in cmd
    assert "--region us-east-1" in cmd


def test_retrieval_command_writes_one_restricted_file():
    cmd = retrieval_command("devbox-dev-ec2-key", "us-east-1")

    assert cmd.startswith("rm -f devbox-dev-ec2-key.pem && (umask 077 && ")
    assert cmd.count(">") == 1
    assert "> devbox-dev-ec2-key.pem)" in cmd
    assert cmd.endswith("&& chmod 400 devbox-dev-ec2-key.pem")
    assert "tee" not in cmd
    assert cmd.count("rm ") == 1


def test_retrieval_command_quotes_shell_arguments():
    cmd = retrieval_command("dev key;reboot", "us-east-1")

    assert "--key-names 'dev key;reboot'" in cmd
    assert "> 'dev key;reboot.pem')" in cmd
    assert cmd.endswith("chmod 400 'dev key;reboot.pem'")


# ── Composed outputs ────────────────────────────────────────────────


@pulumi.runtime.test
def test_standalone_host_outputs(mocks, make_context):
    ctx = make_context(DeploymentTopology.STANDALONE_HOST)
    outputs = compose_outputs(ctx, build_environment(ctx))

    assert list(outputs) == ["InstancePublicIP", "SSHCommand", "SSHKeyName", "SSHKeyCommand"]
    assert "LoadBalancerDNS" not in outputs
    assert outputs["SSHKeyName"].value == "devbox-test-ec2-key"
    assert outputs["SSHKeyCommand"].value == retrieval_command("devbox-test-ec2-key", "us-east-1")
    assert all(o.description for o in outputs.values())

    def check(args):
        ip, ssh = args
        assert ip == "203.0.113.10"
        assert ssh == "ssh -i devbox-test-ec2-key.pem ec2-user@203.0.113.10"

    return pulumi.Output.all(outputs["InstancePublicIP"].value, outputs["SSHCommand"].value).apply(check)


@pulumi.runtime.test
def test_scheduled_service_outputs(mocks, make_context):
    ctx = make_context(DeploymentTopology.SCHEDULED_SERVICE)
    outputs = compose_outputs(ctx, build_environment(ctx))

    assert list(outputs) == ["LoadBalancerDNS", "SSHCommand", "SSHKeyName", "SSHKeyCommand"]
    assert "InstancePublicIP" not in outputs
    assert outputs["SSHKeyName"].value == "devbox-test-fargate-key"

    def check(args):
        dns, ssh = args
        assert dns == "devbox-test-nlb-0123.elb.us-east-1.amazonaws.com"
        assert ssh == "ssh -i devbox-test-fargate-key.pem root@devbox-test-nlb-0123.elb.us-east-1.amazonaws.com"

    return pulumi.Output.all(outputs["LoadBalancerDNS"].value, outputs["SSHCommand"].value).apply(check)
