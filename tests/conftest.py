"""Shared pytest fixtures: pulumi mocks, contexts, synchronous declaration."""

import pulumi
import pytest

from devbox.config.models import DeploymentTopology, DevboxSettings, ProvisioningContext
from devbox.stack import build_environment


PROJECT = "devbox"
STACK = "test"
REGION = "us-east-1"

# Provider-computed attributes the program reads back, keyed by resource type.
COMPUTED_OUTPUTS = {
    "aws:ec2/instance:Instance": {"publicIp": "203.0.113.10"},
    "aws:lb/loadBalancer:LoadBalancer": {"dnsName": "devbox-test-nlb-0123.elb.us-east-1.amazonaws.com"},
    "aws-native:ec2:KeyPair": {"keyPairId": "key-0123456789abcdef0"},
}


class RecordingMocks(pulumi.runtime.Mocks):
    """Records every resource registration so tests can assert on the declared set."""

    def __init__(self):
        self.resources = []
        self.calls = []

    def new_resource(self, args):
        self.resources.append(args)
        outputs = {
            **args.inputs,
            "arn": f"arn:aws:mock:{REGION}:123456789012:{args.name}",
            "name": args.inputs.get("name", args.name),
            **COMPUTED_OUTPUTS.get(args.typ, {}),
        }
        return [f"{args.name}_id", outputs]

    def call(self, args):
        self.calls.append(args)
        if args.token == "aws:index/getAvailabilityZones:getAvailabilityZones":
            return {"names": ["us-east-1a", "us-east-1b", "us-east-1c"], "zoneIds": ["use1-az1", "use1-az2", "use1-az4"]}
        if args.token == "aws:ec2/getAmi:getAmi":
            return {"id": "ami-0123456789abcdef0", "architecture": "x86_64"}
        return {}

    def of_type(self, typ):
        return [r for r in self.resources if r.typ == typ]

    def types(self):
        return {r.typ for r in self.resources}


@pytest.fixture
def mocks():
    m = RecordingMocks()
    pulumi.runtime.set_mocks(m, project=PROJECT, stack=STACK, preview=False)
    yield m
    pulumi.runtime.set_all_config({})


@pytest.fixture
def make_context():
    """Return a factory for ProvisioningContext with optional settings overrides."""

    def _make(topology=DeploymentTopology.STANDALONE_HOST, **overrides):
        return ProvisioningContext(
            project=PROJECT,
            stack=STACK,
            region=REGION,
            topology=topology,
            settings=DevboxSettings(**overrides),
        )

    return _make


@pytest.fixture
def declare(mocks):
    """Run build_environment to completion and return (result, mocks)."""

    def _declare(ctx):
        holder = {}

        @pulumi.runtime.test
        def run():
            holder["result"] = build_environment(ctx)

        run()
        return holder["result"], mocks

    return _declare
