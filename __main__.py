from devbox.config.load import load_context
from devbox.outputs import compose_outputs, export_outputs
from devbox.stack import build_environment

# 1) load config (an invalid deploymentType aborts here, before any resource)
ctx = load_context()

# 2) declare network, key pair, identities, bootstrap and compute for the topology
environment = build_environment(ctx)

# 3) export connection details
export_outputs(compose_outputs(ctx, environment))
