"""Bootstrap package for the first control-plane node.

This package provides the `zerotouch bootstrap` command which:
1. Verifies network and host prerequisites
2. Initializes the Kubernetes control plane
3. Deploys networking, load balancing and ingress
4. Deploys the optional storage, monitoring and UI add-ons
5. Signals that the cluster is ready

Each step is recorded with a completion marker so an interrupted run
resumes where it stopped.
"""

from .context import RunContext, build_context
from .errors import BootstrapError, FatalStepFailure, PollTimeout, PreconditionFailure
from .health import (
    FixedDelay,
    PollCondition,
    PollResult,
    ReadinessPoller,
    endpoint_reachable,
    tcp_reachable,
)
from .helm import Helm
from .k8s import Kubectl
from .prerequisites import HostTuning, NetworkProbe, NetworkStatus, ServiceManager
from .sequencer import RunResult, Step, StepSequencer
from .state import MarkerStore
from .steps import build_node1_steps, run_bootstrap

__all__ = [
    # Sequencing
    "Step",
    "StepSequencer",
    "RunResult",
    "MarkerStore",
    # Readiness
    "ReadinessPoller",
    "PollCondition",
    "PollResult",
    "FixedDelay",
    "endpoint_reachable",
    "tcp_reachable",
    # Collaborators
    "Kubectl",
    "Helm",
    "ServiceManager",
    "HostTuning",
    "NetworkProbe",
    "NetworkStatus",
    # Errors
    "BootstrapError",
    "PollTimeout",
    "FatalStepFailure",
    "PreconditionFailure",
    # Node 1
    "RunContext",
    "build_context",
    "build_node1_steps",
    "run_bootstrap",
]
