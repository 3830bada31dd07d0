"""fleetopt: reconcile Kubernetes clusters and optimization policies with the Platform."""

__version__ = "0.1.0"

from fleetopt.clusters.lifecycle import ClusterLifecycleController, Decision, decide
from fleetopt.clusters.registration import ClusterRegistrar
from fleetopt.config import FleetOptConfig, find_config, load_config
from fleetopt.errors import (
    DecodeError,
    FleetOptError,
    MergeError,
    StateMachineError,
    StatusError,
    TransportError,
    ValidationError,
)
from fleetopt.evictor.config import EvictorConfigManager
from fleetopt.models import (
    AgentStatus,
    AutoscalerPolicy,
    ClusterObservation,
    ClusterState,
    ClusterStatus,
    ProviderType,
    SSOConnection,
)
from fleetopt.policies.autoscaler import AutoscalerPolicyEngine
from fleetopt.sdk.client import PlatformClient
from fleetopt.sso.connection import SSOConnectionManager

__all__ = [
    "AgentStatus",
    "AutoscalerPolicy",
    "AutoscalerPolicyEngine",
    "ClusterLifecycleController",
    "ClusterObservation",
    "ClusterRegistrar",
    "ClusterState",
    "ClusterStatus",
    "Decision",
    "DecodeError",
    "EvictorConfigManager",
    "FleetOptConfig",
    "FleetOptError",
    "MergeError",
    "PlatformClient",
    "ProviderType",
    "SSOConnection",
    "SSOConnectionManager",
    "StateMachineError",
    "StatusError",
    "TransportError",
    "ValidationError",
    "__version__",
    "decide",
    "find_config",
    "load_config",
]
