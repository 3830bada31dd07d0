"""External cluster registration, drift detection and deletion."""

from fleetopt.clusters.drift import CREDENTIALS_DRIFT_SENTINEL, detect_credentials_drift
from fleetopt.clusters.lifecycle import Action, ClusterLifecycleController, Decision, decide
from fleetopt.clusters.registration import ClusterRegistrar
from fleetopt.clusters.token import cluster_token_diff, create_cluster_token

__all__ = [
    "CREDENTIALS_DRIFT_SENTINEL",
    "Action",
    "ClusterLifecycleController",
    "ClusterRegistrar",
    "Decision",
    "cluster_token_diff",
    "create_cluster_token",
    "decide",
    "detect_credentials_drift",
]
