"""Credentials drift detection for registered clusters.

The Platform never returns the raw cloud credentials, only the id of the
credentials record it holds. When that id differs from the one stored
locally, the credentials-bearing field is overwritten with a sentinel so
the next plan shows a change and the update path re-pushes credentials.
"""

from __future__ import annotations

import logging

from fleetopt.models import ClusterObservation, ClusterState, ProviderType

logger = logging.getLogger(__name__)

CREDENTIALS_DRIFT_SENTINEL = "credentials-drift-detected-force-apply"
FAILED_UPDATE_CREDENTIALS_ID = "drift-protection-failed-update"

CREDENTIALS_FIELD: dict[ProviderType, str] = {
    ProviderType.AKS: "client_id",
    ProviderType.EKS: "assume_role_arn",
    ProviderType.GKE: "credentials_json",
}


def detect_credentials_drift(
    state: ClusterState,
    observation: ClusterObservation,
) -> bool:
    """Compare credentials ids and mark drift on *state*.

    Returns ``True`` when drift was found. Only *state* is modified; no
    request is made.
    """
    if observation.credentials_id == state.credentials_id:
        return False

    field_name = CREDENTIALS_FIELD[state.provider]
    logger.warning(
        "Drift in credentials from remote (%r) and local (%r), marking %s for re-apply",
        observation.credentials_id, state.credentials_id, field_name,
    )
    setattr(state, field_name, CREDENTIALS_DRIFT_SENTINEL)
    return True
