"""Cluster token creation and the replace-on-missing-token diff hook."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

from fleetopt.errors import DecodeError, TransportError
from fleetopt.models import ClusterState
from fleetopt.sdk.client import PlatformClient
from fleetopt.sdk.response import decode_json

logger = logging.getLogger(__name__)


def create_cluster_token(client: PlatformClient, cluster_id: str) -> str:
    """Create a one-shot agent token for *cluster_id*.

    Raises:
        TransportError: If the request could not be sent.
        StatusError: If the Platform answers with a non-2xx status.
        DecodeError: If the body is empty, invalid, or has a null ``token``.
    """
    try:
        resp = client.create_cluster_token(cluster_id)
    except TransportError as e:
        raise TransportError(f"creating cluster token: {e}") from e

    try:
        payload = decode_json(resp, required_field="token")
    except DecodeError as e:
        raise DecodeError(f"creating cluster token: {e}") from e
    return str(payload["token"])


@dataclass
class PlannedChange:
    """Planned values for one resource, as seen by a customize-diff hook."""

    values: dict[str, object] = field(default_factory=dict)
    force_new: set[str] = field(default_factory=set)


def cluster_token_diff(state: ClusterState, plan: PlannedChange) -> PlannedChange:
    """Force replacement of a registered cluster whose token is missing.

    Older state may predate the token field. Writing a fresh random value
    and flagging it ``force_new`` makes the host recreate the resource,
    which issues a real token.
    """
    if not state.id or state.cluster_token:
        return plan

    logger.info("Token not set for cluster %s, forcing re-create", state.id)
    plan.values["cluster_token"] = str(uuid.uuid4())
    plan.force_new.add("cluster_token")
    return plan
