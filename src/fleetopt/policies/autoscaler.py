"""Autoscaler policy reconciliation against the Platform.

Callers declare either raw policy JSON or typed ``AutoscalerPolicy``
settings. Both are merged onto the current server document with JSON
Merge Patch and normalized, so equivalent inputs yield identical bytes.
"""

from __future__ import annotations

import json
import logging

from fleetopt.errors import StatusError, ValidationError
from fleetopt.models import AutoscalerPolicy
from fleetopt.policies.merge import ensure_valid_policy_json, merge_patch, normalize_json
from fleetopt.sdk.client import PlatformClient
from fleetopt.sdk.response import check_ok_response

logger = logging.getLogger(__name__)

DISABLED_POLICIES = b'{"enabled":false}'


def serialize_settings(settings: AutoscalerPolicy) -> bytes:
    """Canonical JSON for typed settings, scalar zero values included."""
    return json.dumps(
        settings.model_dump(mode="json", by_alias=True, exclude_none=True),
    ).encode("utf-8")


class AutoscalerPolicyEngine:
    """Computes and applies autoscaler policy changes for a cluster.

    Holds no per-cluster state; callers serialize work on one cluster.
    """

    def __init__(self, client: PlatformClient) -> None:
        self._client = client

    def current_policies(self, cluster_id: str) -> bytes:
        """Fetch the cluster's policies as normalized JSON.

        Raises:
            StatusError: If the policies do not exist or the request fails.
            DecodeError: If the body is empty or not JSON.
        """
        logger.info("Getting cluster autoscaler information for %s", cluster_id)
        resp = self._client.get_policies(cluster_id)
        if resp.status_code == 404:
            raise StatusError(
                f"cluster {cluster_id} policies do not exist",
                status_code=404,
                body=resp.body,
            )
        check_ok_response(resp)

        logger.debug("Read autoscaler policies for cluster %s: %s", cluster_id, resp.body)
        return normalize_json(resp.body)

    def changed_policies(
        self,
        cluster_id: str,
        policies_json: str | bytes | None = None,
        settings: AutoscalerPolicy | None = None,
    ) -> bytes | None:
        """Merge the declared changes onto the current policies.

        Returns ``None`` when nothing is declared or *cluster_id* is empty.

        Raises:
            ValidationError: If both inputs are given, or the JSON contains
                removed keys or does not parse.
            MergeError: If the merge fails structurally.
        """
        if not cluster_id:
            logger.info("Cluster id is missing, skipping policy diff")
            return None

        if settings is not None and policies_json is not None:
            raise ValidationError(
                "`settings` conflicts with `policies_json`, declare only one"
            )

        if settings is not None:
            changes = serialize_settings(settings)
        elif policies_json is not None:
            ensure_valid_policy_json(policies_json)
            changes = policies_json
        else:
            logger.debug("Policies not provided, skipping autoscaler policy changes")
            return None

        current = self.current_policies(cluster_id)
        return normalize_json(merge_patch(current, changes))

    def apply(
        self,
        cluster_id: str,
        policies_json: str | bytes | None = None,
        settings: AutoscalerPolicy | None = None,
    ) -> bytes | None:
        """PUT the merged policies; returns what was sent, or ``None``."""
        if not cluster_id:
            logger.info("Cluster id is missing, skipping policy update")
            return None

        policies = self.changed_policies(cluster_id, policies_json, settings)
        if not policies:
            logger.debug("No changed policies calculated, skipping update")
            return None

        self._upsert(cluster_id, policies)
        logger.info("Updated autoscaler policies for cluster %s", cluster_id)
        return policies

    def read(self, cluster_id: str) -> bytes | None:
        if not cluster_id:
            logger.info("Cluster id is missing, skipping policy read")
            return None
        return self.current_policies(cluster_id)

    def disable(self, cluster_id: str) -> None:
        """Turn autoscaling off. Policies are never deleted on the Platform."""
        if not cluster_id:
            logger.info("Cluster id is missing, skipping policy disable")
            return

        try:
            self._upsert(cluster_id, DISABLED_POLICIES)
        except StatusError:
            logger.error("Failed to disable autoscaler policies for cluster %s", cluster_id)
            raise

    def _upsert(self, cluster_id: str, document: bytes) -> None:
        check_ok_response(self._client.upsert_policies(cluster_id, document))
