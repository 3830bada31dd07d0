"""Register, read and update external EKS/GKE/AKS clusters.

The read path runs credentials drift detection; the update path pushes
credentials with backoff and records the credentials id the Platform
assigned, so the next read sees no drift.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable
from typing import Any

from fleetopt.clusters.drift import FAILED_UPDATE_CREDENTIALS_ID, detect_credentials_drift
from fleetopt.clusters.lifecycle import fetch_cluster
from fleetopt.clusters.token import create_cluster_token
from fleetopt.errors import FleetOptError, StatusError, ValidationError
from fleetopt.models import ClusterObservation, ClusterState, ProviderType
from fleetopt.retry.executor import ExponentialBackoff, is_transient, retry_call
from fleetopt.sdk.client import PlatformClient
from fleetopt.sdk.response import decode_json, decode_model, is_credentials_error

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_TIMEOUT = 60.0

# Fields whose change requires pushing settings to the Platform.
UPDATE_TRIGGERS: dict[ProviderType, frozenset[str]] = {
    ProviderType.EKS: frozenset({
        "assume_role_arn", "access_key_id", "secret_access_key",
        "credentials_id", "ssh_public_key",
    }),
    ProviderType.GKE: frozenset({"credentials_json", "credentials_id", "ssh_public_key"}),
    ProviderType.AKS: frozenset({
        "client_id", "client_secret", "tenant_id", "subscription_id",
        "credentials_id", "ssh_public_key",
    }),
}


def gke_region(location: str) -> str:
    """Region of a GKE location: ``europe-central2-a`` -> ``europe-central2``."""
    if location.count("-") > 1:
        return "-".join(location.split("-")[:2])
    return location


def aws_credentials(access_key_id: str, secret_access_key: str) -> str:
    return json.dumps({
        "accessKeyId": access_key_id,
        "secretAccessKey": secret_access_key,
    })


def azure_credentials(
    client_id: str, client_secret: str, tenant_id: str, subscription_id: str,
) -> str:
    return json.dumps({
        "clientId": client_id,
        "clientSecret": client_secret,
        "tenantId": tenant_id,
        "subscriptionId": subscription_id,
    })


def validate_eks_credentials(state: ClusterState) -> None:
    """Access keys must come as a pair and never together with a role ARN."""
    has_key = bool(state.access_key_id)
    has_secret = bool(state.secret_access_key)
    if has_key != has_secret:
        raise ValidationError(
            "when used `access_key_id` and `secret_access_key` must be both specified"
        )
    if has_key and state.assume_role_arn:
        raise ValidationError(
            "`assume_role_arn` cannot be combined with `access_key_id` "
            "and `secret_access_key`"
        )


def build_register_request(state: ClusterState) -> dict[str, Any]:
    """Build the register body with the provider-specific sub-object."""
    body: dict[str, Any] = {"name": state.name}

    if state.provider == ProviderType.EKS:
        body["eks"] = {
            "accountId": state.account_id,
            "region": state.region,
            "clusterName": state.name,
        }
    elif state.provider == ProviderType.GKE:
        location = state.location or ""
        body["gke"] = {
            "projectId": state.project_id,
            "region": gke_region(location),
            "location": location,
            "clusterName": state.name,
        }
    else:
        body["aks"] = {
            "region": state.region,
            "subscriptionId": state.subscription_id,
            "nodeResourceGroup": state.node_resource_group,
        }
    return body


def build_update_request(state: ClusterState) -> dict[str, Any]:
    """Build the partial update body for *state*.

    Raises:
        ValidationError: If the EKS credential fields are inconsistent.
    """
    body: dict[str, Any] = {}

    if state.provider == ProviderType.EKS:
        validate_eks_credentials(state)
        eks: dict[str, Any] = {}
        if state.assume_role_arn:
            eks["assumeRoleArn"] = state.assume_role_arn
        body["eks"] = eks
        if state.access_key_id and state.secret_access_key:
            body["credentials"] = aws_credentials(
                state.access_key_id, state.secret_access_key,
            )
    elif state.provider == ProviderType.GKE:
        if state.credentials_json:
            body["credentials"] = state.credentials_json
    else:
        body["credentials"] = azure_credentials(
            state.client_id or "",
            state.client_secret or "",
            state.tenant_id or "",
            state.subscription_id or "",
        )

    if state.ssh_public_key:
        body["sshPublicKey"] = state.ssh_public_key
    return body


class ClusterRegistrar:
    """Create/read/update operations for external clusters."""

    def __init__(
        self,
        client: PlatformClient,
        update_timeout: float = DEFAULT_UPDATE_TIMEOUT,
        cancel: threading.Event | None = None,
        _clock: Callable[[], float] | None = None,
        _sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._client = client
        self._update_timeout = update_timeout
        self._cancel = cancel
        self._clock = _clock
        self._sleep = _sleep

    def register(self, state: ClusterState) -> ClusterState:
        """Register the cluster, issue its token, push settings and read back."""
        body = build_register_request(state)
        logger.info("Registering new external %s cluster %r", state.provider, state.name)

        payload = decode_json(self._client.register_cluster(body), required_field="id")
        state.id = str(payload["id"])
        state.cluster_token = create_cluster_token(self._client, state.id)

        self.update(state, changed=UPDATE_TRIGGERS[state.provider])
        logger.info(
            "Cluster with id %r has been registered, don't forget to install the agent",
            state.id,
        )
        return self.read(state)

    def read(self, state: ClusterState) -> ClusterState:
        """Refresh *state* from the Platform.

        Clears ``state.id`` when the cluster is gone or archived. Marks the
        credentials field when the credentials id drifted, and issues a
        token when none is stored.
        """
        if not state.id:
            logger.info("Cluster id is empty, not fetching anything")
            return state

        logger.info("Getting cluster information for %s", state.id)
        observation = fetch_cluster(self._client, state.id)
        if observation is None:
            state.id = ""
            return state

        self._refresh_identifiers(state, observation)
        detect_credentials_drift(state, observation)

        if not state.cluster_token:
            state.cluster_token = create_cluster_token(self._client, state.id)
        return state

    def update(
        self,
        state: ClusterState,
        changed: Iterable[str] | None = None,
    ) -> ClusterState:
        """Push changed settings to the Platform with backoff.

        When *changed* is given and contains none of the provider's update
        triggers, nothing is sent.

        Raises:
            ValidationError: If the declared credentials are inconsistent.
            FleetOptError: If the update keeps failing until the deadline.
        """
        if changed is not None and not UPDATE_TRIGGERS[state.provider] & set(changed):
            logger.info("Nothing to update in cluster settings")
            return state

        body = build_update_request(state)
        logger.info("Updating cluster settings for %s", state.id)

        def call() -> ClusterObservation:
            resp = self._client.update_cluster(state.id, body)
            return decode_model(resp, ClusterObservation)

        try:
            observation = retry_call(
                call,
                timeout=self._update_timeout,
                backoff=ExponentialBackoff(),
                is_permanent=_is_permanent_update_error,
                notify=_log_update_retry,
                cancel=self._cancel,
                _clock=self._clock,
                _sleep=self._sleep,
            )
        except FleetOptError:
            # The Platform never echoes raw credentials, so a failed push
            # is invisible on read unless the stored id is poisoned.
            state.credentials_id = FAILED_UPDATE_CREDENTIALS_ID
            logger.error("Updating cluster configuration failed for %s", state.id)
            raise

        state.credentials_id = observation.credentials_id
        return state

    def _refresh_identifiers(
        self, state: ClusterState, observation: ClusterObservation,
    ) -> None:
        if state.provider == ProviderType.EKS and observation.eks is not None:
            eks = observation.eks
            state.account_id = eks.account_id or ""
            state.region = eks.region or ""
            state.name = eks.cluster_name or state.name
            if eks.assume_role_arn is not None:
                state.assume_role_arn = eks.assume_role_arn
        elif state.provider == ProviderType.GKE and observation.gke is not None:
            gke = observation.gke
            state.project_id = gke.project_id or ""
            state.location = gke.location or ""
            state.name = gke.cluster_name or state.name
        elif state.provider == ProviderType.AKS and observation.aks is not None:
            aks = observation.aks
            state.region = aks.region or ""
            state.subscription_id = aks.subscription_id or state.subscription_id
            state.node_resource_group = (
                aks.node_resource_group or state.node_resource_group
            )


def _is_permanent_update_error(err: FleetOptError) -> bool:
    """Only transient failures and credentials errors are retried.

    Credentials errors usually mean freshly created IAM permissions have
    not propagated yet.
    """
    if is_transient(err):
        return False
    if isinstance(err, StatusError) and err.status_code == 400:
        return not is_credentials_error(err.body)
    return True


def _log_update_retry(err: FleetOptError) -> None:
    if isinstance(err, StatusError) and is_credentials_error(err.body):
        logger.warning(
            "Received credentials error from backend, will retry in case "
            "the issue is caused by IAM eventual consistency"
        )
    logger.warning("Encountered error while updating cluster settings, will retry: %s", err)
