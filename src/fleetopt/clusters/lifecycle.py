"""Cluster lifecycle controller: drives an external cluster to archived.

Deleting an externally registered cluster is a polling loop over the
(cluster status, agent status) pair the Platform reports. On every tick
``decide()`` picks one action:

  1. archived                               -> done, clear the state id
  2. agent disconnected or connecting       -> trigger delete
  3. no credentials                         -> trigger delete
  4. cluster failed                         -> trigger delete
  5. agent disconnecting                    -> wait
  6. cluster deleting                       -> wait
  7. credentials set, agent not disconnected -> trigger disconnect
  8. agent disconnected, cluster not deleted -> trigger delete
  9. anything else                          -> wait

Rule 3 must stay ahead of rule 7: disconnect does nothing on a cluster
without credentials.
"""

from __future__ import annotations

import enum
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

from fleetopt.errors import (
    FleetOptError,
    StateMachineError,
    StatusError,
    TransportError,
)
from fleetopt.models import (
    AgentStatus,
    ClusterObservation,
    ClusterState,
    ClusterStatus,
    ProviderType,
)
from fleetopt.retry.executor import (
    Backoff,
    ConstantBackoff,
    NonRetryableError,
    RetryableError,
    is_transient,
    retry_context,
)
from fleetopt.sdk.client import PlatformClient
from fleetopt.sdk.response import check_no_content, check_ok_response, decode_model

logger = logging.getLogger(__name__)

DEFAULT_DELETE_TIMEOUT = 15 * 60.0
DEFAULT_POLL_INTERVAL = 10.0


class Action(enum.StrEnum):
    TRIGGER_DELETE = "trigger_delete"
    TRIGGER_DISCONNECT = "trigger_disconnect"
    WAIT = "wait"
    TERMINAL_SUCCESS = "terminal_success"


@dataclass(frozen=True)
class Decision:
    """The action chosen for one observation, plus why."""

    action: Action
    reason: str
    delete_nodes: bool = False
    keep_kubernetes_resources: bool = True


def _cluster_status(observation: ClusterObservation) -> ClusterStatus:
    try:
        return ClusterStatus(observation.status)
    except ValueError:
        raise StateMachineError(
            f"unknown cluster status {observation.status!r}"
        ) from None


def _agent_status(observation: ClusterObservation) -> AgentStatus:
    try:
        return AgentStatus(observation.agent_status)
    except ValueError:
        raise StateMachineError(
            f"unknown agent status {observation.agent_status!r}"
        ) from None


def decide(
    observation: ClusterObservation,
    delete_nodes_on_disconnect: bool = False,
) -> Decision:
    """Pick the next delete-loop action for *observation*.

    Raises:
        StateMachineError: If either status is outside the known domain.
    """
    cluster_status = _cluster_status(observation)
    if cluster_status == ClusterStatus.ARCHIVED:
        return Decision(Action.TERMINAL_SUCCESS, "cluster is archived")

    agent_status = _agent_status(observation)
    has_credentials = bool(observation.credentials_id)
    where = f"cluster status {cluster_status} agent status {agent_status}"

    delete = Decision(Action.TRIGGER_DELETE, "triggered cluster deletion")

    if agent_status in (AgentStatus.DISCONNECTED, AgentStatus.CONNECTING):
        return delete

    if not has_credentials:
        return delete

    if cluster_status == ClusterStatus.FAILED:
        return delete

    if agent_status == AgentStatus.DISCONNECTING:
        return Decision(Action.WAIT, f"agent is disconnecting {where}")

    if cluster_status == ClusterStatus.DELETING:
        return Decision(Action.WAIT, f"cluster is deleting {where}")

    if has_credentials and agent_status != AgentStatus.DISCONNECTED:
        return Decision(
            Action.TRIGGER_DISCONNECT,
            f"triggered agent disconnection {where}",
            delete_nodes=delete_nodes_on_disconnect,
            keep_kubernetes_resources=True,
        )

    if agent_status == AgentStatus.DISCONNECTED and cluster_status != ClusterStatus.DELETED:
        return delete

    return Decision(Action.WAIT, f"retrying {where}")


def fetch_cluster(client: PlatformClient, cluster_id: str) -> ClusterObservation | None:
    """GET a cluster; ``None`` when it is gone (404) or archived."""
    resp = client.get_cluster(cluster_id)
    if resp.status_code == 404:
        logger.warning(
            "Removing cluster %s from state because it no longer exists", cluster_id,
        )
        return None

    observation = decode_model(resp, ClusterObservation)
    if observation.status == ClusterStatus.ARCHIVED:
        logger.warning(
            "Removing cluster %s from state because it is archived", cluster_id,
        )
        return None
    return observation


class ClusterLifecycleController:
    """Deletes external clusters through the disconnect/delete loop.

    One controller may serve many clusters; it keeps no per-cluster state.
    """

    def __init__(
        self,
        client: PlatformClient,
        timeout: float = DEFAULT_DELETE_TIMEOUT,
        poll: Backoff | None = None,
        cancel: threading.Event | None = None,
        _clock: Callable[[], float] | None = None,
        _sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._poll = poll or ConstantBackoff(DEFAULT_POLL_INTERVAL)
        self._cancel = cancel
        self._clock = _clock
        self._sleep = _sleep

    def delete(self, state: ClusterState) -> None:
        """Drive the cluster in *state* to archived and clear ``state.id``.

        Raises:
            RetryTimeoutError: If the cluster is not archived in time.
            StatusError: If a delete or disconnect request is rejected.
            StateMachineError: If the Platform reports an unknown status.
        """
        if not state.id:
            logger.info("Cluster id is empty, nothing to delete")
            return

        if state.provider == ProviderType.GKE:
            self._disable_gke_service_account(state.id)

        logger.info("Checking current status of cluster %s", state.id)

        def tick() -> None:
            decision = self.step(state)
            if decision.action != Action.TERMINAL_SUCCESS:
                raise RetryableError(decision.reason)

        retry_context(
            self._timeout,
            tick,
            backoff=self._poll,
            cancel=self._cancel,
            _clock=self._clock,
            _sleep=self._sleep,
        )

    def step(self, state: ClusterState) -> Decision:
        """Observe the cluster once and carry out the chosen action.

        Raises ``NonRetryableError`` for failures that must end the loop and
        ``RetryableError`` for transient read failures.
        """
        cluster_id = state.id
        try:
            resp = self._client.get_cluster(cluster_id)
        except TransportError as e:
            raise RetryableError(e) from e

        if resp.status_code == 404:
            logger.info("Cluster %s no longer exists, removing from state", cluster_id)
            state.id = ""
            return Decision(Action.TERMINAL_SUCCESS, "cluster not found")

        try:
            check_ok_response(resp)
            observation = decode_model(resp, ClusterObservation)
            decision = decide(observation, state.delete_nodes_on_disconnect)
        except StatusError as e:
            if is_transient(e):
                raise RetryableError(e) from e
            raise NonRetryableError(e) from e
        except FleetOptError as e:
            raise NonRetryableError(e) from e

        logger.info(
            "Current cluster status=%s, agent_status=%s",
            observation.status, observation.agent_status,
        )

        if decision.action == Action.TERMINAL_SUCCESS:
            logger.info("Cluster is already deleted, removing from state")
            state.id = ""
        elif decision.action == Action.TRIGGER_DELETE:
            return self._trigger_delete(cluster_id, observation, decision, state)
        elif decision.action == Action.TRIGGER_DISCONNECT:
            self._trigger_disconnect(cluster_id, decision)

        return decision

    def _trigger_delete(
        self,
        cluster_id: str,
        observation: ClusterObservation,
        decision: Decision,
        state: ClusterState,
    ) -> Decision:
        logger.info("Deleting cluster %s", cluster_id)
        try:
            resp = self._client.delete_cluster(cluster_id)
        except TransportError as e:
            raise NonRetryableError(e) from e

        if resp.status_code == 400:
            # The Platform refuses to delete while the agent is attached.
            fallback = Decision(
                Action.TRIGGER_DISCONNECT,
                "triggered agent disconnection",
                delete_nodes=state.delete_nodes_on_disconnect,
            )
            self._trigger_disconnect(cluster_id, fallback)
            return fallback

        try:
            check_no_content(resp)
        except StatusError as e:
            raise NonRetryableError(
                StatusError(
                    f"error when deleting cluster status {observation.status} "
                    f"agent status {observation.agent_status} error: {e}",
                    status_code=e.status_code,
                    body=e.body,
                )
            ) from e
        return decision

    def _trigger_disconnect(self, cluster_id: str, decision: Decision) -> None:
        logger.info("Disconnecting cluster %s", cluster_id)
        try:
            resp = self._client.disconnect_cluster(
                cluster_id,
                delete_provisioned_nodes=decision.delete_nodes,
                keep_kubernetes_resources=decision.keep_kubernetes_resources,
            )
            check_ok_response(resp)
        except (StatusError, TransportError) as e:
            raise NonRetryableError(e) from e

    def _disable_gke_service_account(self, cluster_id: str) -> None:
        """Best-effort: failures are logged and deletion continues."""
        try:
            check_ok_response(self._client.disable_gke_service_account(cluster_id))
        except FleetOptError:
            logger.exception(
                "Failed to disable GKE service account for cluster %s", cluster_id,
            )
