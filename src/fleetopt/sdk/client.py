"""PlatformClient: thin REST transport for the Platform API.

One method per Platform operation. Every method returns an
``APIResponse``; non-2xx answers are returned, not raised, so callers can
classify them with ``fleetopt.sdk.response``. Network failures raise
``TransportError``.

Uses stdlib ``urllib.request``; no extra dependencies required.

Usage::

    client = PlatformClient("https://api.example.com", api_token="...")
    resp = client.get_cluster(cluster_id)
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from fleetopt import __version__
from fleetopt.errors import TransportError
from fleetopt.sdk.response import APIResponse

logger = logging.getLogger(__name__)

EXTERNAL_CLUSTERS = "/v1/kubernetes/external-clusters"
CLUSTERS = "/v1/kubernetes/clusters"
SSO_CONNECTIONS = "/v1/sso/connections"


def _quote(segment: str) -> str:
    return urllib.parse.quote(segment, safe="")


class PlatformClient:
    """REST client for the Platform.

    Holds no mutable state after construction and is safe to share
    between threads.
    """

    def __init__(
        self,
        api_url: str,
        api_token: str,
        timeout: float = 30.0,
    ) -> None:
        self._base = api_url.rstrip("/")
        self._api_token = api_token
        self._timeout = timeout

    @property
    def api_url(self) -> str:
        return self._base

    # ------------------------------------------------------------------
    # External clusters
    # ------------------------------------------------------------------

    def register_cluster(self, body: dict[str, Any]) -> APIResponse:
        return self._request("POST", EXTERNAL_CLUSTERS, body)

    def get_cluster(self, cluster_id: str) -> APIResponse:
        return self._request("GET", f"{EXTERNAL_CLUSTERS}/{_quote(cluster_id)}")

    def update_cluster(self, cluster_id: str, body: dict[str, Any]) -> APIResponse:
        return self._request(
            "POST", f"{EXTERNAL_CLUSTERS}/{_quote(cluster_id)}", body,
        )

    def disconnect_cluster(
        self,
        cluster_id: str,
        delete_provisioned_nodes: bool,
        keep_kubernetes_resources: bool = True,
    ) -> APIResponse:
        return self._request(
            "POST",
            f"{EXTERNAL_CLUSTERS}/{_quote(cluster_id)}/disconnect",
            {
                "deleteProvisionedNodes": delete_provisioned_nodes,
                "keepKubernetesResources": keep_kubernetes_resources,
            },
        )

    def delete_cluster(self, cluster_id: str) -> APIResponse:
        return self._request("DELETE", f"{EXTERNAL_CLUSTERS}/{_quote(cluster_id)}")

    def create_cluster_token(self, cluster_id: str) -> APIResponse:
        return self._request(
            "POST", f"{EXTERNAL_CLUSTERS}/{_quote(cluster_id)}/token",
        )

    def disable_gke_service_account(self, cluster_id: str) -> APIResponse:
        return self._request(
            "POST", f"{EXTERNAL_CLUSTERS}/{_quote(cluster_id)}/gke/disable-sa",
        )

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def get_policies(self, cluster_id: str) -> APIResponse:
        return self._request("GET", f"{CLUSTERS}/{_quote(cluster_id)}/policies")

    def upsert_policies(self, cluster_id: str, document: bytes) -> APIResponse:
        return self._request(
            "PUT", f"{CLUSTERS}/{_quote(cluster_id)}/policies", document,
        )

    def get_evictor_advanced_config(self, cluster_id: str) -> APIResponse:
        return self._request(
            "GET", f"{CLUSTERS}/{_quote(cluster_id)}/evictor-advanced-config",
        )

    def upsert_evictor_advanced_config(
        self, cluster_id: str, document: bytes,
    ) -> APIResponse:
        return self._request(
            "PUT",
            f"{CLUSTERS}/{_quote(cluster_id)}/evictor-advanced-config",
            document,
        )

    # ------------------------------------------------------------------
    # SSO connections
    # ------------------------------------------------------------------

    def create_sso_connection(self, body: dict[str, Any]) -> APIResponse:
        return self._request("POST", SSO_CONNECTIONS, body)

    def get_sso_connection(self, connection_id: str) -> APIResponse:
        return self._request("GET", f"{SSO_CONNECTIONS}/{_quote(connection_id)}")

    def update_sso_connection(
        self, connection_id: str, body: dict[str, Any],
    ) -> APIResponse:
        return self._request(
            "PUT", f"{SSO_CONNECTIONS}/{_quote(connection_id)}", body,
        )

    def delete_sso_connection(self, connection_id: str) -> APIResponse:
        return self._request(
            "DELETE", f"{SSO_CONNECTIONS}/{_quote(connection_id)}",
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | bytes | None = None,
    ) -> APIResponse:
        data: bytes | None = None
        if isinstance(body, bytes):
            data = body
        elif body is not None:
            data = json.dumps(body).encode("utf-8")

        req = urllib.request.Request(
            self._base + path,
            data=data,
            headers={
                "X-API-Key": self._api_token,
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": f"fleetopt/{__version__}",
            },
            method=method,
        )
        logger.debug("%s %s", method, path)

        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
                return APIResponse(
                    status_code=resp.status,
                    body=resp.read(),
                    content_type=resp.headers.get("Content-Type", ""),
                )
        except urllib.error.HTTPError as e:
            payload = e.read() if e.fp is not None else b""
            headers = e.headers or {}
            return APIResponse(
                status_code=e.code,
                body=payload,
                content_type=headers.get("Content-Type", ""),
            )
        except (urllib.error.URLError, OSError) as e:
            raise TransportError(f"{method} {path}: {e}") from e
