"""Evictor advanced configuration on the Platform.

The Platform replaces the whole rule list on every upsert and echoes what
it stored; that echo is translated back to schema rules so the caller's
state always reflects the server.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from fleetopt.errors import FleetOptError
from fleetopt.evictor.translator import to_schema, to_server
from fleetopt.models import EvictorAdvancedConfig
from fleetopt.sdk.client import PlatformClient
from fleetopt.sdk.response import APIResponse, decode_model

logger = logging.getLogger(__name__)

EMPTY_CONFIG = b"{}"


class EvictorConfigManager:
    """Read, replace and clear a cluster's evictor rules."""

    def __init__(self, client: PlatformClient) -> None:
        self._client = client

    def read(self, cluster_id: str) -> list[dict[str, Any]] | None:
        if not cluster_id:
            logger.info("Cluster id is missing, skipping evictor config read")
            return None

        resp = self._client.get_evictor_advanced_config(cluster_id)
        return self._decode(resp, "reading")

    def upsert(
        self,
        cluster_id: str,
        rules: Iterable[Mapping[str, Any]],
    ) -> list[dict[str, Any]] | None:
        """Replace all rules with *rules* and return what the server stored.

        Raises:
            ValidationError: If a rule cannot be translated.
            StatusError: If the Platform rejects the document.
        """
        if not cluster_id:
            logger.info("Cluster id is missing, skipping evictor config upsert")
            return None

        document = EvictorAdvancedConfig(eviction_config=to_server(rules))
        body = json.dumps(document.to_api()).encode("utf-8")
        logger.debug("Upserting evictor advanced config for %s: %s", cluster_id, body)

        resp = self._client.upsert_evictor_advanced_config(cluster_id, body)
        return self._decode(resp, "upserting")

    def delete(self, cluster_id: str) -> list[dict[str, Any]] | None:
        """Remove every rule; the server answers with an empty list."""
        if not cluster_id:
            logger.info("Cluster id is missing, skipping evictor config delete")
            return None

        resp = self._client.upsert_evictor_advanced_config(cluster_id, EMPTY_CONFIG)
        return self._decode(resp, "deleting")

    def _decode(self, resp: APIResponse, verb: str) -> list[dict[str, Any]]:
        try:
            config = decode_model(resp, EvictorAdvancedConfig, empty={})
        except FleetOptError:
            logger.error("Failed %s evictor advanced config", verb)
            raise
        return to_schema(config.eviction_config)
