"""SSO connection management (Azure AD or Okta).

Every write is followed by a status check: the Platform validates the
connector asynchronously and reports the outcome in ``status``/``error``.
"""

from __future__ import annotations

import logging

from fleetopt.errors import FleetOptError, StatusError, ValidationError
from fleetopt.models import SSOConnection, SSOStatus
from fleetopt.sdk.client import PlatformClient
from fleetopt.sdk.response import APIResponse, check_ok_response, decode_model

logger = logging.getLogger(__name__)

# Fields the caller declares; anything else is server-managed.
DECLARED_FIELDS = frozenset({
    "name", "email_domain", "additional_email_domains", "aad", "okta",
})


def validate_connectors(connection: SSOConnection) -> None:
    """Exactly one of Azure AD or Okta must be configured."""
    connectors = sum(c is not None for c in (connection.aad, connection.okta))
    if connectors != 1:
        raise ValidationError("only 1 connector can be configured")


def check_status(connection: SSOConnection) -> None:
    """Raise unless the Platform reports the connection as active."""
    if connection.status == SSOStatus.ACTIVE:
        return
    if not connection.error:
        raise FleetOptError(f"invalid SSO connection status: {connection.status}")
    raise FleetOptError(
        f"SSO connection status: {connection.status} failed with error: {connection.error}"
    )


def _request_body(connection: SSOConnection) -> dict:
    body = connection.model_dump(
        mode="json", by_alias=True, exclude_none=True, include=set(DECLARED_FIELDS),
    )
    if not connection.additional_email_domains:
        body.pop("additionalEmailDomains", None)
    return body


def _checked(resp: APIResponse, action: str) -> None:
    try:
        check_ok_response(resp)
    except StatusError as e:
        raise StatusError(
            f"{action} sso connection: {e}", status_code=e.status_code, body=e.body,
        ) from e


class SSOConnectionManager:
    def __init__(self, client: PlatformClient) -> None:
        self._client = client

    def create(self, connection: SSOConnection) -> SSOConnection:
        """Create *connection* and return it as the Platform stored it.

        Raises:
            ValidationError: If zero or two connectors are configured.
            StatusError: If the Platform rejects the request.
            FleetOptError: If the connection did not become active.
        """
        validate_connectors(connection)
        logger.info("Creating SSO connection %r", connection.name)

        resp = self._client.create_sso_connection(_request_body(connection))
        _checked(resp, "creating")
        created = decode_model(resp, SSOConnection)
        check_status(created)

        if not created.id:
            raise ValidationError("creating sso connection: response has no id")
        return self.read(created.id) or created

    def read(self, connection_id: str) -> SSOConnection | None:
        """Fetch a connection; ``None`` when the id is empty or unknown."""
        if not connection_id:
            return None

        resp = self._client.get_sso_connection(connection_id)
        if resp.status_code == 404:
            logger.warning(
                "Removing SSO connection %s from state because it no longer exists",
                connection_id,
            )
            return None
        _checked(resp, "retrieving")
        return decode_model(resp, SSOConnection)

    def update(
        self,
        connection_id: str,
        desired: SSOConnection,
        previous: SSOConnection | None = None,
    ) -> SSOConnection | None:
        """Push *desired* unless no declared field differs from *previous*."""
        validate_connectors(desired)
        if previous is not None and not self._changed(previous, desired):
            logger.info("No changes in SSO connection %s", connection_id)
            return previous

        logger.info("Updating SSO connection %s", connection_id)
        resp = self._client.update_sso_connection(connection_id, _request_body(desired))
        _checked(resp, "updating")
        check_status(decode_model(resp, SSOConnection))
        return self.read(connection_id)

    def delete(self, connection_id: str) -> None:
        logger.info("Deleting SSO connection %s", connection_id)
        _checked(self._client.delete_sso_connection(connection_id), "deleting")

    @staticmethod
    def _changed(previous: SSOConnection, desired: SSOConnection) -> bool:
        return any(
            getattr(previous, field) != getattr(desired, field)
            for field in DECLARED_FIELDS
        )
