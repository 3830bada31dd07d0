"""Tests for SSO connection management."""

from __future__ import annotations

import json

import pytest

from fleetopt.errors import FleetOptError, StatusError, ValidationError
from fleetopt.models import AzureADConnector, OktaConnector, SSOConnection
from fleetopt.sdk.response import APIResponse
from fleetopt.sso.connection import (
    SSOConnectionManager,
    check_status,
    validate_connectors,
)


def _aad_connection(**kwargs) -> SSOConnection:
    values = {
        "name": "corp",
        "email_domain": "example.com",
        "aad": AzureADConnector(ad_domain="example.onmicrosoft.com", client_id="app", client_secret="s"),
    }
    values.update(kwargs)
    return SSOConnection(**values)


def _stored(status: str = "STATUS_ACTIVE", error: str | None = None, **extra) -> APIResponse:
    body = {
        "id": "sso-1",
        "name": "corp",
        "emailDomain": "example.com",
        "aad": {"adDomain": "example.onmicrosoft.com", "clientId": "app"},
        "status": status,
    }
    if error is not None:
        body["error"] = error
    body.update(extra)
    return APIResponse(200, json.dumps(body).encode())


# --- Validation ---


class TestValidateConnectors:
    def test_single_connector(self):
        validate_connectors(_aad_connection())

    def test_no_connector(self):
        with pytest.raises(ValidationError, match="only 1 connector can be configured"):
            validate_connectors(_aad_connection(aad=None))

    def test_two_connectors(self):
        both = _aad_connection(okta=OktaConnector(okta_domain="corp.okta.com", client_id="x"))
        with pytest.raises(ValidationError, match="only 1 connector"):
            validate_connectors(both)


class TestCheckStatus:
    def test_active(self):
        check_status(_aad_connection(status="STATUS_ACTIVE"))

    def test_failed_with_error(self):
        with pytest.raises(FleetOptError) as exc_info:
            check_status(_aad_connection(status="STATUS_FAILED", error="bad secret"))
        assert str(exc_info.value) == (
            "SSO connection status: STATUS_FAILED failed with error: bad secret"
        )

    def test_inactive_without_error(self):
        with pytest.raises(FleetOptError, match="invalid SSO connection status: STATUS_INACTIVE"):
            check_status(_aad_connection(status="STATUS_INACTIVE"))


# --- Manager ---


class TestCreate:
    def test_create_then_read(self, client):
        client.create_sso_connection.return_value = _stored()
        client.get_sso_connection.return_value = _stored()

        created = SSOConnectionManager(client).create(_aad_connection())

        assert created.id == "sso-1"
        body = client.create_sso_connection.call_args[0][0]
        assert body == {
            "name": "corp",
            "emailDomain": "example.com",
            "aad": {
                "adDomain": "example.onmicrosoft.com",
                "clientId": "app",
                "clientSecret": "s",
            },
        }
        client.get_sso_connection.assert_called_once_with("sso-1")

    def test_additional_domains_sent_when_set(self, client):
        client.create_sso_connection.return_value = _stored()
        client.get_sso_connection.return_value = _stored()

        SSOConnectionManager(client).create(
            _aad_connection(additional_email_domains=["example.org"]),
        )

        body = client.create_sso_connection.call_args[0][0]
        assert body["additionalEmailDomains"] == ["example.org"]

    def test_failed_status(self, client):
        client.create_sso_connection.return_value = _stored("STATUS_FAILED", "bad secret")
        with pytest.raises(FleetOptError, match="failed with error: bad secret"):
            SSOConnectionManager(client).create(_aad_connection())
        client.get_sso_connection.assert_not_called()

    def test_rejected(self, client):
        client.create_sso_connection.return_value = APIResponse(400, b"bad domain")
        with pytest.raises(StatusError, match="creating sso connection"):
            SSOConnectionManager(client).create(_aad_connection())

    def test_invalid_connectors_send_nothing(self, client):
        with pytest.raises(ValidationError):
            SSOConnectionManager(client).create(_aad_connection(aad=None))
        client.create_sso_connection.assert_not_called()


class TestRead:
    def test_read(self, client):
        client.get_sso_connection.return_value = _stored(additionalEmailDomains=["example.org"])
        connection = SSOConnectionManager(client).read("sso-1")
        assert connection.additional_email_domains == ["example.org"]
        assert connection.aad.client_secret is None

    def test_missing(self, client):
        client.get_sso_connection.return_value = APIResponse(404, b"")
        assert SSOConnectionManager(client).read("sso-1") is None

    def test_empty_id(self, client):
        assert SSOConnectionManager(client).read("") is None
        client.get_sso_connection.assert_not_called()

    def test_error(self, client):
        client.get_sso_connection.return_value = APIResponse(500, b"boom")
        with pytest.raises(StatusError, match="retrieving sso connection"):
            SSOConnectionManager(client).read("sso-1")


class TestUpdate:
    def test_unchanged_is_a_no_op(self, client):
        previous = _aad_connection(id="sso-1", status="STATUS_ACTIVE")
        desired = _aad_connection()

        result = SSOConnectionManager(client).update("sso-1", desired, previous)

        assert result is previous
        client.update_sso_connection.assert_not_called()

    def test_changed_field_is_sent(self, client):
        client.update_sso_connection.return_value = _stored()
        client.get_sso_connection.return_value = _stored()
        previous = _aad_connection()
        desired = _aad_connection(name="corp-new")

        SSOConnectionManager(client).update("sso-1", desired, previous)

        connection_id, body = client.update_sso_connection.call_args[0]
        assert connection_id == "sso-1"
        assert body["name"] == "corp-new"

    def test_failed_status(self, client):
        client.update_sso_connection.return_value = _stored("STATUS_FAILED", "nope")
        with pytest.raises(FleetOptError, match="nope"):
            SSOConnectionManager(client).update("sso-1", _aad_connection())


class TestDelete:
    def test_delete(self, client):
        client.delete_sso_connection.return_value = APIResponse(204, b"")
        SSOConnectionManager(client).delete("sso-1")
        client.delete_sso_connection.assert_called_once_with("sso-1")

    def test_delete_error(self, client):
        client.delete_sso_connection.return_value = APIResponse(500, b"boom")
        with pytest.raises(StatusError, match="deleting sso connection"):
            SSOConnectionManager(client).delete("sso-1")
