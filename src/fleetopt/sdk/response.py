"""Status classification for Platform API responses.

``classify()`` maps a raw exchange (status code, transport error, body) to
one of four outcomes. It never retries; callers that want retries wrap the
call in ``fleetopt.retry.executor``. The ``check_*`` and ``decode_json``
helpers turn non-OK outcomes into the matching ``fleetopt.errors`` kind.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, TypeVar

import pydantic

from fleetopt.errors import DecodeError, StatusError

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


@dataclass(frozen=True)
class APIResponse:
    """A completed HTTP exchange with the Platform."""

    status_code: int
    body: bytes = b""
    content_type: str = ""


class _NoBody:
    def __repr__(self) -> str:
        return "NO_BODY"


NO_BODY = _NoBody()


@dataclass(frozen=True)
class Ok:
    body: bytes | _NoBody
    data: Any = None


@dataclass(frozen=True)
class NotFound:
    pass


@dataclass(frozen=True)
class Fatal:
    message: str
    status_code: int = 0
    body: bytes = b""


@dataclass(frozen=True)
class EmptyPayload:
    message: str


Outcome = Ok | NotFound | Fatal | EmptyPayload

EMPTY_RESPONSE = "response was empty"
UNEXPECTED_END = "unexpected end of JSON input"


def expected_status_message(expected: int, status_code: int, body: bytes) -> str:
    return (
        f"expected status code {expected}, received: "
        f"status={status_code} body={body.decode('utf-8', errors='replace')}"
    )


def parse_json(body: bytes) -> Any:
    """Decode a JSON body, raising ``DecodeError`` on empty or invalid input."""
    if not body or not body.strip():
        raise DecodeError(UNEXPECTED_END)
    try:
        return json.loads(body)
    except json.JSONDecodeError as e:
        raise DecodeError(f"invalid JSON response: {e}") from e


def classify(
    status_code: int,
    transport_err: BaseException | None,
    body: bytes,
    content_type: str = "application/json",
    *,
    expected: int = 200,
    required_field: str | None = None,
) -> Outcome:
    """Classify one exchange.

    With *required_field* set, a 2xx body is decoded and the field must be
    present and non-null; otherwise the outcome is ``EmptyPayload``.
    """
    if transport_err is not None:
        return Fatal(message=str(transport_err))

    if status_code == 404:
        return NotFound()

    if not 200 <= status_code < 300:
        return Fatal(
            message=expected_status_message(expected, status_code, body),
            status_code=status_code,
            body=body,
        )

    if required_field is None:
        return Ok(body=body if body else NO_BODY)

    try:
        data = parse_json(body)
    except DecodeError as e:
        return EmptyPayload(message=str(e))

    if not isinstance(data, dict) or data.get(required_field) is None:
        return EmptyPayload(message=EMPTY_RESPONSE)

    return Ok(body=body, data=data)


def check_status(response: APIResponse, expected: int = 200) -> None:
    """Raise ``StatusError`` unless *response* is a 2xx."""
    outcome = classify(
        response.status_code, None, response.body, response.content_type,
        expected=expected,
    )
    if isinstance(outcome, Ok):
        return
    raise StatusError(
        expected_status_message(expected, response.status_code, response.body),
        status_code=response.status_code,
        body=response.body,
    )


def check_ok_response(response: APIResponse) -> None:
    check_status(response, 200)


def check_no_content(response: APIResponse) -> None:
    check_status(response, 204)


def decode_json(
    response: APIResponse,
    required_field: str | None = None,
) -> Any:
    """Check *response* and return its decoded JSON body."""
    check_ok_response(response)
    outcome = classify(
        response.status_code, None, response.body, response.content_type,
        required_field=required_field,
    )
    if isinstance(outcome, EmptyPayload):
        raise DecodeError(outcome.message)
    if required_field is not None:
        return outcome.data  # type: ignore[union-attr]
    return parse_json(response.body)


def decode_model(
    response: APIResponse,
    model: type[ModelT],
    *,
    empty: Any = None,
) -> ModelT:
    """Check *response* and validate its JSON body as *model*.

    A null body is replaced by *empty* when given. Shape mismatches raise
    ``DecodeError`` like any other undecodable payload.
    """
    payload = decode_json(response)
    if payload is None and empty is not None:
        payload = empty
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        raise DecodeError(f"invalid {model.__name__} response: {e}") from e


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def is_credentials_error(body: bytes) -> bool:
    """True when the Platform rejected the request because of cloud credentials.

    Such errors are usually IAM eventual consistency and worth retrying.
    """
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return False
    if not isinstance(payload, dict):
        return False

    violations = payload.get("fieldViolations") or []
    return (
        payload.get("message") == "Forbidden"
        and len(violations) > 0
        and isinstance(violations[0], dict)
        and violations[0].get("field") == "credentials"
    )
