"""JSON Merge Patch (RFC 7396), normalization and removed-key validation.

Autoscaler policies are owned by the Platform; callers only ever send a
partial document. ``merge_patch()`` applies that partial document to the
current one, ``normalize_json()`` gives a byte-stable form for equality
checks, and ``validate_policy_json()`` rejects keys that were removed from
the policy schema in 5.0.0.
"""

from __future__ import annotations

import json
from typing import Any

from fleetopt.errors import DecodeError, MergeError, ValidationError

REMOVED_KEY_MESSAGE = (
    "'{key}' field was removed from policies JSON in 5.0.0. "
    "The configuration was migrated to default node template."
)

# Top-level keys, then keys nested under ``unschedulablePods``.
REMOVED_TOP_LEVEL_KEYS = ("spotInstances",)
REMOVED_UNSCHEDULABLE_PODS_KEYS = ("customInstancesEnabled", "nodeConstraints")

Document = bytes | str | dict[str, Any] | list[Any] | int | float | bool | None


def _load(doc: Document, error_cls: type[Exception]) -> Any:
    if not isinstance(doc, (bytes, str)):
        return doc
    try:
        return json.loads(doc)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise error_cls(f"invalid JSON document: {e}") from e


def _merge(target: Any, patch: Any) -> Any:
    if not isinstance(patch, dict):
        return patch

    result = dict(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = _merge(result.get(key), value)
    return result


def merge_patch(current: Document, patch: Document) -> Any:
    """Apply *patch* to *current* per RFC 7396 and return the merged value.

    Objects merge recursively, ``null`` deletes the target key and every
    other value (arrays included) replaces the target wholesale. Both
    arguments may be raw JSON (``bytes``/``str``) or decoded values.

    Raises:
        MergeError: If either document is not valid JSON.
    """
    return _merge(_load(current, MergeError), _load(patch, MergeError))


def normalize_json(doc: Document) -> bytes:
    """Serialize *doc* with sorted keys and compact separators.

    Semantically equal documents produce byte-equal output.

    Raises:
        DecodeError: If *doc* is raw JSON that cannot be parsed.
    """
    if isinstance(doc, (bytes, str)) and not doc.strip():
        raise DecodeError("unexpected end of JSON input")
    value = _load(doc, DecodeError)
    return json.dumps(
        value, sort_keys=True, separators=(",", ":"), ensure_ascii=False,
    ).encode("utf-8")


def validate_policy_json(text: str | bytes) -> list[str]:
    """Return one message per removed key found in *text*.

    An empty list means the document is acceptable.
    """
    try:
        policy = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return [f"failed to deserialize JSON: {e}"]
    if not isinstance(policy, dict):
        return [f"failed to deserialize JSON: expected an object, got {type(policy).__name__}"]

    errors = [
        REMOVED_KEY_MESSAGE.format(key=key)
        for key in REMOVED_TOP_LEVEL_KEYS
        if key in policy
    ]

    unschedulable_pods = policy.get("unschedulablePods")
    if isinstance(unschedulable_pods, dict):
        errors.extend(
            REMOVED_KEY_MESSAGE.format(key=key)
            for key in REMOVED_UNSCHEDULABLE_PODS_KEYS
            if key in unschedulable_pods
        )
    return errors


def ensure_valid_policy_json(text: str | bytes) -> None:
    """Raise ``ValidationError`` listing every problem in *text*."""
    errors = validate_policy_json(text)
    if errors:
        raise ValidationError("\n".join(errors), errors=errors)
