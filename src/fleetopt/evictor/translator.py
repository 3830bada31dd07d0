"""Translation between schema-shaped evictor rules and the server form.

A schema rule is a plain mapping::

    {
        "pod_selector": {
            "kind": "Job",
            "namespace": "batch",
            "match_labels": {"team": "data"},
            "match_expressions": [
                {"key": "tier", "operator": "In", "values": ["spot"]},
            ],
        },
        "node_selector": {"match_labels": {"pool": "default"}},
        "aggressive": True,
        "disposable": False,
        "removal_disabled": False,
    }

Selectors may also be given as a one-element list, the shape declarative
tools produce. ``to_schema()`` always emits the mapping form with all
three settings present.

On the server side a setting is ``{"enabled": true}`` or absent; a
``false`` setting is never sent.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from fleetopt.errors import ValidationError
from fleetopt.models import (
    EvictionConfig,
    EvictionSettings,
    LabelSelector,
    LabelSelectorExpression,
    LabelSelectorOperator,
    NodeSelector,
    PodSelector,
    SettingEnabled,
)

SETTING_FIELDS = ("aggressive", "disposable", "removal_disabled")
RULE_FIELDS = frozenset({"pod_selector", "node_selector", *SETTING_FIELDS})
LABEL_SELECTOR_FIELDS = frozenset({"match_labels", "match_expressions"})
POD_SELECTOR_FIELDS = frozenset({"kind", "namespace"}) | LABEL_SELECTOR_FIELDS
EXPRESSION_FIELDS = frozenset({"key", "operator", "values"})


# --- Schema -> server ---


def _unwrap_selector(value: Any, name: str) -> Mapping[str, Any] | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        return value
    if isinstance(value, Sequence) and not isinstance(value, str):
        if not value:
            return None
        if len(value) > 1:
            raise ValidationError(f"{name}: at most one selector block is allowed")
        return _unwrap_selector(value[0], name)
    raise ValidationError(f"{name}: expected a mapping, got {type(value).__name__}")


def _check_keys(data: Mapping[str, Any], allowed: frozenset[str], name: str) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValidationError(f"{name}: unexpected field(s) {', '.join(unknown)}")


def _optional_str(data: Mapping[str, Any], key: str, name: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name}.{key}: expected string, got {type(value).__name__}")
    return value or None


def to_match_labels(value: Any, name: str = "match_labels") -> dict[str, str] | None:
    """Keyed labels, or ``None`` when empty."""
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ValidationError(f"{name}: expected a mapping, got {type(value).__name__}")
    labels: dict[str, str] = {}
    for key, label in value.items():
        if not isinstance(label, str):
            raise ValidationError(f"{name}.{key}: expected string, got {type(label).__name__}")
        labels[str(key)] = label
    return labels or None


def to_match_expressions(
    value: Any, name: str = "match_expressions",
) -> list[LabelSelectorExpression] | None:
    """Ordered label expressions with validated operators, or ``None``."""
    if value is None:
        return None
    if isinstance(value, (str, Mapping)) or not isinstance(value, Iterable):
        raise ValidationError(f"{name}: expected a list, got {type(value).__name__}")

    expressions = []
    for i, item in enumerate(value):
        where = f"{name}[{i}]"
        if not isinstance(item, Mapping):
            raise ValidationError(f"{where}: expected a mapping, got {type(item).__name__}")
        _check_keys(item, EXPRESSION_FIELDS, where)

        key = item.get("key")
        if not isinstance(key, str) or not key:
            raise ValidationError(f"{where}.key: a non-empty string is required")

        raw_operator = item.get("operator")
        try:
            operator = LabelSelectorOperator(raw_operator)
        except ValueError:
            allowed = ", ".join(op.value for op in LabelSelectorOperator)
            raise ValidationError(
                f"{where}.operator: {raw_operator!r} is not one of {allowed}"
            ) from None

        values = item.get("values")
        if values is not None:
            if isinstance(values, str) or not isinstance(values, Iterable):
                raise ValidationError(f"{where}.values: expected a list of strings")
            values = [str(v) for v in values] or None

        expressions.append(
            LabelSelectorExpression(key=key, operator=operator, values=values)
        )
    return expressions or None


def to_label_selector(data: Mapping[str, Any], name: str) -> LabelSelector | None:
    labels = to_match_labels(data.get("match_labels"), f"{name}.match_labels")
    expressions = to_match_expressions(
        data.get("match_expressions"), f"{name}.match_expressions",
    )
    if labels is None and expressions is None:
        return None
    return LabelSelector(match_labels=labels, match_expressions=expressions)


def to_pod_selector(value: Any) -> PodSelector | None:
    data = _unwrap_selector(value, "pod_selector")
    if data is None:
        return None
    _check_keys(data, POD_SELECTOR_FIELDS, "pod_selector")
    return PodSelector(
        kind=_optional_str(data, "kind", "pod_selector"),
        namespace=_optional_str(data, "namespace", "pod_selector"),
        label_selector=to_label_selector(data, "pod_selector"),
    )


def to_node_selector(value: Any) -> NodeSelector | None:
    data = _unwrap_selector(value, "node_selector")
    if data is None:
        return None
    _check_keys(data, LABEL_SELECTOR_FIELDS, "node_selector")
    return NodeSelector(label_selector=to_label_selector(data, "node_selector"))


def _to_setting(value: Any, name: str) -> SettingEnabled | None:
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{name}: expected bool, got {type(value).__name__}")
    return SettingEnabled(enabled=True) if value else None


def to_server(rules: Iterable[Mapping[str, Any]]) -> list[EvictionConfig]:
    """Convert schema rules to server ``EvictionConfig`` records.

    Raises:
        ValidationError: On unknown fields, wrong types or bad operators.
    """
    configs = []
    for i, rule in enumerate(rules):
        where = f"evictor_advanced_config[{i}]"
        if not isinstance(rule, Mapping):
            raise ValidationError(f"{where}: expected a mapping, got {type(rule).__name__}")
        _check_keys(rule, RULE_FIELDS, where)

        settings = EvictionSettings(**{
            field: _to_setting(rule.get(field), f"{where}.{field}")
            for field in SETTING_FIELDS
        })
        configs.append(EvictionConfig(
            pod_selector=to_pod_selector(rule.get("pod_selector")),
            node_selector=to_node_selector(rule.get("node_selector")),
            settings=settings,
        ))
    return configs


# --- Server -> schema ---


def _flatten_label_selector(selector: LabelSelector | None) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if selector is None:
        return out
    if selector.match_labels:
        out["match_labels"] = dict(selector.match_labels)
    if selector.match_expressions:
        expressions = []
        for expr in selector.match_expressions:
            item: dict[str, Any] = {"key": expr.key, "operator": str(expr.operator)}
            if expr.values:
                item["values"] = list(expr.values)
            expressions.append(item)
        out["match_expressions"] = expressions
    return out


def flatten_pod_selector(selector: PodSelector) -> dict[str, Any]:
    out: dict[str, Any] = {}
    if selector.kind:
        out["kind"] = selector.kind
    if selector.namespace:
        out["namespace"] = selector.namespace
    out.update(_flatten_label_selector(selector.label_selector))
    return out


def flatten_node_selector(selector: NodeSelector) -> dict[str, Any]:
    return _flatten_label_selector(selector.label_selector)


def to_schema(configs: Iterable[EvictionConfig]) -> list[dict[str, Any]]:
    """Convert server records back to schema rules.

    Absent settings become ``False``; absent selectors stay absent.
    """
    rules = []
    for config in configs:
        rule: dict[str, Any] = {}
        if config.pod_selector is not None:
            rule["pod_selector"] = flatten_pod_selector(config.pod_selector)
        if config.node_selector is not None:
            rule["node_selector"] = flatten_node_selector(config.node_selector)
        for field in SETTING_FIELDS:
            setting = getattr(config.settings, field)
            rule[field] = bool(setting is not None and setting.enabled)
        rules.append(rule)
    return rules
