"""fleetopt CLI: command-line interface for the Platform reconcilers.

Commands:
    cluster get           Show a registered cluster's status
    cluster delete        Drive a cluster from a state file to archived
    cluster token         Issue a new agent token for a cluster
    cluster decide        Show the delete-loop decision for a status pair
    autoscaler diff       Show the merged policies that apply would send
    autoscaler apply      Merge and upload autoscaler policies
    autoscaler disable    Turn autoscaling off for a cluster
    autoscaler validate   Check a policies JSON file for removed keys
    evictor show          Show evictor advanced config rules
    evictor apply         Replace evictor rules from a YAML/JSON file
    evictor reset         Remove all evictor rules
    sso create            Create an SSO connection from a YAML/JSON file
    sso show              Show an SSO connection
    sso delete            Delete an SSO connection
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
import pydantic
import yaml

from fleetopt import __version__
from fleetopt.clusters.lifecycle import ClusterLifecycleController, decide, fetch_cluster
from fleetopt.clusters.token import create_cluster_token
from fleetopt.config import FleetOptConfig, load_config
from fleetopt.errors import FleetOptError
from fleetopt.evictor.config import EvictorConfigManager
from fleetopt.models import AutoscalerPolicy, ClusterObservation, ClusterState, SSOConnection
from fleetopt.policies.autoscaler import AutoscalerPolicyEngine
from fleetopt.policies.merge import validate_policy_json
from fleetopt.retry.executor import ConstantBackoff
from fleetopt.sdk.client import PlatformClient
from fleetopt.sso.connection import SSOConnectionManager

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _resolve_cfg(path: str | None) -> FleetOptConfig:
    """Load config from fleetopt.yaml; a missing auto-discovered file is fine."""
    try:
        return load_config(path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        click.echo(f"Error loading config: {e}", err=True)
        sys.exit(1)


@contextmanager
def _api_errors() -> Iterator[None]:
    try:
        yield
    except FleetOptError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _load_document(path: str) -> Any:
    """Parse a YAML or JSON file (JSON is valid YAML)."""
    try:
        return yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        click.echo(f"Error reading {path}: {e}", err=True)
        sys.exit(1)


def _load_model(path: str, model: type[pydantic.BaseModel]) -> Any:
    data = _load_document(path) or {}
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        click.echo(f"Error: invalid {model.__name__} in {path}:\n{e}", err=True)
        sys.exit(1)


def _write_state(path: str, state: ClusterState) -> None:
    data = state.model_dump(mode="json")
    target = Path(path)
    if target.suffix == ".json":
        target.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    else:
        target.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")


class _Settings:
    """Resolved connection settings, with the client built on first use."""

    def __init__(self, api_url: str | None, api_token: str | None, cfg: FleetOptConfig) -> None:
        self.cfg = cfg
        self._api_url = api_url or cfg.api_url
        self._api_token = api_token or cfg.api_token
        self._client: PlatformClient | None = None

    @property
    def client(self) -> PlatformClient:
        if self._client is None:
            if not self._api_url:
                click.echo("Error: API URL is required (--api-url, FLEETOPT_API_URL "
                           "or api_url in fleetopt.yaml)", err=True)
                sys.exit(1)
            if not self._api_token:
                click.echo("Error: API token is required (--api-token, FLEETOPT_API_TOKEN "
                           "or api_token in fleetopt.yaml)", err=True)
                sys.exit(1)
            self._client = PlatformClient(
                self._api_url, self._api_token, timeout=self.cfg.request_timeout,
            )
        return self._client


pass_settings = click.make_pass_decorator(_Settings)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--api-url", envvar="FLEETOPT_API_URL", default=None, help="Platform API base URL")
@click.option("--api-token", envvar="FLEETOPT_API_TOKEN", default=None, help="Platform API token")
@click.option("--config", "config_path", default=None, help="Path to fleetopt.yaml")
@click.option(
    "--log-level", default="WARNING",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging verbosity",
)
@click.pass_context
def cli(
    ctx: click.Context,
    api_url: str | None,
    api_token: str | None,
    config_path: str | None,
    log_level: str,
) -> None:
    """fleetopt: manage clusters and optimization policies on the Platform."""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = _Settings(api_url, api_token, _resolve_cfg(config_path))


# --- cluster commands ---


@cli.group()
def cluster() -> None:
    """External cluster commands."""


@cluster.command("get")
@click.argument("cluster_id")
@click.option("--json-output", is_flag=True, help="Output as JSON")
@pass_settings
def cluster_get(settings: _Settings, cluster_id: str, json_output: bool) -> None:
    """Show a registered cluster's status."""
    with _api_errors():
        observation = fetch_cluster(settings.client, cluster_id)

    if observation is None:
        click.echo(f"Cluster {cluster_id} not found or archived")
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(observation.to_api(), indent=2))
        return
    click.echo(f"  id:           {observation.id}")
    click.echo(f"  name:         {observation.name}")
    click.echo(f"  status:       {observation.status}")
    click.echo(f"  agent status: {observation.agent_status}")
    click.echo(f"  credentials:  {observation.credentials_id or '(none)'}")


@cluster.command("delete")
@click.argument("state_file")
@click.option("--timeout", type=float, default=None, help="Deadline in seconds")
@pass_settings
def cluster_delete(settings: _Settings, state_file: str, timeout: float | None) -> None:
    """Drive the cluster in STATE_FILE to archived and clear its id."""
    state = _load_model(state_file, ClusterState)
    controller = ClusterLifecycleController(
        settings.client,
        timeout=timeout or settings.cfg.delete_timeout,
        poll=ConstantBackoff(settings.cfg.poll_interval),
    )
    cluster_id = state.id
    try:
        with _api_errors():
            controller.delete(state)
    finally:
        _write_state(state_file, state)

    if cluster_id:
        click.echo(click.style("DELETED", fg="green", bold=True) + f" cluster {cluster_id}")
    else:
        click.echo("Cluster id is empty, nothing to delete")


@cluster.command("token")
@click.argument("cluster_id")
@pass_settings
def cluster_token(settings: _Settings, cluster_id: str) -> None:
    """Issue a new agent token for CLUSTER_ID."""
    with _api_errors():
        click.echo(create_cluster_token(settings.client, cluster_id))


@cluster.command("decide")
@click.option("--status", required=True, help="Cluster status")
@click.option("--agent-status", required=True, help="Agent status")
@click.option("--credentials-id", default="", help="Credentials id (empty if none)")
@click.option("--delete-nodes", is_flag=True, help="Delete nodes on disconnect")
def cluster_decide(
    status: str, agent_status: str, credentials_id: str, delete_nodes: bool,
) -> None:
    """Show the delete-loop action for a status pair, without calling the API."""
    observation = ClusterObservation(
        status=status, agent_status=agent_status, credentials_id=credentials_id,
    )
    with _api_errors():
        decision = decide(observation, delete_nodes_on_disconnect=delete_nodes)
    click.echo(f"{decision.action}: {decision.reason}")


# --- autoscaler commands ---


@cli.group()
def autoscaler() -> None:
    """Autoscaler policy commands."""


def _policy_inputs(
    policies_file: str | None, settings_file: str | None,
) -> tuple[str | None, AutoscalerPolicy | None]:
    if policies_file and settings_file:
        click.echo("Error: use either --policies or --settings, not both", err=True)
        sys.exit(1)
    if settings_file:
        return None, _load_model(settings_file, AutoscalerPolicy)
    if policies_file:
        try:
            return Path(policies_file).read_text(encoding="utf-8"), None
        except OSError as e:
            click.echo(f"Error reading {policies_file}: {e}", err=True)
            sys.exit(1)
    click.echo("Error: one of --policies or --settings is required", err=True)
    sys.exit(1)


@autoscaler.command("diff")
@click.argument("cluster_id")
@click.option("--policies", "policies_file", default=None, help="Policies JSON file")
@click.option("--settings", "settings_file", default=None, help="Typed settings YAML/JSON file")
@pass_settings
def autoscaler_diff(
    settings: _Settings, cluster_id: str,
    policies_file: str | None, settings_file: str | None,
) -> None:
    """Show the merged policies that apply would send."""
    policies_json, policy = _policy_inputs(policies_file, settings_file)
    engine = AutoscalerPolicyEngine(settings.client)
    with _api_errors():
        current = engine.current_policies(cluster_id)
        merged = engine.changed_policies(cluster_id, policies_json, policy)

    if merged is None or merged == current:
        click.echo("No changes")
        return
    click.echo(json.dumps(json.loads(merged), indent=2, sort_keys=True))


@autoscaler.command("apply")
@click.argument("cluster_id")
@click.option("--policies", "policies_file", default=None, help="Policies JSON file")
@click.option("--settings", "settings_file", default=None, help="Typed settings YAML/JSON file")
@pass_settings
def autoscaler_apply(
    settings: _Settings, cluster_id: str,
    policies_file: str | None, settings_file: str | None,
) -> None:
    """Merge and upload autoscaler policies."""
    policies_json, policy = _policy_inputs(policies_file, settings_file)
    with _api_errors():
        sent = AutoscalerPolicyEngine(settings.client).apply(cluster_id, policies_json, policy)
    if sent is None:
        click.echo("Nothing to apply")
    else:
        click.echo(click.style("APPLIED", fg="green", bold=True) + f" policies to {cluster_id}")


@autoscaler.command("disable")
@click.argument("cluster_id")
@pass_settings
def autoscaler_disable(settings: _Settings, cluster_id: str) -> None:
    """Turn autoscaling off for CLUSTER_ID."""
    with _api_errors():
        AutoscalerPolicyEngine(settings.client).disable(cluster_id)
    click.echo(f"Autoscaling disabled for {cluster_id}")


@autoscaler.command("validate")
@click.argument("policies_file")
def autoscaler_validate(policies_file: str) -> None:
    """Check POLICIES_FILE for keys removed from the policy schema."""
    try:
        text = Path(policies_file).read_text(encoding="utf-8")
    except OSError as e:
        click.echo(f"Error reading {policies_file}: {e}", err=True)
        sys.exit(1)

    errors = validate_policy_json(text)
    if not errors:
        click.echo(click.style("VALID", fg="green", bold=True) + f" {policies_file}")
        return
    click.echo(click.style("INVALID", fg="red", bold=True) + f" {len(errors)} error(s) found:")
    for error in errors:
        click.echo(f"  - {error}")
    sys.exit(1)


# --- evictor commands ---


@cli.group()
def evictor() -> None:
    """Evictor advanced configuration commands."""


def _echo_rules(rules: list[dict[str, Any]] | None) -> None:
    click.echo(yaml.safe_dump(rules or [], sort_keys=False).rstrip())


@evictor.command("show")
@click.argument("cluster_id")
@pass_settings
def evictor_show(settings: _Settings, cluster_id: str) -> None:
    """Show evictor advanced config rules."""
    with _api_errors():
        _echo_rules(EvictorConfigManager(settings.client).read(cluster_id))


@evictor.command("apply")
@click.argument("cluster_id")
@click.argument("rules_file")
@pass_settings
def evictor_apply(settings: _Settings, cluster_id: str, rules_file: str) -> None:
    """Replace evictor rules with those in RULES_FILE."""
    rules = _load_document(rules_file) or []
    if isinstance(rules, dict):
        rules = rules.get("evictor_advanced_config", [])
    if not isinstance(rules, list):
        click.echo(f"Error: expected a list of rules in {rules_file}", err=True)
        sys.exit(1)
    with _api_errors():
        _echo_rules(EvictorConfigManager(settings.client).upsert(cluster_id, rules))


@evictor.command("reset")
@click.argument("cluster_id")
@pass_settings
def evictor_reset(settings: _Settings, cluster_id: str) -> None:
    """Remove all evictor rules."""
    with _api_errors():
        _echo_rules(EvictorConfigManager(settings.client).delete(cluster_id))


# --- sso commands ---


@cli.group()
def sso() -> None:
    """SSO connection commands."""


def _echo_connection(connection: SSOConnection) -> None:
    data = connection.model_dump(mode="json", exclude_none=True)
    for connector in ("aad", "okta"):
        if connector in data:
            data[connector].pop("client_secret", None)
    click.echo(yaml.safe_dump(data, sort_keys=False).rstrip())


@sso.command("create")
@click.argument("connection_file")
@pass_settings
def sso_create(settings: _Settings, connection_file: str) -> None:
    """Create an SSO connection described in CONNECTION_FILE."""
    connection = _load_model(connection_file, SSOConnection)
    with _api_errors():
        created = SSOConnectionManager(settings.client).create(connection)
    _echo_connection(created)


@sso.command("show")
@click.argument("connection_id")
@pass_settings
def sso_show(settings: _Settings, connection_id: str) -> None:
    """Show an SSO connection."""
    with _api_errors():
        connection = SSOConnectionManager(settings.client).read(connection_id)
    if connection is None:
        click.echo(f"SSO connection {connection_id} not found")
        sys.exit(1)
    _echo_connection(connection)


@sso.command("delete")
@click.argument("connection_id")
@pass_settings
def sso_delete(settings: _Settings, connection_id: str) -> None:
    """Delete an SSO connection."""
    with _api_errors():
        SSOConnectionManager(settings.client).delete(connection_id)
    click.echo(f"Deleted SSO connection {connection_id}")


