"""Tests for the fleetopt CLI."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from fleetopt.cli.main import cli
from fleetopt.sdk.response import APIResponse

API_ARGS = ["--api-url", "https://api.example.com", "--api-token", "tok"]


def runner() -> CliRunner:
    return CliRunner()


def _cluster(status: str, agent: str) -> APIResponse:
    return APIResponse(200, json.dumps({
        "id": "c1",
        "name": "prod",
        "status": status,
        "agentStatus": agent,
        "credentialsId": "cred-1",
    }).encode())


@pytest.fixture()
def platform():
    with patch("fleetopt.cli.main.PlatformClient") as client_cls:
        yield client_cls


@pytest.fixture(autouse=True)
def _isolated(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("FLEETOPT_API_URL", raising=False)
    monkeypatch.delenv("FLEETOPT_API_TOKEN", raising=False)


# --- cluster decide ---


class TestDecideCommand:
    def test_online_agent_disconnects(self):
        result = runner().invoke(cli, [
            "cluster", "decide", "--status", "ready", "--agent-status", "online",
            "--credentials-id", "cred-1",
        ])
        assert result.exit_code == 0
        assert result.output.startswith("trigger_disconnect:")

    def test_missing_credentials_deletes(self):
        result = runner().invoke(cli, [
            "cluster", "decide", "--status", "ready", "--agent-status", "online",
        ])
        assert result.exit_code == 0
        assert "trigger_delete: triggered cluster deletion" in result.output

    def test_unknown_status(self):
        result = runner().invoke(cli, [
            "cluster", "decide", "--status", "exploded", "--agent-status", "online",
        ])
        assert result.exit_code == 1
        assert "unknown cluster status" in result.output


# --- cluster get / delete ---


class TestClusterCommands:
    def test_get(self, platform):
        platform.return_value.get_cluster.return_value = _cluster("ready", "online")
        result = runner().invoke(cli, [*API_ARGS, "cluster", "get", "c1"])
        assert result.exit_code == 0
        assert "agent status: online" in result.output
        platform.assert_called_once_with("https://api.example.com", "tok", timeout=30.0)

    def test_get_json(self, platform):
        platform.return_value.get_cluster.return_value = _cluster("ready", "online")
        result = runner().invoke(cli, [*API_ARGS, "cluster", "get", "c1", "--json-output"])
        assert result.exit_code == 0
        assert json.loads(result.output)["agentStatus"] == "online"

    def test_get_missing(self, platform):
        platform.return_value.get_cluster.return_value = APIResponse(404, b"")
        result = runner().invoke(cli, [*API_ARGS, "cluster", "get", "c1"])
        assert result.exit_code == 1
        assert "Cluster c1 not found or archived" in result.output

    def test_api_error(self, platform):
        platform.return_value.get_cluster.return_value = APIResponse(500, b"boom")
        result = runner().invoke(cli, [*API_ARGS, "cluster", "get", "c1"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_delete_clears_state_file(self, platform, tmp_path: Path):
        state_file = tmp_path / "cluster.yaml"
        state_file.write_text(
            yaml.safe_dump({"provider": "eks", "name": "prod", "id": "c1"}),
            encoding="utf-8",
        )
        platform.return_value.get_cluster.return_value = _cluster("archived", "disconnected")

        result = runner().invoke(cli, [*API_ARGS, "cluster", "delete", str(state_file)])

        assert result.exit_code == 0
        assert "DELETED cluster c1" in result.output
        assert yaml.safe_load(state_file.read_text(encoding="utf-8"))["id"] == ""

    def test_delete_without_id(self, platform, tmp_path: Path):
        state_file = tmp_path / "cluster.json"
        state_file.write_text(json.dumps({"provider": "aks", "name": "prod"}), encoding="utf-8")

        result = runner().invoke(cli, [*API_ARGS, "cluster", "delete", str(state_file)])

        assert result.exit_code == 0
        assert "nothing to delete" in result.output
        platform.return_value.get_cluster.assert_not_called()

    def test_token(self, platform):
        platform.return_value.create_cluster_token.return_value = APIResponse(
            200, b'{"token": "tok-9"}',
        )
        result = runner().invoke(cli, [*API_ARGS, "cluster", "token", "c1"])
        assert result.exit_code == 0
        assert result.output.strip() == "tok-9"


# --- connection settings ---


class TestSettings:
    def test_missing_api_url(self):
        result = runner().invoke(cli, ["cluster", "get", "c1"])
        assert result.exit_code == 1
        assert "API URL is required" in result.output

    def test_missing_api_token(self):
        result = runner().invoke(cli, ["--api-url", "https://x", "cluster", "get", "c1"])
        assert result.exit_code == 1
        assert "API token is required" in result.output

    def test_env_overrides_config(self, platform, tmp_path: Path):
        cfg = tmp_path / "fleetopt.yaml"
        cfg.write_text(
            "api_url: https://from-file\napi_token: file-token\nrequest_timeout: 5\n",
            encoding="utf-8",
        )
        platform.return_value.get_cluster.return_value = _cluster("ready", "online")

        result = runner().invoke(
            cli, ["--config", str(cfg), "cluster", "get", "c1"],
            env={"FLEETOPT_API_URL": "https://from-env"},
        )

        assert result.exit_code == 0
        platform.assert_called_once_with("https://from-env", "file-token", timeout=5.0)

    def test_auto_discovered_config(self, platform, tmp_path: Path):
        (tmp_path / "fleetopt.yaml").write_text(
            "api_url: https://from-file\napi_token: file-token\n", encoding="utf-8",
        )
        platform.return_value.get_cluster.return_value = _cluster("ready", "online")

        result = runner().invoke(cli, ["cluster", "get", "c1"])

        assert result.exit_code == 0
        platform.assert_called_once_with("https://from-file", "file-token", timeout=30.0)

    def test_bad_config(self, tmp_path: Path):
        cfg = tmp_path / "fleetopt.yaml"
        cfg.write_text("poll_interval: never\n", encoding="utf-8")
        result = runner().invoke(cli, ["--config", str(cfg), "cluster", "get", "c1"])
        assert result.exit_code == 1
        assert "Error loading config" in result.output


# --- autoscaler ---


class TestAutoscalerCommands:
    def test_validate_clean(self, tmp_path: Path):
        policies = tmp_path / "policies.json"
        policies.write_text('{"enabled": true}', encoding="utf-8")
        result = runner().invoke(cli, ["autoscaler", "validate", str(policies)])
        assert result.exit_code == 0
        assert "VALID" in result.output

    def test_validate_removed_key(self, tmp_path: Path):
        policies = tmp_path / "policies.json"
        policies.write_text('{"spotInstances": {"enabled": true}}', encoding="utf-8")
        result = runner().invoke(cli, ["autoscaler", "validate", str(policies)])
        assert result.exit_code == 1
        assert "INVALID" in result.output
        assert "'spotInstances' field was removed" in result.output

    def test_diff(self, platform, tmp_path: Path):
        policies = tmp_path / "policies.json"
        policies.write_text('{"enabled": false}', encoding="utf-8")
        platform.return_value.get_policies.return_value = APIResponse(200, b'{"enabled": true}')

        result = runner().invoke(cli, [
            *API_ARGS, "autoscaler", "diff", "c1", "--policies", str(policies),
        ])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"enabled": False}

    def test_diff_no_changes(self, platform, tmp_path: Path):
        policies = tmp_path / "policies.json"
        policies.write_text('{"enabled": true}', encoding="utf-8")
        platform.return_value.get_policies.return_value = APIResponse(200, b'{"enabled": true}')

        result = runner().invoke(cli, [
            *API_ARGS, "autoscaler", "diff", "c1", "--policies", str(policies),
        ])

        assert result.exit_code == 0
        assert "No changes" in result.output

    def test_apply_with_settings(self, platform, tmp_path: Path):
        settings = tmp_path / "settings.yaml"
        settings.write_text("enabled: true\nisScopedMode: true\n", encoding="utf-8")
        client = platform.return_value
        client.get_policies.return_value = APIResponse(200, b'{"enabled": false}')
        client.upsert_policies.return_value = APIResponse(200, b"{}")

        result = runner().invoke(cli, [
            *API_ARGS, "autoscaler", "apply", "c1", "--settings", str(settings),
        ])

        assert result.exit_code == 0
        assert "APPLIED policies to c1" in result.output
        sent = json.loads(client.upsert_policies.call_args[0][1])
        assert sent["enabled"] is True
        assert sent["isScopedMode"] is True

    def test_apply_requires_input(self, platform):
        result = runner().invoke(cli, [*API_ARGS, "autoscaler", "apply", "c1"])
        assert result.exit_code == 1
        assert "one of --policies or --settings is required" in result.output

    def test_disable(self, platform):
        platform.return_value.upsert_policies.return_value = APIResponse(200, b"{}")
        result = runner().invoke(cli, [*API_ARGS, "autoscaler", "disable", "c1"])
        assert result.exit_code == 0
        platform.return_value.upsert_policies.assert_called_once_with("c1", b'{"enabled":false}')


# --- evictor / sso ---


class TestEvictorCommands:
    def test_apply_rules_file(self, platform, tmp_path: Path):
        rules = tmp_path / "rules.yaml"
        rules.write_text(yaml.safe_dump({"evictor_advanced_config": [{
            "pod_selector": {"kind": "Job"},
            "aggressive": True,
        }]}), encoding="utf-8")
        client = platform.return_value
        client.upsert_evictor_advanced_config.return_value = APIResponse(200, json.dumps({
            "evictionConfig": [{
                "podSelector": {"kind": "Job"},
                "settings": {"aggressive": {"enabled": True}},
            }],
        }).encode())

        result = runner().invoke(cli, [*API_ARGS, "evictor", "apply", "c1", str(rules)])

        assert result.exit_code == 0
        [rule] = yaml.safe_load(result.output)
        assert rule["pod_selector"] == {"kind": "Job"}
        assert rule["aggressive"] is True

    def test_reset(self, platform):
        platform.return_value.upsert_evictor_advanced_config.return_value = APIResponse(
            200, b'{"evictionConfig": []}',
        )
        result = runner().invoke(cli, [*API_ARGS, "evictor", "reset", "c1"])
        assert result.exit_code == 0
        assert result.output.strip() == "[]"


class TestSSOCommands:
    def test_show_hides_secret(self, platform):
        platform.return_value.get_sso_connection.return_value = APIResponse(200, json.dumps({
            "id": "sso-1",
            "name": "corp",
            "emailDomain": "example.com",
            "okta": {"oktaDomain": "corp.okta.com", "clientId": "app", "clientSecret": "s"},
            "status": "STATUS_ACTIVE",
        }).encode())

        result = runner().invoke(cli, [*API_ARGS, "sso", "show", "sso-1"])

        assert result.exit_code == 0
        assert "corp.okta.com" in result.output
        assert "client_secret" not in result.output

    def test_show_missing(self, platform):
        platform.return_value.get_sso_connection.return_value = APIResponse(404, b"")
        result = runner().invoke(cli, [*API_ARGS, "sso", "show", "sso-1"])
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_delete(self, platform):
        platform.return_value.delete_sso_connection.return_value = APIResponse(204, b"")
        result = runner().invoke(cli, [*API_ARGS, "sso", "delete", "sso-1"])
        assert result.exit_code == 0
        assert "Deleted SSO connection sso-1" in result.output
