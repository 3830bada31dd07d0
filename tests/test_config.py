"""Tests for the fleetopt config loader (fleetopt.yaml)."""

from pathlib import Path

import pytest
import yaml

from fleetopt.config import (
    DEFAULT_DELETE_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    FleetOptConfig,
    find_config,
    load_config,
)

# --- find_config ---


class TestFindConfig:
    def test_finds_in_start_dir(self, tmp_path: Path):
        cfg = tmp_path / "fleetopt.yaml"
        cfg.write_text("api_url: https://api.example.com\n", encoding="utf-8")
        assert find_config(tmp_path) == cfg.resolve()

    def test_finds_in_parent(self, tmp_path: Path):
        cfg = tmp_path / "fleetopt.yaml"
        cfg.write_text("api_url: https://api.example.com\n", encoding="utf-8")
        child = tmp_path / "sub" / "deep"
        child.mkdir(parents=True)
        assert find_config(child) == cfg.resolve()

    def test_returns_none_when_missing(self, tmp_path: Path):
        assert find_config(tmp_path) is None

    def test_defaults_to_cwd(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert find_config() is None

    def test_ignores_directories_named_config(self, tmp_path: Path):
        (tmp_path / "fleetopt.yaml").mkdir()
        assert find_config(tmp_path) is None


# --- load_config ---


class TestLoadConfig:
    def test_explicit_path(self, tmp_path: Path):
        cfg_path = tmp_path / "fleetopt.yaml"
        cfg_path.write_text(
            "api_url: https://api.example.com\napi_token: secret\n"
            "delete_timeout: 120\npoll_interval: 2.5\n",
            encoding="utf-8",
        )
        cfg = load_config(cfg_path)
        assert cfg.config_path == cfg_path.resolve()
        assert cfg.api_url == "https://api.example.com"
        assert cfg.api_token == "secret"
        assert cfg.delete_timeout == 120.0
        assert cfg.poll_interval == 2.5

    def test_explicit_path_not_found(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="not found"):
            load_config(tmp_path / "nope.yaml")

    def test_auto_discover(self, tmp_path: Path, monkeypatch):
        cfg_path = tmp_path / "fleetopt.yaml"
        cfg_path.write_text("api_token: from-file\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        cfg = load_config()
        assert cfg.api_token == "from-file"
        assert cfg.config_path == cfg_path.resolve()

    def test_auto_discover_disabled(self, tmp_path: Path, monkeypatch):
        (tmp_path / "fleetopt.yaml").write_text("api_token: x\n", encoding="utf-8")
        monkeypatch.chdir(tmp_path)
        assert load_config(auto_discover=False) == FleetOptConfig()

    def test_no_config_returns_defaults(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        cfg = load_config()
        assert cfg.config_path is None
        assert cfg.api_url is None
        assert cfg.delete_timeout == DEFAULT_DELETE_TIMEOUT
        assert cfg.poll_interval == DEFAULT_POLL_INTERVAL

    def test_empty_file_uses_defaults(self, tmp_path: Path):
        cfg_path = tmp_path / "fleetopt.yaml"
        cfg_path.write_text("", encoding="utf-8")
        cfg = load_config(cfg_path)
        assert cfg.api_url is None
        assert cfg.delete_timeout == DEFAULT_DELETE_TIMEOUT

    def test_non_mapping_rejected(self, tmp_path: Path):
        cfg_path = tmp_path / "fleetopt.yaml"
        cfg_path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Expected a YAML mapping"):
            load_config(cfg_path)

    @pytest.mark.parametrize("value", ["soon", "0", "-5"])
    def test_invalid_timeout(self, tmp_path: Path, value: str):
        cfg_path = tmp_path / "fleetopt.yaml"
        cfg_path.write_text(f"update_timeout: {value}\n", encoding="utf-8")
        with pytest.raises(ValueError, match="update_timeout"):
            load_config(cfg_path)

    def test_malformed_yaml(self, tmp_path: Path):
        cfg_path = tmp_path / "fleetopt.yaml"
        cfg_path.write_text("api_url: [unclosed\n", encoding="utf-8")
        with pytest.raises(yaml.YAMLError):
            load_config(cfg_path)
