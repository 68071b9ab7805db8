from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from wtdev.core.config import load_config
from wtdev.core.config.loader import (
    deep_merge,
    find_project_root,
    normalize_keys,
    state_dir,
)
from wtdev.core.exceptions import ConfigError, ProjectRootNotFoundError


def _write_manifest(root: Path, dev_server) -> None:
    root.mkdir(parents=True, exist_ok=True)
    (root / "package.json").write_text(json.dumps({"name": "demo", "devServer": dev_server}), encoding="utf-8")


class TestLoadConfig:
    def test_defaults(self, project_root):
        cfg = load_config(project_root)
        dev = cfg.dev_server
        assert cfg.project_root == project_root.resolve()
        assert dev.ports[0] == 5001
        assert len(dev.ports) == 128
        assert dev.ports[-1] == 5128
        assert dev.inngest_port == 8288
        assert dev.port_policy == "hash"
        assert dev.inngest_command is None
        assert dev.timings.health_check_attempts == 20

    def test_camel_case_manifest_keys(self, tmp_path):
        root = tmp_path / "app"
        _write_manifest(root, {"basePort": 6000, "maxPorts": 4, "inngestPort": 9000, "portPolicy": "reserved-base"})
        dev = load_config(root).dev_server
        assert dev.ports == (6000, 6001, 6002, 6003)
        assert dev.inngest_port == 9000
        assert dev.port_policy == "reserved-base"

    def test_explicit_ports_win(self, tmp_path):
        root = tmp_path / "app"
        _write_manifest(root, {"ports": [7001, 7005, 7003], "maxPorts": 50})
        assert load_config(root).dev_server.ports == (7001, 7005, 7003)

    def test_project_yaml_overrides_manifest(self, tmp_path):
        root = tmp_path / "app"
        _write_manifest(root, {"basePort": 6000, "maxPorts": 4})
        (root / ".wtdev.yaml").write_text(
            "dev_server:\n  max_ports: 2\n  timings:\n    health_check_attempts: 3\n",
            encoding="utf-8",
        )
        dev = load_config(root).dev_server
        assert dev.ports == (6000, 6001)
        assert dev.timings.health_check_attempts == 3
        # Untouched timings keep their defaults.
        assert dev.timings.max_kill_attempts == 5

    def test_project_yaml_alone_marks_the_root(self, tmp_path):
        root = tmp_path / "svc"
        root.mkdir()
        (root / ".wtdev.yml").write_text("devServer:\n  basePort: 4100\n  maxPorts: 1\n", encoding="utf-8")
        assert load_config(root).dev_server.ports == (4100,)

    @pytest.mark.parametrize(
        "section",
        [
            {"basePort": "5001"},
            {"maxPorts": 0},
            {"portPolicy": "random"},
            {"ports": []},
            {"timings": {"unknownKey": 1}},
        ],
    )
    def test_schema_violations(self, tmp_path, section):
        root = tmp_path / "app"
        _write_manifest(root, section)
        with pytest.raises(ConfigError) as exc:
            load_config(root)
        assert exc.value.context["errors"]

    def test_unknown_keys_are_ignored_with_warning(self, tmp_path, caplog):
        root = tmp_path / "app"
        _write_manifest(root, {"basePort": 4100, "maxPorts": 2, "unknownKey": 1})
        with caplog.at_level(logging.WARNING, logger="wtdev"):
            dev = load_config(root).dev_server
        assert dev.ports == (4100, 4101)
        assert "unknown_key" in caplog.text

    def test_pool_beyond_highest_port(self, tmp_path):
        root = tmp_path / "app"
        _write_manifest(root, {"basePort": 65500, "maxPorts": 100})
        with pytest.raises(ConfigError, match="exceeds 65535"):
            load_config(root)

    def test_malformed_manifest_falls_back_to_defaults(self, tmp_path, caplog):
        root = tmp_path / "app"
        root.mkdir()
        (root / "package.json").write_text("{ not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="wtdev"):
            dev = load_config(root).dev_server
        assert dev.ports[0] == 5001
        assert "Could not read devServer config" in caplog.text

    def test_discovery_urls(self, tmp_path):
        root = tmp_path / "app"
        _write_manifest(root, {"basePort": 5001, "maxPorts": 2})
        assert load_config(root).dev_server.discovery_urls() == [
            "http://localhost:5001/api/inngest",
            "http://localhost:5002/api/inngest",
        ]


class TestFindProjectRoot:
    def test_walks_up_to_manifest(self, project_root):
        nested = project_root / "apps" / "web" / "src"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == project_root

    def test_not_found(self, tmp_path):
        lonely = tmp_path / "a" / "b"
        lonely.mkdir(parents=True)
        with pytest.raises(ProjectRootNotFoundError):
            # Depth bound keeps the walk from reaching a stray manifest higher up.
            find_project_root(_deep_dir(lonely, 12))


def _deep_dir(base: Path, depth: int) -> Path:
    current = base
    for i in range(depth):
        current = current / f"d{i}"
    current.mkdir(parents=True)
    return current


class TestHelpers:
    def test_normalize_keys(self):
        assert normalize_keys({"basePort": 1, "timings": {"maxKillAttempts": 2}}) == {
            "base_port": 1,
            "timings": {"max_kill_attempts": 2},
        }

    def test_deep_merge_replaces_lists(self):
        merged = deep_merge({"a": {"x": 1, "y": [1, 2]}}, {"a": {"y": [3]}})
        assert merged == {"a": {"x": 1, "y": [3]}}

    def test_state_dir_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WTDEV_STATE_DIR", str(tmp_path / "custom"))
        assert state_dir() == tmp_path / "custom"

    def test_state_dir_default_is_temp(self, monkeypatch):
        import tempfile

        monkeypatch.delenv("WTDEV_STATE_DIR")
        assert state_dir() == Path(tempfile.gettempdir())
