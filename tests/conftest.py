import json
import shutil
import sys
from dataclasses import replace
from pathlib import Path

import pytest

# Keep the repository free of Python bytecode and __pycache__ artifacts during tests.
sys.dont_write_bytecode = True

TESTS_ROOT = Path(__file__).resolve().parent
REPO_ROOT = TESTS_ROOT.parent
SRC_ROOT = REPO_ROOT / "src"

# Make src/ importable as 'wtdev' and tests/ importable as 'helpers'
for p in (SRC_ROOT, TESTS_ROOT):
    if str(p) not in sys.path:
        sys.path.insert(0, str(p))


from wtdev.core.config import DevServerConfig, WtDevConfig, generate_port_pool
from wtdev.cli._logging import reset_cli_logging
from wtdev.core.git import clear_worktree_cache
from helpers.fakes import ZERO_TIMINGS

_WTDEV_ENV_KEYS = [
    "PORT",
    "DEV_PORT",
    "USE_HTTPS_LOCALHOST",
    "WTDEV_STATE_DIR",
    "WTDEV_LOG_LEVEL",
    "WTDEV_LOG_FILE",
]


def pytest_configure(config):  # type: ignore[no-untyped-def]
    config.addinivalue_line("markers", "requires_git: test needs a git executable")
    config.addinivalue_line("markers", "slow: test spawns real processes or sockets")


def pytest_collection_modifyitems(config, items):  # type: ignore[no-untyped-def]
    if shutil.which("git") is not None:
        return
    skip_git = pytest.mark.skip(reason="git not installed")
    for item in items:
        if "requires_git" in item.keywords:
            item.add_marker(skip_git)


@pytest.fixture(autouse=True)
def _isolate_wtdev_state(monkeypatch, tmp_path_factory):
    """Every test gets a clean env, its own state dir, an empty worktree cache
    and propagating wtdev loggers (so caplog sees them)."""
    for key in _WTDEV_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    state = tmp_path_factory.mktemp("_state")
    monkeypatch.setenv("WTDEV_STATE_DIR", str(state))
    clear_worktree_cache()
    reset_cli_logging()
    yield
    clear_worktree_cache()
    reset_cli_logging()


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """A minimal project directory with an empty devServer section."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "package.json").write_text(json.dumps({"name": "demo", "devServer": {}}), encoding="utf-8")
    return root


@pytest.fixture
def make_config(project_root: Path):
    """Factory for a WtDevConfig with zeroed wait intervals."""

    def _make(**overrides) -> WtDevConfig:
        ports = overrides.pop("ports", generate_port_pool(5001, 5))
        root = overrides.pop("root", project_root)
        dev = DevServerConfig(ports=tuple(ports), timings=ZERO_TIMINGS)
        if overrides:
            dev = replace(dev, **overrides)
        return WtDevConfig(project_root=Path(root), dev_server=dev)

    return _make
