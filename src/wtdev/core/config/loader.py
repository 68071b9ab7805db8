"""
wtdev configuration loading (bundled YAML defaults + project manifest overlays).

Configuration sources (highest to lowest priority):
1. Project config: <project-root>/.wtdev.yaml (or .wtdev.yml), key ``dev_server``
2. Project manifest: <project-root>/package.json, key ``devServer``
3. Bundled defaults: wtdev.data/config/defaults.yaml

Keys may be written camelCase (``basePort``) or snake_case (``base_port``).
The merged ``dev_server`` mapping is validated against the bundled JSON schema.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator

from wtdev.core.exceptions import ConfigError, ProjectRootNotFoundError
from wtdev.data import read_json, read_yaml

from .models import DevServerConfig, Timings, WtDevConfig, generate_port_pool

# Module logger (warnings are user-visible via CLI log config).
logger = logging.getLogger(__name__)

MAX_ROOT_SEARCH_DEPTH = 10
PROJECT_CONFIG_FILENAMES = (".wtdev.yaml", ".wtdev.yml")
MANIFEST_FILENAME = "package.json"
STATE_DIR_ENV = "WTDEV_STATE_DIR"

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _is_project_root(directory: Path) -> bool:
    if (directory / MANIFEST_FILENAME).is_file():
        return True
    return any((directory / name).is_file() for name in PROJECT_CONFIG_FILENAMES)


def find_project_root(start_dir: Optional[Path | str] = None) -> Path:
    """Find the project root by walking up from ``start_dir``.

    A project root holds a ``package.json`` or a ``.wtdev.yaml``. The walk is
    bounded by ``MAX_ROOT_SEARCH_DEPTH`` and stops on a symlink cycle.

    Raises:
        ProjectRootNotFoundError: If no project root is found within the bound.
    """
    start = Path(start_dir) if start_dir is not None else Path.cwd()
    current = start.absolute()
    depth = 0
    visited: set[str] = set()

    while current != current.parent and depth < MAX_ROOT_SEARCH_DEPTH:
        try:
            real = os.path.realpath(current)
        except OSError:
            current = current.parent
            depth += 1
            continue

        if real in visited:
            break
        visited.add(real)

        if _is_project_root(current):
            return current

        current = current.parent
        depth += 1

    raise ProjectRootNotFoundError(
        f"Could not find project root ({MANIFEST_FILENAME} or {PROJECT_CONFIG_FILENAMES[0]}). "
        f"Searched {depth} directories from {start}.",
        context={"start_dir": str(start), "depth": depth},
    )


def _snake_key(key: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", str(key)).lower()


def normalize_keys(raw: Any) -> Any:
    """Recursively convert camelCase mapping keys to snake_case."""
    if isinstance(raw, dict):
        return {_snake_key(k): normalize_keys(v) for k, v in raw.items()}
    if isinstance(raw, list):
        return [normalize_keys(v) for v in raw]
    return raw


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``. Lists are replaced."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _read_manifest_section(project_root: Path) -> Dict[str, Any]:
    path = project_root / MANIFEST_FILENAME
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read devServer config from %s: %s", path, exc)
        logger.warning("Using default configuration for %s", MANIFEST_FILENAME)
        return {}
    section = data.get("devServer") if isinstance(data, dict) else None
    if section is None:
        return {}
    if not isinstance(section, dict):
        logger.warning("Ignoring non-object devServer field in %s", path)
        return {}
    return normalize_keys(section)


def _read_project_config_section(project_root: Path) -> Dict[str, Any]:
    for name in PROJECT_CONFIG_FILENAMES:
        path = project_root / name
        if not path.exists():
            continue
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return {}
        section = data.get("dev_server", data.get("devServer")) if isinstance(data, dict) else None
        if section is None:
            return {}
        if not isinstance(section, dict):
            logger.warning("Ignoring non-mapping dev_server section in %s", path)
            return {}
        return normalize_keys(section)
    return {}


def validate_dev_server_section(section: Dict[str, Any]) -> None:
    """Validate a merged ``dev_server`` mapping against the bundled schema.

    Unknown top-level keys are ignored with a warning.

    Raises:
        ConfigError: Listing every schema violation found.
    """
    schema = read_json("schemas", "dev_server.schema.json")
    unknown = sorted(set(section) - set(schema["properties"]))
    if unknown:
        logger.warning("Ignoring unknown devServer key(s): %s", ", ".join(unknown))
    validator = Draft202012Validator(schema)
    errors: List[str] = []
    for error in sorted(validator.iter_errors(section), key=lambda e: str(list(e.path))):
        if error.path:
            path_str = ".".join(str(p) for p in error.path)
            errors.append(f"dev_server.{path_str}: {error.message}")
        else:
            errors.append(f"dev_server: {error.message}")
    if errors:
        raise ConfigError(
            "Invalid devServer configuration:\n  " + "\n  ".join(errors),
            context={"errors": errors},
        )


def build_dev_server_config(section: Dict[str, Any]) -> DevServerConfig:
    """Turn a validated ``dev_server`` mapping into a :class:`DevServerConfig`."""
    explicit = section.get("ports")
    if explicit:
        ports = tuple(int(p) for p in explicit)
    else:
        base_port = int(section["base_port"])
        max_ports = int(section["max_ports"])
        ports = generate_port_pool(base_port, max_ports)
        if ports[-1] > 65535:
            raise ConfigError(
                f"Port pool {base_port}..{ports[-1]} exceeds 65535; lower basePort or maxPorts",
                context={"base_port": base_port, "max_ports": max_ports},
            )

    inngest_command = section.get("inngest_command")
    return DevServerConfig(
        ports=ports,
        inngest_port=int(section["inngest_port"]),
        port_policy=section.get("port_policy", "hash"),
        dev_command=tuple(section["dev_command"]),
        inngest_command=tuple(inngest_command) if inngest_command else None,
        discovery_path=str(section.get("discovery_path", "/api/inngest")),
        timings=Timings.from_raw(section.get("timings")),
    )


def load_config(project_root: Optional[Path | str] = None) -> WtDevConfig:
    """Load configuration for ``project_root`` (auto-detected when omitted)."""
    root = Path(project_root) if project_root is not None else find_project_root()
    root = root.resolve()

    defaults = read_yaml("config", "defaults.yaml").get("dev_server", {})
    merged = deep_merge(defaults, _read_manifest_section(root))
    merged = deep_merge(merged, _read_project_config_section(root))

    validate_dev_server_section(merged)
    return WtDevConfig(project_root=root, dev_server=build_dev_server_config(merged))


def state_dir() -> Path:
    """Directory holding the system-wide PID and lock files."""
    override = os.environ.get(STATE_DIR_ENV, "").strip()
    return Path(override).expanduser() if override else Path(tempfile.gettempdir())


__all__ = [
    "MAX_ROOT_SEARCH_DEPTH",
    "build_dev_server_config",
    "deep_merge",
    "find_project_root",
    "load_config",
    "normalize_keys",
    "state_dir",
    "validate_dev_server_section",
]
