"""Configuration for wtdev (bundled defaults + package.json + .wtdev.yaml)."""
from __future__ import annotations

from .loader import (
    MAX_ROOT_SEARCH_DEPTH,
    build_dev_server_config,
    deep_merge,
    find_project_root,
    load_config,
    normalize_keys,
    state_dir,
    validate_dev_server_section,
)
from .models import (
    DEFAULT_BASE_PORT,
    DEFAULT_INNGEST_PORT,
    DEFAULT_MAX_PORTS,
    DevServerConfig,
    PortPolicy,
    Timings,
    WtDevConfig,
    dev_server_log_path,
    generate_port_pool,
    inngest_log_path,
)

__all__ = [
    "DEFAULT_BASE_PORT",
    "DEFAULT_INNGEST_PORT",
    "DEFAULT_MAX_PORTS",
    "DevServerConfig",
    "MAX_ROOT_SEARCH_DEPTH",
    "PortPolicy",
    "Timings",
    "WtDevConfig",
    "build_dev_server_config",
    "deep_merge",
    "dev_server_log_path",
    "find_project_root",
    "generate_port_pool",
    "inngest_log_path",
    "load_config",
    "normalize_keys",
    "state_dir",
    "validate_dev_server_section",
]
