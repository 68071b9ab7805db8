"""wtdev command-line interface."""
from __future__ import annotations

from ._args import (
    add_action_flags,
    add_json_flag,
    add_repo_root_flag,
    add_standard_flags,
    add_verbose_flag,
    get_config,
    get_project_root,
)
from ._output import OutputFormatter, error_code_for

__all__ = [
    "OutputFormatter",
    "add_action_flags",
    "add_json_flag",
    "add_repo_root_flag",
    "add_standard_flags",
    "add_verbose_flag",
    "error_code_for",
    "get_config",
    "get_project_root",
]
