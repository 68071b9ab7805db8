"""Common CLI argument registration utilities."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence

from wtdev.core.config import WtDevConfig, find_project_root, load_config


def add_json_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output as JSON",
    )


def add_repo_root_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--repo-root",
        type=str,
        help="Override project root path (default: walk up from the current directory)",
    )


def add_verbose_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )


def add_standard_flags(parser: argparse.ArgumentParser) -> None:
    """Adds: --json, --repo-root, --verbose"""
    add_json_flag(parser)
    add_repo_root_flag(parser)
    add_verbose_flag(parser)


def add_action_flags(
    parser: argparse.ArgumentParser,
    actions: Sequence[tuple[str, str]],
) -> None:
    """Register mutually exclusive ``--<action>`` flags stored in ``args.action``.

    Args:
        parser: ArgumentParser to add the flags to
        actions: ``(name, help)`` pairs; ``name`` becomes ``--name``
    """
    group = parser.add_mutually_exclusive_group()
    for name, help_text in actions:
        group.add_argument(
            f"--{name}",
            dest="action",
            action="store_const",
            const=name,
            help=help_text,
        )


def get_project_root(args: argparse.Namespace) -> Path:
    """Project root from ``--repo-root`` or auto-detected from the cwd."""
    raw: Optional[str] = getattr(args, "repo_root", None)
    if raw:
        return Path(raw).expanduser().resolve()
    return find_project_root()


def get_config(args: argparse.Namespace) -> WtDevConfig:
    return load_config(get_project_root(args))


__all__ = [
    "add_action_flags",
    "add_json_flag",
    "add_repo_root_flag",
    "add_standard_flags",
    "add_verbose_flag",
    "get_config",
    "get_project_root",
]
