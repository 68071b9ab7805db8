"""
wtdev port command.

SUMMARY: Print the port assigned to this worktree
"""

from __future__ import annotations

import argparse
import sys

from wtdev.cli import OutputFormatter, add_action_flags, add_standard_flags, get_config
from wtdev.core.exceptions import WtDevError
from wtdev.core.ports import PortAllocator, available_port, get_worktree_config, port_from_file

SUMMARY = "Print the port assigned to this worktree"


def register_args(parser: argparse.ArgumentParser) -> None:
    add_action_flags(
        parser,
        [
            ("available", "Port to start on: PORT override, free cached port, else computed (updates .dev-port)"),
            ("from-file", "Cached .dev-port value, else the computed port (no OS probing)"),
            ("config", "Full worktree configuration (port, URLs, Inngest port)"),
        ],
    )
    add_standard_flags(parser)


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=bool(getattr(args, "json", False)))
    action = getattr(args, "action", None)
    try:
        config = get_config(args)
        if action == "config":
            wt = get_worktree_config(config)
            if formatter.json_mode:
                formatter.json_output(wt.to_dict())
            else:
                formatter.text_kv("Port", wt.port, prefix="")
                formatter.text_kv("Protocol", wt.protocol, prefix="")
                formatter.text_kv("Base URL", wt.base_url, prefix="")
                formatter.text_kv("Inngest port", wt.inngest_port, prefix="")
                formatter.text_kv("Inngest URL", wt.inngest_url, prefix="")
            return 0

        if action == "available":
            port = available_port(config)
        elif action == "from-file":
            port = port_from_file(config)
        else:
            port = PortAllocator.from_config(config.dev_server).assign(config.project_root)

        formatter.success({"port": port}, str(port))
        return 0
    except WtDevError as e:
        return formatter.failure(e)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
