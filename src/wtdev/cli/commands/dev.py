"""
wtdev dev command.

SUMMARY: Start, stop or inspect this worktree's dev server
"""

from __future__ import annotations

import argparse
import sys

from wtdev.cli import OutputFormatter, add_action_flags, add_standard_flags, get_config
from wtdev.core.dev_server import DevServerManager, StartOutcome
from wtdev.core.exceptions import WtDevError

SUMMARY = "Start, stop or inspect this worktree's dev server"


def register_args(parser: argparse.ArgumentParser) -> None:
    add_action_flags(
        parser,
        [
            ("status", "Show dev server status for this worktree"),
            ("stop", "Stop the dev server on this worktree's port"),
            ("force", "Kill whatever listens on the port, then start"),
            ("logs", "Follow dev-server.log"),
        ],
    )
    add_standard_flags(parser)


def _status(manager: DevServerManager, formatter: OutputFormatter) -> int:
    status = manager.status()
    wt = status.worktree
    if formatter.json_mode:
        formatter.json_output(status.to_dict())
        return 0

    formatter.header("Dev Server Status Check")
    formatter.text("Worktree Configuration:")
    formatter.text_kv("Port    ", wt.port)
    formatter.text_kv("Base URL", wt.base_url)
    formatter.text_kv("Protocol", wt.protocol)
    formatter.text()

    if status.running:
        formatter.text(f"✓ Dev server IS RUNNING on port {wt.port}")
        formatter.text()
        formatter.text(f"  Access at: {wt.base_url}")
        formatter.text()
        if status.responds_ok:
            formatter.text(f"✓ Server responds successfully (HTTP {status.http_status})")
        elif not status.http_status:
            formatter.text("⚠ Server detected but connection failed")
            formatter.text("  This may be normal if server is still starting up")
        else:
            formatter.text(f"⚠ Server responded with HTTP {status.http_status}")
    else:
        formatter.text(f"✗ Dev server is NOT RUNNING on port {wt.port}")
        formatter.text()
        formatter.text("To start the dev server:")
        formatter.text("  wtdev dev")
        formatter.text()
        formatter.text("Note: Each worktree needs its own dev server")
    formatter.footer()
    return 0


def _stop(manager: DevServerManager, formatter: OutputFormatter) -> int:
    formatter.header("Stopping Dev Server")
    result = manager.stop()
    if formatter.json_mode:
        formatter.success(
            {"port": result.port, "was_running": result.was_running, "stopped": result.success},
            "",
            status="success" if result.success else "failed",
        )
        return 0 if result.success else 1

    if not result.was_running:
        formatter.text(f"⚠ Dev server is not running on port {result.port}")
    elif result.success:
        formatter.text("✓ Dev server stopped")
    else:
        formatter.text("✗ Failed to stop dev server")
        formatter.text(f"  Try manually: {result.hint}")
    formatter.footer()
    return 0 if result.success else 1


def _start(manager: DevServerManager, formatter: OutputFormatter, *, force: bool) -> int:
    wt = manager.worktree_config()
    formatter.header("Dev Server")
    formatter.text(f"Worktree port: {wt.port}")
    formatter.text(f"Base URL:      {wt.base_url}")
    formatter.text()

    result = manager.start(force=force, notify=formatter.text)

    if result.outcome is StartOutcome.ALREADY_RUNNING:
        formatter.text(f"⚠ Dev server is already running on port {wt.port}")
        formatter.text()
        formatter.text("Options:")
        formatter.text(f"  1. Access existing server: {wt.base_url}")
        formatter.text("  2. Check status:            wtdev dev --status")
        formatter.text("  3. Force restart:           wtdev dev --force")
        formatter.text("  4. Stop server:             wtdev dev --stop")
        formatter.text()
        formatter.text("Note: Only one dev server should run per worktree")
        formatter.footer()
        return 0

    if result.outcome is StartOutcome.KILL_FAILED:
        formatter.text("✗ Failed to stop existing server")
        return 1

    if result.exit_code != 0:
        formatter.text(f"✗ Dev server exited with code {result.exit_code}")
    return result.exit_code


def _logs(manager: DevServerManager, formatter: OutputFormatter) -> int:
    if not manager.log_file.exists():
        formatter.text("No log file found")
        formatter.text("Start the server with: wtdev dev")
        return 0
    formatter.text(f"Showing last 50 lines of {manager.log_file}")
    formatter.text("(Press Ctrl+C to exit)")
    formatter.text("─" * 80)
    return manager.logs() or 0


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=bool(getattr(args, "json", False)))
    action = getattr(args, "action", None) or "start"
    try:
        manager = DevServerManager(get_config(args))
        if action == "status":
            return _status(manager, formatter)
        if action == "stop":
            return _stop(manager, formatter)
        if action == "logs":
            return _logs(manager, formatter)
        return _start(manager, formatter, force=action == "force")
    except WtDevError as e:
        return formatter.failure(e)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
