"""
wtdev inngest command.

SUMMARY: Manage the system-wide Inngest dev server shared by all worktrees
"""

from __future__ import annotations

import argparse
import sys

from wtdev.cli import OutputFormatter, add_action_flags, add_standard_flags, get_config
from wtdev.core.exceptions import WtDevError
from wtdev.core.inngest import EnsureOutcome, EnsureResult, InngestManager, StopResult

SUMMARY = "Manage the system-wide Inngest dev server shared by all worktrees"


def register_args(parser: argparse.ArgumentParser) -> None:
    add_action_flags(
        parser,
        [
            ("status", "Show whether the shared server is running"),
            ("stop", "Stop the shared server and any orphan on its port"),
            ("restart", "Stop, then start the shared server"),
            ("ensure", "Start the shared server only if it is not running (idempotent)"),
            ("logs", "Follow inngest.log"),
        ],
    )
    add_standard_flags(parser)


def _report_ensure(manager: InngestManager, result: EnsureResult, formatter: OutputFormatter, *, hints: bool) -> None:
    if formatter.json_mode:
        formatter.json_output(result.to_dict())
        return
    prefix = "⚠" if result.outcome is EnsureOutcome.STARTED_UNHEALTHY else "✓"
    if result.outcome is EnsureOutcome.CONTENDED:
        formatter.text(result.message)
        return
    if result.cleaned_stale_pid is not None:
        formatter.text("Cleaned up stale Inngest PID file")
    formatter.text(f"{prefix} {result.message}")
    formatter.text_kv("UI", manager.ui_url)
    if result.spawned:
        formatter.text_kv("Watching", ", ".join(str(p) for p in manager.dev.ports))
        formatter.text_kv("Log file", manager.log_file)
        formatter.text_kv("View logs", "wtdev inngest --logs")
    elif hints:
        formatter.text_kv("To restart", "wtdev inngest --restart")
        formatter.text_kv("To stop   ", "wtdev inngest --stop")


def _report_stop(result: StopResult, formatter: OutputFormatter) -> None:
    if formatter.json_mode:
        formatter.json_output(result.to_dict())
        return
    formatter.text("Stopping Inngest dev server...")
    for pid in result.killed:
        formatter.text(f"  Killed process {pid}")
    if result.port_still_in_use:
        formatter.text(f"⚠ Port {result.port} may still be in use. Check manually.")
    elif result.stopped_any:
        formatter.text("✓ Inngest dev server stopped")
    else:
        formatter.text("Inngest dev server is not running")


def _status(manager: InngestManager, formatter: OutputFormatter) -> int:
    status = manager.get_status()
    if formatter.json_mode:
        formatter.json_output(status.to_dict())
        return 0
    formatter.text(status.message)
    if status.running:
        formatter.text_kv("Port", status.port)
        formatter.text_kv("UI", manager.ui_url)
        formatter.text_kv("Log file", status.log_file)
        formatter.text_kv("View logs", "wtdev inngest --logs")
    return 0


def _logs(manager: InngestManager, formatter: OutputFormatter) -> int:
    if not manager.log_file.exists():
        formatter.text("No log file found")
        formatter.text("Start the server with: wtdev inngest")
        return 0
    formatter.text(f"Showing last 50 lines of {manager.log_file}")
    formatter.text("(Press Ctrl+C to exit)")
    formatter.text("─" * 80)
    return manager.logs() or 0


def main(args: argparse.Namespace) -> int:
    formatter = OutputFormatter(json_mode=bool(getattr(args, "json", False)))
    action = getattr(args, "action", None) or "start"
    try:
        manager = InngestManager(get_config(args))
        if action == "status":
            return _status(manager, formatter)
        if action == "logs":
            return _logs(manager, formatter)
        if action == "stop":
            _report_stop(manager.stop(), formatter)
            return 0
        if action == "restart":
            formatter.text("Restarting Inngest dev server...")
            stopped, started = manager.restart()
            if formatter.json_mode:
                formatter.json_output({"stop": stopped.to_dict(), "start": started.to_dict()})
                return 0
            _report_stop(stopped, formatter)
            _report_ensure(manager, started, formatter, hints=False)
            return 0
        if action == "ensure":
            _report_ensure(manager, manager.ensure(), formatter, hints=False)
            return 0
        _report_ensure(manager, manager.start(), formatter, hints=True)
        return 0
    except WtDevError as e:
        return formatter.failure(e)


if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    register_args(parser)
    sys.exit(main(parser.parse_args()))
