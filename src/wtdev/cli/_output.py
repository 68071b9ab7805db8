"""Unified CLI output formatting utilities.

Supports both JSON and text output modes for every wtdev command.
"""
from __future__ import annotations

import json
import re
import sys
from typing import Any, Dict, Optional

from wtdev.core.exceptions import PortExhaustedError

BANNER = "━" * 59


class OutputFormatter:
    """Unified output formatter for CLI commands."""

    def __init__(self, json_mode: bool = False, indent: int = 2):
        self.json_mode = json_mode
        self.indent = indent

    def success(
        self,
        data: Dict[str, Any],
        message: str,
        *,
        status: str = "success",
    ) -> None:
        """Output success result.

        Args:
            data: Result data dictionary
            message: Human-readable success message (used in text mode)
            status: Status string for JSON output
        """
        if self.json_mode:
            output = {"status": status, **data}
            print(json.dumps(output, indent=self.indent, default=str))
        else:
            print(message)

    def error(
        self,
        error: Exception,
        message: Optional[str] = None,
        *,
        error_code: str = "error",
    ) -> None:
        """Output error result to stderr."""
        msg = message or str(error)
        if self.json_mode:
            output: Dict[str, Any] = {"error": error_code, "message": msg}
            to_json = getattr(error, "to_json_error", None)
            if callable(to_json):
                output["context"] = to_json().get("context", {})
            print(json.dumps(output, indent=self.indent, default=str), file=sys.stderr)
        else:
            print(f"Error: {msg}", file=sys.stderr)

    def failure(self, error: Exception) -> int:
        """Report a wtdev error and return exit code 1.

        Pool exhaustion carries its own banner and remedy, so it is printed
        as-is in text mode.
        """
        if isinstance(error, PortExhaustedError) and not self.json_mode:
            print(str(error), file=sys.stderr)
        else:
            self.error(error, error_code=error_code_for(error))
        return 1

    def json_output(self, data: Any) -> None:
        print(json.dumps(data, indent=self.indent, default=str))

    def text(self, message: str = "") -> None:
        """Output a plain text line (suppressed in JSON mode)."""
        if not self.json_mode:
            print(message)

    def text_kv(self, key: str, value: Any, prefix: str = "  ") -> None:
        """Output key-value pair in text mode."""
        if not self.json_mode:
            print(f"{prefix}{key}: {value}")

    def header(self, title: str) -> None:
        if not self.json_mode:
            print("")
            print(BANNER)
            print(title)
            print(BANNER)
            print("")

    def footer(self) -> None:
        if not self.json_mode:
            print("")
            print(BANNER)
            print("")


def error_code_for(error: Exception) -> str:
    """``PortExhaustedError`` -> ``port_exhausted``."""
    name = type(error).__name__
    if name.endswith("Error") and name != "Error":
        name = name[: -len("Error")]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower() or "error"


__all__ = ["BANNER", "OutputFormatter", "error_code_for"]
