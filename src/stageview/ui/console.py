"""Console output formatting utilities for stageview."""

from __future__ import annotations

import sys
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_build(
        self,
        job_full_name: str,
        build_number: int,
        status: str,
        running: bool,
    ) -> None:
        """Print build identity line."""
        print(f"\nBUILD: {job_full_name} #{build_number}")
        print(f"Status: {status}{' (running)' if running else ''}")

    def print_stage(
        self,
        name: str,
        status: str,
        duration_millis: Optional[int] = None,
        approval_id: Optional[str] = None,
    ) -> None:
        """Print one stage row."""
        line = f"  {name}: {status}"
        if duration_millis is not None:
            line += f" ({duration_millis / 1000:.1f}s)"
        if approval_id:
            line += f" [input {approval_id}]"
        print(line)

    def print_input(
        self,
        approval_id: str,
        message: Optional[str],
        proceed_label: str,
        parameters: list[str],
    ) -> None:
        """Print a pending input with its parameter names."""
        print(f"\nINPUT PENDING: {approval_id}")
        if message:
            print(f"Message: {message}")
        print(f"Proceed: {proceed_label}")
        if parameters:
            print(f"Parameters: {', '.join(parameters)}")

    def print_log(self, stage_name: str, logs: str) -> None:
        """Print a stage log block."""
        print(f"\nLOG: {stage_name}")
        print("=" * 60)
        print(logs, end="" if logs.endswith("\n") else "\n")
        print("=" * 60)

    def print_outcome(self, action: str, approval_id: str, ok: bool) -> None:
        """Print result of a submit/abort call."""
        print(f"{action.upper()}: {approval_id} -> {'ok' if ok else 'rejected'}")

    def print_warning(self, message: str) -> None:
        """Print a degraded-but-continuing condition."""
        print(f"WARNING: {message}", file=sys.stderr)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exc()
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (replaced by the CLI / server at startup)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
