"""Console output formatting utilities for rulegraph."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Dict, List, Optional

if TYPE_CHECKING:
    from rulegraph.dag import Graph
    from rulegraph.model import Job


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

    def print_run_started(
        self,
        workflow: str,
        targets: List[str],
        job_count: int,
    ) -> None:
        """Print run start information."""
        print("\nBUILD STARTED")
        print(f"Workflow: {workflow}")
        print(f"Targets: {' '.join(targets)}")
        print(f"Jobs: {job_count}")
        print()

    def print_job_start(self, job: "Job", reason: Optional[str] = None) -> None:
        """Print job start message with the job's files."""
        print(f"\nJOB STARTED: {job.label}")
        if job.inputs:
            print(f"  input: {', '.join(job.inputs)}")
        if job.outputs:
            print(f"  output: {', '.join(job.outputs)}")
        if reason:
            print(f"  reason: {reason}")

    def print_command(self, cmd: str) -> None:
        """Print the shell command about to run."""
        print(f"  $ {cmd}")

    def print_message(self, message: str) -> None:
        """Print a rule's own message."""
        print(f"  {message}")

    def print_success(self, name: str) -> None:
        """Print success message."""
        print(f"STATUS: success ({name})")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Job label
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
        """
        print(f"JOB FAILED: {name}")
        if exit_code is not None:
            print(f"Exit code: {exit_code}")
        if hint:
            print(f"Hint: {hint}")
        if self.debug:
            print(f"Error details: {reason}")
        else:
            # Show first line of error for non-debug mode
            error_line = reason.split('\n')[0] if reason else "Unknown error"
            print(f"Error: {error_line}")

    def print_job_up_to_date(self, name: str) -> None:
        """Print a job that did not need to run."""
        if self.debug:
            print(f"[DEBUG] up to date: {name}", file=sys.stderr)

    def print_plan(self, graph: "Graph", plan: Dict[str, Optional[str]]) -> None:
        """Print the job graph in execution order (dry run)."""
        self.print_header("JOB PLAN")
        for job in graph.topological_order():
            reason = plan.get(job.key)
            state = f"run: {reason}" if reason else "up to date"
            print(f"  {job.label} ({state})")
            for path in job.inputs:
                print(f"      <- {path}")
            for path in job.outputs:
                print(f"      -> {path}")
            if job.params:
                for name, value in job.params.items():
                    print(f"      {name} = {value!r}")
        if graph.sources:
            self.print_header("SOURCES")
            for path in graph.sources:
                print(f"  {path}")
        pending = sum(1 for r in plan.values() if r)
        print(f"\n{pending} of {len(graph)} job(s) would run")

    def print_rules(self, rows: List[tuple[str, List[str]]]) -> None:
        """Print rule names with their output templates."""
        for name, outputs in rows:
            print(name)
            for tpl in outputs:
                print(f"  {tpl}")

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for job, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            print(f"  {job}: {status_display}")

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
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
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
