"""
Logging system for vmctl
Writes one log file per operation with clean console output
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from rich.console import Console

from vmctl.constants import DEFAULT_LOG_DIR, LOG_DATE_FORMAT, LOG_TIME_FORMAT

console = Console()

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


class OperationLogger:
    """
    Manages logging for one vmctl operation
    - Writes every line to a log file in real-time
    - Shows clean progress UI in console (unless verbose)
    - Captures errors with context
    """

    def __init__(
        self,
        subject: str,
        operation: str,
        verbose: bool = False,
        log_dir: Optional[str] = None,
        output: Optional[Console] = None,
    ):
        """
        Initialize logger

        Args:
            subject: What the operation acts on (instance name, user, 'host')
            operation: Operation name (e.g., 'deploy', 'delete')
            verbose: If True, show all output in console
            log_dir: Root of the log tree (defaults to ~/.vmctl/logs)
            output: Console to render to
        """
        self.subject = subject
        self.operation = operation
        self.verbose = verbose
        self.console = output or console
        self.log_file: Optional[TextIO] = None
        self.current_step = ""
        self.has_errors = False

        # Structure: <log_dir>/{subject}/{date}/{time}_{operation}.log
        now = datetime.now()
        logs_dir = Path(log_dir or DEFAULT_LOG_DIR).expanduser() / subject / now.strftime(LOG_DATE_FORMAT)
        logs_dir.mkdir(parents=True, exist_ok=True)
        self.log_path = logs_dir / f"{now.strftime(LOG_TIME_FORMAT)}_{operation}.log"

        # Line-buffered for real-time tailing
        self.log_file = open(self.log_path, "w", buffering=1)
        self._write_log_header()

    def _write_log_header(self):
        header = f"""
{"=" * 80}
vmctl Operation Log
{"=" * 80}
Subject: {self.subject}
Operation: {self.operation}
Started: {datetime.now().isoformat()}
{"=" * 80}

"""
        self.log_file.write(header)
        self.log_file.flush()

    def log(self, message: str, level: str = "INFO"):
        """
        Log a message to file and optionally console

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        if self.log_file:
            self.log_file.write(f"[{timestamp}] [{level}] {ANSI_ESCAPE.sub('', message)}\n")
            self.log_file.flush()

        if self.verbose:
            if level == "ERROR":
                self.console.print(f"[red]{message}[/red]")
            elif level == "WARNING":
                self.console.print(f"[yellow]{message}[/yellow]")
            elif level == "DEBUG":
                self.console.print(f"[dim]{message}[/dim]")
            else:
                self.console.print(message)

    def log_output(self, output: str, stream: str = "stdout"):
        """Always written to the log file; shown in console only if verbose."""
        if not output or not self.log_file:
            return
        for line in ANSI_ESCAPE.sub("", output).splitlines():
            self.log_file.write(f"  [{stream}] {line}\n")
        self.log_file.flush()
        if self.verbose:
            self.console.print(output)

    def log_error(self, error: str, context: Optional[str] = None):
        """
        Log an error with context

        Args:
            error: Error message
            context: Additional context (e.g., captured command output)
        """
        self.has_errors = True

        error_block = f"""
{"!" * 80}
ERROR OCCURRED
{"!" * 80}
{error}
"""
        if context:
            error_block += f"\nContext: {context}\n"
        error_block += f"{'!' * 80}\n\n"

        if self.log_file:
            self.log_file.write(error_block)
            self.log_file.flush()

        if not self.verbose:
            self.console.print()
        self.console.print(f"[bold red]✗ {error}[/bold red]")
        if context:
            self.console.print(f"  [color(208)]{context}[/color(208)]")

    def step(self, step_name: str):
        """Start a new step"""
        if self.current_step and not self.verbose:
            self.console.print()

        self.current_step = step_name
        self.log(f"Step: {step_name}", "INFO")

        if not self.verbose:
            self.console.print(f"[color(214)]▶[/color(214)] [white]{step_name}[/white]")

    def success(self, message: str):
        self.log(message, "INFO")
        if not self.verbose:
            self.console.print(f"  [dim]✓ {message}[/dim]")

    def warning(self, message: str):
        self.log(message, "WARNING")
        if not self.verbose:
            self.console.print(f"  [yellow]⚠[/yellow] [dim]{message}[/dim]")

    def close(self):
        """Close log file"""
        if self.log_file:
            footer = f"""
{"=" * 80}
Completed: {datetime.now().isoformat()}
Status: {"FAILED" if self.has_errors else "SUCCESS"}
{"=" * 80}
"""
            self.log_file.write(footer)
            self.log_file.close()
            self.log_file = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, _exc_tb):
        if exc_type is not None and exc_type != SystemExit:
            # SystemExit is the normal CLI exit path
            self.log_error(
                str(exc_val) if exc_val else "Operation failed",
                context=f"{exc_type.__name__}",
            )
        self.close()
        return False
