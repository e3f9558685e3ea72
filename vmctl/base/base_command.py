"""
Base Command Class

Abstract base for all vmctl CLI commands.
Provides common functionality and structure.
"""

from abc import ABC, abstractmethod
from typing import Optional, Any, Dict
import json
from rich.console import Console
from vmctl.exceptions import VmctlError
from vmctl.ui_components import show_header
from vmctl.logger import OperationLogger


class BaseCommand(ABC):
    """
    Abstract base command class.

    Provides:
    - Logger initialization
    - Header display
    - Error handling
    - JSON output support
    """

    def __init__(self, verbose: bool = False, json_output: bool = False):
        self.verbose = verbose
        self.json_output = json_output
        self.console = Console()
        self.logger: Optional[OperationLogger] = None
        self.log_dir: Optional[str] = None

    def init_logger(self, subject: str, operation: str) -> Optional[OperationLogger]:
        """
        Initialize command logger (skip in JSON mode).

        Args:
            subject: What the command acts on (instance name, username, "host")
            operation: Command name

        Returns:
            OperationLogger instance or None if JSON mode
        """
        if self.json_output:
            return None
        self.logger = OperationLogger(
            subject, operation, verbose=self.verbose, log_dir=self.log_dir, output=self.console
        )
        return self.logger

    def output_json(self, data: Dict[str, Any], exit_code: int = 0) -> None:
        """
        Output data as JSON and exit.

        Args:
            data: Data to output as JSON
            exit_code: Exit code (0 for success, non-zero for error)
        """
        print(json.dumps(data, indent=2, default=str))
        if exit_code != 0:
            raise SystemExit(exit_code)

    def output_json_error(
        self, error: str, details: Optional[Dict[str, Any]] = None, exit_code: int = 1
    ) -> None:
        error_data: Dict[str, Any] = {"error": error}
        if details:
            error_data["details"] = details
        self.output_json(error_data, exit_code=exit_code)

    def show_header(
        self,
        title: str,
        subtitle: Optional[str] = None,
        target: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Show command header (skip in JSON or verbose mode)."""
        if not self.verbose and not self.json_output:
            show_header(
                title=title,
                subtitle=subtitle,
                target=target,
                details=details,
                console=self.console,
            )

    def print_success(self, message: str) -> None:
        """Print success message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[green]✓ {message}[/green]")

    def print_error(self, message: str) -> None:
        """Print error message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[red]✗ {message}[/red]")

    def print_warning(self, message: str) -> None:
        """Print warning message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[yellow]⚠ {message}[/yellow]")

    def print_dim(self, message: str) -> None:
        """Print dim message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[dim]{message}[/dim]")

    def confirm(self, question: str, default: bool = False) -> bool:
        """
        Ask for user confirmation.

        Args:
            question: Question to ask
            default: Default answer

        Returns:
            True if confirmed
        """
        default_str = "y" if default else "n"
        self.console.print(
            f"{question} [bold bright_white]\\[y/n][/bold bright_white] [dim]({default_str})[/dim]: ",
            end="",
        )
        answer = input().strip().lower()

        if not answer:
            return default

        return answer in ["y", "yes"]

    def exit_with_error(self, message: str, code: int = 1) -> None:
        if self.json_output:
            self.output_json_error(message, exit_code=code)
        self.print_error(message)
        raise SystemExit(code)

    def _logs_hint(self) -> None:
        if self.logger:
            self.console.print(f"[dim]Logs saved to:[/dim] {self.logger.log_path}\n")

    @abstractmethod
    def execute(self, **kwargs) -> None:
        """
        Execute command logic.

        Must be implemented by subclasses.
        """
        pass

    def run(self, **kwargs) -> None:
        """
        Run command with error handling.

        Args:
            **kwargs: Command arguments
        """
        try:
            self.execute(**kwargs)
        except KeyboardInterrupt:
            self.console.print("\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            self._logs_hint()
            raise SystemExit(130)
        except SystemExit:
            raise
        except VmctlError as e:
            if self.json_output:
                details = {"error_kind": e.kind.value}
                if e.context:
                    details["context"] = e.context
                self.output_json_error(e.message, details=details)
            if self.logger:
                self.logger.log_error(e.message, context=e.context)
            else:
                self.console.print(f"\n[bold red]✗ {e.message}[/bold red]")
                if e.context:
                    self.console.print(f"[dim]{e.context}[/dim]")
            self._logs_hint()
            raise SystemExit(1)
        except PermissionError as e:
            self.console.print(f"\n[bold red]✗ Permission denied:[/bold red] {e}\n")
            self.console.print("[dim]Try running with appropriate permissions[/dim]\n")
            if self.logger:
                self.logger.log_error(f"Permission error: {e}")
            self._logs_hint()
            raise SystemExit(1)
        finally:
            if self.logger:
                self.logger.close()
