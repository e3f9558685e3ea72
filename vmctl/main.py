#!/usr/bin/env python3
"""vmctl - Main entry point"""

import functools
import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler

import rich_click as click
from click.exceptions import ClickException, UsageError

# Configure rich-click
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100

click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"
click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"
click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_HELPTEXT = ""
click.rich_click.STYLE_METAVAR = "bold yellow"
click.rich_click.STYLE_REQUIRED_SHORT = "bold red"
click.rich_click.STYLE_REQUIRED_LONG = "bold red"
click.rich_click.STYLE_OPTION_DEFAULT = "dim cyan"
click.rich_click.STYLE_EPILOG_TEXT = "dim"
click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"
click.rich_click.ALIGN_OPTIONS_PANEL = "left"
click.rich_click.ALIGN_ERRORS_PANEL = "left"
click.rich_click.ERRORS_EPILOGUE = ""

from vmctl import __version__
from vmctl.commands import address, clone, delete, deploy, doctor, stats
from vmctl.commands.quota import quota_check
from vmctl.commands.users import (
    users_create,
    users_delete,
    users_list,
    users_quota,
    users_show,
    users_update,
    users_usage,
)

console = Console()

BANNER = """
[bold cyan]╔═══════════════════════════════════════════════════════════╗[/bold cyan]
[bold cyan]║[/bold cyan]  [bold white]vmctl[/bold white] - VM lifecycle control for KVM/libvirt hosts      [bold cyan]║[/bold cyan]
[bold cyan]╚═══════════════════════════════════════════════════════════╝[/bold cyan]
"""


def handle_cli_errors(func):
    """Decorator to handle CLI errors gracefully."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UsageError as e:
            console.print(f"\n[bold red]✗ Error:[/bold red] {e.format_message()}\n")
            if e.ctx and e.ctx.command:
                console.print(
                    f"[dim]Run[/dim] [cyan]vmctl {e.ctx.command.name} --help[/cyan] [dim]for usage information[/dim]\n"
                )
            sys.exit(e.exit_code)
        except ClickException as e:
            e.show()
            sys.exit(e.exit_code)
        except KeyboardInterrupt:
            console.print("\n\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            sys.exit(130)
        except Exception as e:
            console.print(f"\n[bold red]✗ Unexpected error:[/bold red] {e}\n")
            console.print("[dim]If this persists, please report this issue.[/dim]\n")

            if os.environ.get("DEBUG") or os.environ.get("VERBOSE"):
                import traceback

                console.print("[dim]Traceback:[/dim]")
                traceback.print_exc()
            sys.exit(1)

    return wrapper


def configure_logging() -> None:
    """Service-level log records go to stderr only when DEBUG is set."""
    level = logging.DEBUG if os.environ.get("DEBUG") else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@click.group(cls=click.RichGroup, invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """
    vmctl - Provision, observe and decommission VMs on KVM/libvirt hosts.

    \b
    Quick Start:
      vmctl doctor                                  # Check the host
      vmctl users:create alice                      # Register a user
      vmctl deploy --owner alice --hostname web1 \\
        --memory 2048 --vcpus 2 --disk 20 \\
        --username ubuntu --ssh-key @~/.ssh/id_ed25519.pub
      vmctl stats alice-web1                        # CPU and memory
      vmctl address alice-web1                      # IP and VNC console
      vmctl clone alice-web1 alice-web2             # Copy a stopped VM
      vmctl delete alice-web1                       # Tear down

    \b
    Configuration:
      ~/.vmctl/config.yml, .env files and VMCTL_* environment variables
      (VMCTL_REMOTE, VMCTL_REMOTE_HOST, VMCTL_REMOTE_USER, VMCTL_SSH_KEY, ...)
    """
    if ctx.invoked_subcommand is None:
        console.print(BANNER)
        console.print("[yellow]Run 'vmctl --help' for usage[/yellow]\n")


# Register commands
cli.add_command(deploy.deploy)
cli.add_command(delete.delete)
cli.add_command(clone.clone)
cli.add_command(address.address)
cli.add_command(doctor.doctor)
cli.add_command(stats.stats)
cli.add_command(quota_check)
# Register users commands (with colons)
cli.add_command(users_create)
cli.add_command(users_list)
cli.add_command(users_show)
cli.add_command(users_update)
cli.add_command(users_quota)
cli.add_command(users_delete)
cli.add_command(users_usage)


@handle_cli_errors
def main():
    """Main entry point with error handling."""
    configure_logging()
    cli()


if __name__ == "__main__":
    main()
