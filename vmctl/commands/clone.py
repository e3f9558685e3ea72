"""vmctl - Clone command"""

import click

from vmctl.base import HypervisorCommand


class CloneCommand(HypervisorCommand):
    """Copy a stopped VM under a new name."""

    def __init__(
        self,
        source: str,
        name: str,
        start: bool = False,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.source = source
        self.name = name
        self.start = start

    def execute(self) -> None:
        service = self.clone_service()

        self.show_header(
            title="Clone VM",
            target=self.target_description(),
            details={"Source": self.source, "Clone": self.name, "Start": "yes" if self.start else "no"},
        )
        logger = self.init_logger(self.name, "clone")

        result = service.clone(self.source, self.name, start=self.start, reporter=logger)

        if self.json_output:
            self.output_json(result.to_dict(), exit_code=0 if result.success else 1)
            return

        self.console.print()
        for warning in result.warnings:
            self.print_warning(warning)
        if result.success:
            self.print_success(f"VM '{self.source}' cloned to '{self.name}'")
            copied = result.details.get("copied_disks", [])
            if copied:
                self.print_dim(f"Disks: {', '.join(copied)}")
        else:
            self.print_error(f"Clone failed at '{result.failed_step}' ({result.error_kind.value})")

        if logger and not self.verbose:
            self.console.print(f"\n[dim]Logs saved to:[/dim] {logger.log_path}\n")
        if not result.success:
            raise SystemExit(1)


@click.command(name="clone")
@click.argument("source")
@click.argument("name")
@click.option("--start", is_flag=True, help="Start the clone once defined")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def clone(source, name, start, verbose, json_output):
    """
    Clone a stopped VM

    \b
    Examples:
      vmctl clone alice-web1 alice-web2
      vmctl clone alice-web1 bob-web1 --start

    \b
    The clone name follows <owner>-<hostname> and counts toward that
    owner's quota. Disk files owned by the source are copied; shared
    install media stay attached to both VMs.
    """
    cmd = CloneCommand(source, name, start=start, verbose=verbose, json_output=json_output)
    cmd.run()
