"""vmctl - Delete command"""

import click

from vmctl.base import HypervisorCommand


class DeleteCommand(HypervisorCommand):
    """Stop, undefine and reclaim a VM."""

    def __init__(
        self,
        name: str,
        keep_disks: bool = False,
        yes: bool = False,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.name = name
        self.keep_disks = keep_disks
        self.yes = yes

    def execute(self) -> None:
        """Execute delete command."""
        service = self.teardown_service()

        self.show_header(
            title="Delete VM",
            target=self.target_description(),
            details={
                "Instance": self.name,
                "Disk files": "kept" if self.keep_disks else "deleted",
            },
        )

        if not self.yes and not self.json_output:
            if not self.confirm(f"Delete VM '{self.name}'?"):
                self.print_dim("Aborted")
                return

        logger = self.init_logger(self.name, "delete")
        result = service.delete(self.name, remove_disks=not self.keep_disks, reporter=logger)

        if self.json_output:
            self.output_json(result.to_dict(), exit_code=0 if result.success else 1)
            return

        self.console.print()
        for warning in result.warnings:
            self.print_warning(warning)
        if result.success:
            self.print_success(f"VM '{self.name}' deleted")
            deleted = result.details.get("deleted_disks", [])
            if deleted:
                self.print_dim(f"Reclaimed: {', '.join(deleted)}")
        else:
            self.print_error(f"Delete failed at '{result.failed_step}' ({result.error_kind.value})")

        if logger and not self.verbose:
            self.console.print(f"\n[dim]Logs saved to:[/dim] {logger.log_path}\n")
        if not result.success:
            raise SystemExit(1)


@click.command(name="delete")
@click.argument("name")
@click.option("--keep-disks", is_flag=True, help="Leave disk files on the host")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def delete(name, keep_disks, yes, verbose, json_output):
    """
    Delete a VM

    \b
    Examples:
      vmctl delete alice-web1             # Stop, undefine, delete disks
      vmctl delete alice-web1 --keep-disks -y

    \b
    Graceful shutdown is attempted first; the VM is force-stopped
    once the shutdown timeout expires. Snapshot and disk-file cleanup
    failures are reported as warnings.
    """
    cmd = DeleteCommand(name, keep_disks=keep_disks, yes=yes, verbose=verbose, json_output=json_output)
    cmd.run()
