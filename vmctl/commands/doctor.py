"""vmctl - Doctor command"""

import click
from rich.table import Table

from vmctl.base import HypervisorCommand
from vmctl.constants import MIN_DISK_GB
from vmctl.models.results import ValidationResult
from vmctl.services import HostValidator, SystemValidator


class DoctorCommand(HypervisorCommand):
    """Hypervisor host readiness check."""

    def __init__(self, disk_gb: int = MIN_DISK_GB, verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.disk_gb = disk_gb
        self.table = Table(title="Host Readiness Report", title_justify="left", padding=(0, 1))
        self.table.add_column("Check", style="cyan", no_wrap=True)
        self.table.add_column("Status")
        self.table.add_column("Details", style="dim")

    def collect(self) -> list[tuple[str, ValidationResult]]:
        """Run every check in deployment order."""
        checks = []

        if self.transport.test_connection():
            checks.append(("Transport", ValidationResult.ok()))
        else:
            checks.append(
                ("Transport", ValidationResult.invalid(f"Cannot run commands on {self.transport.host_info()}"))
            )
            return checks

        system = SystemValidator(self.hypervisor)
        connection = system.check_connection()
        checks.append(("Hypervisor", connection))
        if not connection.is_valid:
            return checks

        host = HostValidator(self.transport, self.settings)
        checks.extend(host.readiness(disk_gb=self.disk_gb))
        checks.append(("Network", system.check_network_available(self.settings.network)))
        return checks

    def add_row(self, name: str, result: ValidationResult) -> None:
        if not result.is_valid:
            self.table.add_row(f"❌ {name}", "[red]Failed[/red]", result.error)
        elif result.has_warnings:
            self.table.add_row(f"⚠️  {name}", "[yellow]Warning[/yellow]", "\n".join(result.warnings))
        else:
            self.table.add_row(f"✅ {name}", "[green]OK[/green]", "")

    def execute(self) -> None:
        """Execute doctor command."""
        self.show_header(
            title="Host Diagnostics",
            subtitle="Checking the hypervisor host without deploying",
            target=self.target_description(),
        )

        checks = self.collect()
        healthy = all(result.is_valid for _, result in checks)

        if self.json_output:
            self.output_json(
                {
                    "healthy": healthy,
                    "target": self.target_description(),
                    "checks": {name: result.to_dict() for name, result in checks},
                },
                exit_code=0 if healthy else 1,
            )
            return

        for name, result in checks:
            self.add_row(name, result)
        self.console.print(self.table)
        self.console.print()

        if healthy:
            self.print_success("Host is ready for deployments")
        else:
            self.print_error("Host is not ready. Review the failed checks above.")
            raise SystemExit(1)


@click.command()
@click.option("--disk", "disk_gb", default=MIN_DISK_GB, type=int, help="Disk size (GB) to check space for")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def doctor(disk_gb, verbose, json_output):
    """
    Host readiness check

    \b
    Checks:
    - Command transport and hypervisor connectivity
    - Image directories and required tools
    - Base image validity and free disk space
    - Virtual network state
    """
    cmd = DoctorCommand(disk_gb=disk_gb, verbose=verbose, json_output=json_output)
    cmd.run()
