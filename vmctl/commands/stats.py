"""vmctl - Stats command"""

import time

import click
from rich.table import Table

from vmctl.base import HypervisorCommand
from vmctl.ui_components import usage_bar


class StatsCommand(HypervisorCommand):
    """Point-in-time CPU and memory figures for one VM."""

    def __init__(self, name: str, interval: float = 1.0, verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.name = name
        self.interval = interval

    def execute(self) -> None:
        service = self.stats_service()

        # The first reading only primes the sampler
        service.read(self.name)
        time.sleep(self.interval)
        stats = service.read(self.name)

        if self.json_output:
            self.output_json(stats.to_dict())
            return

        self.show_header(title=f"Stats {self.name}", target=self.target_description())
        table = Table(show_header=False, padding=(0, 1), box=None)
        table.add_column("Metric", style="cyan")
        table.add_column("Value")
        table.add_row("State", stats.state)
        table.add_row("CPU", f"{usage_bar(stats.cpu_percent)} of {stats.vcpus} vCPU")
        table.add_row("Memory", f"{stats.memory_mb} MB (max {stats.max_memory_mb} MB)")
        self.console.print(table)


@click.command(name="stats")
@click.argument("name")
@click.option("--interval", "-i", default=1.0, type=click.FloatRange(min=0.1), help="Seconds between CPU samples")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def stats(name, interval, json_output):
    """
    Show CPU and memory usage of a VM

    \b
    Examples:
      vmctl stats alice-web1
      vmctl stats alice-web1 --interval 5 --json
    """
    cmd = StatsCommand(name, interval=interval, json_output=json_output)
    cmd.run()
