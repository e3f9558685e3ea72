"""vmctl - Address command"""

import click
from rich.table import Table

from vmctl.base import HypervisorCommand


class AddressCommand(HypervisorCommand):
    """Guest IP addresses and VNC console of a running VM."""

    def __init__(self, name: str, json_output: bool = False):
        super().__init__(json_output=json_output)
        self.name = name

    def execute(self) -> None:
        addresses = self.address_service().lookup(self.name)

        if self.json_output:
            self.output_json(addresses.to_dict())
            return

        self.show_header(title=f"Address {self.name}", target=self.target_description())
        table = Table(padding=(0, 1), box=None)
        table.add_column("Interface", style="cyan")
        table.add_column("MAC", style="dim")
        table.add_column("Address")
        for interface in addresses.lookup.interfaces:
            for address in interface.addresses:
                table.add_row(interface.name, interface.hwaddr, f"{address.address}/{address.prefix}")
        self.console.print(table)

        primary = addresses.lookup.primary_ip
        if primary:
            self.print_success(f"Primary IP: {primary} (from {addresses.lookup.source})")
        if addresses.vnc_port is not None:
            self.print_dim(f"VNC console: port {addresses.vnc_port} (display {addresses.vnc_display})")


@click.command(name="address")
@click.argument("name")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def address(name, json_output):
    """
    Show IP addresses and VNC console of a running VM

    \b
    Examples:
      vmctl address alice-web1
      vmctl address alice-web1 --json

    \b
    Addresses come from DHCP leases, then the guest agent, then the
    host ARP table, whichever first reports one.
    """
    cmd = AddressCommand(name, json_output=json_output)
    cmd.run()
