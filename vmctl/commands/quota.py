"""vmctl - Quota check command"""

import click

from vmctl.base import HypervisorCommand


class QuotaCheckCommand(HypervisorCommand):
    """Would one more instance of this size fit the user's quota?"""

    def __init__(self, owner: str, vcpus: int, memory: int, disk: int, verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.owner = owner
        self.vcpus = vcpus
        self.memory = memory
        self.disk = disk

    def execute(self) -> None:
        check = self.quota_service().check_quota(self.owner, self.vcpus, self.memory, self.disk)

        if self.json_output:
            self.output_json(check.to_dict(), exit_code=0 if check.allowed else 1)
            return

        self.show_header(
            title="Quota Check",
            details={
                "Owner": self.owner,
                "Request": f"1 VM, {self.vcpus} vCPU, {self.memory} MB, {self.disk} GB",
            },
        )
        if check.allowed:
            remaining = check.remaining
            self.print_success("Allocation fits the quota")
            self.print_dim(
                f"Remaining after allocation: {remaining['vms']} VM(s), {remaining['cpu']} vCPU, "
                f"{remaining['ram']} MB, {remaining['storage']:.1f} GB"
            )
            return

        self.print_error(check.reason)
        raise SystemExit(1)


@click.command(name="quota:check")
@click.option("--owner", required=True, help="Registered user")
@click.option("--vcpus", required=True, type=int, help="Requested vCPUs")
@click.option("--memory", required=True, type=int, help="Requested memory in MB")
@click.option("--disk", required=True, type=int, help="Requested disk in GB")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def quota_check(owner, vcpus, memory, disk, verbose, json_output):
    """
    Check a request against a user's quota

    \b
    Examples:
      vmctl quota:check --owner alice --vcpus 2 --memory 2048 --disk 20

    Exits non-zero when the request would exceed the quota.
    """
    cmd = QuotaCheckCommand(owner, vcpus, memory, disk, verbose=verbose, json_output=json_output)
    cmd.run()
