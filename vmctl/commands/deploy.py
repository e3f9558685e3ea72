"""vmctl - Deploy command"""

import click

from vmctl.base import HypervisorCommand
from vmctl.models.deployment import AuthMethod, DeploymentParams
from vmctl.models.workflow import WorkflowResult
from vmctl.utils import read_ssh_key


class DeployCommand(HypervisorCommand):
    """Provision a new VM for a registered user."""

    def __init__(self, params: DeploymentParams, verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.params = params

    def execute(self) -> None:
        """Execute deploy command."""
        if self.params.auth_method == AuthMethod.SSH_KEY:
            self.params.ssh_key = read_ssh_key(self.params.ssh_key)

        service = self.deployment_service()

        self.show_header(
            title="Deploy VM",
            target=self.target_description(),
            details=self.params.summary(),
        )
        logger = self.init_logger(self.params.instance_name, "deploy")

        result = service.deploy(self.params, reporter=logger)

        if self.json_output:
            self.output_json(result.to_dict(), exit_code=0 if result.success else 1)
            return

        self._print_result(result)
        if logger and not self.verbose:
            self.console.print(f"\n[dim]Logs saved to:[/dim] {logger.log_path}\n")
        if not result.success:
            raise SystemExit(1)

    def _print_result(self, result: WorkflowResult) -> None:
        self.console.print()
        for warning in result.warnings:
            self.print_warning(warning)

        if result.success:
            self.print_success(f"VM '{self.params.instance_name}' deployed ({len(result.steps)} steps)")
            self.print_dim(f"Disk: {result.details.get('disk_path')}")
            return

        self.print_error(f"Deployment failed at '{result.failed_step}' ({result.error_kind.value})")


@click.command(name="deploy")
@click.option("--owner", required=True, help="Registered user who owns the VM")
@click.option("--hostname", required=True, help="Guest hostname")
@click.option("--memory", required=True, type=int, help="Memory in MB")
@click.option("--vcpus", required=True, type=int, help="Number of vCPUs")
@click.option("--disk", required=True, type=int, help="Disk size in GB")
@click.option("--username", required=True, help="Account created in the guest")
@click.option("--password", default=None, help="Guest account password")
@click.option("--ssh-key", "ssh_key", default=None, help="Public key, or @path to read it from a file")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def deploy(owner, hostname, memory, vcpus, disk, username, password, ssh_key, verbose, json_output):
    """
    Deploy a new VM

    \b
    Examples:
      vmctl deploy --owner alice --hostname web1 --memory 2048 \\
                   --vcpus 2 --disk 20 --username ubuntu --password 's3cret-pass'
      vmctl deploy --owner alice --hostname db1 --memory 4096 \\
                   --vcpus 4 --disk 40 --username ops --ssh-key @~/.ssh/id_ed25519.pub

    \b
    Steps:
    - Connectivity, request and quota validation
    - Host readiness (directories, tools, base image, disk space, network)
    - Boot-config image, disk provisioning, definition and start
    """
    if bool(password) == bool(ssh_key):
        raise click.UsageError("Provide exactly one of --password or --ssh-key")

    if password:
        auth_method = AuthMethod.PASSWORD
    else:
        auth_method = AuthMethod.SSH_KEY

    cmd = DeployCommand(
        DeploymentParams(
            owner=owner,
            hostname=hostname,
            memory=memory,
            vcpus=vcpus,
            disk=disk,
            username=username,
            auth_method=auth_method,
            password=password,
            ssh_key=ssh_key,
        ),
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()
