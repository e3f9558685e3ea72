"""vmctl - User registry commands"""

from datetime import datetime
from typing import Any, Dict, Optional

import click
from rich.table import Table

from vmctl.base import HypervisorCommand
from vmctl.constants import DEFAULT_ROLE, GIB
from vmctl.models.users import QUOTA_KEYS, UserRecord
from vmctl.ui_components import usage_bar
from vmctl.utils import format_quota_line, parse_key_values


class UsersCommand(HypervisorCommand):
    """Registry operations; subclasses implement execute()."""

    def show_user(self, user: UserRecord) -> None:
        table = Table(show_header=False, padding=(0, 1), box=None)
        table.add_column("Field", style="cyan")
        table.add_column("Value")
        created = datetime.fromtimestamp(user.created / 1000).isoformat(sep=" ", timespec="seconds")
        table.add_row("ID", str(user.id))
        table.add_row("Username", user.username)
        table.add_row("Role", user.role)
        table.add_row("Email", user.email or "-")
        table.add_row("Full name", user.full_name or "-")
        table.add_row("Active", "[green]yes[/green]" if user.active else "[red]no[/red]")
        table.add_row("Created", created)
        table.add_row("Quota", _quota_line(user.quotas.to_dict()))
        self.console.print(table)
        self.console.print()


class UsersCreateCommand(UsersCommand):
    def __init__(self, username: str, role: str, email: str, full_name: str, quotas: Dict[str, str], **kwargs):
        super().__init__(**kwargs)
        self.username = username
        self.role = role
        self.email = email
        self.full_name = full_name
        self.quotas = quotas

    def execute(self) -> None:
        user = self.registry.create(
            self.username,
            role=self.role,
            email=self.email,
            full_name=self.full_name,
            quotas=self.quotas,
        )
        if self.json_output:
            self.output_json(user.to_dict())
            return
        self.print_success(f"User '{user.username}' created")
        self.show_user(user)


class UsersListCommand(UsersCommand):
    def execute(self) -> None:
        users = self.registry.list_users()
        if self.json_output:
            self.output_json({"users": [user.to_dict() for user in users]})
            return

        self.show_header(title="Users", details={"Registry": str(self.registry.path)})
        if not users:
            self.console.print("[yellow]⚠️  No users registered[/yellow]")
            self.console.print("[dim]Create one: vmctl users:create <username>[/dim]\n")
            return

        table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
        table.add_column("ID", justify="right")
        table.add_column("Username", style="cyan")
        table.add_column("Role")
        table.add_column("Email", style="dim")
        table.add_column("Active")
        table.add_column("Quota (VMs/CPU/RAM MB/Storage GB)")
        for user in users:
            q = user.quotas
            table.add_row(
                str(user.id),
                user.username,
                user.role,
                user.email or "-",
                "[green]yes[/green]" if user.active else "[red]no[/red]",
                f"{q.max_instances}/{q.max_vcpus}/{q.max_memory_mb}/{q.max_storage_gb}",
            )
        self.console.print(table)


class UsersShowCommand(UsersCommand):
    def __init__(self, username: str, **kwargs):
        super().__init__(**kwargs)
        self.username = username

    def execute(self) -> None:
        user = self.registry.get(self.username)
        if self.json_output:
            self.output_json(user.to_dict())
            return
        self.show_header(title=f"User {user.username}")
        self.show_user(user)


class UsersUpdateCommand(UsersCommand):
    def __init__(self, username: str, changes: Dict[str, Any], **kwargs):
        super().__init__(**kwargs)
        self.username = username
        self.changes = changes

    def execute(self) -> None:
        if not self.changes:
            self.exit_with_error("Nothing to update")
        user = self.registry.update(self.username, self.changes)
        if self.json_output:
            self.output_json(user.to_dict())
            return
        self.print_success(f"User '{user.username}' updated")
        self.show_user(user)


class UsersDeleteCommand(UsersCommand):
    def __init__(self, username: str, yes: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.username = username
        self.yes = yes

    def execute(self) -> None:
        self.registry.get(self.username)
        if not self.yes and not self.json_output:
            if not self.confirm(f"Delete user '{self.username}'? VMs they own are not affected."):
                self.print_dim("Aborted")
                return
        self.registry.delete(self.username)
        if self.json_output:
            self.output_json({"deleted": self.username})
            return
        self.print_success(f"User '{self.username}' deleted")


class UsersUsageCommand(UsersCommand):
    """Usage against quota, recomputed from live hypervisor state unless cached is requested."""

    def __init__(self, username: Optional[str] = None, refresh: bool = True, **kwargs):
        super().__init__(**kwargs)
        self.username = username
        self.refresh = refresh

    def execute(self) -> None:
        quota = self.quota_service()
        if self.username:
            reports = [quota.usage_report(self.username, refresh=self.refresh)]
        else:
            reports = quota.all_usage(refresh=self.refresh)

        if self.json_output:
            self.output_json(reports[0] if self.username else {"users": reports})
            return

        self.show_header(
            title="Resource Usage",
            subtitle="Live" if self.refresh else "Cached",
            target=self.target_description() if self.refresh else None,
        )
        table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
        table.add_column("User", style="cyan")
        table.add_column("VMs")
        table.add_column("vCPUs")
        table.add_column("Memory")
        table.add_column("Storage")
        for report in reports:
            usage, quotas, pct = report["usage"], report["quotas"], report["percentages"]
            table.add_row(
                report["username"],
                f"{format_quota_line(usage['vms'], quotas['maxVMs'])}\n{usage_bar(pct['vms'], 10)}",
                f"{format_quota_line(usage['cpu'], quotas['maxCPU'])}\n{usage_bar(pct['cpu'], 10)}",
                f"{format_quota_line(usage['ram'], quotas['maxRAM'], 'MB')}\n{usage_bar(pct['ram'], 10)}",
                f"{format_quota_line(round(usage['storage'] / GIB, 1), quotas['maxStorage'], 'GB')}\n{usage_bar(pct['storage'], 10)}",
            )
        self.console.print(table)


def _quota_line(quotas: Dict[str, int]) -> str:
    return ", ".join(f"{key}={value}" for key, value in quotas.items())


def _parse_quotas(pairs: tuple) -> Dict[str, str]:
    quotas = parse_key_values(pairs)
    known = set(QUOTA_KEYS) | set(QUOTA_KEYS.values())
    unknown = [key for key in quotas if key not in known]
    if unknown:
        raise click.BadParameter(
            f"Unknown quota field(s): {', '.join(unknown)}. Use: {', '.join(QUOTA_KEYS.values())}"
        )
    return quotas


@click.command(name="users:create")
@click.argument("username")
@click.option("--role", default=DEFAULT_ROLE, help="User role")
@click.option("--email", default="", help="Contact email")
@click.option("--full-name", "full_name", default="", help="Display name")
@click.option("--quota", "quota_pairs", multiple=True, help="Quota override, e.g. maxVMs=10")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def users_create(username, role, email, full_name, quota_pairs, json_output):
    """
    Register a user

    \b
    Examples:
      vmctl users:create alice --email alice@example.com
      vmctl users:create bob --quota maxVMs=2 --quota maxRAM=4096
    """
    cmd = UsersCreateCommand(
        username,
        role,
        email,
        full_name,
        _parse_quotas(quota_pairs),
        json_output=json_output,
    )
    cmd.run()


@click.command(name="users:list")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def users_list(json_output):
    """List registered users"""
    cmd = UsersListCommand(json_output=json_output)
    cmd.run()


@click.command(name="users:show")
@click.argument("username")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def users_show(username, json_output):
    """Show one user"""
    cmd = UsersShowCommand(username, json_output=json_output)
    cmd.run()


@click.command(name="users:update")
@click.argument("username")
@click.option("--role", default=None, help="New role")
@click.option("--email", default=None, help="New email")
@click.option("--full-name", "full_name", default=None, help="New display name")
@click.option("--active/--inactive", default=None, help="Enable or disable the user")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def users_update(username, role, email, full_name, active, json_output):
    """
    Update a user's profile

    \b
    Examples:
      vmctl users:update alice --role admin
      vmctl users:update bob --inactive
    """
    changes = {
        key: value
        for key, value in {
            "role": role,
            "email": email,
            "full_name": full_name,
            "active": active,
        }.items()
        if value is not None
    }
    cmd = UsersUpdateCommand(username, changes, json_output=json_output)
    cmd.run()


@click.command(name="users:quota")
@click.argument("username")
@click.argument("quota_pairs", nargs=-1, required=True)
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def users_quota(username, quota_pairs, json_output):
    """
    Change a user's quota (merged with the current one)

    \b
    Examples:
      vmctl users:quota alice maxVMs=10 maxCPU=16
      vmctl users:quota bob maxStorage=500
    """
    cmd = UsersUpdateCommand(username, {"quotas": _parse_quotas(quota_pairs)}, json_output=json_output)
    cmd.run()


@click.command(name="users:delete")
@click.argument("username")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def users_delete(username, yes, json_output):
    """Remove a user from the registry"""
    cmd = UsersDeleteCommand(username, yes=yes, json_output=json_output)
    cmd.run()


@click.command(name="users:usage")
@click.argument("username", required=False)
@click.option("--cached", is_flag=True, help="Use the last recorded usage instead of querying the hypervisor")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def users_usage(username, cached, json_output):
    """
    Show resource usage against quota

    \b
    Examples:
      vmctl users:usage            # All users
      vmctl users:usage alice      # One user
    """
    cmd = UsersUsageCommand(username, refresh=not cached, json_output=json_output)
    cmd.run()
