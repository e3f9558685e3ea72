"""
First-boot configuration documents.

Builds the instance-identity (meta-data) and account (user-data) documents
read by cloud-init from the boot-config image.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from vmctl.constants import (
    ACCOUNT_GROUPS,
    ACCOUNT_SHELL,
    ACCOUNT_SUDO,
    BOOTSTRAP_COMMANDS,
    BOOTSTRAP_PACKAGES,
)

USER_DATA_HEADER = "#cloud-config\n"

# Reboot once first-boot processing completes
POWER_STATE = {"mode": "reboot", "timeout": 30, "condition": True}


@dataclass
class BootConfig:
    """
    First-boot configuration for one instance.

    Exactly one of ``password_hash`` and ``ssh_key`` is expected. The hash
    is produced on the target host; the clear-text password never reaches
    this object.
    """

    instance_name: str
    hostname: str
    username: str
    password_hash: Optional[str] = None
    ssh_key: Optional[str] = None

    def __post_init__(self):
        if bool(self.password_hash) == bool(self.ssh_key):
            raise ValueError("Exactly one of password_hash and ssh_key must be set")

    @property
    def uses_password(self) -> bool:
        return bool(self.password_hash)

    def meta_data(self) -> Dict[str, Any]:
        return {
            "instance-id": self.instance_name,
            "local-hostname": self.hostname,
        }

    def account(self) -> Dict[str, Any]:
        account: Dict[str, Any] = {
            "name": self.username,
            "sudo": ACCOUNT_SUDO,
            "groups": ACCOUNT_GROUPS,
            "shell": ACCOUNT_SHELL,
        }
        if self.uses_password:
            account["passwd"] = self.password_hash
            account["lock_passwd"] = False
        else:
            account["ssh_authorized_keys"] = [self.ssh_key]
        return account

    def user_data(self) -> Dict[str, Any]:
        return {
            "hostname": self.hostname,
            "fqdn": f"{self.hostname}.local",
            "manage_etc_hosts": True,
            "users": [self.account()],
            "ssh_pwauth": self.uses_password,
            "chpasswd": {"expire": False},
            "package_update": True,
            "package_upgrade": False,
            "packages": list(BOOTSTRAP_PACKAGES),
            "runcmd": list(BOOTSTRAP_COMMANDS),
            "power_state": dict(POWER_STATE),
        }

    def render_meta_data(self) -> str:
        return _dump(self.meta_data())

    def render_user_data(self) -> str:
        return USER_DATA_HEADER + _dump(self.user_data())


def _dump(document: Dict[str, Any]) -> str:
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False, width=4096)
