"""
Deployment Models

Dataclass models for deployment requests and instance naming.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class AuthMethod(Enum):
    """How the OS account authenticates."""

    PASSWORD = "password"
    SSH_KEY = "ssh-key"


# Fields every deployment request must carry
REQUIRED_FIELDS = ["owner", "hostname", "memory", "vcpus", "disk", "username", "auth_method"]


@dataclass
class DeploymentParams:
    """A request to provision one instance."""

    owner: str
    hostname: str
    memory: int
    vcpus: int
    disk: int
    username: str
    auth_method: AuthMethod
    password: Optional[str] = None
    ssh_key: Optional[str] = None

    @property
    def instance_name(self) -> str:
        """Durable instance name; embeds the owning user."""
        return instance_name_for(self.owner, self.hostname)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the request mapping understood by the validator."""
        data: Dict[str, Any] = {
            "owner": self.owner,
            "hostname": self.hostname,
            "memory": self.memory,
            "vcpus": self.vcpus,
            "disk": self.disk,
            "username": self.username,
            "auth_method": self.auth_method.value,
        }
        if self.password is not None:
            data["password"] = self.password
        if self.ssh_key is not None:
            data["ssh_key"] = self.ssh_key
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeploymentParams":
        """
        Create from a request mapping.

        Raises:
            KeyError: If a required field is missing
            ValueError: If auth_method is unknown
        """
        return cls(
            owner=data["owner"],
            hostname=data["hostname"],
            memory=data["memory"],
            vcpus=data["vcpus"],
            disk=data["disk"],
            username=data["username"],
            auth_method=AuthMethod(data["auth_method"]),
            password=data.get("password"),
            ssh_key=data.get("ssh_key"),
        )

    def summary(self) -> Dict[str, Any]:
        """Request details safe to show or log (no secrets)."""
        return {
            "Instance": self.instance_name,
            "Hostname": self.hostname,
            "Memory": f"{self.memory} MB",
            "vCPUs": self.vcpus,
            "Disk": f"{self.disk} GB",
            "Username": self.username,
            "Auth": self.auth_method.value,
        }

    def __repr__(self) -> str:
        return f"DeploymentParams(instance={self.instance_name}, memory={self.memory}, vcpus={self.vcpus}, disk={self.disk})"


@dataclass(frozen=True)
class InstanceName:
    """Instance name split into owner and hostname."""

    owner: str
    hostname: str

    def __str__(self) -> str:
        return instance_name_for(self.owner, self.hostname)


def instance_name_for(owner: str, hostname: str) -> str:
    return f"{owner}-{hostname}"


def parse_instance_name(name: str) -> Optional[InstanceName]:
    """
    Split ``<owner>-<hostname>``.

    Registry usernames cannot contain hyphens, so the first hyphen is the
    separator. Names without an owner prefix return None.
    """
    owner, sep, hostname = name.partition("-")
    if not sep or not owner or not hostname:
        return None
    return InstanceName(owner=owner, hostname=hostname)
