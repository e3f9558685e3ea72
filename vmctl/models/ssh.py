"""
Target Host Models

Dataclass models describing where commands run.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from vmctl.constants import REMOTE_SCHEME


@dataclass(frozen=True)
class TargetHost:
    """
    Where commands for a hypervisor connection are executed.

    Derived once from the connection endpoint and never mutated.
    """

    is_remote: bool = False
    user: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    key_path: Optional[str] = None

    @classmethod
    def local(cls) -> "TargetHost":
        return cls()

    @classmethod
    def from_uri(cls, uri: Optional[str]) -> "TargetHost":
        """
        Resolve a target from a hypervisor endpoint such as
        ``qemu+ssh://user@host/system?keyfile=~/.ssh/id_ed25519``.

        Anything that is not a well-formed remote endpoint falls back to
        local mode.
        """
        if not uri:
            return cls.local()

        try:
            parts = urlsplit(uri)
            port = parts.port
        except ValueError:
            return cls.local()

        if parts.scheme != REMOTE_SCHEME or not parts.hostname:
            return cls.local()

        query = parse_qs(parts.query)
        key_path = query.get("keyfile", [None])[0]

        return cls(
            is_remote=True,
            user=parts.username or None,
            host=parts.hostname,
            port=port,
            key_path=key_path,
        )

    @property
    def connection_string(self) -> str:
        """Get SSH connection string (user@host)."""
        if self.user:
            return f"{self.user}@{self.host}"
        return str(self.host)

    def describe(self) -> str:
        if self.is_remote:
            return f"{self.connection_string} (remote)"
        return "localhost (local)"

    def __repr__(self) -> str:
        if self.is_remote:
            return f"TargetHost(remote={self.connection_string})"
        return "TargetHost(local)"
