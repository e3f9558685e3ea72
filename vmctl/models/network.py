"""
Network Models

Guest interface addresses as reported by the hypervisor, and the address
summary shown for an instance.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from vmctl.constants import VNC_BASE_PORT


@dataclass
class IPAddress:
    family: str
    address: str
    prefix: int = 0

    @property
    def is_loopback(self) -> bool:
        return self.address.startswith("127.") or self.address == "::1"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.family, "addr": self.address, "prefix": self.prefix}


@dataclass
class NetworkInterface:
    """One guest interface and the addresses found on it."""

    name: str
    hwaddr: str = ""
    addresses: list[IPAddress] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "hwaddr": self.hwaddr,
            "addrs": [address.to_dict() for address in self.addresses],
        }


@dataclass
class AddressLookup:
    """Interfaces returned by the first address source that knew any address."""

    source: str
    interfaces: list[NetworkInterface] = field(default_factory=list)

    @property
    def primary_ip(self) -> Optional[str]:
        """First non-loopback IPv4 address."""
        for interface in self.interfaces:
            for address in interface.addresses:
                if address.family == "ipv4" and not address.is_loopback:
                    return address.address
        return None


@dataclass
class InstanceAddresses:
    """Where a running instance can be reached."""

    name: str
    lookup: AddressLookup
    vnc_port: Optional[int] = None

    @property
    def vnc_display(self) -> Optional[str]:
        if self.vnc_port is None:
            return None
        return f":{self.vnc_port - VNC_BASE_PORT}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "source": self.lookup.source,
            "primary_ip": self.lookup.primary_ip,
            "interfaces": [interface.to_dict() for interface in self.lookup.interfaces],
        }
        if self.vnc_port is not None:
            data["vnc"] = {"port": self.vnc_port, "display": self.vnc_display}
        return data
