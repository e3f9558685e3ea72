"""
Hypervisor Capability Interface

Abstract contract for the virtualization management API consumed by the
workflows. Implementations translate their native errors into vmctl
exceptions so callers never see backend-specific error types.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional

from vmctl.constants import ADDRESS_SOURCES
from vmctl.exceptions import ExecutionError
from vmctl.models.descriptor import DomainDescriptor
from vmctl.models.network import AddressLookup, NetworkInterface


class InstanceState(IntEnum):
    """Instance run state, numbered as libvirt's virDomainState."""

    NOSTATE = 0
    RUNNING = 1
    BLOCKED = 2
    PAUSED = 3
    SHUTDOWN = 4
    SHUTOFF = 5
    CRASHED = 6
    PMSUSPENDED = 7

    @property
    def is_active(self) -> bool:
        """Running or paused in any form; these must be stopped before undefinition."""
        return self in (
            InstanceState.RUNNING,
            InstanceState.BLOCKED,
            InstanceState.PAUSED,
            InstanceState.SHUTDOWN,
            InstanceState.PMSUSPENDED,
        )

    @property
    def is_stopped(self) -> bool:
        return self in (InstanceState.SHUTOFF, InstanceState.CRASHED)

    @property
    def label(self) -> str:
        return self.name.lower()


@dataclass
class InstanceInfo:
    """Point-in-time instance figures."""

    state: InstanceState
    max_memory_kib: int
    memory_kib: int
    vcpus: int
    cpu_time_ns: int

    @property
    def memory_mb(self) -> int:
        return self.memory_kib // 1024

    @property
    def max_memory_mb(self) -> int:
        return self.max_memory_kib // 1024


class Hypervisor(ABC):
    """
    Capability object passed into every component that talks to the hypervisor.

    Lookups of a missing instance raise InstanceNotFoundError, unreachable
    endpoints raise ConnectivityError and any other failed call raises
    ExecutionError.
    """

    @abstractmethod
    def hostname(self) -> str:
        """Identity query used as a connectivity check."""

    @abstractmethod
    def list_instances(self) -> list[str]:
        """Names of all defined instances, running or not."""

    def instance_exists(self, name: str) -> bool:
        return name in self.list_instances()

    @abstractmethod
    def get_info(self, name: str) -> InstanceInfo:
        pass

    @abstractmethod
    def get_descriptor(self, name: str) -> DomainDescriptor:
        """Live structured descriptor of an instance."""

    @abstractmethod
    def define(self, xml: str) -> str:
        """Define an instance from a descriptor document; returns its name."""

    @abstractmethod
    def start(self, name: str) -> None:
        pass

    @abstractmethod
    def shutdown(self, name: str) -> None:
        """Send a graceful shutdown request; does not wait."""

    @abstractmethod
    def destroy(self, name: str) -> None:
        """Force-stop an instance."""

    @abstractmethod
    def undefine(self, name: str, extended: bool = False) -> None:
        """
        Deregister an instance.

        With ``extended`` the call also removes saved state and snapshot
        metadata; backends that reject it raise ExecutionError.
        """

    @abstractmethod
    def list_snapshots(self, name: str) -> list[str]:
        pass

    @abstractmethod
    def delete_snapshot(self, name: str, snapshot: str, metadata_only: bool = True) -> None:
        pass

    @abstractmethod
    def block_capacity(self, name: str, device: str) -> Optional[int]:
        """Capacity in bytes of a block device, or None if the device is absent."""

    def interface_addresses(self, name: str) -> AddressLookup:
        """
        Guest addresses from the first source that reports any.

        Sources are tried in order: DHCP leases, the guest agent, then the
        host ARP table. A source that fails or knows no address falls
        through to the next.

        Raises:
            ExecutionError: If no source reports an address
        """
        attempts = []
        for source in ADDRESS_SOURCES:
            try:
                interfaces = self.query_addresses(name, source)
            except ExecutionError as e:
                attempts.append(f"{source}: {e.context or e.message}")
                continue
            if any(interface.addresses for interface in interfaces):
                return AddressLookup(source=source, interfaces=interfaces)
            attempts.append(f"{source}: no addresses")
        raise ExecutionError(
            f"No IP addresses found for VM '{name}'. The VM may still be booting.",
            context="; ".join(attempts),
        )

    @abstractmethod
    def query_addresses(self, name: str, source: str) -> list[NetworkInterface]:
        """Interfaces and addresses known to one source ("lease", "agent" or "arp")."""

    @abstractmethod
    def network_state(self, network: str) -> Optional[bool]:
        """True if active, False if defined but inactive, None if it does not exist."""
