"""libvirt implementation of the hypervisor capability interface."""

import logging
from typing import Optional

import libvirt

from vmctl.exceptions import (
    ConnectivityError,
    ExecutionError,
    InstanceNotFoundError,
    SnapshotNotFoundError,
)
from vmctl.models.descriptor import DomainDescriptor
from vmctl.models.network import IPAddress, NetworkInterface
from vmctl.services.hypervisor import Hypervisor, InstanceInfo, InstanceState

logger = logging.getLogger(__name__)


_ADDRESS_SOURCE_FLAGS = {
    "lease": libvirt.VIR_DOMAIN_INTERFACE_ADDRESSES_SRC_LEASE,
    "agent": libvirt.VIR_DOMAIN_INTERFACE_ADDRESSES_SRC_AGENT,
    "arp": libvirt.VIR_DOMAIN_INTERFACE_ADDRESSES_SRC_ARP,
}


def _silence_libvirt(_ctx, _err):
    """libvirt prints every error to stderr by default; errors are raised instead."""


class LibvirtHypervisor(Hypervisor):
    """Hypervisor backed by a lazily opened libvirt connection."""

    def __init__(self, uri: str):
        self.uri = uri
        self._conn: Optional[libvirt.virConnect] = None
        libvirt.registerErrorHandler(_silence_libvirt, None)

    @property
    def conn(self) -> libvirt.virConnect:
        """Lazy-initialize libvirt connection."""
        if self._conn is None or not self._conn.isAlive():
            try:
                self._conn = libvirt.open(self.uri)
            except libvirt.libvirtError as e:
                raise ConnectivityError(
                    f"Cannot connect to hypervisor at {self.uri}",
                    context=e.get_error_message(),
                )
            if self._conn is None:
                raise ConnectivityError(f"Cannot connect to hypervisor at {self.uri}")
            logger.debug("Opened libvirt connection to %s", self.uri)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            try:
                self._conn.close()
            except libvirt.libvirtError as e:
                logger.debug("Error closing libvirt connection: %s", e)
            self._conn = None

    def _domain(self, name: str) -> libvirt.virDomain:
        try:
            return self.conn.lookupByName(name)
        except libvirt.libvirtError as e:
            if e.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN:
                raise InstanceNotFoundError(name, detail=e.get_error_message())
            raise self._translate(e, f"Failed to look up VM '{name}'")

    def _translate(self, error: "libvirt.libvirtError", message: str):
        code = error.get_error_code()
        if code in (libvirt.VIR_ERR_NO_CONNECT, libvirt.VIR_ERR_SYSTEM_ERROR):
            return ConnectivityError(message, context=error.get_error_message())
        return ExecutionError(message, context=error.get_error_message())

    def hostname(self) -> str:
        try:
            return self.conn.getHostname()
        except libvirt.libvirtError as e:
            raise ConnectivityError(
                f"Hypervisor at {self.uri} did not answer", context=e.get_error_message()
            )

    def list_instances(self) -> list[str]:
        try:
            return [domain.name() for domain in self.conn.listAllDomains(0)]
        except libvirt.libvirtError as e:
            raise self._translate(e, "Failed to list VMs")

    def instance_exists(self, name: str) -> bool:
        try:
            self._domain(name)
        except InstanceNotFoundError:
            return False
        return True

    def get_info(self, name: str) -> InstanceInfo:
        domain = self._domain(name)
        try:
            state, max_memory, memory, vcpus, cpu_time = domain.info()
        except libvirt.libvirtError as e:
            raise self._translate(e, f"Failed to read info for VM '{name}'")
        return InstanceInfo(
            state=InstanceState(state),
            max_memory_kib=max_memory,
            memory_kib=memory,
            vcpus=vcpus,
            cpu_time_ns=cpu_time,
        )

    def get_descriptor(self, name: str) -> DomainDescriptor:
        domain = self._domain(name)
        try:
            xml = domain.XMLDesc(0)
        except libvirt.libvirtError as e:
            raise self._translate(e, f"Failed to read descriptor for VM '{name}'")
        try:
            return DomainDescriptor.from_xml(xml)
        except ValueError as e:
            raise ExecutionError(f"Unreadable descriptor for VM '{name}'", context=str(e))

    def define(self, xml: str) -> str:
        try:
            domain = self.conn.defineXML(xml)
        except libvirt.libvirtError as e:
            raise self._translate(e, "Failed to define VM")
        if domain is None:
            raise ExecutionError("Failed to define VM")
        return domain.name()

    def start(self, name: str) -> None:
        self._call(name, "create", f"Failed to start VM '{name}'")

    def shutdown(self, name: str) -> None:
        self._call(name, "shutdown", f"Failed to shut down VM '{name}'")

    def destroy(self, name: str) -> None:
        self._call(name, "destroy", f"Failed to force-stop VM '{name}'")

    def undefine(self, name: str, extended: bool = False) -> None:
        domain = self._domain(name)
        try:
            if extended:
                domain.undefineFlags(
                    libvirt.VIR_DOMAIN_UNDEFINE_MANAGED_SAVE
                    | libvirt.VIR_DOMAIN_UNDEFINE_SNAPSHOTS_METADATA
                )
            else:
                domain.undefine()
        except libvirt.libvirtError as e:
            raise self._translate(e, f"Failed to undefine VM '{name}'")

    def list_snapshots(self, name: str) -> list[str]:
        domain = self._domain(name)
        try:
            return list(domain.snapshotListNames(0))
        except libvirt.libvirtError as e:
            raise self._translate(e, f"Failed to list snapshots for VM '{name}'")

    def delete_snapshot(self, name: str, snapshot: str, metadata_only: bool = True) -> None:
        domain = self._domain(name)
        try:
            snap = domain.snapshotLookupByName(snapshot, 0)
        except libvirt.libvirtError as e:
            if e.get_error_code() == libvirt.VIR_ERR_NO_DOMAIN_SNAPSHOT:
                raise SnapshotNotFoundError(name, snapshot)
            raise self._translate(e, f"Failed to look up snapshot '{snapshot}'")
        flags = libvirt.VIR_DOMAIN_SNAPSHOT_DELETE_METADATA_ONLY if metadata_only else 0
        try:
            snap.delete(flags)
        except libvirt.libvirtError as e:
            raise self._translate(e, f"Failed to delete snapshot '{snapshot}'")

    def block_capacity(self, name: str, device: str) -> Optional[int]:
        domain = self._domain(name)
        try:
            capacity, _allocation, _physical = domain.blockInfo(device, 0)
        except libvirt.libvirtError as e:
            logger.debug("No block device %s on %s: %s", device, name, e.get_error_message())
            return None
        return capacity

    def query_addresses(self, name: str, source: str) -> list[NetworkInterface]:
        domain = self._domain(name)
        try:
            reported = domain.interfaceAddresses(_ADDRESS_SOURCE_FLAGS[source], 0)
        except libvirt.libvirtError as e:
            raise self._translate(e, f"Failed to read {source} addresses for VM '{name}'")

        interfaces = []
        for ifname, data in (reported or {}).items():
            addresses = [
                IPAddress(
                    family="ipv4" if addr.get("type") == libvirt.VIR_IP_ADDR_TYPE_IPV4 else "ipv6",
                    address=addr["addr"],
                    prefix=addr.get("prefix") or 0,
                )
                for addr in data.get("addrs") or []
                if addr.get("addr")
            ]
            interfaces.append(NetworkInterface(name=ifname, hwaddr=data.get("hwaddr") or "", addresses=addresses))
        return interfaces

    def network_state(self, network: str) -> Optional[bool]:
        try:
            net = self.conn.networkLookupByName(network)
        except libvirt.libvirtError as e:
            if e.get_error_code() == libvirt.VIR_ERR_NO_NETWORK:
                return None
            raise self._translate(e, f"Failed to look up network '{network}'")
        try:
            return bool(net.isActive())
        except libvirt.libvirtError as e:
            raise self._translate(e, f"Failed to read state of network '{network}'")

    def _call(self, name: str, method: str, message: str) -> None:
        domain = self._domain(name)
        try:
            getattr(domain, method)()
        except libvirt.libvirtError as e:
            raise self._translate(e, message)

    def __repr__(self) -> str:
        return f"LibvirtHypervisor(uri={self.uri})"
