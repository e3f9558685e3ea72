"""
Instance Descriptor Models

Typed view over a domain XML descriptor. Descriptors can be parsed from
the hypervisor's XML or built directly as data.
"""

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, Optional

# Markers identifying a per-instance first-boot image among ISO files
BOOT_CONFIG_MARKERS = ("cloud-init", "cloudinit", "cidata")


@dataclass
class DiskDevice:
    """One <disk> element of a descriptor."""

    source: Optional[str]
    target: Optional[str] = None
    device: str = "disk"
    type: str = "file"
    format: Optional[str] = None
    bus: Optional[str] = None
    readonly: bool = False

    @property
    def is_iso(self) -> bool:
        return bool(self.source) and PurePosixPath(self.source).suffix.lower() == ".iso"

    @property
    def is_boot_config(self) -> bool:
        """ISO carrying this instance's own first-boot user data."""
        if not self.is_iso:
            return False
        lowered = self.source.lower()
        return any(marker in lowered for marker in BOOT_CONFIG_MARKERS)

    @property
    def is_reclaimable(self) -> bool:
        """
        Whether teardown may delete the backing file.

        Plain ISO images (install media) are shared and kept. ISO images
        that hold the instance's first-boot user data are owned by it.
        """
        if not self.source or self.type != "file":
            return False
        return not self.is_iso or self.is_boot_config


@dataclass
class GraphicsDevice:
    """One <graphics> element of a descriptor."""

    type: str
    port: int = -1
    autoport: bool = True
    listen: Optional[str] = None


@dataclass
class DomainDescriptor:
    """Structured view of an instance definition."""

    name: str
    memory_kib: int = 0
    vcpus: int = 0
    disks: list[DiskDevice] = field(default_factory=list)
    networks: list[str] = field(default_factory=list)
    graphics: list[GraphicsDevice] = field(default_factory=list)
    uuid: Optional[str] = None
    source_xml: Optional[str] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_xml(cls, xml: str) -> "DomainDescriptor":
        """
        Parse a domain XML document.

        Raises:
            ValueError: If the document is not a domain descriptor
        """
        try:
            root = ET.fromstring(xml)
        except ET.ParseError as e:
            raise ValueError(f"Malformed domain descriptor: {e}") from e

        if root.tag != "domain":
            raise ValueError(f"Expected <domain> root element, got <{root.tag}>")

        descriptor = cls(
            name=root.findtext("name", default="").strip(),
            memory_kib=_memory_kib(root.find("memory")),
            vcpus=_int(root.findtext("vcpu"), 0),
            uuid=(root.findtext("uuid") or "").strip() or None,
            source_xml=xml,
        )

        devices = root.find("devices")
        if devices is None:
            return descriptor

        for disk in devices.findall("disk"):
            source = disk.find("source")
            target = disk.find("target")
            driver = disk.find("driver")
            descriptor.disks.append(
                DiskDevice(
                    source=_disk_source(source),
                    target=target.get("dev") if target is not None else None,
                    device=disk.get("device", "disk"),
                    type=disk.get("type", "file"),
                    format=driver.get("type") if driver is not None else None,
                    bus=target.get("bus") if target is not None else None,
                    readonly=disk.find("readonly") is not None,
                )
            )

        for interface in devices.findall("interface"):
            source = interface.find("source")
            if source is not None and source.get("network"):
                descriptor.networks.append(source.get("network"))

        for graphics in devices.findall("graphics"):
            descriptor.graphics.append(
                GraphicsDevice(
                    type=graphics.get("type", ""),
                    port=_int(graphics.get("port"), -1),
                    autoport=graphics.get("autoport", "no") == "yes",
                    listen=graphics.get("listen"),
                )
            )

        return descriptor

    @property
    def memory_mb(self) -> int:
        return self.memory_kib // 1024

    def disk_paths(self) -> list[str]:
        """All backing files, in descriptor order."""
        return [disk.source for disk in self.disks if disk.source]

    def reclaimable_paths(self) -> list[str]:
        """Backing files teardown is allowed to delete."""
        return [disk.source for disk in self.disks if disk.is_reclaimable]

    def primary_disk(self) -> Optional[DiskDevice]:
        for disk in self.disks:
            if disk.device == "disk" and disk.source:
                return disk
        return None

    def graphics_port(self, kind: str = "vnc") -> Optional[int]:
        """Assigned port of the first graphics device of that kind, if any."""
        for graphics in self.graphics:
            if graphics.type == kind and graphics.port > 0:
                return graphics.port
        return None

    def cloned_xml(self, name: str, path_map: Dict[str, str]) -> str:
        """
        Document defining a copy of this instance.

        The copy gets the new name and disk paths. Identity the hypervisor
        must assign afresh (uuid, interface MAC addresses, automatic
        graphics ports) is dropped.

        Args:
            name: Name of the copy
            path_map: Original backing file -> backing file of the copy

        Raises:
            ValueError: If the descriptor was not parsed from a document
        """
        if self.source_xml is None:
            raise ValueError(f"No descriptor document for {self.name}")

        root = ET.fromstring(self.source_xml)
        name_element = root.find("name")
        if name_element is None:
            name_element = ET.SubElement(root, "name")
        name_element.text = name
        for uuid in root.findall("uuid"):
            root.remove(uuid)

        devices = root.find("devices")
        if devices is not None:
            for disk in devices.findall("disk"):
                source = disk.find("source")
                if source is not None and source.get("file") in path_map:
                    source.set("file", path_map[source.get("file")])
            for interface in devices.findall("interface"):
                for mac in interface.findall("mac"):
                    interface.remove(mac)
            for graphics in devices.findall("graphics"):
                if graphics.get("autoport") == "yes":
                    graphics.attrib.pop("port", None)

        return ET.tostring(root, encoding="unicode")

    def __repr__(self) -> str:
        return f"DomainDescriptor(name={self.name}, disks={len(self.disks)})"


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


_MEMORY_UNITS_KIB = {
    "b": 1 / 1024,
    "bytes": 1 / 1024,
    "k": 1,
    "kib": 1,
    "kb": 1000 / 1024,
    "m": 1024,
    "mib": 1024,
    "mb": 1000 * 1000 / 1024,
    "g": 1024 * 1024,
    "gib": 1024 * 1024,
    "gb": 1000 * 1000 * 1000 / 1024,
}


def _memory_kib(element: Optional[ET.Element]) -> int:
    if element is None or not element.text:
        return 0
    unit = element.get("unit", "KiB").lower()
    return int(_int(element.text.strip(), 0) * _MEMORY_UNITS_KIB.get(unit, 1))


def _disk_source(source: Optional[ET.Element]) -> Optional[str]:
    if source is None:
        return None
    return source.get("file") or source.get("dev") or source.get("volume")
