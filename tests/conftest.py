"""Shared fixtures: an in-memory hypervisor and a scripted command transport."""

import re
import shlex
from dataclasses import dataclass, field
from typing import Dict, Optional

import pytest

from vmctl.constants import GIB
from vmctl.exceptions import ExecutionError, InstanceNotFoundError, SnapshotNotFoundError
from vmctl.models.descriptor import DiskDevice, DomainDescriptor
from vmctl.models.network import NetworkInterface
from vmctl.models.results import ExecutionResult
from vmctl.services.config_service import Settings
from vmctl.services.hypervisor import Hypervisor, InstanceInfo, InstanceState
from vmctl.services.transport import CommandTransport, mask
from vmctl.services.user_service import UserRegistry

IMAGES = "/var/lib/libvirt/images"
BASE_IMAGE = f"{IMAGES}/baseimg/ubuntu-22.04-server-cloudimg-amd64.img"
PASSWORD_HASH = "$6$rounds=4096$saltsalt$c2VjcmV0aGFzaA"


class FakeTransport(CommandTransport):
    """
    Command transport backed by a simulated host.

    Understands the handful of commands vmctl issues (test, command -v,
    qemu-img, df, mkdir, printf, mkpasswd, genisoimage, cp, rm) and applies
    them to an in-memory file table. Regex rules in ``failures`` override
    the simulation for matching commands.
    """

    def __init__(self):
        super().__init__()
        self.files: Dict[str, str] = {}
        self.directories = set()
        self.tools = set()
        self.valid_images = set()
        self.free_bytes: Optional[int] = None
        self.failures: Dict[str, ExecutionResult] = {}
        self.history: list[str] = []
        self.resized: Dict[str, str] = {}

    def fail(self, pattern: str, output: str = "error", returncode: int = 1) -> None:
        self.failures[pattern] = ExecutionResult(returncode=returncode, output=output)

    def ran(self, prefix: str) -> list[str]:
        return [command for command in self.history if command.startswith(prefix)]

    def execute(self, command, secrets=()):
        self.history.append(command)
        for pattern, result in self.failures.items():
            if re.search(pattern, command):
                return ExecutionResult(
                    returncode=result.returncode,
                    output=mask(result.output, secrets),
                    command=mask(command, secrets),
                )
        returncode, output = self._simulate(command)
        return ExecutionResult(returncode=returncode, output=output, command=mask(command, secrets))

    def _simulate(self, command: str):
        if command.startswith("df "):
            if self.free_bytes is None:
                return 1, ""
            return 0, f"{self.free_bytes}\n"
        if " > /dev/null 2>&1" in command:
            command = command.replace(" > /dev/null 2>&1", "")
        argv = shlex.split(command)
        program, args = argv[0], argv[1:]

        if program == "echo":
            return 0, " ".join(args) + "\n"
        if program == "test":
            flag, path = args
            if flag == "-f":
                return (0 if path in self.files else 1), ""
            return (0 if path in self.directories else 1), ""
        if program == "command":
            return (0 if args[1] in self.tools else 1), ""
        if program == "qemu-img" and args[0] == "info":
            return (0 if args[1] in self.valid_images else 1), ""
        if program == "qemu-img" and args[0] == "resize":
            if args[1] not in self.files:
                return 1, f"qemu-img: Could not open '{args[1]}'"
            self.resized[args[1]] = args[2]
            return 0, "Image resized.\n"
        if program == "mkdir":
            self.directories.add(args[-1])
            return 0, ""
        if program == "printf":
            content, _, path = args[1], args[2], args[3]
            self.files[path] = content
            return 0, ""
        if program == "mkpasswd":
            return 0, PASSWORD_HASH + "\n"
        if program == "genisoimage":
            output = args[args.index("-output") + 1]
            inputs = args[args.index("-rock") + 1 :]
            if any(path not in self.files for path in inputs):
                return 1, "genisoimage: No such file or directory"
            self.files[output] = "iso"
            return 0, ""
        if program == "cp":
            source, dest = args
            if source not in self.files:
                return 1, f"cp: cannot stat '{source}': No such file or directory"
            self.files[dest] = self.files[source]
            return 0, ""
        if program == "rm":
            path = args[-1]
            self.files = {p: c for p, c in self.files.items() if p != path and not p.startswith(path + "/")}
            self.directories.discard(path)
            return 0, ""
        return 127, f"sh: {program}: not found"


def make_ready_transport() -> FakeTransport:
    """A host with directories, tools and a valid base image in place."""
    transport = FakeTransport()
    transport.directories.update({IMAGES, f"{IMAGES}/baseimg", f"{IMAGES}/cloud-init-iso"})
    transport.tools.update({"qemu-img", "genisoimage", "mkpasswd"})
    transport.files[BASE_IMAGE] = "base"
    transport.valid_images.add(BASE_IMAGE)
    transport.free_bytes = 100 * GIB
    return transport


@dataclass
class FakeInstance:
    descriptor: DomainDescriptor
    state: InstanceState = InstanceState.SHUTOFF
    cpu_time_ns: int = 0
    snapshots: list[str] = field(default_factory=list)
    capacities: Dict[str, int] = field(default_factory=dict)
    # Polls of get_info after shutdown() before the guest reports shutoff; None never stops
    stops_after_polls: Optional[int] = 0
    shutdown_requested: bool = False
    polls: int = 0


class FakeHypervisor(Hypervisor):
    """In-memory hypervisor; instances are built from descriptors as data."""

    def __init__(self):
        self.instances: Dict[str, FakeInstance] = {}
        self.networks: Dict[str, bool] = {"default": True}
        self.connected = True
        self.calls: list[tuple] = []
        self.reject_extended_undefine = False
        self.failing_snapshots = set()
        # instance -> address source -> interfaces; missing sources fail
        self.address_answers: Dict[str, Dict[str, list[NetworkInterface]]] = {}

    def add_instance(
        self,
        name: str,
        state: InstanceState = InstanceState.RUNNING,
        vcpus: int = 2,
        memory_mb: int = 2048,
        disk_gb: int = 20,
        disks: Optional[list[DiskDevice]] = None,
        snapshots: Optional[list[str]] = None,
        stops_after_polls: Optional[int] = 0,
    ) -> FakeInstance:
        if disks is None:
            disks = [DiskDevice(source=f"{IMAGES}/{name}.qcow2", target="vda", format="qcow2")]
        descriptor = DomainDescriptor(name=name, memory_kib=memory_mb * 1024, vcpus=vcpus, disks=disks)
        capacities = {d.target: disk_gb * GIB for d in disks if d.target and d.device == "disk"}
        instance = FakeInstance(
            descriptor=descriptor,
            state=state,
            snapshots=list(snapshots or []),
            capacities=capacities,
            stops_after_polls=stops_after_polls,
        )
        self.instances[name] = instance
        return instance

    def _get(self, name: str) -> FakeInstance:
        if name not in self.instances:
            raise InstanceNotFoundError(name)
        return self.instances[name]

    def hostname(self) -> str:
        if not self.connected:
            return ""
        return "kvm-test"

    def list_instances(self) -> list[str]:
        return list(self.instances)

    def get_info(self, name: str) -> InstanceInfo:
        instance = self._get(name)
        if instance.shutdown_requested and not instance.state.is_stopped:
            instance.polls += 1
            if instance.stops_after_polls is not None and instance.polls >= instance.stops_after_polls:
                instance.state = InstanceState.SHUTOFF
        memory_kib = instance.descriptor.memory_kib
        return InstanceInfo(
            state=instance.state,
            max_memory_kib=memory_kib,
            memory_kib=memory_kib,
            vcpus=instance.descriptor.vcpus,
            cpu_time_ns=instance.cpu_time_ns,
        )

    def get_descriptor(self, name: str) -> DomainDescriptor:
        return self._get(name).descriptor

    def define(self, xml: str) -> str:
        descriptor = DomainDescriptor.from_xml(xml)
        self.calls.append(("define", descriptor.name))
        self.instances[descriptor.name] = FakeInstance(
            descriptor=descriptor,
            capacities={d.target: 20 * GIB for d in descriptor.disks if d.device == "disk"},
        )
        return descriptor.name

    def start(self, name: str) -> None:
        self.calls.append(("start", name))
        self._get(name).state = InstanceState.RUNNING

    def shutdown(self, name: str) -> None:
        self.calls.append(("shutdown", name))
        self._get(name).shutdown_requested = True

    def destroy(self, name: str) -> None:
        instance = self._get(name)
        if not instance.state.is_active:
            raise ExecutionError(f"Failed to force-stop VM '{name}'", context="domain is not running")
        self.calls.append(("destroy", name))
        instance.state = InstanceState.SHUTOFF

    def undefine(self, name: str, extended: bool = False) -> None:
        self._get(name)
        if extended and self.reject_extended_undefine:
            self.calls.append(("undefine-rejected", name))
            raise ExecutionError(f"Failed to undefine VM '{name}'", context="unsupported flags")
        self.calls.append(("undefine", name, extended))
        del self.instances[name]

    def list_snapshots(self, name: str) -> list[str]:
        return list(self._get(name).snapshots)

    def delete_snapshot(self, name: str, snapshot: str, metadata_only: bool = True) -> None:
        instance = self._get(name)
        if snapshot not in instance.snapshots:
            raise SnapshotNotFoundError(name, snapshot)
        if snapshot in self.failing_snapshots:
            raise ExecutionError(f"Failed to delete snapshot '{snapshot}'")
        self.calls.append(("delete_snapshot", name, snapshot))
        instance.snapshots.remove(snapshot)

    def block_capacity(self, name: str, device: str) -> Optional[int]:
        return self._get(name).capacities.get(device)

    def query_addresses(self, name: str, source: str) -> list[NetworkInterface]:
        self._get(name)
        self.calls.append(("query_addresses", name, source))
        answers = self.address_answers.get(name, {})
        if source not in answers:
            raise ExecutionError(f"Failed to read {source} addresses for VM '{name}'", context=f"{source} unavailable")
        return answers[source]

    def network_state(self, network: str) -> Optional[bool]:
        return self.networks.get(network)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        users_file=str(tmp_path / "users.json"),
        log_dir=str(tmp_path / "logs"),
        shutdown_timeout=30,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return make_ready_transport()


@pytest.fixture
def hypervisor() -> FakeHypervisor:
    return FakeHypervisor()


@pytest.fixture
def registry(settings) -> UserRegistry:
    return UserRegistry(settings.users_file, clock=lambda: 1700000000.0)


class FakeClock:
    """Monotonic clock advanced only by the injected sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
