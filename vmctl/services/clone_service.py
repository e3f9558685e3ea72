"""
Clone Service

Copies a stopped instance: its own disk files are copied on the host and
a renamed descriptor without the source's identity is defined. Shared
install media stay attached to both instances.
"""

import logging
import math
import shlex
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Dict, Optional

from vmctl.constants import GIB
from vmctl.exceptions import (
    ExecutionError,
    PreconditionError,
    QuotaExceededError,
    ValidationError,
    VmctlError,
)
from vmctl.models.deployment import parse_instance_name
from vmctl.models.descriptor import DomainDescriptor
from vmctl.models.workflow import CloneStage, Step, StepLog, WorkflowResult
from vmctl.services.config_service import Settings
from vmctl.services.hypervisor import Hypervisor
from vmctl.services.locks import KeyedLocks
from vmctl.services.quota_service import QuotaService
from vmctl.services.transport import CommandTransport
from vmctl.services.user_service import USERNAME_PATTERN
from vmctl.services.validator import HostValidator, SystemValidator, Validator
from vmctl.services.workflow_runner import StepRunner

logger = logging.getLogger(__name__)


def clone_disk_path(path: str, source: str, clone: str) -> str:
    """Path of a disk copy: the source name in the file name becomes the clone name."""
    original = PurePosixPath(path)
    if source in original.name:
        return str(original.with_name(original.name.replace(source, clone, 1)))
    return str(original.with_name(f"{clone}-{original.name}"))


@dataclass
class CloneRun:
    source: str
    clone: str
    start: bool
    descriptor: Optional[DomainDescriptor] = None
    disk_gb: int = 0
    path_map: Dict[str, str] = field(default_factory=dict)
    copied: list[str] = field(default_factory=list)

    @property
    def owner(self) -> Optional[str]:
        parsed = parse_instance_name(self.clone)
        return parsed.owner if parsed else None


class CloneService:
    """Clone workflow: look up, validate, copy disks, define, optionally start."""

    def __init__(
        self,
        hypervisor: Hypervisor,
        transport: CommandTransport,
        settings: Settings,
        quota: Optional[QuotaService] = None,
        validator: Optional[Validator] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.hypervisor = hypervisor
        self.transport = transport
        self.settings = settings
        self.quota = quota
        self.validator = validator or Validator(settings.limits)
        self.system = SystemValidator(hypervisor)
        self.host = HostValidator(transport, settings)
        self.locks = locks or KeyedLocks()

    def clone(
        self,
        source: str,
        clone: str,
        start: bool = False,
        reporter: Optional[Any] = None,
    ) -> WorkflowResult:
        """
        Clone ``source`` into a new instance named ``clone``.

        Holds the clone owner's lock, then both instance locks in name
        order. Like deploy, a failed run leaves already copied files behind.

        Args:
            source: Name of a stopped instance
            clone: Name of the copy, ``<owner>-<hostname>``
            start: Start the copy once defined
            reporter: Optional OperationLogger receiving step events
        """
        run = CloneRun(source=source, clone=clone, start=start)
        logger.info("Cloning %s to %s on %s", source, clone, self.transport.host_info())

        keys = [f"owner:{run.owner}"] if run.owner else []
        keys.extend(f"instance:{name}" for name in sorted({source, clone}))

        with ExitStack() as stack:
            for key in keys:
                stack.enter_context(self.locks.hold(key))
            result = StepRunner(self.build_steps(run), reporter=reporter).run(
                succeeded=CloneStage.SUCCEEDED,
                failed=CloneStage.FAILED,
                details={"source": source, "instance": clone},
            )
            if result.success and self.quota is not None and run.owner:
                try:
                    self.quota.recompute_usage(run.owner)
                except VmctlError as e:
                    logger.warning("Usage refresh for %s failed: %s", run.owner, e.message)
                    result.warnings.append(f"Usage refresh for {run.owner} failed: {e.message}")

        result.details.update(disk_paths=dict(run.path_map), copied_disks=list(run.copied))
        return result

    def build_steps(self, run: CloneRun) -> list[Step]:
        steps = [
            Step("Look up source VM", CloneStage.LOOKING_UP, lambda log: self.look_up(run, log)),
            Step("Validate clone", CloneStage.VALIDATING, lambda log: self.validate(run)),
            Step(
                "Check disk space",
                CloneStage.CHECKING_DISK_SPACE,
                lambda log: self.check_disk_space(run, log),
            ),
            Step("Copy disks", CloneStage.COPYING_DISKS, lambda log: self.copy_disks(run, log)),
            Step("Define clone", CloneStage.DEFINING_INSTANCE, lambda log: self.define(run)),
        ]
        if run.start:
            steps.append(Step("Start clone", CloneStage.STARTING_INSTANCE, lambda log: self.start(run)))
        return steps

    def look_up(self, run: CloneRun, log: StepLog) -> str:
        """Read the source descriptor and plan where each owned disk is copied."""
        state = self.hypervisor.get_info(run.source).state
        if state.is_active:
            raise PreconditionError(
                f"VM '{run.source}' must be stopped before cloning",
                context=f"Current state: {state.label}",
            )

        descriptor = self.hypervisor.get_descriptor(run.source)
        if descriptor.source_xml is None:
            raise ExecutionError(f"Descriptor document for VM '{run.source}' is unavailable")
        run.descriptor = descriptor

        for path in descriptor.reclaimable_paths():
            run.path_map[path] = clone_disk_path(path, run.source, run.clone)
        shared = [path for path in descriptor.disk_paths() if path not in run.path_map]
        if shared:
            log.append(f"Shared media kept attached: {', '.join(shared)}")

        primary = descriptor.primary_disk()
        capacity = None
        if primary is not None and primary.target:
            capacity = self.hypervisor.block_capacity(run.source, primary.target)
        run.disk_gb = math.ceil(capacity / GIB) if capacity else 0

        return f"VM '{run.source}' found ({len(run.path_map)} disk file(s) to copy)"

    def validate(self, run: CloneRun) -> str:
        """Clone name, name availability, destination paths, then quota."""
        parsed = parse_instance_name(run.clone)
        if parsed is None or not USERNAME_PATTERN.match(parsed.owner):
            raise ValidationError(f"Invalid clone name: {run.clone!r}", context="Use <owner>-<hostname>")
        hostname = self.validator.validate_hostname(parsed.hostname)
        if not hostname.is_valid:
            raise ValidationError(f"Validation failed: {hostname.error}")

        available = self.system.check_name_available(run.clone)
        if not available.is_valid:
            raise ValidationError(available.error)

        destinations = list(run.path_map.values())
        if len(set(destinations)) != len(destinations):
            raise ValidationError("Disk copies of the clone would share a file", context=", ".join(destinations))
        for path in destinations:
            state = self.transport.file_state(path)
            if state is None:
                raise ExecutionError(f"Could not check destination {path} on target host")
            if state:
                raise ValidationError(f"Destination disk file already exists: {path}")

        if self.quota is not None:
            descriptor = run.descriptor
            check = self.quota.check_quota(parsed.owner, descriptor.vcpus, descriptor.memory_mb, run.disk_gb)
            if not check.allowed:
                raise QuotaExceededError(check.reason)

        return f"Clone name '{run.clone}' is available"

    def check_disk_space(self, run: CloneRun, log: StepLog) -> str:
        result = self.host.check_disk_space(run.disk_gb)
        log.extend_warnings(result.warnings)
        if not result.is_valid:
            raise PreconditionError(result.error)
        return "Disk space checked"

    def copy_disks(self, run: CloneRun, log: StepLog) -> str:
        for source_path, clone_path in run.path_map.items():
            result = self.transport.execute(f"cp {shlex.quote(source_path)} {shlex.quote(clone_path)}")
            if result.is_failure:
                raise ExecutionError(
                    f"Failed to copy {source_path}",
                    context=result.text or f"exit status {result.returncode}",
                )
            run.copied.append(clone_path)
            log.append(f"Copied {source_path} to {clone_path}")
        return f"{len(run.copied)} disk file(s) copied"

    def define(self, run: CloneRun) -> str:
        try:
            xml = run.descriptor.cloned_xml(run.clone, run.path_map)
        except ValueError as e:
            raise ExecutionError(f"Failed to build descriptor for '{run.clone}'", context=str(e))
        self.hypervisor.define(xml)
        return f"VM '{run.clone}' defined"

    def start(self, run: CloneRun) -> str:
        self.hypervisor.start(run.clone)
        return f"VM '{run.clone}' started"
