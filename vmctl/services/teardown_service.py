"""
Teardown Service

Decommissions an instance: graceful-then-forced stop, snapshot purge,
undefinition and optional reclamation of its disk files.
"""

import logging
import shlex
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from vmctl.constants import SHUTDOWN_POLL_INTERVAL
from vmctl.exceptions import ExecutionError, VmctlError
from vmctl.models.workflow import Step, StepLog, TeardownStage, WorkflowResult
from vmctl.services.config_service import Settings
from vmctl.services.hypervisor import Hypervisor, InstanceState
from vmctl.services.locks import KeyedLocks
from vmctl.services.stats_service import CpuSampler
from vmctl.services.transport import CommandTransport
from vmctl.services.workflow_runner import StepRunner

logger = logging.getLogger(__name__)


@dataclass
class TeardownRun:
    name: str
    remove_disks: bool
    state: Optional[InstanceState] = None
    disk_paths: list[str] = field(default_factory=list)
    deleted_disks: list[str] = field(default_factory=list)
    deleted_snapshots: list[str] = field(default_factory=list)


class TeardownService:
    """
    Delete workflow.

    Lookup, stop and undefine are fatal. Disk discovery, snapshot purge
    and disk-file removal are best-effort and only add warnings.
    """

    def __init__(
        self,
        hypervisor: Hypervisor,
        transport: CommandTransport,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        locks: Optional[KeyedLocks] = None,
        sampler: Optional[CpuSampler] = None,
        poll_interval: float = SHUTDOWN_POLL_INTERVAL,
    ):
        self.hypervisor = hypervisor
        self.transport = transport
        self.settings = settings
        self._sleep = sleep
        self._clock = clock
        self.locks = locks or KeyedLocks()
        self.sampler = sampler
        self.poll_interval = poll_interval

    def delete(self, name: str, remove_disks: bool = True, reporter: Optional[Any] = None) -> WorkflowResult:
        """
        Args:
            name: Instance name
            remove_disks: Reclaim the instance's disk files after undefinition
            reporter: Optional OperationLogger receiving step events
        """
        run = TeardownRun(name=name, remove_disks=remove_disks)
        logger.info("Deleting %s (remove disks: %s)", name, remove_disks)

        with self.locks.hold(f"instance:{name}"):
            result = StepRunner(self.build_steps(run), reporter=reporter).run(
                succeeded=TeardownStage.SUCCEEDED,
                failed=TeardownStage.FAILED,
                details={"instance": name},
            )

        result.details.update(
            disk_paths=list(run.disk_paths),
            deleted_disks=list(run.deleted_disks),
            deleted_snapshots=list(run.deleted_snapshots),
        )
        if result.success and self.sampler is not None:
            self.sampler.forget(name)
        return result

    def build_steps(self, run: TeardownRun) -> list[Step]:
        steps = [Step("Look up VM", TeardownStage.LOOKING_UP, lambda log: self.look_up(run))]
        if run.remove_disks:
            steps.append(
                Step("Discover disks", TeardownStage.DISCOVERING_DISKS, lambda log: self.discover_disks(run), fatal=False)
            )
        steps.extend(
            [
                Step("Stop VM", TeardownStage.STOPPING, lambda log: self.stop(run, log)),
                Step(
                    "Delete snapshots",
                    TeardownStage.PURGING_SNAPSHOTS,
                    lambda log: self.delete_snapshots(run, log),
                    fatal=False,
                ),
                Step("Undefine VM", TeardownStage.UNDEFINING, lambda log: self.undefine(run)),
            ]
        )
        if run.remove_disks:
            steps.append(
                Step(
                    "Delete disk files",
                    TeardownStage.RECLAIMING_STORAGE,
                    lambda log: self.reclaim_storage(run, log),
                    fatal=False,
                )
            )
        return steps

    def look_up(self, run: TeardownRun) -> str:
        run.state = self.hypervisor.get_info(run.name).state
        return f"VM '{run.name}' found ({run.state.label})"

    def discover_disks(self, run: TeardownRun) -> str:
        """Read disk paths from the live descriptor before anything destructive happens."""
        descriptor = self.hypervisor.get_descriptor(run.name)
        run.disk_paths = descriptor.reclaimable_paths()
        return f"Found {len(run.disk_paths)} disk file(s) to remove"

    def stop(self, run: TeardownRun, log: StepLog) -> str:
        """
        Graceful shutdown, bounded wait, then force-stop.

        Only active instances are stopped. Only a failed force-stop fails
        the step.
        """
        if run.state is not None and not run.state.is_active:
            return f"VM not running ({run.state.label})"

        try:
            self.hypervisor.shutdown(run.name)
            log.append("Graceful shutdown requested")
            if self._wait_for_stop(run.name, self.settings.shutdown_timeout):
                return "VM stopped gracefully"
            log.append(f"VM still running after {self.settings.shutdown_timeout}s")
        except ExecutionError as e:
            log.append(f"Graceful shutdown failed: {e.message}")

        self.hypervisor.destroy(run.name)
        return "VM force-stopped"

    def _wait_for_stop(self, name: str, timeout: float) -> bool:
        deadline = self._clock() + timeout
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return False
            self._sleep(min(self.poll_interval, remaining))
            if self.hypervisor.get_info(name).state.is_stopped:
                return True

    def delete_snapshots(self, run: TeardownRun, log: StepLog) -> str:
        snapshots = self.hypervisor.list_snapshots(run.name)
        if not snapshots:
            return "No snapshots to delete"

        for snapshot in snapshots:
            try:
                self.hypervisor.delete_snapshot(run.name, snapshot, metadata_only=True)
            except VmctlError as e:
                log.warn(f"Failed to delete snapshot '{snapshot}': {e.message}")
                continue
            run.deleted_snapshots.append(snapshot)
            log.append(f"Snapshot '{snapshot}' deleted")

        return f"{len(run.deleted_snapshots)}/{len(snapshots)} snapshot(s) deleted"

    def undefine(self, run: TeardownRun) -> str:
        try:
            self.hypervisor.undefine(run.name, extended=True)
        except ExecutionError as e:
            logger.debug("Extended undefine of %s rejected (%s); retrying plain", run.name, e.message)
            self.hypervisor.undefine(run.name, extended=False)
        return f"VM '{run.name}' undefined"

    def reclaim_storage(self, run: TeardownRun, log: StepLog) -> str:
        """Delete each discovered disk file; a missing file is already reclaimed."""
        if not run.disk_paths:
            return "No disk files found to delete"

        for path in run.disk_paths:
            state = self.transport.file_state(path)
            if state is None:
                log.warn(f"Could not check disk file {path}; left in place")
                continue
            if not state:
                log.append(f"Disk file already absent: {path}")
                continue
            result = self.transport.execute(f"rm -f {shlex.quote(path)}")
            if result.is_failure:
                log.warn(f"Failed to delete disk file {path}: {result.text or result.returncode}")
                continue
            run.deleted_disks.append(path)
            log.append(f"Disk file deleted: {path}")

        return f"{len(run.deleted_disks)}/{len(run.disk_paths)} disk file(s) deleted"
