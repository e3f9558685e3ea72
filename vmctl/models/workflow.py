"""
Workflow Models

Named steps, the step log, and the result returned by the deploy,
teardown and clone workflows.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union

from vmctl.exceptions import ErrorKind


class DeployStage(Enum):
    """Deployment state machine. SUCCEEDED and FAILED are terminal."""

    VALIDATING = "validating"
    CHECKING_NAME = "checking_name"
    CHECKING_HOST_READINESS = "checking_host_readiness"
    CHECKING_BASE_IMAGE = "checking_base_image"
    CHECKING_DISK_SPACE = "checking_disk_space"
    CHECKING_NETWORK = "checking_network"
    GENERATING_BOOT_CONFIG = "generating_boot_config"
    PACKAGING_BOOT_CONFIG = "packaging_boot_config"
    PROVISIONING_DISK = "provisioning_disk"
    RESIZING_DISK = "resizing_disk"
    DEFINING_INSTANCE = "defining_instance"
    STARTING_INSTANCE = "starting_instance"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TeardownStage(Enum):
    LOOKING_UP = "looking_up"
    DISCOVERING_DISKS = "discovering_disks"
    STOPPING = "stopping"
    PURGING_SNAPSHOTS = "purging_snapshots"
    UNDEFINING = "undefining"
    RECLAIMING_STORAGE = "reclaiming_storage"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CloneStage(Enum):
    LOOKING_UP = "looking_up"
    VALIDATING = "validating"
    CHECKING_DISK_SPACE = "checking_disk_space"
    COPYING_DISKS = "copying_disks"
    DEFINING_INSTANCE = "defining_instance"
    STARTING_INSTANCE = "starting_instance"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


Stage = Union[DeployStage, TeardownStage, CloneStage]


class StepLog:
    """
    Ordered, append-only record of one workflow run.

    Entries are human-readable step descriptions; warnings are kept
    separately and never affect the outcome.
    """

    def __init__(self):
        self._entries: list[str] = []
        self._warnings: list[str] = []

    def append(self, entry: str) -> None:
        self._entries.append(entry)

    def warn(self, warning: str) -> None:
        self._warnings.append(warning)

    def extend_warnings(self, warnings: list[str]) -> None:
        for warning in warnings:
            self.warn(warning)

    @property
    def entries(self) -> list[str]:
        return list(self._entries)

    @property
    def warnings(self) -> list[str]:
        return list(self._warnings)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"StepLog(entries={len(self._entries)}, warnings={len(self._warnings)})"


@dataclass
class Step:
    """
    One named unit of a workflow.

    The action appends any extra entries it needs to the log and returns
    the summary entry for the step (None to add nothing). It signals
    failure by raising a VmctlError. A non-fatal step's failure is
    recorded as a warning and the workflow continues.
    """

    name: str
    stage: Stage
    action: Callable[[StepLog], Optional[str]]
    fatal: bool = True


@dataclass
class WorkflowResult:
    """Outcome of a deploy or teardown run."""

    success: bool
    stage: Stage
    steps: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    failed_step: Optional[str] = None
    diagnostic: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON output."""
        data: Dict[str, Any] = {
            "success": self.success,
            "stage": self.stage.value,
            "steps": list(self.steps),
            "warnings": list(self.warnings),
        }
        if not self.success:
            data["error"] = self.error
            data["error_kind"] = self.error_kind.value if self.error_kind else None
            data["failed_step"] = self.failed_step
            if self.diagnostic:
                data["diagnostic"] = self.diagnostic
        if self.details:
            data.update(self.details)
        return data

    def __repr__(self) -> str:
        return f"WorkflowResult(success={self.success}, stage={self.stage.value}, steps={len(self.steps)})"
