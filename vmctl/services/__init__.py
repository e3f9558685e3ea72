"""
vmctl Services Layer

Business logic for hypervisor operations, used by the CLI commands.
The libvirt backend lives in ``vmctl.services.libvirt_backend`` and is
imported on demand.
"""

from .config_service import ConfigService, ResourceLimits, Settings
from .transport import CommandTransport
from .hypervisor import Hypervisor, InstanceInfo, InstanceState
from .validator import HostValidator, SystemValidator, Validator
from .user_service import UserRegistry
from .quota_service import QuotaService
from .locks import KeyedLocks
from .stats_service import CpuSampler, StatsService
from .deploy_service import DeploymentService
from .teardown_service import TeardownService
from .clone_service import CloneService
from .address_service import AddressService

__all__ = [
    "ConfigService",
    "ResourceLimits",
    "Settings",
    "CommandTransport",
    "Hypervisor",
    "InstanceInfo",
    "InstanceState",
    "HostValidator",
    "SystemValidator",
    "Validator",
    "UserRegistry",
    "QuotaService",
    "KeyedLocks",
    "CpuSampler",
    "StatsService",
    "DeploymentService",
    "TeardownService",
    "CloneService",
    "AddressService",
]
