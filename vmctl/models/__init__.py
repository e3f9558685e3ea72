"""
vmctl Domain Models

Dataclass-based models for type-safe data handling.
"""

from .results import (
    ExecutionResult,
    ValidationResult,
)
from .deployment import (
    AuthMethod,
    DeploymentParams,
    InstanceName,
    instance_name_for,
    parse_instance_name,
)
from .descriptor import (
    DiskDevice,
    DomainDescriptor,
    GraphicsDevice,
)
from .network import (
    AddressLookup,
    InstanceAddresses,
    IPAddress,
    NetworkInterface,
)
from .ssh import TargetHost
from .users import (
    Quota,
    QuotaCheck,
    Usage,
    UserRecord,
)
from .workflow import (
    CloneStage,
    DeployStage,
    Step,
    StepLog,
    TeardownStage,
    WorkflowResult,
)

__all__ = [
    # Results
    "ExecutionResult",
    "ValidationResult",
    # Deployment
    "AuthMethod",
    "DeploymentParams",
    "InstanceName",
    "instance_name_for",
    "parse_instance_name",
    # Descriptors
    "DiskDevice",
    "DomainDescriptor",
    "GraphicsDevice",
    # Network
    "AddressLookup",
    "InstanceAddresses",
    "IPAddress",
    "NetworkInterface",
    # Target
    "TargetHost",
    # Users
    "Quota",
    "QuotaCheck",
    "Usage",
    "UserRecord",
    # Workflow
    "CloneStage",
    "DeployStage",
    "Step",
    "StepLog",
    "TeardownStage",
    "WorkflowResult",
]
