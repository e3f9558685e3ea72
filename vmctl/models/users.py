"""
User Models

Dataclass models for registry users, quotas and usage snapshots.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from vmctl.constants import (
    DEFAULT_MAX_INSTANCES,
    DEFAULT_MAX_MEMORY_MB,
    DEFAULT_MAX_STORAGE_GB,
    DEFAULT_MAX_VCPUS,
    DEFAULT_ROLE,
    GIB,
)

# Registry document keys for each quota dimension
QUOTA_KEYS = {
    "max_instances": "maxVMs",
    "max_vcpus": "maxCPU",
    "max_memory_mb": "maxRAM",
    "max_storage_gb": "maxStorage",
}


@dataclass
class Quota:
    """Per-user limits. Memory in MB, storage in GB."""

    max_instances: int = DEFAULT_MAX_INSTANCES
    max_vcpus: int = DEFAULT_MAX_VCPUS
    max_memory_mb: int = DEFAULT_MAX_MEMORY_MB
    max_storage_gb: int = DEFAULT_MAX_STORAGE_GB

    @property
    def max_storage_bytes(self) -> int:
        return self.max_storage_gb * GIB

    def updated(self, changes: Dict[str, Any]) -> "Quota":
        """
        Return a copy with changes applied.

        Accepts attribute names or registry document keys.

        Raises:
            ValueError: If a key is unknown or a value is not a non-negative integer
        """
        reverse = {doc_key: attr for attr, doc_key in QUOTA_KEYS.items()}
        values = self.to_dict()
        for key, value in changes.items():
            attr = key if key in QUOTA_KEYS else reverse.get(key)
            if attr is None:
                raise ValueError(f"Unknown quota field: {key}")
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValueError(f"Quota {key} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"Quota {key} cannot be negative")
            values[QUOTA_KEYS[attr]] = value
        return Quota.from_dict(values)

    def to_dict(self) -> Dict[str, int]:
        return {QUOTA_KEYS[attr]: getattr(self, attr) for attr in QUOTA_KEYS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quota":
        return cls(
            max_instances=int(data.get("maxVMs", DEFAULT_MAX_INSTANCES)),
            max_vcpus=int(data.get("maxCPU", DEFAULT_MAX_VCPUS)),
            max_memory_mb=int(data.get("maxRAM", DEFAULT_MAX_MEMORY_MB)),
            max_storage_gb=int(data.get("maxStorage", DEFAULT_MAX_STORAGE_GB)),
        )


@dataclass
class Usage:
    """Live-computed usage snapshot. Storage is kept in bytes."""

    instances: int = 0
    vcpus: int = 0
    memory_mb: int = 0
    storage_bytes: int = 0

    @property
    def storage_gb(self) -> float:
        return self.storage_bytes / GIB

    def percentages(self, quota: Quota) -> Dict[str, float]:
        """Share of each quota dimension in use."""
        return {
            "vms": _percent(self.instances, quota.max_instances),
            "cpu": _percent(self.vcpus, quota.max_vcpus),
            "ram": _percent(self.memory_mb, quota.max_memory_mb),
            "storage": _percent(self.storage_bytes, quota.max_storage_bytes),
        }

    def to_dict(self) -> Dict[str, int]:
        return {
            "vms": self.instances,
            "cpu": self.vcpus,
            "ram": self.memory_mb,
            "storage": self.storage_bytes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Usage":
        return cls(
            instances=int(data.get("vms", 0)),
            vcpus=int(data.get("cpu", 0)),
            memory_mb=int(data.get("ram", 0)),
            storage_bytes=int(data.get("storage", 0)),
        )


@dataclass
class UserRecord:
    """One registry entry, keyed by username."""

    id: int
    username: str
    role: str = DEFAULT_ROLE
    email: str = ""
    full_name: str = ""
    quotas: Quota = field(default_factory=Quota)
    usage: Usage = field(default_factory=Usage)
    created: int = 0
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "email": self.email,
            "fullName": self.full_name,
            "quotas": self.quotas.to_dict(),
            "usage": self.usage.to_dict(),
            "created": self.created,
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserRecord":
        """Create from dictionary."""
        return cls(
            id=int(data.get("id", 0)),
            username=data["username"],
            role=data.get("role", DEFAULT_ROLE),
            email=data.get("email", ""),
            full_name=data.get("fullName", ""),
            quotas=Quota.from_dict(data.get("quotas", {})),
            usage=Usage.from_dict(data.get("usage", {})),
            created=int(data.get("created", 0)),
            active=bool(data.get("active", True)),
        )

    def __repr__(self) -> str:
        return f"UserRecord(username={self.username}, role={self.role}, active={self.active})"


@dataclass
class QuotaCheck:
    """Outcome of checking an allocation against a user's quota."""

    allowed: bool
    resource: Optional[str] = None
    current: Optional[float] = None
    requested: Optional[float] = None
    maximum: Optional[float] = None
    remaining: Dict[str, float] = field(default_factory=dict)

    @property
    def reason(self) -> Optional[str]:
        if self.allowed:
            return None
        return (
            f"{self.resource} quota exceeded "
            f"(current: {_fmt(self.current)}, requested: {_fmt(self.requested)}, max: {_fmt(self.maximum)})"
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.allowed:
            return {"allowed": True, "remaining": dict(self.remaining)}
        return {
            "allowed": False,
            "error": self.reason,
            "details": {
                "resource": self.resource,
                "current": self.current,
                "requested": self.requested,
                "max": self.maximum,
            },
        }


def _percent(value: float, limit: float) -> float:
    if limit <= 0:
        return 100.0 if value > 0 else 0.0
    return value * 100.0 / limit


def _fmt(value: Optional[float]) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f"{value:.2f}"
    return str(int(value)) if value is not None else "?"
