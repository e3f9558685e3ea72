"""
Quota Service

Recomputes per-user usage from live hypervisor state and decides whether
an allocation fits the user's quota.
"""

import logging
from typing import Any, Dict, Optional

from vmctl.constants import GIB, PRIMARY_DISK_DEVICES
from vmctl.exceptions import InstanceNotFoundError
from vmctl.models.deployment import parse_instance_name
from vmctl.models.users import QuotaCheck, Usage, UserRecord
from vmctl.services.hypervisor import Hypervisor
from vmctl.services.user_service import UserRegistry

logger = logging.getLogger(__name__)


class QuotaService:
    """
    Usage accounting against the user registry.

    Usage is never tracked incrementally: every check walks the owner's
    live instances and the snapshot replaces the cached one in the registry.
    """

    def __init__(self, registry: UserRegistry, hypervisor: Hypervisor):
        self.registry = registry
        self.hypervisor = hypervisor

    def owned_instances(self, username: str) -> list[str]:
        owned = []
        for name in self.hypervisor.list_instances():
            parsed = parse_instance_name(name)
            if parsed and parsed.owner == username:
                owned.append(name)
        return owned

    def primary_disk_capacity(self, name: str) -> int:
        """Capacity in bytes of the first conventional block device present, else 0."""
        for device in PRIMARY_DISK_DEVICES:
            capacity = self.hypervisor.block_capacity(name, device)
            if capacity is not None:
                return capacity
        logger.debug("No primary block device found on %s", name)
        return 0

    def recompute_usage(self, username: str) -> Usage:
        """
        Rebuild the usage snapshot for a user and persist it.

        Raises:
            UserNotFoundError: If the user is not registered
        """
        self.registry.get(username)

        usage = Usage()
        for name in self.owned_instances(username):
            try:
                info = self.hypervisor.get_info(name)
                storage = self.primary_disk_capacity(name)
            except InstanceNotFoundError:
                logger.debug("Instance %s disappeared while computing usage", name)
                continue
            usage.instances += 1
            usage.vcpus += info.vcpus
            usage.memory_mb += info.memory_mb
            usage.storage_bytes += storage

        self.registry.record_usage(username, usage)
        return usage

    def check_quota(
        self,
        username: str,
        vcpus: int,
        memory_mb: int,
        disk_gb: int,
        usage: Optional[Usage] = None,
    ) -> QuotaCheck:
        """
        Check one more instance of the given size against the user's quota.

        Dimensions are checked in order: instances, vCPUs, memory, storage.
        The first one exceeded is reported; otherwise the post-allocation
        headroom is returned.

        Args:
            usage: Precomputed usage; recomputed from the hypervisor when omitted

        Raises:
            UserNotFoundError: If the user is not registered
        """
        user = self.registry.get(username)
        if usage is None:
            usage = self.recompute_usage(username)
        quota = user.quotas

        requested_storage = disk_gb * GIB
        checks = [
            ("VMs", usage.instances, 1, quota.max_instances),
            ("vCPUs", usage.vcpus, vcpus, quota.max_vcpus),
            ("Memory (MB)", usage.memory_mb, memory_mb, quota.max_memory_mb),
            ("Storage (GB)", usage.storage_bytes, requested_storage, quota.max_storage_bytes),
        ]
        for resource, current, requested, maximum in checks:
            if current + requested > maximum:
                if resource == "Storage (GB)":
                    current, requested, maximum = current / GIB, disk_gb, quota.max_storage_gb
                logger.info(
                    "Quota check for %s denied on %s (current %s, requested %s, max %s)",
                    username,
                    resource,
                    current,
                    requested,
                    maximum,
                )
                return QuotaCheck(
                    allowed=False,
                    resource=resource,
                    current=current,
                    requested=requested,
                    maximum=maximum,
                )

        return QuotaCheck(
            allowed=True,
            remaining={
                "vms": quota.max_instances - usage.instances - 1,
                "cpu": quota.max_vcpus - usage.vcpus - vcpus,
                "ram": quota.max_memory_mb - usage.memory_mb - memory_mb,
                "storage": (quota.max_storage_bytes - usage.storage_bytes - requested_storage) / GIB,
            },
        )

    def usage_report(self, username: str, refresh: bool = True) -> Dict[str, Any]:
        """Usage, quota and percentage of each quota dimension in use."""
        user = self.registry.get(username)
        usage = self.recompute_usage(username) if refresh else user.usage
        return _report(user, usage)

    def all_usage(self, refresh: bool = True) -> list[Dict[str, Any]]:
        reports = []
        for user in self.registry.list_users():
            usage = self.recompute_usage(user.username) if refresh else user.usage
            reports.append(_report(user, usage))
        return reports


def _report(user: UserRecord, usage: Usage) -> Dict[str, Any]:
    return {
        "username": user.username,
        "active": user.active,
        "quotas": user.quotas.to_dict(),
        "usage": usage.to_dict(),
        "percentages": {k: round(v, 1) for k, v in usage.percentages(user.quotas).items()},
    }
