"""Quota accounting tests."""

import pytest

from vmctl.constants import GIB
from vmctl.exceptions import UserNotFoundError
from vmctl.models.descriptor import DiskDevice
from vmctl.models.users import Usage
from vmctl.services.quota_service import QuotaService


@pytest.fixture
def quota(registry, hypervisor):
    registry.create("alice")
    return QuotaService(registry, hypervisor)


class TestUsage:
    def test_only_owned_instances_count(self, quota, hypervisor):
        hypervisor.add_instance("alice-web1", vcpus=2, memory_mb=2048, disk_gb=20)
        hypervisor.add_instance("alice-db1", vcpus=4, memory_mb=4096, disk_gb=50)
        hypervisor.add_instance("bob-web1", vcpus=8)
        hypervisor.add_instance("legacyvm", vcpus=8)

        usage = quota.recompute_usage("alice")

        assert usage == Usage(instances=2, vcpus=6, memory_mb=6144, storage_bytes=70 * GIB)

    def test_usage_is_persisted(self, quota, registry, hypervisor):
        hypervisor.add_instance("alice-web1")
        quota.recompute_usage("alice")
        registry.load()
        assert registry.get("alice").usage.instances == 1

    def test_storage_reads_conventional_devices(self, quota, hypervisor):
        disks = [DiskDevice(source="/images/alice-old.img", target="hda")]
        hypervisor.add_instance("alice-old", disks=disks, disk_gb=15)
        assert quota.recompute_usage("alice").storage_bytes == 15 * GIB

    def test_instance_without_known_device_has_no_storage(self, quota, hypervisor):
        disks = [DiskDevice(source="/images/alice-nvme.img", target="nvme0n1")]
        hypervisor.add_instance("alice-nvme", disks=disks)
        usage = quota.recompute_usage("alice")
        assert usage.instances == 1
        assert usage.storage_bytes == 0

    def test_unknown_user(self, quota):
        with pytest.raises(UserNotFoundError) as exc:
            quota.recompute_usage("mallory")
        assert "alice" in exc.value.context


class TestCheckQuota:
    def test_vm_limit_reached(self, quota, hypervisor):
        for i in range(5):
            hypervisor.add_instance(f"alice-web{i}", vcpus=1, memory_mb=512, disk_gb=10)

        check = quota.check_quota("alice", vcpus=1, memory_mb=512, disk_gb=10)

        assert not check.allowed
        assert check.resource == "VMs"
        assert (check.current, check.requested, check.maximum) == (5, 1, 5)
        assert check.reason == "VMs quota exceeded (current: 5, requested: 1, max: 5)"

    def test_dimensions_checked_in_order(self, quota, registry):
        registry.update_quotas("alice", {"maxCPU": 1, "maxRAM": 256})
        check = quota.check_quota("alice", vcpus=2, memory_mb=1024, disk_gb=10)
        assert check.resource == "vCPUs"

    def test_memory_exceeded(self, quota, hypervisor):
        hypervisor.add_instance("alice-big", vcpus=1, memory_mb=16000, disk_gb=10)
        check = quota.check_quota("alice", vcpus=1, memory_mb=1024, disk_gb=10)
        assert check.resource == "Memory (MB)"
        assert check.to_dict()["details"] == {
            "resource": "Memory (MB)",
            "current": 16000,
            "requested": 1024,
            "max": 16384,
        }

    def test_storage_reported_in_gb(self, quota, hypervisor):
        hypervisor.add_instance("alice-web1", vcpus=1, memory_mb=512, disk_gb=95)
        check = quota.check_quota("alice", vcpus=1, memory_mb=512, disk_gb=10)
        assert check.resource == "Storage (GB)"
        assert check.reason == "Storage (GB) quota exceeded (current: 95, requested: 10, max: 100)"

    def test_exact_fit_is_allowed(self, quota, registry):
        registry.update_quotas("alice", {"maxCPU": 2, "maxRAM": 2048, "maxStorage": 20, "maxVMs": 1})
        check = quota.check_quota("alice", vcpus=2, memory_mb=2048, disk_gb=20)
        assert check.allowed
        assert check.remaining == {"vms": 0, "cpu": 0, "ram": 0, "storage": 0}

    @pytest.mark.parametrize("vcpus", [1, 2, 4, 8])
    def test_smaller_request_never_denied_when_larger_allowed(self, quota, hypervisor, vcpus):
        hypervisor.add_instance("alice-web1", vcpus=2, memory_mb=2048, disk_gb=20)
        larger = quota.check_quota("alice", vcpus=vcpus, memory_mb=4096, disk_gb=40)
        smaller = quota.check_quota("alice", vcpus=max(vcpus - 1, 1), memory_mb=2048, disk_gb=20)
        if larger.allowed:
            assert smaller.allowed

    def test_precomputed_usage_skips_hypervisor(self, quota, hypervisor):
        hypervisor.add_instance("alice-web1", vcpus=8)
        check = quota.check_quota("alice", vcpus=2, memory_mb=512, disk_gb=10, usage=Usage())
        assert check.allowed


class TestUsageReport:
    def test_percentages(self, quota, hypervisor):
        hypervisor.add_instance("alice-web1", vcpus=2, memory_mb=4096, disk_gb=25)

        report = quota.usage_report("alice")

        assert report["usage"] == {"vms": 1, "cpu": 2, "ram": 4096, "storage": 25 * GIB}
        assert report["percentages"] == {"vms": 20.0, "cpu": 25.0, "ram": 25.0, "storage": 25.0}

    def test_cached_report_does_not_touch_hypervisor(self, quota, hypervisor):
        hypervisor.add_instance("alice-web1")
        report = quota.usage_report("alice", refresh=False)
        assert report["usage"]["vms"] == 0

    def test_zero_quota(self, quota, registry, hypervisor):
        registry.update_quotas("alice", {"maxVMs": 0})
        hypervisor.add_instance("alice-web1")
        assert quota.usage_report("alice")["percentages"]["vms"] == 100.0

    def test_all_users(self, quota, registry, hypervisor):
        registry.create("bob")
        hypervisor.add_instance("bob-web1")
        reports = {r["username"]: r for r in quota.all_usage()}
        assert reports["alice"]["usage"]["vms"] == 0
        assert reports["bob"]["usage"]["vms"] == 1
