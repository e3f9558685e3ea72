"""User registry tests."""

import json

import pytest

from vmctl.exceptions import RegistryError, UserExistsError, UserNotFoundError, ValidationError
from vmctl.models.users import Quota, Usage
from vmctl.services.user_service import UserRegistry


class TestCreate:
    def test_defaults(self, registry):
        user = registry.create("alice", email="alice@example.com", full_name="Alice Doe")

        assert user.id == 1
        assert user.role == "user"
        assert user.active
        assert user.created == 1700000000000
        assert user.quotas == Quota(max_instances=5, max_vcpus=8, max_memory_mb=16384, max_storage_gb=100)
        assert user.usage == Usage()

    def test_ids_increase(self, registry):
        registry.create("alice")
        registry.create("bob")
        registry.delete("alice")
        assert registry.create("carol").id == 3

    def test_quota_overrides_merge_with_defaults(self, registry):
        user = registry.create("alice", quotas={"maxCPU": 16})
        assert user.quotas.max_vcpus == 16
        assert user.quotas.max_instances == 5

    def test_duplicate(self, registry):
        registry.create("alice")
        with pytest.raises(UserExistsError):
            registry.create("alice")

    @pytest.mark.parametrize("username", ["Alice", "alice-smith", "9lives", "", "a" * 33])
    def test_invalid_username(self, registry, username):
        with pytest.raises(ValidationError):
            registry.create(username)

    def test_negative_quota(self, registry):
        with pytest.raises(ValidationError):
            registry.create("alice", quotas={"maxVMs": -1})


class TestPersistence:
    def test_document_layout(self, registry, settings):
        registry.create("alice", quotas={"maxRAM": 8192})

        with open(settings.users_file) as f:
            document = json.load(f)

        assert document == [
            {
                "id": 1,
                "username": "alice",
                "role": "user",
                "email": "",
                "fullName": "",
                "quotas": {"maxVMs": 5, "maxCPU": 8, "maxRAM": 8192, "maxStorage": 100},
                "usage": {"vms": 0, "cpu": 0, "ram": 0, "storage": 0},
                "created": 1700000000000,
                "active": True,
            }
        ]

    def test_reload_sees_every_mutation(self, registry, settings):
        registry.create("alice")
        registry.update("alice", {"role": "admin", "active": False})
        registry.record_usage("alice", Usage(instances=1, vcpus=2, memory_mb=2048, storage_bytes=1))

        reloaded = UserRegistry(settings.users_file).get("alice")

        assert reloaded.role == "admin"
        assert not reloaded.active
        assert reloaded.usage.vcpus == 2

    def test_missing_file_is_empty(self, tmp_path):
        assert len(UserRegistry(tmp_path / "nope.json")) == 0

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text("{not json")
        with pytest.raises(RegistryError):
            UserRegistry(path)

    def test_wrong_document_shape(self, tmp_path):
        path = tmp_path / "users.json"
        path.write_text('{"alice": {}}')
        with pytest.raises(RegistryError):
            UserRegistry(path)

    def test_failed_write_leaves_memory_unchanged(self, registry, monkeypatch):
        registry.create("alice")

        def broken_save():
            raise RegistryError("disk full")

        monkeypatch.setattr(registry, "save", broken_save)
        with pytest.raises(RegistryError):
            registry.create("bob")
        with pytest.raises(RegistryError):
            registry.delete("alice")

        assert registry.usernames() == ["alice"]


class TestUpdateAndDelete:
    def test_update_quotas_by_document_key_or_attribute(self, registry):
        registry.create("alice")
        registry.update_quotas("alice", {"maxVMs": 10})
        user = registry.update_quotas("alice", {"max_storage_gb": 500})
        assert user.quotas.max_instances == 10
        assert user.quotas.max_storage_gb == 500

    def test_unknown_quota_key(self, registry):
        registry.create("alice")
        with pytest.raises(ValidationError):
            registry.update_quotas("alice", {"maxGPU": 1})

    def test_immutable_fields(self, registry):
        registry.create("alice")
        with pytest.raises(ValidationError) as exc:
            registry.update("alice", {"username": "bob", "id": 7})
        assert "id, username" in exc.value.message

    def test_missing_user(self, registry):
        with pytest.raises(UserNotFoundError):
            registry.update("ghost", {"role": "admin"})
        with pytest.raises(UserNotFoundError):
            registry.delete("ghost")

    def test_delete(self, registry):
        registry.create("alice")
        registry.delete("alice")
        assert not registry.exists("alice")


class TestSharedFile:
    def test_two_registries_keep_each_others_users(self, tmp_path):
        path = tmp_path / "users.json"
        first = UserRegistry(path)
        second = UserRegistry(path)

        first.create("alice")
        second.create("bob")

        assert UserRegistry(path).usernames() == ["alice", "bob"]
        assert second.get("bob").id == 2

    def test_usage_snapshot_keeps_a_newer_quota(self, tmp_path):
        path = tmp_path / "users.json"
        UserRegistry(path).create("alice")
        admin = UserRegistry(path)
        accounting = UserRegistry(path)

        admin.update_quotas("alice", {"maxVMs": 9})
        accounting.record_usage("alice", Usage(instances=1, vcpus=1, memory_mb=512, storage_bytes=0))

        user = UserRegistry(path).get("alice")
        assert user.quotas.max_instances == 9
        assert user.usage.instances == 1

    def test_delete_sees_user_created_elsewhere(self, tmp_path):
        path = tmp_path / "users.json"
        stale = UserRegistry(path)
        UserRegistry(path).create("alice")

        stale.delete("alice")

        assert len(UserRegistry(path)) == 0

    def test_mutations_use_a_lock_file(self, registry, settings):
        registry.create("alice")
        assert registry.lock_path.name == "users.json.lock"
        assert registry.lock_path.exists()


class TestQuotaValues:
    @pytest.mark.parametrize("value", [None, "lots", 2.5j])
    def test_non_integer_quota(self, registry, value):
        registry.create("alice")
        with pytest.raises(ValidationError):
            registry.update_quotas("alice", {"maxVMs": value})
        with pytest.raises(ValidationError):
            registry.create("bob", quotas={"maxCPU": value})
