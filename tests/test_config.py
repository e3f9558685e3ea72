"""Settings resolution tests."""

import pytest

from vmctl.constants import LOCAL_URI
from vmctl.exceptions import ConfigurationError
from vmctl.services.config_service import ConfigService, ResourceLimits


@pytest.fixture
def config_dir(tmp_path):
    path = tmp_path / "home" / ".vmctl"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def cwd(tmp_path):
    path = tmp_path / "work"
    path.mkdir()
    return path


def make_service(config_dir, cwd, **environ):
    return ConfigService(config_dir=config_dir, cwd=cwd, environ=environ)


class TestDefaults:
    def test_local_target(self, config_dir, cwd):
        settings = make_service(config_dir, cwd).load()
        assert not settings.remote
        assert settings.uri == LOCAL_URI
        assert settings.network == "default"
        assert settings.shutdown_timeout == 30
        assert settings.base_image_path.endswith("/baseimg/ubuntu-22.04-server-cloudimg-amd64.img")
        assert settings.limits == ResourceLimits()

    def test_derived_paths(self, config_dir, cwd):
        settings = make_service(config_dir, cwd, VMCTL_IMAGES_DIR="/data/images").load()
        assert settings.disk_path("alice-web1") == "/data/images/alice-web1.qcow2"
        assert settings.boot_config_path("alice-web1") == (
            "/data/images/cloud-init-iso/alice-web1-cloud-init.iso"
        )
        assert settings.required_directories == [
            "/data/images",
            "/data/images/baseimg",
            "/data/images/cloud-init-iso",
        ]


class TestRemoteTarget:
    def test_uri_with_keyfile(self, config_dir, cwd):
        settings = make_service(
            config_dir,
            cwd,
            VMCTL_REMOTE="true",
            VMCTL_REMOTE_HOST="kvm01",
            VMCTL_REMOTE_USER="ops",
            VMCTL_SSH_KEY="~/.ssh/kvm",
        ).load()
        assert settings.uri == "qemu+ssh://ops@kvm01/system?keyfile=~/.ssh/kvm"

    def test_incomplete_remote(self, config_dir, cwd):
        with pytest.raises(ConfigurationError) as exc:
            make_service(config_dir, cwd, VMCTL_REMOTE="yes", VMCTL_REMOTE_HOST="kvm01").load()
        assert "VMCTL_REMOTE_USER" in exc.value.context

    def test_bad_boolean(self, config_dir, cwd):
        with pytest.raises(ConfigurationError):
            make_service(config_dir, cwd, VMCTL_REMOTE="maybe").load()


class TestPrecedence:
    def test_sources_in_order(self, config_dir, cwd):
        (config_dir / "config.yml").write_text("network: yaml-net\nimages_dir: /yaml\nusers_file: /yaml/users.json\n")
        (config_dir / ".env").write_text("VMCTL_NETWORK=home-env-net\nVMCTL_IMAGES_DIR=/home-env\n")
        (cwd / ".env").write_text("VMCTL_NETWORK=cwd-env-net\n")

        service = make_service(config_dir, cwd, VMCTL_USERS_FILE="/env/users.json")
        settings = service.load()

        assert settings.network == "cwd-env-net"
        assert settings.images_dir == "/home-env"
        assert settings.users_file == "/env/users.json"

        assert service.load(network="override-net").network == "override-net"

    def test_explicit_config_path(self, config_dir, cwd, tmp_path):
        other = tmp_path / "other.yml"
        other.write_text("shutdown_timeout: 90\n")
        settings = make_service(config_dir, cwd, VMCTL_CONFIG=str(other)).load()
        assert settings.shutdown_timeout == 90

    def test_unknown_override(self, config_dir, cwd):
        with pytest.raises(ConfigurationError):
            make_service(config_dir, cwd).load(colour="blue")


class TestValidation:
    def test_limits_section(self, config_dir, cwd):
        (config_dir / "config.yml").write_text("limits:\n  max_disk_gb: 500\n  max_vcpus: 16\n")
        limits = make_service(config_dir, cwd).load().limits
        assert limits.max_disk_gb == 500
        assert limits.max_vcpus == 16
        assert limits.min_memory_mb == 512

    def test_unknown_limit(self, config_dir, cwd):
        (config_dir / "config.yml").write_text("limits:\n  max_gpus: 2\n")
        with pytest.raises(ConfigurationError):
            make_service(config_dir, cwd).load()

    def test_invalid_yaml(self, config_dir, cwd):
        (config_dir / "config.yml").write_text("network: [unclosed\n")
        with pytest.raises(ConfigurationError):
            make_service(config_dir, cwd).load()

    def test_yaml_must_be_mapping(self, config_dir, cwd):
        (config_dir / "config.yml").write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            make_service(config_dir, cwd).load()

    @pytest.mark.parametrize("value", ["0", "-5", "soon"])
    def test_shutdown_timeout(self, config_dir, cwd, value):
        with pytest.raises(ConfigurationError):
            make_service(config_dir, cwd, VMCTL_SHUTDOWN_TIMEOUT=value).load()


class TestEmptyValues:
    def test_empty_values_mean_defaults(self, config_dir, cwd):
        (config_dir / "config.yml").write_text("network:\nlog_dir: ''\n")
        settings = make_service(
            config_dir,
            cwd,
            VMCTL_USERS_FILE="",
            VMCTL_IMAGES_DIR="",
            VMCTL_SHUTDOWN_TIMEOUT="",
        ).load()

        assert settings.users_file == "/var/lib/vmctl/users.json"
        assert settings.images_dir == "/var/lib/libvirt/images"
        assert settings.network == "default"
        assert settings.log_dir == "~/.vmctl/logs"
        assert settings.shutdown_timeout == 30
        assert settings.disk_path("alice-web1") == "/var/lib/libvirt/images/alice-web1.qcow2"

    def test_lock_dir_sits_beside_users_file(self, config_dir, cwd):
        settings = make_service(config_dir, cwd, VMCTL_USERS_FILE="/srv/vmctl/users.json").load()
        assert settings.lock_dir == "/srv/vmctl/locks"
