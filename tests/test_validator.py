"""Validation gate tests."""

import pytest

from vmctl.constants import GIB
from vmctl.services.config_service import ResourceLimits
from vmctl.services.validator import HostValidator, SystemValidator, Validator

from .conftest import BASE_IMAGE

ED25519_KEY = "ssh-ed25519 " + "A" * 80 + " alice@laptop"


@pytest.fixture
def validator():
    return Validator(cpu_count=lambda: 8)


def valid_request(**changes):
    request = {
        "owner": "alice",
        "hostname": "web1",
        "memory": 2048,
        "vcpus": 2,
        "disk": 20,
        "username": "ubuntu",
        "auth_method": "password",
        "password": "Sup3rSecret!",
    }
    request.update(changes)
    return request


class TestHostname:
    @pytest.mark.parametrize("hostname", ["web1", "web-1.lab", "a", "db01.internal"])
    def test_accepted(self, validator, hostname):
        assert validator.validate_hostname(hostname).is_valid

    @pytest.mark.parametrize(
        "hostname, fragment",
        [
            ("localhost", "reserved"),
            ("-web1", "hyphen"),
            ("web1-", "hyphen"),
            (".web1", "dot"),
            ("web_1", "invalid character: '_'"),
            ("wéb1", "invalid character"),
            ("", "too short"),
            ("a" * 64, "too long"),
        ],
    )
    def test_rejected(self, validator, hostname, fragment):
        result = validator.validate_hostname(hostname)
        assert not result.is_valid
        assert fragment in result.error


class TestMemory:
    def test_bounds(self, validator):
        assert not validator.validate_memory(511).is_valid
        assert validator.validate_memory(512).is_valid
        assert validator.validate_memory(65536).is_valid
        assert not validator.validate_memory(65537).is_valid

    def test_non_multiple_of_step_is_valid_with_warning(self, validator):
        result = validator.validate_memory(1000)
        assert result.is_valid
        assert result.has_warnings

    def test_multiple_of_step_has_no_warning(self, validator):
        assert not validator.validate_memory(2048).has_warnings

    def test_non_integer(self, validator):
        assert not validator.validate_memory("2048").is_valid
        assert not validator.validate_memory(True).is_valid


class TestVcpusAndDisk:
    def test_vcpu_bounds(self, validator):
        assert not validator.validate_vcpus(0).is_valid
        assert validator.validate_vcpus(32).is_valid
        assert not validator.validate_vcpus(33).is_valid

    def test_vcpu_advisory_when_exceeding_host_cpus(self, validator):
        result = validator.validate_vcpus(16)
        assert result.is_valid
        assert "exceeds available physical CPUs (8)" in result.warnings[0]

    def test_disk_bounds(self, validator):
        assert not validator.validate_disk(9).is_valid
        assert validator.validate_disk(10).is_valid
        assert validator.validate_disk(2048).is_valid
        assert not validator.validate_disk(2049).is_valid

    def test_limits_are_configurable(self):
        validator = Validator(ResourceLimits(max_disk_gb=50), cpu_count=lambda: 8)
        assert not validator.validate_disk(60).is_valid


class TestCredentials:
    @pytest.mark.parametrize("username", ["ubuntu", "ops_user", "a1"])
    def test_username_accepted(self, validator, username):
        assert validator.validate_username(username).is_valid

    @pytest.mark.parametrize("username", ["", "1ops", "Ops", "ops-user", "root", "a" * 33])
    def test_username_rejected(self, validator, username):
        assert not validator.validate_username(username).is_valid

    def test_password_length(self, validator):
        assert not validator.validate_password("short1").is_valid
        assert not validator.validate_password("x" * 129).is_valid

    def test_weak_password_warns(self, validator):
        result = validator.validate_password("aaaaaaaaaa")
        assert result.is_valid
        assert "weak" in result.warnings[0]

    def test_ssh_key(self, validator):
        assert validator.validate_ssh_key(ED25519_KEY).is_valid
        assert not validator.validate_ssh_key("not-a-key AAAA").is_valid
        short = validator.validate_ssh_key("ssh-rsa AAAA")
        assert short.is_valid and short.has_warnings

    def test_file_path(self, validator, tmp_path):
        assert not validator.validate_file_path("").is_valid
        assert not validator.validate_file_path("/var/lib/../etc/shadow").is_valid
        assert validator.validate_file_path("/var/lib/libvirt/images/x.qcow2").is_valid
        assert not validator.validate_file_path(str(tmp_path / "nope"), must_exist=True).is_valid


class TestDeploymentParams:
    def test_valid_request(self, validator):
        result = validator.validate_deployment_params(valid_request())
        assert result.is_valid
        assert result.warnings == []

    def test_missing_field(self, validator):
        request = valid_request()
        del request["disk"]
        result = validator.validate_deployment_params(request)
        assert result.error == "Missing required field: disk"

    def test_first_failure_wins_and_earlier_warnings_kept(self, validator):
        result = validator.validate_deployment_params(valid_request(memory=1000, vcpus=64))
        assert not result.is_valid
        assert "vCPUs is too high" in result.error
        assert any("multiple of 512" in w for w in result.warnings)

    def test_password_required_for_password_auth(self, validator):
        result = validator.validate_deployment_params(valid_request(password=None))
        assert result.error == "Password is required when auth_method is 'password'"

    def test_ssh_key_auth(self, validator):
        request = valid_request(auth_method="ssh-key", password=None, ssh_key=ED25519_KEY)
        assert validator.validate_deployment_params(request).is_valid

    def test_unknown_auth_method(self, validator):
        result = validator.validate_deployment_params(valid_request(auth_method="kerberos"))
        assert "Invalid auth_method" in result.error


class TestSystemValidator:
    def test_connection(self, hypervisor):
        assert SystemValidator(hypervisor).check_connection().is_valid
        hypervisor.connected = False
        assert not SystemValidator(hypervisor).check_connection().is_valid

    def test_name_in_use(self, hypervisor):
        hypervisor.add_instance("alice-web1")
        result = SystemValidator(hypervisor).check_name_available("alice-web1")
        assert "already exists" in result.error
        assert SystemValidator(hypervisor).check_name_available("alice-web2").is_valid

    def test_network_states(self, hypervisor):
        system = SystemValidator(hypervisor)
        assert system.check_network_available("default").is_valid

        hypervisor.networks["default"] = False
        assert "not active" in system.check_network_available("default").error

        assert "does not exist" in system.check_network_available("isolated").error
        assert "virsh net-start isolated" in system.check_network_available("isolated").error


class TestHostValidator:
    def test_ready_host(self, transport, settings):
        checks = dict(HostValidator(transport, settings).readiness(disk_gb=20))
        assert all(result.is_valid for result in checks.values())
        assert set(checks) == {"Directories", "Tools", "Base image", "Disk space"}

    def test_missing_directory_has_remediation(self, transport, settings):
        transport.directories.discard("/var/lib/libvirt/images/cloud-init-iso")
        result = HostValidator(transport, settings).check_directories()
        assert "cloud-init-iso" in result.error
        assert "sudo mkdir -p" in result.error

    def test_missing_tool_names_package(self, transport, settings):
        transport.tools.discard("mkpasswd")
        result = HostValidator(transport, settings).check_tools()
        assert "mkpasswd" in result.error
        assert "apt-get install -y whois" in result.error

    def test_base_image_missing_or_corrupt(self, transport, settings):
        host = HostValidator(transport, settings)
        transport.valid_images.clear()
        assert "corrupted or invalid" in host.check_base_image().error

        del transport.files[BASE_IMAGE]
        assert "Base image not found" in host.check_base_image().error
        assert "wget" in host.check_base_image().error

    def test_disk_space(self, transport, settings):
        host = HostValidator(transport, settings)
        transport.free_bytes = 5 * GIB
        result = host.check_disk_space(20)
        assert result.error == (
            "Insufficient disk space on target host: required 21.00 GB, available 5.00 GB"
        )

        transport.free_bytes = 21 * GIB
        assert host.check_disk_space(20).is_valid

    def test_undeterminable_space_is_a_warning(self, transport, settings):
        transport.free_bytes = None
        result = HostValidator(transport, settings).check_disk_space(20)
        assert result.is_valid
        assert result.has_warnings
