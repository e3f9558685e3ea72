"""
Validation Gate

Field validators, the composite deployment-request validator, and checks
against the hypervisor and the target host. Every check returns a
ValidationResult; none of them change anything.
"""

import logging
import os
from pathlib import PurePosixPath
from typing import Any, Callable, Mapping, Optional

from vmctl.constants import (
    BASE_IMAGE_DOWNLOAD_URL,
    DEFAULT_BASE_IMAGE_NAME,
    DISK_SPACE_MARGIN_GB,
    GIB,
    REQUIRED_TOOLS,
    RESERVED_HOSTNAMES,
    RESERVED_USERNAMES,
    SSH_KEY_PREFIXES,
)
from vmctl.exceptions import VmctlError
from vmctl.models.deployment import REQUIRED_FIELDS, AuthMethod
from vmctl.models.results import ValidationResult
from vmctl.services.config_service import ResourceLimits, Settings
from vmctl.services.hypervisor import Hypervisor
from vmctl.services.transport import CommandTransport

logger = logging.getLogger(__name__)


class Validator:
    """Field-level and composite validation of deployment requests."""

    def __init__(
        self,
        limits: Optional[ResourceLimits] = None,
        cpu_count: Optional[Callable[[], Optional[int]]] = None,
    ):
        """
        Args:
            limits: Resource bounds (defaults when omitted)
            cpu_count: Returns the local CPU count used for the vCPU advisory
        """
        self.limits = limits or ResourceLimits()
        self._cpu_count = cpu_count or os.cpu_count

    def validate_hostname(self, hostname: Any) -> ValidationResult:
        limits = self.limits
        if not isinstance(hostname, str):
            return ValidationResult.invalid("Hostname must be a string")
        if len(hostname) < limits.min_hostname_length:
            return ValidationResult.invalid(
                f"Hostname is too short (minimum {limits.min_hostname_length} characters)"
            )
        if len(hostname) > limits.max_hostname_length:
            return ValidationResult.invalid(
                f"Hostname is too long (maximum {limits.max_hostname_length} characters)"
            )
        for char in hostname:
            if not (_is_ascii_alnum(char) or char in "-."):
                return ValidationResult.invalid(
                    f"Hostname contains invalid character: '{char}'. "
                    "Only alphanumeric, hyphen, and dot are allowed."
                )
        if hostname.startswith("-") or hostname.endswith("-"):
            return ValidationResult.invalid("Hostname cannot start or end with a hyphen")
        if hostname.startswith("."):
            return ValidationResult.invalid("Hostname cannot start with a dot")
        if hostname in RESERVED_HOSTNAMES:
            return ValidationResult.invalid(f"Hostname '{hostname}' is a reserved name")
        return ValidationResult.ok()

    def validate_memory(self, memory: Any) -> ValidationResult:
        limits = self.limits
        if not _is_int(memory):
            return ValidationResult.invalid("Memory must be an integer number of MB")
        if memory < limits.min_memory_mb:
            return ValidationResult.invalid(f"Memory is too low (minimum {limits.min_memory_mb} MB)")
        if memory > limits.max_memory_mb:
            return ValidationResult.invalid(f"Memory is too high (maximum {limits.max_memory_mb} MB)")
        result = ValidationResult.ok()
        if memory % limits.memory_step_mb != 0:
            result.add_warning(
                f"Memory is not a multiple of {limits.memory_step_mb} MB. "
                "It's recommended to use values like 512, 1024, 2048, etc."
            )
        return result

    def validate_vcpus(self, vcpus: Any) -> ValidationResult:
        limits = self.limits
        if not _is_int(vcpus):
            return ValidationResult.invalid("vCPUs must be an integer")
        if vcpus < limits.min_vcpus:
            return ValidationResult.invalid(f"vCPUs is too low (minimum {limits.min_vcpus})")
        if vcpus > limits.max_vcpus:
            return ValidationResult.invalid(f"vCPUs is too high (maximum {limits.max_vcpus})")
        result = ValidationResult.ok()
        available = self._cpu_count()
        if available and vcpus > available:
            result.add_warning(
                f"Requested vCPUs ({vcpus}) exceeds available physical CPUs ({available}). "
                "This may affect performance."
            )
        return result

    def validate_disk(self, disk: Any) -> ValidationResult:
        limits = self.limits
        if not _is_int(disk):
            return ValidationResult.invalid("Disk must be an integer number of GB")
        if disk < limits.min_disk_gb:
            return ValidationResult.invalid(f"Disk is too small (minimum {limits.min_disk_gb} GB)")
        if disk > limits.max_disk_gb:
            return ValidationResult.invalid(f"Disk is too large (maximum {limits.max_disk_gb} GB)")
        return ValidationResult.ok()

    def validate_username(self, username: Any) -> ValidationResult:
        if not isinstance(username, str) or not username:
            return ValidationResult.invalid("Username cannot be empty")
        if len(username) > self.limits.max_username_length:
            return ValidationResult.invalid(
                f"Username is too long (maximum {self.limits.max_username_length} characters)"
            )
        if not ("a" <= username[0].lower() <= "z"):
            return ValidationResult.invalid("Username must start with a letter")
        if any(not ("a" <= c <= "z" or "0" <= c <= "9" or c == "_") for c in username):
            return ValidationResult.invalid(
                "Username can only contain lowercase letters, numbers, and underscore"
            )
        if username in RESERVED_USERNAMES:
            return ValidationResult.invalid(f"Username '{username}' is reserved")
        return ValidationResult.ok()

    def validate_password(self, password: Any) -> ValidationResult:
        limits = self.limits
        if not isinstance(password, str):
            return ValidationResult.invalid("Password must be a string")
        if len(password) < limits.min_password_length:
            return ValidationResult.invalid(
                f"Password is too short (minimum {limits.min_password_length} characters)"
            )
        if len(password) > limits.max_password_length:
            return ValidationResult.invalid(
                f"Password is too long (maximum {limits.max_password_length} characters)"
            )
        classes = {_char_class(c) for c in password}
        result = ValidationResult.ok()
        if len(classes) < limits.min_password_classes:
            result.add_warning(
                "Password is weak. Consider using a mix of uppercase, "
                "lowercase, numbers, and special characters."
            )
        return result

    def validate_ssh_key(self, ssh_key: Any) -> ValidationResult:
        if not isinstance(ssh_key, str) or not ssh_key:
            return ValidationResult.invalid("SSH key cannot be empty")
        if not any(ssh_key.startswith(prefix) for prefix in SSH_KEY_PREFIXES):
            return ValidationResult.invalid(
                "Invalid SSH key format. Key must start with ssh-rsa, ssh-ed25519, etc."
            )
        result = ValidationResult.ok()
        if len(ssh_key) < self.limits.short_ssh_key_length:
            result.add_warning("SSH key seems unusually short. Make sure it's a complete public key.")
        return result

    def validate_file_path(
        self, path: Any, must_exist: bool = False, transport: Optional[CommandTransport] = None
    ) -> ValidationResult:
        """
        Check a path is non-empty and free of parent-directory traversal.

        When ``must_exist`` is set the file is looked up through the
        transport if one is given, otherwise on the local filesystem.
        """
        if not isinstance(path, str) or not path:
            return ValidationResult.invalid("File path cannot be empty")
        if ".." in PurePosixPath(path).parts:
            return ValidationResult.invalid("Path traversal detected (.. not allowed)")
        if must_exist:
            exists = transport.file_exists(path) if transport else os.path.isfile(path)
            if not exists:
                return ValidationResult.invalid(f"File does not exist: {path}")
        return ValidationResult.ok()

    def validate_deployment_params(self, params: Mapping[str, Any]) -> ValidationResult:
        """
        Validate a complete deployment request.

        Required fields are checked first, then the field validators run in
        a fixed order. The first invalid check ends validation with its
        error; warnings from every check that ran are kept.
        """
        result = ValidationResult.ok()

        for name in REQUIRED_FIELDS:
            if params.get(name) is None:
                return result.fail(f"Missing required field: {name}")

        checks = [
            lambda: self.validate_hostname(params["hostname"]),
            lambda: self.validate_memory(params["memory"]),
            lambda: self.validate_vcpus(params["vcpus"]),
            lambda: self.validate_disk(params["disk"]),
            lambda: self.validate_username(params["username"]),
        ]
        for check in checks:
            if not result.absorb(check()):
                return result

        auth_method = params["auth_method"]
        if isinstance(auth_method, AuthMethod):
            auth_method = auth_method.value
        if auth_method == AuthMethod.PASSWORD.value:
            if not params.get("password"):
                return result.fail("Password is required when auth_method is 'password'")
            result.absorb(self.validate_password(params["password"]))
        elif auth_method == AuthMethod.SSH_KEY.value:
            if not params.get("ssh_key"):
                return result.fail("SSH key is required when auth_method is 'ssh-key'")
            result.absorb(self.validate_ssh_key(params["ssh_key"]))
        else:
            return result.fail("Invalid auth_method. Must be 'password' or 'ssh-key'")

        return result


class SystemValidator:
    """Checks answered by the hypervisor."""

    def __init__(self, hypervisor: Hypervisor):
        self.hypervisor = hypervisor

    def check_connection(self) -> ValidationResult:
        try:
            host = self.hypervisor.hostname()
        except VmctlError as e:
            return ValidationResult.invalid(f"Hypervisor connection is not functional: {e.message}")
        if not host:
            return ValidationResult.invalid("Hypervisor connection is not functional")
        return ValidationResult.ok()

    def check_name_available(self, name: str) -> ValidationResult:
        if self.hypervisor.instance_exists(name):
            return ValidationResult.invalid(
                f"VM with name '{name}' already exists on the hypervisor host. "
                "Choose a different hostname or delete the existing VM."
            )
        return ValidationResult.ok()

    def check_network_available(self, network: str) -> ValidationResult:
        state = self.hypervisor.network_state(network)
        if state is None:
            return ValidationResult.invalid(
                f"Network '{network}' does not exist on the hypervisor host\n\n"
                "On the hypervisor host, start the network:\n"
                f"  sudo virsh net-start {network}\n"
                f"  sudo virsh net-autostart {network}"
            )
        if not state:
            return ValidationResult.invalid(
                f"Network '{network}' exists but is not active on the hypervisor host\n\n"
                "On the hypervisor host, start the network:\n"
                f"  sudo virsh net-start {network}"
            )
        return ValidationResult.ok()


class HostValidator:
    """Readiness checks run on the target host through the command transport."""

    def __init__(self, transport: CommandTransport, settings: Settings):
        self.transport = transport
        self.settings = settings

    def check_directories(self) -> ValidationResult:
        missing = [d for d in self.settings.required_directories if not self.transport.directory_exists(d)]
        if missing:
            listing = "\n".join(f"  - {d}" for d in missing)
            images = self.settings.images_dir
            return ValidationResult.invalid(
                f"Required directories missing on target host:\n{listing}\n\n"
                "On the target host, run:\n"
                f"  sudo mkdir -p {self.settings.base_image_dir} {self.settings.boot_config_dir}\n"
                f"  sudo chown -R libvirt-qemu:kvm {images}"
            )
        return ValidationResult.ok()

    def check_tools(self) -> ValidationResult:
        missing = [tool for tool in REQUIRED_TOOLS if not self.transport.command_exists(tool)]
        if missing:
            packages = " ".join(dict.fromkeys(REQUIRED_TOOLS[tool] for tool in missing))
            return ValidationResult.invalid(
                f"Required tools missing on target host: {', '.join(missing)}\n\n"
                "On the target host, install them:\n"
                f"  sudo apt-get install -y {packages}"
            )
        return ValidationResult.ok()

    def check_base_image(self) -> ValidationResult:
        path = self.settings.base_image_path
        result = Validator().validate_file_path(path)
        if not result.is_valid:
            return result
        if not self.transport.file_exists(path):
            return ValidationResult.invalid(
                f"Base image not found on target host: {path}\n\n"
                "On the target host, download the base image:\n"
                f"  cd {self.settings.base_image_dir}\n"
                f"  sudo wget {BASE_IMAGE_DOWNLOAD_URL} -O {DEFAULT_BASE_IMAGE_NAME}"
            )
        if not self.transport.is_valid_disk_image(path):
            return ValidationResult.invalid(
                f"Base image is corrupted or invalid: {path}\n"
                "Re-download the image on the target host"
            )
        return ValidationResult.ok()

    def check_disk_space(self, disk_gb: int) -> ValidationResult:
        """
        Require the disk size plus a fixed margin to be free under the images directory.

        An undeterminable free-space figure is a warning, not a failure.
        """
        required = (disk_gb + DISK_SPACE_MARGIN_GB) * GIB
        available = self.transport.available_disk_space(self.settings.images_dir)
        if available < 0:
            return ValidationResult.ok(
                ["Could not verify disk space on target host. Proceeding with deployment."]
            )
        if available < required:
            return ValidationResult.invalid(
                "Insufficient disk space on target host: "
                f"required {required / GIB:.2f} GB, available {available / GIB:.2f} GB"
            )
        return ValidationResult.ok()

    def readiness(self, disk_gb: Optional[int] = None) -> list[tuple[str, ValidationResult]]:
        """Run every host check; used by the doctor command."""
        checks = [
            ("Directories", self.check_directories),
            ("Tools", self.check_tools),
            ("Base image", self.check_base_image),
        ]
        results = []
        for name, check in checks:
            results.append((name, check()))
        if disk_gb is not None:
            results.append(("Disk space", self.check_disk_space(disk_gb)))
        return results


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_ascii_alnum(char: str) -> bool:
    return char.isascii() and char.isalnum()


def _char_class(char: str) -> str:
    if char.islower():
        return "lower"
    if char.isupper():
        return "upper"
    if char.isdigit():
        return "digit"
    return "special"
