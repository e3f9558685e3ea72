"""
Configuration Service

Resolves vmctl settings from keyword overrides, the process environment,
.env files, an optional YAML settings file and built-in defaults.
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from vmctl.constants import (
    BASE_IMAGE_SUBDIR,
    BOOT_CONFIG_SUBDIR,
    CONFIG_DIR,
    CONFIG_FILE_NAME,
    DEFAULT_BASE_IMAGE_NAME,
    DEFAULT_IMAGES_DIR,
    DEFAULT_LOG_DIR,
    DEFAULT_NETWORK,
    DEFAULT_SHUTDOWN_TIMEOUT,
    DEFAULT_USERS_FILE,
    ENV_FILE_NAME,
    LOCAL_URI,
    LOCKS_SUBDIR,
    MAX_DISK_GB,
    MAX_HOSTNAME_LENGTH,
    MAX_MEMORY_MB,
    MAX_PASSWORD_LENGTH,
    MAX_USERNAME_LENGTH,
    MAX_VCPUS,
    MEMORY_STEP_MB,
    MIN_DISK_GB,
    MIN_HOSTNAME_LENGTH,
    MIN_MEMORY_MB,
    MIN_PASSWORD_CLASSES,
    MIN_PASSWORD_LENGTH,
    MIN_VCPUS,
    REMOTE_URI_FORMAT,
    SHORT_SSH_KEY_LENGTH,
)
from vmctl.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Settings attribute -> environment key
ENV_KEYS = {
    "remote": "VMCTL_REMOTE",
    "remote_host": "VMCTL_REMOTE_HOST",
    "remote_user": "VMCTL_REMOTE_USER",
    "ssh_key": "VMCTL_SSH_KEY",
    "users_file": "VMCTL_USERS_FILE",
    "network": "VMCTL_NETWORK",
    "images_dir": "VMCTL_IMAGES_DIR",
    "base_image": "VMCTL_BASE_IMAGE",
    "shutdown_timeout": "VMCTL_SHUTDOWN_TIMEOUT",
    "log_dir": "VMCTL_LOG_DIR",
}

CONFIG_PATH_ENV = "VMCTL_CONFIG"

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass
class ResourceLimits:
    """Bounds applied by the field validators."""

    min_hostname_length: int = MIN_HOSTNAME_LENGTH
    max_hostname_length: int = MAX_HOSTNAME_LENGTH
    min_memory_mb: int = MIN_MEMORY_MB
    max_memory_mb: int = MAX_MEMORY_MB
    memory_step_mb: int = MEMORY_STEP_MB
    min_vcpus: int = MIN_VCPUS
    max_vcpus: int = MAX_VCPUS
    min_disk_gb: int = MIN_DISK_GB
    max_disk_gb: int = MAX_DISK_GB
    max_username_length: int = MAX_USERNAME_LENGTH
    min_password_length: int = MIN_PASSWORD_LENGTH
    max_password_length: int = MAX_PASSWORD_LENGTH
    min_password_classes: int = MIN_PASSWORD_CLASSES
    short_ssh_key_length: int = SHORT_SSH_KEY_LENGTH

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ResourceLimits":
        """
        Build limits from a ``limits:`` mapping; missing keys keep defaults.

        Raises:
            ConfigurationError: If a key is unknown or a value is not an integer
        """
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                raise ConfigurationError(
                    f"Unknown resource limit: {key}",
                    context=f"Known limits: {', '.join(sorted(known))}",
                )
            try:
                values[key] = int(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"Resource limit {key} must be an integer, got {value!r}")
        return cls(**values)


@dataclass
class Settings:
    """Resolved vmctl configuration."""

    remote: bool = False
    remote_host: Optional[str] = None
    remote_user: Optional[str] = None
    ssh_key: Optional[str] = None
    users_file: str = DEFAULT_USERS_FILE
    network: str = DEFAULT_NETWORK
    images_dir: str = DEFAULT_IMAGES_DIR
    base_image: Optional[str] = None
    shutdown_timeout: int = DEFAULT_SHUTDOWN_TIMEOUT
    log_dir: str = DEFAULT_LOG_DIR
    limits: ResourceLimits = field(default_factory=ResourceLimits)

    @property
    def uri(self) -> str:
        """Hypervisor endpoint derived from the target settings."""
        if not self.remote:
            return LOCAL_URI
        uri = REMOTE_URI_FORMAT.format(user=self.remote_user, host=self.remote_host)
        if self.ssh_key:
            uri += f"?keyfile={self.ssh_key}"
        return uri

    @property
    def base_image_dir(self) -> str:
        return f"{self.images_dir}/{BASE_IMAGE_SUBDIR}"

    @property
    def boot_config_dir(self) -> str:
        return f"{self.images_dir}/{BOOT_CONFIG_SUBDIR}"

    @property
    def base_image_path(self) -> str:
        return self.base_image or f"{self.base_image_dir}/{DEFAULT_BASE_IMAGE_NAME}"

    @property
    def required_directories(self) -> list[str]:
        return [self.images_dir, self.base_image_dir, self.boot_config_dir]

    @property
    def lock_dir(self) -> str:
        """Lock files shared by every vmctl process using this registry."""
        return str(Path(self.users_file).expanduser().parent / LOCKS_SUBDIR)

    def disk_path(self, instance_name: str) -> str:
        return f"{self.images_dir}/{instance_name}.qcow2"

    def boot_config_path(self, instance_name: str) -> str:
        return f"{self.boot_config_dir}/{instance_name}-cloud-init.iso"

    def to_dict(self) -> Dict[str, Any]:
        """Settings safe to display."""
        return {
            "uri": self.uri,
            "users_file": self.users_file,
            "network": self.network,
            "images_dir": self.images_dir,
            "base_image": self.base_image_path,
            "shutdown_timeout": self.shutdown_timeout,
            "log_dir": self.log_dir,
        }

    def validate(self) -> None:
        """
        Check settings are usable.

        Raises:
            ConfigurationError: If the remote target is incomplete or a value is out of range
        """
        if self.remote:
            missing = [
                ENV_KEYS[name]
                for name in ("remote_host", "remote_user")
                if not getattr(self, name)
            ]
            if missing:
                raise ConfigurationError(
                    "Remote mode requires a host and user",
                    context=f"Set: {', '.join(missing)}",
                )
        if self.shutdown_timeout <= 0:
            raise ConfigurationError(
                f"{ENV_KEYS['shutdown_timeout']} must be positive, got {self.shutdown_timeout}"
            )


SETTING_DEFAULTS = {f.name: f.default for f in fields(Settings) if f.name in ENV_KEYS}


class ConfigService:
    """
    Loads Settings.

    Precedence: overrides > environment > .env (CWD, then ~/.vmctl/.env)
    > YAML settings file > defaults.
    """

    def __init__(
        self,
        config_dir: Optional[Path] = None,
        cwd: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config_dir = Path(config_dir) if config_dir else Path(CONFIG_DIR).expanduser()
        self.cwd = Path(cwd) if cwd else Path.cwd()
        self.environ = os.environ if environ is None else environ

    @property
    def config_file(self) -> Path:
        explicit = self.environ.get(CONFIG_PATH_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return self.config_dir / CONFIG_FILE_NAME

    def env_files(self) -> list[Path]:
        """Candidate .env files, highest precedence first."""
        return [self.cwd / ENV_FILE_NAME, self.config_dir / ENV_FILE_NAME]

    def load_yaml(self) -> Dict[str, Any]:
        """
        Read the YAML settings file, if present.

        Raises:
            ConfigurationError: If the file is not valid YAML or not a mapping
        """
        path = self.config_file
        if not path.exists():
            return {}
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}", context=str(e))
        if not isinstance(data, dict):
            raise ConfigurationError(f"Settings file {path} must contain a mapping")
        logger.debug("Loaded settings file %s", path)
        return data

    def load_env_files(self) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for path in reversed(self.env_files()):
            if path.exists():
                values = {k: v for k, v in dotenv_values(path).items() if v is not None}
                merged.update(values)
                logger.debug("Loaded %d values from %s", len(values), path)
        return merged

    def load(self, **overrides) -> Settings:
        """
        Resolve settings.

        Args:
            **overrides: Settings attribute values that win over every source

        Raises:
            ConfigurationError: If a value cannot be parsed or settings are incomplete
        """
        yaml_data = self.load_yaml()
        env_file_values = self.load_env_files()

        raw: Dict[str, Any] = {}
        for name in ENV_KEYS:
            if name in yaml_data:
                raw[name] = yaml_data[name]
        for name, key in ENV_KEYS.items():
            if key in env_file_values:
                raw[name] = env_file_values[key]
        for name, key in ENV_KEYS.items():
            if key in self.environ:
                raw[name] = self.environ[key]
        for name, value in overrides.items():
            if name not in ENV_KEYS:
                raise ConfigurationError(f"Unknown setting: {name}")
            if value is not None:
                raw[name] = value

        settings = Settings(limits=ResourceLimits.from_dict(yaml_data.get("limits")))
        for name, value in raw.items():
            setattr(settings, name, self._coerce(name, value))

        settings.validate()
        return settings

    def _coerce(self, name: str, value: Any) -> Any:
        """Parse one raw value; an empty value means the built-in default."""
        if name == "remote":
            return _parse_bool(ENV_KEYS[name], value)
        if value is None or value == "":
            return SETTING_DEFAULTS[name]
        if name == "shutdown_timeout":
            try:
                return int(value)
            except (TypeError, ValueError):
                raise ConfigurationError(f"{ENV_KEYS[name]} must be an integer, got {value!r}")
        return str(value)


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{key} must be a boolean, got {value!r}")
