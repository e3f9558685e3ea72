"""
Hypervisor Command Base Class

Base class for commands that talk to a hypervisor host.
Provides lazy service initialization from resolved settings.
"""

from typing import Optional

from .base_command import BaseCommand
from vmctl.exceptions import ConfigurationError
from vmctl.services import (
    AddressService,
    CloneService,
    CommandTransport,
    ConfigService,
    CpuSampler,
    DeploymentService,
    Hypervisor,
    KeyedLocks,
    QuotaService,
    Settings,
    StatsService,
    TeardownService,
    UserRegistry,
)


class HypervisorCommand(BaseCommand):
    """
    Base class for hypervisor commands.

    Provides:
    - Settings resolution (config file, .env, environment)
    - Pre-configured transport, hypervisor, registry and workflow services
    """

    def __init__(self, verbose: bool = False, json_output: bool = False):
        super().__init__(verbose=verbose, json_output=json_output)
        self.config_service = ConfigService()
        self._settings: Optional[Settings] = None
        self._transport: Optional[CommandTransport] = None
        self._hypervisor: Optional[Hypervisor] = None
        self._registry: Optional[UserRegistry] = None
        self._locks: Optional[KeyedLocks] = None
        self.sampler = CpuSampler()

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = self.config_service.load()
            self.log_dir = self._settings.log_dir
        return self._settings

    @property
    def transport(self) -> CommandTransport:
        if self._transport is None:
            self._transport = self.build_transport(self.settings)
        return self._transport

    @property
    def hypervisor(self) -> Hypervisor:
        if self._hypervisor is None:
            self._hypervisor = self.build_hypervisor(self.settings)
        return self._hypervisor

    @property
    def registry(self) -> UserRegistry:
        if self._registry is None:
            self._registry = UserRegistry(self.settings.users_file)
        return self._registry

    @property
    def locks(self) -> KeyedLocks:
        """Owner and instance locks shared with every other vmctl process on this machine."""
        if self._locks is None:
            self._locks = KeyedLocks(self.settings.lock_dir)
        return self._locks

    def build_transport(self, settings: Settings) -> CommandTransport:
        return CommandTransport.from_uri(settings.uri, ssh_key=settings.ssh_key)

    def build_hypervisor(self, settings: Settings) -> Hypervisor:
        """
        Open the libvirt backend.

        Raises:
            ConfigurationError: If the libvirt bindings are not installed
        """
        try:
            from vmctl.services.libvirt_backend import LibvirtHypervisor
        except ImportError as e:
            raise ConfigurationError(
                "libvirt Python bindings are not installed",
                context=f"{e}. Install with: pip install 'vmctl[libvirt]'",
            )
        return LibvirtHypervisor(settings.uri)

    def quota_service(self) -> QuotaService:
        return QuotaService(self.registry, self.hypervisor)

    def deployment_service(self) -> DeploymentService:
        return DeploymentService(
            self.hypervisor,
            self.transport,
            self.settings,
            quota=self.quota_service(),
            locks=self.locks,
        )

    def teardown_service(self) -> TeardownService:
        return TeardownService(
            self.hypervisor,
            self.transport,
            self.settings,
            locks=self.locks,
            sampler=self.sampler,
        )

    def clone_service(self) -> CloneService:
        return CloneService(
            self.hypervisor,
            self.transport,
            self.settings,
            quota=self.quota_service(),
            locks=self.locks,
        )

    def address_service(self) -> AddressService:
        return AddressService(self.hypervisor)

    def stats_service(self) -> StatsService:
        return StatsService(self.hypervisor, self.sampler)

    def target_description(self) -> str:
        return self.transport.host_info()
