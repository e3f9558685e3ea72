"""
Deployment Service

Turns a validated deployment request into a running instance through a
fixed, ordered list of steps. The first failing step ends the run; nothing
already created is rolled back.
"""

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from jinja2 import Template

from vmctl.constants import (
    BOOT_CONFIG_VOLUME_ID,
    PASSWORD_HASH_METHOD,
    PASSWORD_HASH_ROUNDS,
    STAGING_DIR_FORMAT,
)
from vmctl.exceptions import (
    ConnectivityError,
    ExecutionError,
    PreconditionError,
    QuotaExceededError,
    ValidationError,
    VmctlError,
)
from vmctl.models.deployment import AuthMethod, DeploymentParams
from vmctl.models.results import ExecutionResult, ValidationResult
from vmctl.models.workflow import DeployStage, Step, StepLog, WorkflowResult
from vmctl.services.boot_config import BootConfig
from vmctl.services.config_service import Settings
from vmctl.services.hypervisor import Hypervisor
from vmctl.services.locks import KeyedLocks
from vmctl.services.quota_service import QuotaService
from vmctl.services.transport import CommandTransport, mask
from vmctl.services.user_service import USERNAME_PATTERN
from vmctl.services.validator import HostValidator, SystemValidator, Validator
from vmctl.services.workflow_runner import StepRunner

logger = logging.getLogger(__name__)

DOMAIN_TEMPLATE = Path(__file__).parent.parent / "stubs" / "instances" / "domain.xml.j2"


def render_domain_xml(
    name: str,
    memory_mb: int,
    vcpus: int,
    disk_path: str,
    boot_config_path: str,
    network: str,
    vnc_listen: str = "0.0.0.0",
) -> str:
    """Render the instance definition from the packaged template."""
    template = Template(DOMAIN_TEMPLATE.read_text(encoding="utf-8"), autoescape=True)
    return template.render(
        name=name,
        memory_mb=memory_mb,
        vcpus=vcpus,
        disk_path=disk_path,
        boot_config_path=boot_config_path,
        network=network,
        vnc_listen=vnc_listen,
    )


@dataclass
class DeploymentRun:
    """Per-run state shared by the steps."""

    params: DeploymentParams
    disk_path: str
    boot_config_path: str
    staging_dir: str

    @property
    def instance_name(self) -> str:
        return self.params.instance_name


class DeploymentService:
    """Deploy workflow: validation gate, then disk, boot-config and instance creation."""

    def __init__(
        self,
        hypervisor: Hypervisor,
        transport: CommandTransport,
        settings: Settings,
        quota: Optional[QuotaService] = None,
        validator: Optional[Validator] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        """
        Args:
            hypervisor: Hypervisor capability object
            transport: Runs commands on the hypervisor host
            settings: Resolved configuration
            quota: Quota engine; without it no quota is enforced
            validator: Field validator (built from settings.limits when omitted)
            locks: Shared per-key locks serializing concurrent deployments
        """
        self.hypervisor = hypervisor
        self.transport = transport
        self.settings = settings
        self.quota = quota
        self.validator = validator or Validator(settings.limits)
        self.system = SystemValidator(hypervisor)
        self.host = HostValidator(transport, settings)
        self.locks = locks or KeyedLocks()

    def prepare(self, params: DeploymentParams) -> DeploymentRun:
        name = params.instance_name
        return DeploymentRun(
            params=params,
            disk_path=self.settings.disk_path(name),
            boot_config_path=self.settings.boot_config_path(name),
            staging_dir=STAGING_DIR_FORMAT.format(name=name),
        )

    def deploy(self, params: DeploymentParams, reporter: Optional[Any] = None) -> WorkflowResult:
        """
        Run the full deployment.

        The owner lock covers the quota check through the usage refresh, and
        the instance lock covers the name check through instance definition,
        so concurrent requests for the same owner or name are serialized.

        Args:
            params: Deployment request
            reporter: Optional OperationLogger receiving step events
        """
        run = self.prepare(params)
        logger.info("Deploying %s on %s", run.instance_name, self.transport.host_info())

        with self.locks.hold(f"owner:{params.owner}"):
            with self.locks.hold(f"instance:{run.instance_name}"):
                result = StepRunner(self.build_steps(run), reporter=reporter).run(
                    succeeded=DeployStage.SUCCEEDED,
                    failed=DeployStage.FAILED,
                    details={
                        "instance": run.instance_name,
                        "disk_path": run.disk_path,
                        "boot_config_path": run.boot_config_path,
                    },
                )
            if result.success:
                self._refresh_usage(params.owner, result)

        return result

    def build_steps(self, run: DeploymentRun) -> list[Step]:
        return [
            Step("Validate request", DeployStage.VALIDATING, lambda log: self.validate(run, log)),
            Step("Check VM name", DeployStage.CHECKING_NAME, lambda log: self.check_name(run)),
            Step(
                "Check directories",
                DeployStage.CHECKING_HOST_READINESS,
                lambda log: self._precondition(self.host.check_directories(), log, "All required directories exist"),
            ),
            Step(
                "Check tools",
                DeployStage.CHECKING_HOST_READINESS,
                lambda log: self._precondition(self.host.check_tools(), log, "All required tools are installed"),
            ),
            Step(
                "Check base image",
                DeployStage.CHECKING_BASE_IMAGE,
                lambda log: self._precondition(
                    self.host.check_base_image(), log, f"Base image is valid: {self.settings.base_image_path}"
                ),
            ),
            Step(
                "Check disk space",
                DeployStage.CHECKING_DISK_SPACE,
                lambda log: self._precondition(
                    self.host.check_disk_space(run.params.disk), log, "Disk space checked"
                ),
            ),
            Step(
                "Check network",
                DeployStage.CHECKING_NETWORK,
                lambda log: self._precondition(
                    self.system.check_network_available(self.settings.network),
                    log,
                    f"Network '{self.settings.network}' is active",
                ),
            ),
            Step("Generate boot config", DeployStage.GENERATING_BOOT_CONFIG, lambda log: self.generate_boot_config(run)),
            Step("Package boot config", DeployStage.PACKAGING_BOOT_CONFIG, lambda log: self.package_boot_config(run)),
            Step("Provision disk", DeployStage.PROVISIONING_DISK, lambda log: self.provision_disk(run)),
            Step("Resize disk", DeployStage.RESIZING_DISK, lambda log: self.resize_disk(run)),
            Step("Define VM", DeployStage.DEFINING_INSTANCE, lambda log: self.define_instance(run)),
            Step("Start VM", DeployStage.STARTING_INSTANCE, lambda log: self.start_instance(run)),
        ]

    def validate(self, run: DeploymentRun, log: StepLog) -> str:
        """Connectivity, request fields, then quota."""
        params = run.params

        connection = self.system.check_connection()
        if not connection.is_valid:
            raise ConnectivityError(connection.error, context=self.transport.host_info())

        if not isinstance(params.owner, str) or not USERNAME_PATTERN.match(params.owner):
            raise ValidationError(f"Invalid owner: {params.owner!r}")

        result = self.validator.validate_deployment_params(params.to_dict())
        log.extend_warnings(result.warnings)
        if not result.is_valid:
            raise ValidationError(f"Validation failed: {result.error}")

        if self.quota is not None:
            check = self.quota.check_quota(params.owner, params.vcpus, params.memory, params.disk)
            if not check.allowed:
                raise QuotaExceededError(check.reason)

        return "Connectivity, parameters and quota validated"

    def check_name(self, run: DeploymentRun) -> str:
        result = self.system.check_name_available(run.instance_name)
        if not result.is_valid:
            raise ValidationError(result.error)
        return f"VM name '{run.instance_name}' is available"

    def generate_boot_config(self, run: DeploymentRun) -> str:
        """Write meta-data and user-data to a staging directory on the target host."""
        params = run.params
        staging = shlex.quote(run.staging_dir)

        self._run(f"mkdir -p {staging}", "Failed to create staging directory on target host")
        try:
            password_hash = None
            if params.auth_method == AuthMethod.PASSWORD:
                password_hash = self.hash_password(params.password)
            config = BootConfig(
                instance_name=run.instance_name,
                hostname=params.hostname,
                username=params.username,
                password_hash=password_hash,
                ssh_key=params.ssh_key if params.auth_method == AuthMethod.SSH_KEY else None,
            )
            secrets = [password_hash] if password_hash else []
            for filename, content in (
                ("meta-data", config.render_meta_data()),
                ("user-data", config.render_user_data()),
            ):
                result = self.transport.write_file(f"{run.staging_dir}/{filename}", content)
                if result.is_failure:
                    raise ExecutionError(
                        f"Failed to write {filename} on target host",
                        context=_diagnostic(result, secrets),
                    )
        except VmctlError:
            self._cleanup_staging(run)
            raise

        return "Boot configuration generated"

    def hash_password(self, password: str) -> str:
        """Salted SHA-512 crypt hash computed on the target host."""
        command = (
            f"mkpasswd --method={PASSWORD_HASH_METHOD} --rounds={PASSWORD_HASH_ROUNDS} "
            f"{shlex.quote(password)}"
        )
        result = self.transport.execute(command, secrets=[password])
        if result.is_failure or not result.text:
            raise ExecutionError(
                "Failed to generate password hash on target host", context=result.text or None
            )
        return result.text.splitlines()[-1].strip()

    def package_boot_config(self, run: DeploymentRun) -> str:
        """Build the boot-config ISO; the staging directory is always removed afterwards."""
        staging = run.staging_dir
        command = (
            f"genisoimage -output {shlex.quote(run.boot_config_path)} "
            f"-volid {BOOT_CONFIG_VOLUME_ID} -joliet -rock "
            f"{shlex.quote(staging + '/user-data')} {shlex.quote(staging + '/meta-data')}"
        )
        try:
            self._run(command, "Failed to create boot-config image")
        finally:
            self._cleanup_staging(run)
        return f"Boot-config image created: {run.boot_config_path}"

    def provision_disk(self, run: DeploymentRun) -> str:
        self._run(
            f"cp {shlex.quote(self.settings.base_image_path)} {shlex.quote(run.disk_path)}",
            "Failed to copy base image",
        )
        return f"Base image copied to {run.disk_path}"

    def resize_disk(self, run: DeploymentRun) -> str:
        size = run.params.disk
        self._run(f"qemu-img resize {shlex.quote(run.disk_path)} {size}G", "Failed to resize disk")
        return f"Disk resized to {size}GB"

    def define_instance(self, run: DeploymentRun) -> str:
        xml = render_domain_xml(
            name=run.instance_name,
            memory_mb=run.params.memory,
            vcpus=run.params.vcpus,
            disk_path=run.disk_path,
            boot_config_path=run.boot_config_path,
            network=self.settings.network,
        )
        self.hypervisor.define(xml)
        return f"VM '{run.instance_name}' defined"

    def start_instance(self, run: DeploymentRun) -> str:
        self.hypervisor.start(run.instance_name)
        return f"VM '{run.instance_name}' started"

    def _precondition(self, result: ValidationResult, log: StepLog, entry: str) -> str:
        log.extend_warnings(result.warnings)
        if not result.is_valid:
            raise PreconditionError(result.error)
        return entry

    def _run(self, command: str, message: str, secrets: Optional[list[str]] = None) -> ExecutionResult:
        result = self.transport.execute(command, secrets=secrets or [])
        if result.is_failure:
            raise ExecutionError(message, context=_diagnostic(result, secrets or []))
        return result

    def _cleanup_staging(self, run: DeploymentRun) -> None:
        result = self.transport.execute(f"rm -rf {shlex.quote(run.staging_dir)}")
        if result.is_failure:
            logger.warning("Failed to remove staging directory %s: %s", run.staging_dir, result.text)

    def _refresh_usage(self, owner: str, result: WorkflowResult) -> None:
        if self.quota is None:
            return
        try:
            self.quota.recompute_usage(owner)
        except VmctlError as e:
            logger.warning("Usage refresh for %s failed: %s", owner, e.message)
            result.warnings.append(f"Usage refresh for {owner} failed: {e.message}")


def _diagnostic(result: ExecutionResult, secrets: list[str]) -> Optional[str]:
    text = mask(result.text, secrets)
    return text or f"exit status {result.returncode}"
