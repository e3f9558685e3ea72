"""Command transport for running shell commands on the hypervisor host."""

import logging
import shlex
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional, Sequence

from vmctl.constants import (
    CONNECTION_CANARY,
    SECRET_MASK,
    SSH_CONNECT_TIMEOUT,
    SSH_KEY_CANDIDATES,
)
from vmctl.models.results import ExecutionResult
from vmctl.models.ssh import TargetHost

logger = logging.getLogger(__name__)


class CommandTransport:
    """
    Runs opaque shell commands locally or over SSH with the same result shape.

    Never raises: spawn failures and unreachable hosts come back as a
    non-zero exit status with a diagnostic in the output.
    """

    def __init__(
        self,
        target: Optional[TargetHost] = None,
        ssh_key: Optional[str] = None,
        connect_timeout: int = SSH_CONNECT_TIMEOUT,
        key_candidates: Sequence[str] = tuple(SSH_KEY_CANDIDATES),
        runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ):
        """
        Initialize command transport.

        Args:
            target: Where to run commands (local when omitted)
            ssh_key: Explicit private key path from configuration
            connect_timeout: SSH connection timeout in seconds
            key_candidates: Conventional key locations tried in order
            runner: subprocess.run compatible callable
        """
        self.target = target or TargetHost.local()
        self.connect_timeout = connect_timeout
        self._runner = runner
        self.key_path = self._resolve_key(ssh_key, key_candidates) if self.target.is_remote else None

    @classmethod
    def from_uri(cls, uri: Optional[str], ssh_key: Optional[str] = None, **kwargs) -> "CommandTransport":
        return cls(TargetHost.from_uri(uri), ssh_key=ssh_key, **kwargs)

    @property
    def is_remote(self) -> bool:
        return self.target.is_remote

    def _resolve_key(self, explicit: Optional[str], candidates: Sequence[str]) -> Optional[Path]:
        """Pick the first existing credential: configuration, endpoint, then conventional paths."""
        ordered = [explicit, self.target.key_path, *candidates]
        for candidate in ordered:
            if not candidate:
                continue
            path = Path(candidate).expanduser()
            if path.exists():
                return path
        logger.debug("No SSH key found for %s, relying on agent", self.target.connection_string)
        return None

    def build_argv(self, command: str) -> list[str]:
        """Build the argument vector used to run a command on the target."""
        if not self.target.is_remote:
            return ["/bin/sh", "-c", command]

        argv = [
            "ssh",
            "-o",
            "BatchMode=yes",
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            "-o",
            "LogLevel=ERROR",
        ]
        if self.key_path:
            argv.extend(["-i", str(self.key_path)])
        if self.target.port:
            argv.extend(["-p", str(self.target.port)])
        argv.append(self.target.connection_string)
        argv.append(command)
        return argv

    def execute(self, command: str, secrets: Sequence[str] = ()) -> ExecutionResult:
        """
        Execute command on the target host.

        Args:
            command: Shell command string
            secrets: Values masked wherever the command is logged or echoed back

        Returns:
            ExecutionResult with combined stdout/stderr
        """
        shown = mask(command, secrets)
        logger.debug("Executing on %s: %s", self.target.describe(), shown)

        start_time = time.time()
        try:
            completed = self._runner(
                self.build_argv(command),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                check=False,
            )
        except (OSError, ValueError) as e:
            return ExecutionResult(
                returncode=127,
                output=f"Failed to execute command: {e}",
                command=shown,
                duration_seconds=time.time() - start_time,
            )

        return ExecutionResult(
            returncode=completed.returncode,
            output=mask(completed.stdout or "", secrets),
            command=shown,
            duration_seconds=time.time() - start_time,
        )

    def test_connection(self) -> bool:
        """Fast readiness check: the canary must be echoed back."""
        result = self.execute(f"echo {CONNECTION_CANARY}")
        return result.is_success and CONNECTION_CANARY in result.output

    def file_exists(self, path: str) -> bool:
        return self.execute(f"test -f {shlex.quote(path)}").is_success

    def file_state(self, path: str) -> Optional[bool]:
        """
        Tri-state existence check.

        Returns:
            True if the file exists, False if ``test`` says it does not,
            None if the check itself failed (unreachable host, spawn failure)
        """
        result = self.execute(f"test -f {shlex.quote(path)}")
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        logger.debug("Existence check for %s failed with status %s: %s", path, result.returncode, result.text)
        return None

    def directory_exists(self, path: str) -> bool:
        return self.execute(f"test -d {shlex.quote(path)}").is_success

    def command_exists(self, name: str) -> bool:
        return self.execute(f"command -v {shlex.quote(name)} > /dev/null 2>&1").is_success

    def is_valid_disk_image(self, path: str) -> bool:
        """Check that qemu-img can read the image header."""
        return self.execute(f"qemu-img info {shlex.quote(path)} > /dev/null 2>&1").is_success

    def available_disk_space(self, path: str) -> int:
        """
        Free bytes on the filesystem holding ``path``.

        Returns:
            Available bytes, or -1 if it cannot be determined
        """
        result = self.execute(
            f"df -B1 {shlex.quote(path)} 2>/dev/null | tail -1 | awk '{{print $4}}'"
        )
        if result.is_failure or not result.text:
            return -1
        try:
            return int(result.text.splitlines()[-1])
        except ValueError:
            return -1

    def write_file(self, path: str, content: str) -> ExecutionResult:
        """Write text content to a file on the target host."""
        return self.execute(f"printf '%s' {shlex.quote(content)} > {shlex.quote(path)}")

    def host_info(self) -> str:
        return self.target.describe()

    def __repr__(self) -> str:
        return f"CommandTransport({self.target!r})"


def mask(text: str, secrets: Sequence[str]) -> str:
    """Replace every secret value in text with a fixed mask."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, SECRET_MASK)
            quoted = shlex.quote(secret)
            if quoted != secret:
                text = text.replace(quoted, SECRET_MASK)
    return text
