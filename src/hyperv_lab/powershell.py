"""Run PowerShell scripts on the Hyper-V host, locally or over SSH."""

import base64
import logging
import os
import subprocess
import time
from typing import List, Optional, Tuple

import paramiko

from hyperv_lab.config import Config
from hyperv_lab.models import PowerShellError

logger = logging.getLogger(__name__)

RECV_BUFFER_SIZE = 32768
POLL_INTERVAL = 0.05


def encode_command(script: str) -> str:
    """Encode a script for powershell.exe -EncodedCommand (base64 of UTF-16LE)."""
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


def build_command(script: str) -> List[str]:
    """Build the powershell.exe argument list for a script."""
    return [
        "powershell.exe",
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-EncodedCommand",
        encode_command(script),
    ]


def quote(value: str) -> str:
    """Quote a value as a PowerShell single-quoted string literal."""
    return "'" + str(value).replace("'", "''") + "'"


class LocalPowerShell:
    """Runs PowerShell on the machine this process runs on."""

    def __init__(self, timeout: Optional[int] = None) -> None:
        self.timeout = timeout or Config.POWERSHELL_TIMEOUT

    def run(self, script: str) -> str:
        """Execute a script and return its stripped stdout.

        Raises:
            PowerShellError: If powershell.exe is missing, times out or exits non-zero
        """
        logger.debug("PowerShell (local): %s", script)
        try:
            result = subprocess.run(
                build_command(script),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise PowerShellError(f"powershell.exe not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise PowerShellError(f"PowerShell timed out after {self.timeout}s") from e

        if result.returncode != 0:
            err = (result.stderr or "").strip()
            logger.error(f"PowerShell command error: {err}")
            raise PowerShellError(
                f"Command failed: {err or 'exit status ' + str(result.returncode)}",
                stderr=err,
                exit_status=result.returncode,
            )

        return (result.stdout or "").strip()


def _drain(channel: paramiko.Channel, timeout: int) -> Tuple[bytes, bytes, int]:
    """Collect stdout and stderr as they arrive, then return them with the exit status.

    Both streams are read in the same loop so a command writing heavily to one
    of them never stalls on a full SSH window.
    """
    out: List[bytes] = []
    err: List[bytes] = []
    deadline = time.monotonic() + timeout

    while True:
        received = False
        if channel.recv_ready():
            out.append(channel.recv(RECV_BUFFER_SIZE))
            received = True
        if channel.recv_stderr_ready():
            err.append(channel.recv_stderr(RECV_BUFFER_SIZE))
            received = True
        if received:
            continue
        if channel.exit_status_ready():
            break
        if time.monotonic() > deadline:
            raise PowerShellError(f"PowerShell timed out after {timeout}s")
        time.sleep(POLL_INTERVAL)

    return b"".join(out), b"".join(err), channel.recv_exit_status()


class SSHPowerShell:
    """Runs PowerShell on a remote Windows host through its OpenSSH server."""

    def __init__(
        self,
        host: str,
        user: Optional[str] = None,
        key_path: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> None:
        self.host = host
        self.user = user or os.getenv("SSH_USER", "Administrator")
        self.key_path = os.path.expanduser(key_path or os.getenv("SSH_KEY_PATH", "~/.ssh/id_rsa"))
        self.timeout = timeout or Config.POWERSHELL_TIMEOUT

    def run(self, script: str) -> str:
        """Execute a script on the remote host and return its stripped stdout.

        Raises:
            PowerShellError: If the connection fails or the script exits non-zero
        """
        logger.debug("PowerShell (%s): %s", self.host, script)
        ssh = paramiko.SSHClient()
        ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            ssh.connect(hostname=self.host, username=self.user, key_filename=self.key_path)

            stdin, stdout, stderr = ssh.exec_command(" ".join(build_command(script)), timeout=self.timeout)
            raw_out, raw_err, exit_status = _drain(stdout.channel, self.timeout)
        except (paramiko.SSHException, OSError) as e:
            raise PowerShellError(f"SSH to {self.host} failed: {e}") from e
        finally:
            ssh.close()

        err = raw_err.decode(errors="replace").strip()
        if exit_status != 0:
            logger.error(f"SSH command error on {self.host}: {err}")
            raise PowerShellError(
                f"Command failed on {self.host}: {err or 'exit status ' + str(exit_status)}",
                stderr=err,
                exit_status=exit_status,
            )

        return raw_out.decode(errors="replace").strip()


def get_runner(host: Optional[str] = None):
    """Return a remote runner when a host is given (or configured), else a local one."""
    host = host or Config.HYPERV_HOST
    if host:
        return SSHPowerShell(host)
    return LocalPowerShell()
