"""
Command runners used by the bootstrap.

LocalRunner executes on this host through subprocess; SSHRunner executes on
a remote host through paramiko and can upload files over SFTP. Both raise
CommandError on a non-zero exit status when check=True.
"""

import logging
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import paramiko

from tickstack.errors import CommandError

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    argv: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class LocalRunner:
    """Run commands on the local host."""

    description = "localhost"

    def run(self, argv: Sequence[str], check: bool = True) -> CommandResult:
        argv = [str(arg) for arg in argv]
        logger.debug(f"Running: {shlex.join(argv)}")
        try:
            completed = subprocess.run(argv, capture_output=True, text=True)
        except FileNotFoundError as exc:
            # Shell semantics: command not found exits 127
            raise CommandError(argv, 127, stderr=str(exc)) from exc

        returncode = completed.returncode
        if returncode < 0:
            # Killed by signal N: report 128 + N like the shell does
            returncode = 128 - returncode
        result = CommandResult(argv, returncode, completed.stdout, completed.stderr)
        if check and not result.ok:
            raise CommandError(argv, result.returncode, result.stdout, result.stderr)
        return result

    def which(self, binary: str) -> Optional[str]:
        return shutil.which(binary)

    def upload(self, local_path: Path, remote_path: str) -> None:
        if Path(local_path).resolve() == Path(remote_path).resolve():
            return
        Path(remote_path).parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, remote_path)

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class SSHRunner:
    """
    Run commands on a remote host over SSH.

    Usage:
        with SSHRunner("10.0.0.5", username="root", password="...") as runner:
            runner.run(["docker", "ps"])
    """

    def __init__(
        self,
        host: str,
        username: str = "root",
        password: Optional[str] = None,
        port: int = 22,
        key_filename: Optional[str] = None,
        timeout: int = 10,
        client: Optional[paramiko.SSHClient] = None,
    ):
        self.host = host
        self.username = username
        self.port = port
        self.description = f"{username}@{host}"

        if client is None:
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            client.connect(
                host,
                port=port,
                username=username,
                password=password,
                key_filename=key_filename,
                timeout=timeout,
            )
        self._client = client

    def run(self, argv: Sequence[str], check: bool = True) -> CommandResult:
        argv = [str(arg) for arg in argv]
        command = shlex.join(argv)
        logger.debug(f"[{self.description}] Running: {command}")

        _, stdout, stderr = self._client.exec_command(command)
        returncode = stdout.channel.recv_exit_status()
        result = CommandResult(
            argv,
            returncode,
            stdout.read().decode(errors="replace"),
            stderr.read().decode(errors="replace"),
        )
        if check and not result.ok:
            raise CommandError(argv, result.returncode, result.stdout, result.stderr)
        return result

    def which(self, binary: str) -> Optional[str]:
        result = self.run(["sh", "-c", f"command -v {shlex.quote(binary)}"], check=False)
        path = result.stdout.strip()
        return path if result.ok and path else None

    def upload(self, local_path: Path, remote_path: str) -> None:
        remote_dir = str(Path(remote_path).parent)
        self.run(["mkdir", "-p", remote_dir])
        sftp = self._client.open_sftp()
        try:
            sftp.put(str(local_path), remote_path)
        finally:
            sftp.close()
        logger.debug(f"[{self.description}] Uploaded {local_path} -> {remote_path}")

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()
