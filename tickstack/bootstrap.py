"""
Host bootstrap for the TICK stack.

Sequence (fail-fast, safe to rerun):
1. Docker present?          -> otherwise apt-get update, apt-get install docker.io,
                               systemctl enable + start docker
2. Docker Compose present?  -> otherwise apt-get install docker-compose
                               (without refreshing the package index)
3. docker-compose -f <manifest> up -d

Any failing command raises CommandError and aborts the sequence; nothing is
rolled back. Rerunning skips tools that are present, and `up -d` leaves
running containers untouched.
"""

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tickstack import config
from tickstack.commands import CommandResult, LocalRunner
from tickstack.errors import BootstrapError
from tickstack.manifest import StackManifest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolRequirement:
    name: str
    binary: str
    packages: Tuple[str, ...]
    daemon: Optional[str] = None
    refresh_index: bool = True  # apt-get update before installing


DEFAULT_TOOLS: Tuple[ToolRequirement, ...] = (
    ToolRequirement("Docker", "docker", ("docker.io",), daemon="docker"),
    ToolRequirement("Docker Compose", "docker-compose", ("docker-compose",), refresh_index=False),
)


@dataclass
class BootstrapReport:
    host: str
    compose_file: str
    already_present: List[str] = field(default_factory=list)
    installed: List[str] = field(default_factory=list)
    orchestrator_output: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Bootstrapper:
    """
    Ensure the container tooling is installed and start the stack.

    Args:
        runner: LocalRunner or SSHRunner (anything with run/which)
        compose_file: manifest path as seen by the runner's host
        tools: tool requirements checked in order
        use_sudo: prefix package/daemon commands with sudo
    """

    def __init__(
        self,
        runner=None,
        compose_file: Optional[str] = None,
        tools: Sequence[ToolRequirement] = DEFAULT_TOOLS,
        use_sudo: Optional[bool] = None,
    ):
        self.runner = runner or LocalRunner()
        self.compose_file = str(compose_file or config.COMPOSE_FILE)
        self.tools = tuple(tools)
        self.use_sudo = config.USE_SUDO if use_sudo is None else use_sudo

    def _privileged(self, argv: Sequence[str]) -> List[str]:
        return ["sudo", *argv] if self.use_sudo else list(argv)

    def ensure_tool(self, tool: ToolRequirement) -> bool:
        """Install a missing tool. Returns True if an install happened."""
        path = self.runner.which(tool.binary)
        if path:
            logger.info(f"{tool.name} found at {path}")
            return False

        logger.info(f"{tool.name} not found. Installing {tool.name}...")
        if tool.refresh_index:
            self.runner.run(self._privileged(["apt-get", "update"]))
        self.runner.run(self._privileged(["apt-get", "install", "-y", *tool.packages]))
        if tool.daemon:
            self.runner.run(self._privileged(["systemctl", "enable", tool.daemon]))
            self.runner.run(self._privileged(["systemctl", "start", tool.daemon]))

        if not self.runner.which(tool.binary):
            raise BootstrapError(
                f"{tool.name} is still missing after installing {', '.join(tool.packages)}"
            )
        logger.info(f"{tool.name} installed")
        return True

    def start_stack(self) -> CommandResult:
        logger.info("Bringing up containers with docker-compose...")
        result = self.runner.run(["docker-compose", "-f", self.compose_file, "up", "-d"])
        for line in (result.stdout + result.stderr).splitlines():
            if line.strip():
                logger.info(f"  {line.strip()}")
        return result

    def run(self) -> BootstrapReport:
        host = getattr(self.runner, "description", "localhost")
        if isinstance(self.runner, LocalRunner):
            logger.info(f"Running bootstrap from directory: {os.getcwd()}")
        logger.info(f"Starting TICK stack setup on {host} (manifest: {self.compose_file})")

        report = BootstrapReport(host=host, compose_file=self.compose_file)
        for tool in self.tools:
            if self.ensure_tool(tool):
                report.installed.append(tool.name)
            else:
                report.already_present.append(tool.name)

        result = self.start_stack()
        report.orchestrator_output = (result.stdout + result.stderr).strip()
        logger.info("TICK stack started")
        return report


def stage_recipe(runner, manifest: StackManifest, remote_dir: str) -> str:
    """
    Copy the manifest and every bind-mounted file it references into
    remote_dir on the runner's host, keeping relative layout.

    Returns:
        The manifest path on the runner's host.
    """
    if manifest.path is None:
        raise BootstrapError("Cannot stage a manifest that was not loaded from a file")

    base_dir = manifest.base_dir
    remote_root = PurePosixPath(remote_dir)
    remote_manifest = str(remote_root / manifest.path.name)
    runner.upload(manifest.path, remote_manifest)

    for spec in manifest.services.values():
        for mount in spec.volumes:
            if not mount.is_bind or Path(mount.source).is_absolute() or mount.source.startswith("~"):
                continue
            local = (base_dir / mount.source).resolve()
            if not local.is_file():
                raise BootstrapError(f"Bind-mount source for {spec.name} not found: {local}")
            try:
                relative = local.relative_to(base_dir.resolve())
            except ValueError:
                raise BootstrapError(
                    f"Bind-mount source for {spec.name} is outside the manifest directory: {mount.source}"
                ) from None
            runner.upload(local, str(remote_root / PurePosixPath(relative.as_posix())))

    logger.info(f"Staged recipe in {remote_dir} on {getattr(runner, 'description', 'host')}")
    return remote_manifest
