"""Container engine operations.

Wraps the engine CLI (podman, or a compatible tool) with one method per
sub-command. Nothing here keeps state about containers; every query goes
to the engine.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pettainers.lib.config_parser import ToolboxConfig

logger = logging.getLogger(__name__)

NO_RUNLABEL = "<no value>"


class EngineError(Exception):
    """Raised when an engine command fails."""

    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


@dataclass
class CreateOptions:
    """Options passed to ``create``."""
    hostname: str = "toolbox"
    network: str = "host"
    privileged: bool = True
    volumes: List[str] = field(default_factory=list)
    extra_options: List[str] = field(default_factory=list)
    entrypoint: Optional[str] = None

    @classmethod
    def from_config(cls, config: ToolboxConfig) -> "CreateOptions":
        return cls(
            hostname=config.hostname,
            network=config.network,
            privileged=config.privileged,
            volumes=list(config.volumes),
            extra_options=list(config.create_options),
            entrypoint=config.entrypoint,
        )

    def to_args(self) -> List[str]:
        args = [
            "--hostname", self.hostname,
            "--network", self.network,
        ]
        if self.privileged:
            args.append("--privileged")
        args.extend(["--security-opt", "label=disable", "--tty"])
        for volume in self.volumes:
            args.extend(["--volume", volume])
        args.extend(self.extra_options)
        if self.entrypoint:
            args.extend(["--entrypoint", self.entrypoint])
        return args


@dataclass
class ExecOptions:
    """Options passed to ``exec``."""
    env: Dict[str, str] = field(default_factory=dict)
    user: Optional[str] = None
    workdir: Optional[str] = None

    def to_args(self) -> List[str]:
        args = ["--interactive", "--tty"]
        for key, value in self.env.items():
            args.extend(["--env", f"{key}={value}"])
        if self.user:
            args.extend(["--user", self.user])
        if self.workdir:
            args.extend(["--workdir", self.workdir])
        return args


class ContainerEngine:
    """Handle container engine commands."""

    def __init__(self, executable: str = "podman", use_sudo: bool = False):
        """Initialize engine handler.

        Args:
            executable: Engine CLI to invoke
            use_sudo: Run every engine command through sudo
        """
        self.executable = executable
        self.use_sudo = use_sudo

    def _command(self, *args: str) -> List[str]:
        cmd = [self.executable, *args]
        if self.use_sudo:
            cmd = ["sudo", "--preserve-env", *cmd]
        return cmd

    def _run(
        self,
        *args: str,
        capture: bool = True,
        check: bool = False
    ) -> subprocess.CompletedProcess:
        cmd = self._command(*args)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            if capture:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    errors="replace",
                    check=False
                )
            else:
                result = subprocess.run(cmd, check=False)
        except OSError as e:
            raise EngineError(f"Failed to run {cmd[0]}: {e}") from e

        if check and result.returncode != 0:
            stderr = (result.stderr or "").strip() if capture else ""
            raise EngineError(
                f"'{self.executable} {args[0]}' exited with status {result.returncode}"
                + (f": {stderr}" if stderr else ""),
                returncode=result.returncode,
                stderr=stderr,
            )
        return result

    def check_available(self) -> str:
        """Check that the engine CLI is installed.

        Returns:
            Version string reported by the engine

        Raises:
            EngineError: If the executable is missing or does not answer
        """
        if shutil.which(self.executable) is None:
            raise EngineError(f"'{self.executable}' not found in PATH")
        result = self._run("--version")
        if result.returncode != 0:
            raise EngineError(
                f"'{self.executable} --version' failed: {result.stderr.strip()}",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        version = result.stdout.strip()
        logger.debug(f"Engine version: {version}")
        return version

    def image_exists(self, image: str) -> bool:
        return self._run("inspect", "--type", "image", image).returncode == 0

    def pull(self, image: str, authfile: Optional[Path] = None) -> None:
        """Pull an image, streaming progress to the terminal.

        Raises:
            EngineError: If the pull fails
        """
        args = ["pull"]
        if authfile is not None:
            if Path(authfile).is_file():
                args.extend(["--authfile", str(authfile)])
            else:
                logger.warning(f"Auth file {authfile} not found, pulling without it")
        args.append(image)
        self._run(*args, capture=False, check=True)

    def image_runlabel(self, image: str) -> Optional[str]:
        """Return the image's RUN label, or None when it declares none."""
        result = self._run("container", "runlabel", "--display", "RUN", image)
        if result.returncode != 0:
            return None
        label = result.stdout.strip()
        if not label or label == NO_RUNLABEL:
            return None
        return label

    def runlabel(self, name: str, image: str) -> None:
        """Hand the container over to the image's RUN label.

        Raises:
            EngineError: If the run label command fails
        """
        self._run(
            "container", "runlabel", "--name", name, "RUN", image,
            capture=False, check=True
        )

    def container_exists(self, name: str) -> bool:
        return self._run("inspect", "--type", "container", name).returncode == 0

    def container_status(self, name: str) -> str:
        """Return the raw status text of a container.

        Raises:
            EngineError: If the container cannot be inspected
        """
        result = self._run(
            "inspect", "--type", "container", "--format", "{{.State.Status}}", name,
            check=True
        )
        return result.stdout.strip()

    def create(self, name: str, image: str, options: CreateOptions) -> None:
        """Create a container without starting it.

        Raises:
            EngineError: If creation fails
        """
        self._run("create", "--name", name, *options.to_args(), image, check=True)

    def start(self, name: str) -> None:
        self._run("start", name, check=True)

    def exec(self, name: str, command: Sequence[str], options: ExecOptions) -> int:
        """Run a command in the container attached to this terminal.

        Returns:
            Exit code of the command
        """
        result = self._run("exec", *options.to_args(), name, *command, capture=False)
        return result.returncode

    def exec_root(self, name: str, command: Sequence[str]) -> subprocess.CompletedProcess:
        """Run a non-interactive command as root, capturing its output.

        Non-zero exits are returned, not raised; callers decide what counts
        as failure.
        """
        return self._run("exec", "--user", "root", name, *command)

    def stop(self, name: str) -> bool:
        """Stop a container, ignoring any failure.

        Returns:
            True if the engine reported success
        """
        try:
            result = self._run("stop", name)
        except EngineError as e:
            logger.debug(f"Stop of {name} failed: {e}")
            return False
        if result.returncode != 0:
            logger.debug(f"Stop of {name} failed: {result.stderr.strip()}")
            return False
        return True
