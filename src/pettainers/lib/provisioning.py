"""First-time user provisioning inside a toolbox container.

Mirrors the invoking host user into the container and grants it
passwordless sudo. Each step names the exit codes that mean "already
done"; any other failure is raised.
"""

from __future__ import annotations

import grp
import logging
import os
import pwd
import shlex
import subprocess
from dataclasses import dataclass
from typing import FrozenSet, List, Sequence

from pettainers.lib.engine import ContainerEngine

logger = logging.getLogger(__name__)

# shadow-utils exit codes: 4 = uid/gid already in use, 9 = name already in use
ALREADY_EXISTS = frozenset({4, 9})

SUDOERS_FILE = "/etc/sudoers.d/toolbox"

# (probe, install command) in order of preference
PACKAGE_MANAGERS = [
    ("dnf", ["dnf", "install", "-y", "sudo"]),
    ("microdnf", ["microdnf", "install", "-y", "sudo"]),
    ("yum", ["yum", "install", "-y", "sudo"]),
    ("apt-get", ["sh", "-c", "apt-get update && apt-get install -y sudo"]),
    ("apk", ["apk", "add", "--no-cache", "sudo"]),
    ("zypper", ["zypper", "--non-interactive", "install", "sudo"]),
]


class ProvisioningError(Exception):
    """Raised when a provisioning step fails."""
    pass


@dataclass
class UserSpec:
    """Identity of the user mirrored into the container."""
    uid: int
    gid: int
    user: str
    group: str
    home: str
    shell: str = "/bin/bash"

    @classmethod
    def current(cls, shell: str = "/bin/bash") -> "UserSpec":
        """Describe the user running this process."""
        uid = os.getuid()
        gid = os.getgid()
        pw = pwd.getpwuid(uid)
        try:
            group = grp.getgrgid(gid).gr_name
        except KeyError:
            group = pw.pw_name
        return cls(
            uid=uid,
            gid=gid,
            user=pw.pw_name,
            group=group,
            home=pw.pw_dir,
            shell=shell,
        )

    @property
    def exec_user(self) -> str:
        """Value for ``exec --user``."""
        return f"{self.uid}:{self.gid}"


def _run_step(
    engine: ContainerEngine,
    name: str,
    step: str,
    command: Sequence[str],
    ignore: FrozenSet[int] = frozenset()
) -> subprocess.CompletedProcess:
    result = engine.exec_root(name, command)
    if result.returncode == 0:
        logger.debug(f"  {step}: ok")
    elif result.returncode in ignore:
        logger.debug(f"  {step}: already present (exit {result.returncode})")
    else:
        stderr = (result.stderr or "").strip()
        raise ProvisioningError(
            f"{step} failed in container '{name}' (exit {result.returncode})"
            + (f": {stderr}" if stderr else "")
        )
    return result


def _has_command(engine: ContainerEngine, name: str, program: str) -> bool:
    result = engine.exec_root(name, ["sh", "-c", f"command -v {shlex.quote(program)}"])
    return result.returncode == 0


def lookup_account(engine: ContainerEngine, name: str, uid: int) -> str:
    """Name of the account that owns a UID inside the container.

    Raises:
        ProvisioningError: If no account has that UID
    """
    result = _run_step(
        engine, name, f"look up uid {uid}", ["getent", "passwd", str(uid)]
    )
    account = (result.stdout or "").split(":", 1)[0].strip()
    if not account:
        raise ProvisioningError(f"No account with uid {uid} in container '{name}'")
    return account


def install_sudo(engine: ContainerEngine, name: str) -> None:
    """Install sudo with whichever package manager the image ships.

    Raises:
        ProvisioningError: If no known package manager exists or the install fails
    """
    if _has_command(engine, name, "sudo"):
        logger.debug("  sudo already installed")
        return
    for probe, install_cmd in PACKAGE_MANAGERS:
        if _has_command(engine, name, probe):
            logger.info(f"Installing sudo with {probe}...")
            _run_step(engine, name, "install sudo", install_cmd)
            return
    raise ProvisioningError(
        f"No supported package manager found in container '{name}' to install sudo"
    )


def sudoers_command(sudo_group: str) -> List[str]:
    rule = f"%{sudo_group} ALL=(ALL) NOPASSWD: ALL"
    script = (
        f"printf '%s\\n' {shlex.quote(rule)} > {SUDOERS_FILE}"
        f" && chmod 0440 {SUDOERS_FILE}"
    )
    return ["sh", "-c", script]


def provision_user(
    engine: ContainerEngine,
    name: str,
    user: UserSpec,
    sudo_group: str = "wheel"
) -> None:
    """Create the user inside the container and give it passwordless sudo.

    Args:
        engine: Engine handler
        name: Container name
        user: User to mirror
        sudo_group: Group granted NOPASSWD sudo

    Raises:
        ProvisioningError: If a step fails for a reason other than "already exists"
    """
    logger.info(f"Setting up user '{user.user}' in container '{name}'...")

    _run_step(
        engine, name, f"create group {user.group}",
        ["groupadd", "--gid", str(user.gid), user.group],
        ignore=ALREADY_EXISTS,
    )
    created = _run_step(
        engine, name, f"create user {user.user}",
        [
            "useradd",
            "--uid", str(user.uid),
            "--gid", str(user.gid),
            "--home-dir", user.home,
            "--no-create-home",
            "--shell", user.shell,
            user.user,
        ],
        ignore=ALREADY_EXISTS,
    )
    account = user.user
    if created.returncode == 4:
        account = lookup_account(engine, name, user.uid)
        logger.info(f"UID {user.uid} already belongs to '{account}' in container '{name}'")
    install_sudo(engine, name)
    _run_step(
        engine, name, f"create group {sudo_group}",
        ["groupadd", "--force", sudo_group],
    )
    _run_step(engine, name, "write sudoers policy", sudoers_command(sudo_group))
    _run_step(
        engine, name, f"add {account} to {sudo_group}",
        ["usermod", "--append", "--groups", sudo_group, account],
    )
