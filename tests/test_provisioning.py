"""Tests for in-container user provisioning."""

import pytest

from conftest import FakeEngine
from pettainers.lib.provisioning import (
    ProvisioningError,
    UserSpec,
    provision_user,
    sudoers_command,
)


BOB = UserSpec(uid=1001, gid=1002, user="bob", group="staff", home="/home/bob", shell="/bin/zsh")


def root_commands(engine):
    return [" ".join(call[2]) for call in engine.calls if call[0] == "exec_root"]


class TestProvisionUser:

    def test_steps_in_order(self):
        engine = FakeEngine()
        provision_user(engine, "box", BOB, sudo_group="wheel")
        cmds = root_commands(engine)

        assert cmds[0] == "groupadd --gid 1002 staff"
        assert cmds[1] == (
            "useradd --uid 1001 --gid 1002 --home-dir /home/bob "
            "--no-create-home --shell /bin/zsh bob"
        )
        assert cmds[2] == "sh -c command -v sudo"
        assert cmds[3] == "groupadd --force wheel"
        assert "/etc/sudoers.d/toolbox" in cmds[4]
        assert cmds[5] == "usermod --append --groups wheel bob"

    @pytest.mark.parametrize("code", [4, 9])
    def test_already_exists_ignored(self, code):
        engine = FakeEngine(root_results={
            "groupadd --gid": code,
            "useradd": code,
            "getent passwd": (0, "bob:x:1001:1002::/home/bob:/bin/zsh\n"),
        })
        provision_user(engine, "box", BOB)
        assert root_commands(engine)[-1].startswith("usermod")

    def test_existing_uid_uses_image_account(self):
        """An image that already has the uid: sudo goes to that account."""
        engine = FakeEngine(root_results={
            "groupadd --gid": 4,
            "useradd": 4,
            "getent passwd 1001": (0, "ubuntu:x:1001:1001:Ubuntu:/home/ubuntu:/bin/bash\n"),
            "usermod --append --groups wheel bob": 6,
        })
        provision_user(engine, "box", BOB)
        cmds = root_commands(engine)
        assert "getent passwd 1001" in cmds
        assert cmds[-1] == "usermod --append --groups wheel ubuntu"

    def test_existing_name_skips_lookup(self):
        engine = FakeEngine(root_results={"useradd": 9})
        provision_user(engine, "box", BOB)
        cmds = root_commands(engine)
        assert not any(c.startswith("getent") for c in cmds)
        assert cmds[-1] == "usermod --append --groups wheel bob"

    def test_uid_in_use_without_account(self):
        engine = FakeEngine(root_results={"useradd": 4, "getent": 2})
        with pytest.raises(ProvisioningError, match="look up uid 1001"):
            provision_user(engine, "box", BOB)

    def test_other_group_error_raised(self):
        engine = FakeEngine(root_results={"groupadd --gid": 10})
        with pytest.raises(ProvisioningError, match="create group staff"):
            provision_user(engine, "box", BOB)

    def test_other_user_error_raised(self):
        engine = FakeEngine(root_results={"useradd": 1})
        with pytest.raises(ProvisioningError, match="create user bob"):
            provision_user(engine, "box", BOB)

    def test_installs_sudo_when_missing(self):
        engine = FakeEngine(root_results={
            "sh -c command -v sudo": 1,
            "sh -c command -v dnf": 1,
        })
        provision_user(engine, "box", BOB)
        assert "microdnf install -y sudo" in root_commands(engine)

    def test_install_failure_raised(self):
        engine = FakeEngine(root_results={
            "sh -c command -v sudo": 1,
            "dnf install": 1,
        })
        with pytest.raises(ProvisioningError, match="install sudo"):
            provision_user(engine, "box", BOB)

    def test_no_package_manager(self):
        engine = FakeEngine(root_results={"sh -c command -v": 127})
        with pytest.raises(ProvisioningError, match="No supported package manager"):
            provision_user(engine, "box", BOB)

    def test_error_carries_stderr(self):
        engine = FakeEngine(root_results={"usermod": 6})
        with pytest.raises(ProvisioningError, match="boom"):
            provision_user(engine, "box", BOB)


class TestUserSpec:

    def test_current(self):
        spec = UserSpec.current(shell="/bin/sh")
        assert spec.user
        assert spec.shell == "/bin/sh"
        assert spec.exec_user == f"{spec.uid}:{spec.gid}"

    def test_sudoers_rule(self):
        cmd = sudoers_command("sudo")
        assert cmd[:2] == ["sh", "-c"]
        assert "%sudo ALL=(ALL) NOPASSWD: ALL" in cmd[2]
        assert "chmod 0440 /etc/sudoers.d/toolbox" in cmd[2]
