"""Tests for the toolbox command line."""

import pytest

from conftest import FakeEngine
from pettainers import cli


@pytest.fixture
def fake(monkeypatch, tmp_path):
    """Run the CLI against a FakeEngine with no override file."""
    monkeypatch.setenv("TOOLBOXRC", str(tmp_path / "absent"))
    monkeypatch.setenv("USER", "alice")
    state = {"engine": FakeEngine(), "use_sudo": None}

    class Engine:
        def __new__(cls, executable="podman", use_sudo=False):
            state["use_sudo"] = use_sudo
            return state["engine"]

    monkeypatch.setattr(cli, "ContainerEngine", Engine)
    return state


class TestParser:

    def test_command_vector(self):
        args = cli.build_parser().parse_args(["-u", "-t", "dev", "ls", "-la"])
        assert args.user and args.tag == "dev"
        assert args.command == ["ls", "-la"]

    def test_no_command(self):
        args = cli.build_parser().parse_args([])
        assert args.command == []
        assert not args.root

    def test_unknown_flag_exits_one(self):
        with pytest.raises(SystemExit) as exc:
            cli.build_parser().parse_args(["--bogus"])
        assert exc.value.code == 1


class TestMain:

    def test_default_run(self, fake):
        assert cli.main([]) == 0
        engine = fake["engine"]
        assert engine.count("exec") == 1
        assert engine.count("stop") == 1
        exec_call = [c for c in engine.calls if c[0] == "exec"][0]
        assert exec_call[1] == "toolbox-alice"
        assert exec_call[2] == ["/bin/bash"]
        assert fake["use_sudo"] is False

    def test_tag_root_and_command(self, fake):
        fake["engine"] = FakeEngine(container_present=True, statuses=["running"], exec_code=7)
        assert cli.main(["--root", "--tag", "dev", "uname", "-a"]) == 7
        exec_call = [c for c in fake["engine"].calls if c[0] == "exec"][0]
        assert exec_call[1] == "toolbox-alice-dev"
        assert exec_call[2] == ["uname", "-a"]
        assert fake["use_sudo"] is True

    def test_unknown_state_exits_one(self, fake):
        fake["engine"] = FakeEngine(container_present=True, statuses=["paused"])
        assert cli.main([]) == 1
        assert fake["engine"].count("exec") == 0
        assert fake["engine"].count("stop") == 1

    def test_create_failure_exits_one(self, fake):
        fake["engine"] = FakeEngine(fail={"create"})
        assert cli.main([]) == 1

    def test_bad_config_exits_one(self, fake, tmp_path, monkeypatch):
        rc = tmp_path / "rc"
        rc.write_text("nonsense_key: 1\n")
        monkeypatch.setenv("TOOLBOXRC", str(rc))
        assert cli.main([]) == 1
        assert fake["engine"].calls == []

    def test_missing_engine_exits_one(self, fake):
        fake["engine"] = FakeEngine(available=False)
        assert cli.main([]) == 1
        assert fake["engine"].calls == []
