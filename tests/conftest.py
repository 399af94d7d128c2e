"""Shared fixtures: a recording stand-in for the container engine."""

import subprocess

import pytest

from pettainers.lib.config_parser import ToolboxConfig
from pettainers.lib.engine import EngineError


class FakeEngine:
    """Records engine calls and replays scripted answers."""

    executable = "podman"

    def __init__(
        self,
        image_present=True,
        container_present=False,
        statuses=("configured", "running"),
        runlabel=None,
        fail=(),
        exec_code=0,
        root_results=None,
        available=True,
    ):
        self.image_present = image_present
        self.container_present = container_present
        self.statuses = list(statuses)
        self.label = runlabel
        self.fail = set(fail)
        self.exec_code = exec_code
        self.root_results = root_results or {}
        self.available = available
        self.calls = []

    def _record(self, op, *args):
        self.calls.append((op,) + args)
        if op in self.fail:
            raise EngineError(f"{op} failed", returncode=125)

    def ops(self):
        return [call[0] for call in self.calls]

    def count(self, op):
        return self.ops().count(op)

    def check_available(self):
        if not self.available:
            raise EngineError("'podman' not found in PATH")
        return "podman version 5.2.0"

    def image_exists(self, image):
        self._record("image_exists", image)
        return self.image_present

    def pull(self, image, authfile=None):
        self._record("pull", image)
        self.image_present = True

    def image_runlabel(self, image):
        self._record("image_runlabel", image)
        return self.label

    def runlabel(self, name, image):
        self._record("runlabel", name, image)

    def container_exists(self, name):
        self._record("container_exists", name)
        return self.container_present

    def container_status(self, name):
        self._record("container_status", name)
        return self.statuses.pop(0) if self.statuses else "running"

    def create(self, name, image, options):
        self._record("create", name, image, options)
        self.container_present = True

    def start(self, name):
        self._record("start", name)

    def exec(self, name, command, options):
        self._record("exec", name, list(command), options)
        return self.exec_code

    def exec_root(self, name, command):
        self._record("exec_root", name, list(command))
        code, stdout = 0, ""
        for prefix, result in self.root_results.items():
            if " ".join(command).startswith(prefix):
                code, stdout = result if isinstance(result, tuple) else (result, "")
                break
        return subprocess.CompletedProcess(list(command), code, stdout, "boom" if code else "")

    def stop(self, name):
        self.calls.append(("stop", name))
        return "stop" not in self.fail


@pytest.fixture
def config():
    return ToolboxConfig(toolbox_name="toolbox-alice")


@pytest.fixture
def fake_engine_factory():
    return FakeEngine
