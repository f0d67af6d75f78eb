"""Pytest fixtures shared across all test modules."""

import sys

import pytest

from notebook_go.commands import DIR_ENV
from notebook_go.config import KernelConfig
from notebook_go.kernel import GoKernel
from notebook_go.toolchain import CommandResult, GoToolchain
from notebook_go.tracking import EventBus, Tracker


class FakeToolchain(GoToolchain):
    """
    GoToolchain that never calls `go`.

    Builds succeed unless a result is queued in `build_results`; the built
    "binary" is a Python one-liner, `program`.
    """

    def __init__(self, work_dir):
        super().__init__(KernelConfig(work_dir=work_dir, shell="/bin/sh", auto_get=False))
        self.calls: list[tuple[str, ...]] = []
        self.sources: list[str] = []
        self.build_results: list[CommandResult] = []
        self.program = "pass"

    def run_tool(self, *args, cwd=None):
        self.calls.append(args)
        if args[:2] == ("mod", "init"):
            self.go_mod.write_text(f"module {args[2]}\n\ngo 1.22\n")
        elif args and args[0] == "build":
            self.sources.append(self.main_path.read_text())
            if self.build_results:
                return self.build_results.pop(0)
        return CommandResult(0, "")

    def run_command(self, files, args):
        return [sys.executable, "-c", self.program, *args]

    @property
    def builds(self) -> int:
        return sum(1 for call in self.calls if call and call[0] == "build")


@pytest.fixture
def toolchain(tmp_path):
    return FakeToolchain(tmp_path / "work")


@pytest.fixture
def kernel(toolchain, monkeypatch):
    """GoKernel on a fake toolchain, tracking without watcher threads."""
    monkeypatch.setenv(DIR_ENV, "")
    events = EventBus()
    k = GoKernel(toolchain.config, toolchain=toolchain, events=events, tracker=Tracker(events, watch=False))
    yield k
    k.close()


@pytest.fixture
def kernel_factory(tmp_path, monkeypatch):
    """Creates more kernels on fake toolchains, each with its own workspace."""
    monkeypatch.setenv(DIR_ENV, "")
    kernels = []

    def make():
        toolchain = FakeToolchain(tmp_path / f"work{len(kernels) + 1}")
        events = EventBus()
        k = GoKernel(toolchain.config, toolchain=toolchain, events=events, tracker=Tracker(events, watch=False))
        kernels.append(k)
        return k

    yield make
    for k in kernels:
        k.close()


@pytest.fixture
def go_kernel(tmp_path, monkeypatch):
    """GoKernel on the real Go toolchain."""
    monkeypatch.setenv(DIR_ENV, "")
    config = KernelConfig(work_dir=tmp_path / "work", auto_get=False)
    k = GoKernel(config, tracker=Tracker(EventBus(), watch=False))
    yield k
    k.close()


FAKE_GO = """#!/bin/sh
case "$1" in
mod)
    if [ "$2" = init ]; then printf 'module %s\\n\\ngo 1.22\\n' "$3" > go.mod; fi ;;
build)
    echo "building $4" >&2
    sleep "${FAKE_GO_BUILD_SECONDS:-0}" ;;
esac
"""


@pytest.fixture
def fake_go(tmp_path):
    """A `go` stand-in: `mod init` writes go.mod, `build` sleeps $FAKE_GO_BUILD_SECONDS."""
    path = tmp_path / "bin" / "go"
    path.parent.mkdir()
    path.write_text(FAKE_GO)
    path.chmod(0o755)
    return path
