"""
GoToolchain: the Go workspace of a kernel and the external programs it runs.

The workspace directory holds go.mod/go.sum (and optionally go.work) for the
whole session. The generated main.go and the compiled binary only live for
one execution, see GoToolchain.execution().
"""

import logging
import os
import re
import shutil
import signal
import subprocess
import tempfile
import threading
from contextlib import contextmanager, suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from notebook_go.config import KernelConfig
from notebook_go.errors import ToolchainError, WorkspaceError

logger = logging.getLogger(__name__)

SOURCE_NAME = "main.go"
BINARY_NAME = "notebook_go_cell"
READER_JOIN_TIMEOUT = 1.0

_MODULE_RE = re.compile(r"^\s*module\s+(\S+)", re.MULTILINE)


@dataclass
class CommandResult:
    """Exit status and combined output of a finished command."""
    returncode: int
    output: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


@dataclass
class ExecutionFiles:
    """Files scoped to a single execution."""
    source: Path
    binary: Path


class StreamingProcess:
    """
    A child process whose stdout/stderr lines are forwarded as they arrive.

    The child leads its own process group, so terminate() also reaches the
    processes it spawned. Callbacks run on reader threads, one per stream.
    """

    def __init__(self, argv: list[str], on_stdout: Callable[[str], None], on_stderr: Callable[[str], None],
                 cwd: Optional[Path] = None):
        self.argv = argv
        self._terminated = False
        try:
            self._proc = subprocess.Popen(
                argv,
                cwd=cwd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                start_new_session=True,
            )
        except OSError as e:
            raise ToolchainError(argv[0], str(e)) from e
        self._threads = [
            threading.Thread(target=self._pump, args=(self._proc.stdout, on_stdout), daemon=True),
            threading.Thread(target=self._pump, args=(self._proc.stderr, on_stderr), daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    def _pump(self, stream, callback: Callable[[str], None]) -> None:
        try:
            for line in iter(stream.readline, ""):
                callback(line)
        except Exception:
            logger.exception("Failed forwarding output of %s", self.argv[0])
        finally:
            stream.close()

    @property
    def pid(self) -> int:
        return self._proc.pid

    def wait(self) -> int:
        """Wait for the process and for all of its output to be forwarded."""
        returncode = self._proc.wait()
        # After a terminate, stragglers outside the group may still hold the pipes.
        timeout = READER_JOIN_TIMEOUT if self._terminated else None
        for thread in self._threads:
            thread.join(timeout)
        return returncode

    def _signal_group(self, sig: int) -> None:
        with suppress(ProcessLookupError):
            os.killpg(self._proc.pid, sig)

    def terminate(self, grace: float = 2.0) -> None:
        """Stop the process group, killing it if it does not exit within `grace` seconds."""
        self._terminated = True
        self._signal_group(signal.SIGTERM)
        try:
            self._proc.wait(timeout=grace)
        except subprocess.TimeoutExpired:
            logger.warning("Process %d did not terminate, killing it", self._proc.pid)
            self._signal_group(signal.SIGKILL)


class GoToolchain:
    """Runs `go` inside the kernel's workspace directory."""

    def __init__(self, config: Optional[KernelConfig] = None):
        self.config = config or KernelConfig()
        try:
            if self.config.work_dir is not None:
                self.work_dir = Path(self.config.work_dir)
                self.work_dir.mkdir(parents=True, exist_ok=True)
                self._owns_work_dir = False
            else:
                self.work_dir = Path(tempfile.mkdtemp(prefix="notebook_go_"))
                self._owns_work_dir = True
        except OSError as e:
            raise WorkspaceError(str(self.config.work_dir or tempfile.gettempdir()), str(e)) from e
        logger.debug("Go workspace: %s", self.work_dir)
        self._running: set[StreamingProcess] = set()
        self._running_lock = threading.Lock()
        self._interrupted = threading.Event()

    @property
    def go_mod(self) -> Path:
        return self.work_dir / "go.mod"

    @property
    def go_work(self) -> Path:
        return self.work_dir / "go.work"

    @property
    def main_path(self) -> Path:
        return self.work_dir / SOURCE_NAME

    @property
    def interrupted(self) -> bool:
        return self._interrupted.is_set()

    def interrupt(self) -> None:
        """Terminate every running `go` command; later ones stop as soon as they start."""
        self._interrupted.set()
        with self._running_lock:
            running = list(self._running)
        for process in running:
            logger.info("Terminating %s (pid %d)", " ".join(process.argv[:2]), process.pid)
            process.terminate()

    def resume(self) -> None:
        self._interrupted.clear()

    def run_tool(self, *args: str, cwd: Optional[Path] = None) -> CommandResult:
        """Run `go <args>` and capture its output."""
        argv = [self.config.go_binary, *args]
        logger.debug("Running %s", argv)
        output: list[str] = []
        process = StreamingProcess(argv, output.append, output.append, cwd=cwd or self.work_dir)
        with self._running_lock:
            self._running.add(process)
        try:
            if self.interrupted:
                process.terminate()
            returncode = process.wait()
        except BaseException:
            process.terminate()
            raise
        finally:
            with self._running_lock:
                self._running.discard(process)
        return CommandResult(returncode, "".join(output))

    def mod_init(self) -> None:
        """Start a fresh go.mod (and go.sum) for the workspace."""
        for name in ("go.mod", "go.sum"):
            (self.work_dir / name).unlink(missing_ok=True)
        result = self.run_tool("mod", "init", self.config.module_name)
        if not result.success and not self.interrupted:
            raise ToolchainError(self.config.go_binary, f"go mod init failed: {result.output.strip()}")

    def ensure_module(self) -> None:
        if not self.go_mod.exists():
            self.mod_init()

    def mod_tidy(self) -> CommandResult:
        return self.run_tool("mod", "tidy")

    @contextmanager
    def execution(self) -> Iterator[ExecutionFiles]:
        """Per-execution files, removed on exit whatever happens."""
        files = ExecutionFiles(source=self.main_path, binary=self.work_dir / BINARY_NAME)
        try:
            yield files
        finally:
            for path in (files.source, files.binary):
                try:
                    path.unlink(missing_ok=True)
                except OSError as e:
                    logger.error("Failed to remove %s: %s", path, e)

    def build(self, files: ExecutionFiles, source: str, auto_get: bool = False) -> CommandResult:
        """Write `source` to the execution's main.go and compile it."""
        self.ensure_module()
        try:
            files.source.write_text(source)
        except OSError as e:
            raise WorkspaceError(str(files.source), str(e)) from e
        if auto_get:
            tidy = self.mod_tidy()
            if not tidy.success:
                logger.warning("go mod tidy failed: %s", tidy.output.strip())
        return self.run_tool("build", "-o", str(files.binary), files.source.name)

    def run_command(self, files: ExecutionFiles, args: list[str]) -> list[str]:
        """Command line running the built program with `args`."""
        return [str(files.binary), *args]

    def shell_command(self, command: str) -> list[str]:
        return [self.config.shell, "-c", command]

    def go_work_uses(self) -> list[Path]:
        """Directories listed by `use` in the workspace go.work."""
        if not self.go_work.exists():
            return []
        uses = []
        in_block = False
        for raw in self.go_work.read_text().splitlines():
            line = raw.split("//", 1)[0].strip()
            if in_block:
                if line == ")":
                    in_block = False
                elif line:
                    uses.append(line)
            elif line == "use (":
                in_block = True
            elif line.startswith("use "):
                uses.append(line[len("use "):].strip())
        return [(self.work_dir / use.strip('"')).resolve() for use in uses]

    def go_work_fix(self) -> list[tuple[str, Path]]:
        """
        Add a go.mod `replace` for every module used by go.work.

        Returns the (module, directory) pairs replaced.
        """
        self.ensure_module()
        replaced = []
        for directory in self.go_work_uses():
            if directory == self.work_dir.resolve():
                continue
            module = module_path(directory / "go.mod")
            if module is None:
                logger.warning("No module declared in %s", directory / "go.mod")
                continue
            result = self.run_tool("mod", "edit", f"-replace={module}={directory}")
            if self.interrupted:
                break
            if not result.success:
                raise ToolchainError(self.config.go_binary, f"go mod edit failed: {result.output.strip()}")
            replaced.append((module, directory))
        return replaced

    def close(self) -> None:
        """Remove the workspace if it was created by this toolchain."""
        if self._owns_work_dir:
            shutil.rmtree(self.work_dir, ignore_errors=True)


def module_path(go_mod: Path) -> Optional[str]:
    """Module path declared by a go.mod file, None if missing or unreadable."""
    try:
        match = _MODULE_RE.search(go_mod.read_text())
    except OSError:
        return None
    return match.group(1).strip('"') if match else None
