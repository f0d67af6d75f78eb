"""
GoKernel: persistent Go kernel that memorizes declarations across cells.

Each cell is classified into directives and Go code, its declarations are
merged into the store, and the whole program is rebuilt and run. Compiler
messages and panics are reported in cell coordinates.
"""

import logging
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from notebook_go import commands
from notebook_go.assembler import GeneratedDocument, ParsedCell, compose_cell, parse_cell, render_program
from notebook_go.config import KernelConfig
from notebook_go.declarations import DeclarationStore
from notebook_go.diagnostics import convert_columns, format_report, parse_diagnostics, remap_text, unused_imports
from notebook_go.directives import ClassifiedCell, Directive, classify_cell
from notebook_go.linemap import Cursor, from_byte_column, to_byte_column
from notebook_go.toolchain import CommandResult, ExecutionFiles, GoToolchain, StreamingProcess
from notebook_go.tracking import DOCUMENT_CHANGED, EventBus, Tracker

logger = logging.getLogger(__name__)


class ExecutionState(str, Enum):
    """Where an execution is, or where it ended."""
    RECEIVED = "received"
    CLASSIFIED = "classified"
    STORE_UPDATED = "store_updated"
    ASSEMBLED = "assembled"
    BUILT = "built"
    SUCCEEDED = "succeeded"
    BUILD_FAILED = "build_failed"
    RUNNING = "running"
    COMPLETED = "completed"
    RUNTIME_FAILED = "runtime_failed"
    CANCELLED = "cancelled"


@dataclass
class ExecutionResult:
    """Result of executing a code cell."""
    success: bool
    outputs: list[dict[str, Any]] = field(default_factory=list)
    execution_count: int = 0
    error: Optional[str] = None
    state: ExecutionState = ExecutionState.RECEIVED
    diagnostics: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "outputs": self.outputs,
            "execution_count": self.execution_count,
            "error": self.error,
            "state": self.state.value,
            "diagnostics": self.diagnostics,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionResult":
        """Create from dictionary."""
        return cls(
            success=data["success"],
            outputs=data["outputs"],
            execution_count=data["execution_count"],
            error=data.get("error"),
            state=ExecutionState(data.get("state", ExecutionState.COMPLETED.value)),
            diagnostics=data.get("diagnostics", []),
        )


@dataclass
class CursorRequest:
    """What a completion or hover collaborator needs to query the language server."""
    path: Path
    document: GeneratedDocument
    cursor: Optional[Cursor]

    @property
    def text(self) -> str:
        return self.document.text

    def cursor_in(self, units: str) -> Optional[Cursor]:
        """File cursor with its column converted from bytes to `units`."""
        if self.cursor is None:
            return None
        line = self.document.lines[self.cursor.line]
        return Cursor(self.cursor.line, from_byte_column(line, self.cursor.column, units))


class GoKernel:
    """
    Persistent Go kernel.

    Provides:
    - Memorized declarations across cell executions
    - `%` directives and `!` shell commands
    - Streaming output through `on_output`, with diagnostics in cell terms
    - Execution history
    """

    def __init__(self, config: Optional[KernelConfig] = None, toolchain: Optional[GoToolchain] = None,
                 events: Optional[EventBus] = None, tracker: Optional[Tracker] = None):
        self.config = config or KernelConfig.from_env()
        self.toolchain = toolchain if toolchain is not None else GoToolchain(self.config)
        self.events = events or EventBus()
        self.tracker = tracker or Tracker(self.events, poll_interval=self.config.poll_interval)
        self.store = DeclarationStore()
        self.args: list[str] = []
        self.auto_get = self.config.auto_get
        self.execution_count = 0
        self.on_output: Optional[Callable[[dict], None]] = None
        self._history: list[tuple[int, str, ExecutionResult]] = []

        self._output_lock = threading.Lock()
        self._process_lock = threading.Lock()
        self._process: Optional[StreamingProcess] = None
        self._cancel_event = threading.Event()

        os.environ[commands.DIR_ENV] = os.getcwd()

    # Output -------------------------------------------------------------------

    def _emit(self, result: ExecutionResult, record: dict) -> None:
        with self._output_lock:
            last = result.outputs[-1] if result.outputs else None
            if (record["type"] == "stream" and last is not None and last["type"] == "stream"
                    and last["name"] == record["name"]):
                last["text"] += record["text"]
            else:
                result.outputs.append(dict(record))
            if self.on_output is not None:
                try:
                    self.on_output(record)
                except Exception:
                    logger.exception("Output handler failed")

    def write_stream(self, result: ExecutionResult, name: str, text: str) -> None:
        self._emit(result, {"type": "stream", "name": name, "text": text})

    def display_markdown(self, result: ExecutionResult, text: str) -> None:
        self._emit(result, {"type": "display_data", "data": {"text/markdown": text, "text/plain": text}})

    def _error(self, result: ExecutionResult, ename: str, evalue: str, traceback: Optional[list[str]] = None) -> None:
        self._emit(result, {"type": "error", "ename": ename, "evalue": evalue, "traceback": traceback or []})
        result.success = False
        result.error = evalue

    def _set_state(self, result: ExecutionResult, state: ExecutionState) -> None:
        logger.debug("Cell %d: %s", result.execution_count, state.value)
        result.state = state

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _mark_cancelled(self, result: ExecutionResult) -> None:
        self._set_state(result, ExecutionState.CANCELLED)
        result.success = False
        result.error = "Execution cancelled"

    # Execution ----------------------------------------------------------------

    def execute_cell(self, code: str) -> ExecutionResult:
        """
        Execute a cell and return its result with outputs.

        Args:
            code: Go code, `%` directives and `!` shell commands

        Returns:
            ExecutionResult with outputs, final state and diagnostics

        Raises:
            KernelSystemError: if the toolchain or the workspace is unusable
        """
        self.execution_count += 1
        self._cancel_event.clear()
        self.toolchain.resume()
        result = ExecutionResult(success=True, execution_count=self.execution_count)
        try:
            lines = code.split("\n")
            cell = classify_cell(lines)
            self._set_state(result, ExecutionState.CLASSIFIED)

            if not self._run_directives(cell, result):
                return result
            if self.cancelled:
                self._mark_cancelled(result)
            elif self._has_program(cell):
                self._execute_program(cell, result)
            else:
                self._set_state(result, ExecutionState.COMPLETED)
            return result
        finally:
            self._history.append((self.execution_count, code, result))

    @staticmethod
    def _has_program(cell: ClassifiedCell) -> bool:
        return cell.has_body() or any(directive.name == "%" or directive.name == "main"
                                      for directive in cell.directives)

    def _run_directives(self, cell: ClassifiedCell, result: ExecutionResult) -> bool:
        """Run directives in cell order. Returns False if the cell must stop."""
        for directive in cell.directives:
            if self.cancelled:
                self._mark_cancelled(result)
                return False
            if directive.is_shell:
                if not self._run_shell(directive, result):
                    return False
            else:
                commands.dispatch(self, directive, result)
        return True

    def _run_shell(self, directive: Directive, result: ExecutionResult) -> bool:
        command = directive.text
        cwd = None
        if command.startswith("*"):
            command = command[1:]
            self.toolchain.ensure_module()
            cwd = self.toolchain.work_dir
        returncode = self._stream(self.toolchain.shell_command(command), result, cwd=cwd)
        try:
            self.tracker.auto_track(self.toolchain.go_mod)
        except Exception:
            logger.exception("Auto-tracking after shell command failed")
        if self.cancelled:
            self._mark_cancelled(result)
            return False
        if returncode != 0:
            self._set_state(result, ExecutionState.RUNTIME_FAILED)
            self._error(result, "ShellError", f"`!{directive.text}` exited with status {returncode}")
            return False
        return True

    def _stream(self, argv: list[str], result: ExecutionResult, cwd: Optional[Path] = None,
                remap: Optional[Callable[[str], str]] = None) -> int:
        """Run a child process, forwarding its output as it arrives."""
        def on_stdout(text: str) -> None:
            self.write_stream(result, "stdout", text)

        def on_stderr(text: str) -> None:
            self.write_stream(result, "stderr", remap(text) if remap else text)

        process = StreamingProcess(argv, on_stdout, on_stderr, cwd=cwd)
        with self._process_lock:
            self._process = process
        try:
            if self.cancelled:
                process.terminate()
            return process.wait()
        except BaseException:
            process.terminate()
            raise
        finally:
            with self._process_lock:
                self._process = None

    def _execute_program(self, cell: ClassifiedCell, result: ExecutionResult) -> None:
        origin = self.execution_count
        snapshot = self.store.snapshot()
        committed = False
        try:
            parsed = parse_cell(compose_cell(cell.lines, cell.consumed), origin)
            self.store.upsert_all(parsed.declarations)
            self._set_state(result, ExecutionState.STORE_UPDATED)

            with self.toolchain.execution() as files:
                document, build = self._build(parsed, files, result)
                if self.cancelled:
                    self._mark_cancelled(result)
                    return
                if not build.success:
                    self._report_build_failure(cell, document, build, result)
                    return
                committed = True
                self._set_state(result, ExecutionState.BUILT)
                if not document.runnable:
                    self._set_state(result, ExecutionState.SUCCEEDED)
                    return
                self._run_program(document, files, result)
        finally:
            if not committed:
                logger.debug("Cell %d: restoring declarations", origin)
                self.store.restore(snapshot)

    def _build(self, parsed: ParsedCell, files: ExecutionFiles,
               result: ExecutionResult) -> tuple[GeneratedDocument, CommandResult]:
        """Build the program, dropping memorized imports the compiler reports unused."""
        excluded = set()
        while True:
            document = render_program(self.store, parsed, parsed.origin, excluded)
            self._set_state(result, ExecutionState.ASSEMBLED)
            self.events.emit(DOCUMENT_CHANGED, files.source, document.text)
            build = self.toolchain.build(files, document.text, auto_get=self.auto_get)
            if build.success or self.cancelled:
                return document, build
            stale = unused_imports(parse_diagnostics(build.output, document)) - excluded
            if not stale:
                return document, build
            logger.info("Retrying build without unused imports: %s", ", ".join(sorted(map(str, stale))))
            excluded |= stale

    def _report_build_failure(self, cell: ClassifiedCell, document: GeneratedDocument,
                              build: CommandResult, result: ExecutionResult) -> None:
        origin = result.execution_count
        diagnostics = parse_diagnostics(build.output, document)
        if self.config.cursor_units != "byte":
            diagnostics = convert_columns(diagnostics, cell.lines, self.config.cursor_units)
        remapped = remap_text(build.output, document, origin)
        report = format_report(diagnostics, origin, cell.lines)
        evalue = "\n".join(report) if report else remapped.strip()
        result.diagnostics = [diag.to_dict() for diag in diagnostics]
        self._set_state(result, ExecutionState.BUILD_FAILED)
        self._error(result, "BuildError", evalue, remapped.splitlines())

    def _run_program(self, document: GeneratedDocument, files: ExecutionFiles, result: ExecutionResult) -> None:
        origin = result.execution_count
        self._set_state(result, ExecutionState.RUNNING)
        returncode = self._stream(
            self.toolchain.run_command(files, self.args),
            result,
            remap=lambda text: remap_text(text, document, origin),
        )
        if self.cancelled:
            self._mark_cancelled(result)
        elif returncode != 0:
            self._set_state(result, ExecutionState.RUNTIME_FAILED)
            self._error(result, "RuntimeError", f"exit status {returncode}")
        else:
            self._set_state(result, ExecutionState.COMPLETED)

    def cancel(self) -> None:
        """Interrupt the current execution. Safe to call at any time."""
        self._cancel_event.set()
        self.toolchain.interrupt()
        with self._process_lock:
            process = self._process
        if process is not None:
            logger.info("Terminating process %d", process.pid)
            process.terminate()

    # Cursor requests ------------------------------------------------------------

    def prepare_cursor_request(self, code: str, cursor: Cursor, units: Optional[str] = None) -> CursorRequest:
        """
        Assemble the program as if `code` were executed next, without memorizing it.

        Args:
            code: contents of the cell being edited
            cursor: 0-based cursor in the cell, column in `units`
            units: column units, defaults to the configured cursor_units

        Returns:
            CursorRequest with the file path, its text and the cursor in file
            coordinates (byte column); cursor is None if it sits on a line
            that did not make it into the program.
        """
        units = units or self.config.cursor_units
        lines = code.split("\n")
        column = cursor.column
        if 0 <= cursor.line < len(lines):
            column = to_byte_column(lines[cursor.line], cursor.column, units)
        cell = classify_cell(lines)

        store = self.store.copy()
        origin = self.execution_count + 1
        parsed = parse_cell(compose_cell(lines, cell.consumed, Cursor(cursor.line, column)), origin)
        store.upsert_all(parsed.declarations)
        document = render_program(store, parsed, origin)

        self.events.emit(DOCUMENT_CHANGED, self.toolchain.main_path, document.text)
        return CursorRequest(path=self.toolchain.main_path, document=document, cursor=document.cursor)

    # State ----------------------------------------------------------------------

    def list_declarations(self) -> dict[str, list[str]]:
        """Memorized declaration ids grouped by kind."""
        return {kind.value: [str(decl.key) for decl in decls] for kind, decls in self.store.by_kind().items()}

    def reset_declarations(self) -> None:
        self.store.reset()

    def reset_manifest(self) -> None:
        """Re-create go.mod from scratch."""
        self.toolchain.mod_init()

    def get_history(self) -> list[tuple[int, str, ExecutionResult]]:
        """Get execution history."""
        return self._history.copy()

    def clear_history(self):
        """Clear execution history."""
        self._history.clear()

    def reset(self):
        """Reset the kernel to a clean state."""
        self.store.reset()
        self.args = []
        self.auto_get = self.config.auto_get
        self.execution_count = 0
        self._history.clear()
        self.reset_manifest()

    def close(self) -> None:
        self.cancel()
        self.tracker.close()
        self.toolchain.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
