"""
Error types for notebook-go.

Directive and tracking errors are reported back to the user and the cell
keeps going. System errors mean the execution environment itself is broken
and are propagated to whoever called the kernel.
"""


class NotebookGoError(Exception):
    """Base error for notebook-go."""

    pass


class DirectiveError(NotebookGoError):
    """Malformed `%` directive: bad argument count, bad value, etc."""

    def __init__(self, command: str, message: str) -> None:
        super().__init__(f"%{command}: {message}")
        self.command = command


class TrackingError(NotebookGoError):
    """A path could not be tracked or untracked."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"track {path!r}: {message}")
        self.path = path


class KernelSystemError(NotebookGoError):
    """The execution environment is unusable."""

    pass


class ToolchainError(KernelSystemError):
    """An external program (go, shell) could not be invoked."""

    def __init__(self, program: str, message: str) -> None:
        super().__init__(f"Cannot run {program}: {message}")
        self.program = program


class WorkspaceError(KernelSystemError):
    """The Go workspace or its temporary files could not be created."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f"Workspace {path}: {message}")
        self.path = path
