"""
notebook-go: a Go notebook kernel that memorizes declarations across cells.

This package provides:
- Cells of Go code whose functions, types, variables, constants and imports
  persist across executions
- `%` directives and `!` shell commands inside cells
- Compiler errors and panics reported against cell lines
"""

from notebook_go.config import KernelConfig
from notebook_go.declarations import DeclarationStore, DeclKey, DeclKind
from notebook_go.kernel import CursorRequest, ExecutionResult, ExecutionState, GoKernel
from notebook_go.notebook import Cell, CellType, Notebook
from notebook_go.session import SessionManager

__version__ = "0.1.0"
__all__ = [
    "GoKernel",
    "ExecutionResult",
    "ExecutionState",
    "CursorRequest",
    "KernelConfig",
    "DeclarationStore",
    "DeclKey",
    "DeclKind",
    "Notebook",
    "Cell",
    "CellType",
    "SessionManager",
]
