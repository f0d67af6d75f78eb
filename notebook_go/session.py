"""
SessionManager: Manages saving/loading of kernel state.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import dill

from notebook_go.errors import TrackingError
from notebook_go.kernel import ExecutionResult, GoKernel

logger = logging.getLogger(__name__)

SESSION_SUFFIX = ".session"
CHECKPOINT_SUFFIX = ".checkpoint"


class SessionManager:
    """
    Manages saving/loading of kernel state.

    A session holds what a kernel memorized: declarations, program args,
    the autoget flag, the execution count, history and tracked paths. The
    Go workspace itself (go.mod, downloaded modules) is not saved.
    """

    def __init__(self, sessions_dir: Optional[Path] = None):
        """
        Initialize session manager.

        Args:
            sessions_dir: Directory to store session files
        """
        self.sessions_dir = Path(sessions_dir or Path.home() / ".notebook_go" / "sessions")
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def save_session(self, kernel: GoKernel, path: Optional[Path] = None, name: Optional[str] = None) -> Path:
        """
        Save the kernel state to a file.

        Args:
            kernel: GoKernel instance to save
            path: Optional specific path to save to
            name: Optional name for the session

        Returns:
            Path to saved session file
        """
        state = {
            "declarations": list(kernel.store),
            "args": list(kernel.args),
            "auto_get": kernel.auto_get,
            "execution_count": kernel.execution_count,
            "history": [
                (count, code, result.to_dict())
                for count, code, result in kernel.get_history()
            ],
            "tracked": [str(p) for p in kernel.tracker.tracked()],
            "saved_at": datetime.now().isoformat(),
        }

        if path is None:
            name = name or f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            path = self.sessions_dir / f"{name}{SESSION_SUFFIX}"

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "wb") as f:
            dill.dump(state, f)

        logger.info("Saved session with %d declarations to %s", len(state["declarations"]), path)
        return path

    def load_session(self, kernel: GoKernel, path: Path) -> dict[str, Any]:
        """
        Load kernel state from a file.

        Args:
            kernel: GoKernel instance to restore into
            path: Path to session file

        Returns:
            Dictionary with load information
        """
        path = Path(path)

        with open(path, "rb") as f:
            state = dill.load(f)

        declarations = state.get("declarations", [])
        kernel.store.restore({decl.key: decl for decl in declarations})
        kernel.args = list(state.get("args", []))
        kernel.auto_get = state.get("auto_get", kernel.config.auto_get)
        kernel.execution_count = state["execution_count"]

        kernel.clear_history()
        for count, code, result_dict in state.get("history", []):
            kernel._history.append((count, code, ExecutionResult.from_dict(result_dict)))

        missing = []
        for tracked in state.get("tracked", []):
            try:
                kernel.tracker.track(tracked)
            except TrackingError as e:
                logger.warning("Not restoring tracked path: %s", e)
                missing.append(tracked)

        return {
            "restored_declarations": [str(decl.key) for decl in declarations],
            "missing_tracked": missing,
            "saved_at": state.get("saved_at"),
        }

    def list_sessions(self) -> list[dict[str, Any]]:
        """
        List saved sessions and notebook checkpoints.

        Returns:
            List of session info dictionaries, newest first
        """
        sessions = []
        paths = [
            *self.sessions_dir.glob(f"*{SESSION_SUFFIX}"),
            *(self.sessions_dir / "checkpoints").glob(f"*{CHECKPOINT_SUFFIX}"),
        ]
        for path in paths:
            kind = "checkpoint" if path.suffix == CHECKPOINT_SUFFIX else "session"
            try:
                with open(path, "rb") as f:
                    state = dill.load(f)
                sessions.append({
                    "path": str(path),
                    "name": path.stem,
                    "kind": kind,
                    "saved_at": state.get("saved_at"),
                    "declaration_count": len(state.get("declarations", [])),
                })
            except Exception as e:
                logger.warning("Unreadable session %s: %s", path, e)
                sessions.append({
                    "path": str(path),
                    "name": path.stem,
                    "kind": kind,
                    "error": str(e),
                })
        return sorted(sessions, key=lambda x: x.get("saved_at") or "", reverse=True)

    def delete_session(self, path: Path) -> bool:
        """Delete a session file."""
        path = Path(path)
        if path.exists():
            path.unlink()
            return True
        return False

    def get_checkpoint_path(self, notebook_path: Path) -> Path:
        """Get the checkpoint path for a notebook."""
        notebook_path = Path(notebook_path)
        return self.sessions_dir / "checkpoints" / f"{notebook_path.stem}{CHECKPOINT_SUFFIX}"

    def save_checkpoint(self, kernel: GoKernel, notebook_path: Path) -> Path:
        """Save a checkpoint for a notebook."""
        checkpoint_path = self.get_checkpoint_path(notebook_path)
        checkpoint_path.parent.mkdir(parents=True, exist_ok=True)

        return self.save_session(kernel, path=checkpoint_path)

    def load_checkpoint(self, kernel: GoKernel, notebook_path: Path) -> Optional[dict]:
        """
        Load checkpoint for a notebook.

        Returns:
            Load info or None if no checkpoint exists
        """
        checkpoint_path = self.get_checkpoint_path(notebook_path)
        if checkpoint_path.exists():
            return self.load_session(kernel, checkpoint_path)
        return None
