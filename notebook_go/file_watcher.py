"""Polling watcher for paths tracked by the kernel."""

import hashlib
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)

# Files that matter to the Go tooling inside a tracked directory.
WATCHED_SUFFIXES = (".go", ".mod", ".sum", ".work")


class PathWatcher:
    """Watch a file, or the Go sources under a directory, for changes.

    A background thread hashes the contents every `poll_interval` seconds.
    When the hash changes, `on_change(path)` is called from that thread.
    """

    def __init__(self, path: Union[str, Path], poll_interval: float = 1.0,
                 on_change: Optional[Callable[[Path], None]] = None):
        self.path = Path(path)
        self.poll_interval = poll_interval
        self.on_change = on_change
        self._last_hash: Optional[str] = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self._last_hash = self._get_hash()

    def _files(self) -> list[Path]:
        if self.path.is_file():
            return [self.path]
        files = []
        for dirpath, dirnames, filenames in os.walk(self.path):
            dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
            for name in sorted(filenames):
                if name.endswith(WATCHED_SUFFIXES):
                    files.append(Path(dirpath) / name)
        return files

    def _get_hash(self) -> Optional[str]:
        """SHA256 over the names and contents of the watched files."""
        if not self.path.exists():
            return None
        digest = hashlib.sha256()
        for file in self._files():
            try:
                content = file.read_bytes()
            except OSError:
                continue
            digest.update(str(file.relative_to(self.path) if file != self.path else file.name).encode())
            digest.update(hashlib.sha256(content).digest())
        return digest.hexdigest()

    def check(self) -> bool:
        """Compare against the last seen contents. Returns True if changed."""
        current = self._get_hash()
        with self._lock:
            if current == self._last_hash:
                return False
            self._last_hash = current
        if self.on_change is not None:
            try:
                self.on_change(self.path)
            except Exception:
                logger.exception("Change handler failed for %s", self.path)
        return True

    def _watch_loop(self) -> None:
        while not self._stop_event.wait(self.poll_interval):
            self.check()

    def start(self) -> None:
        """Start the watcher thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._watch_loop, daemon=True,
                                        name=f"watch:{self.path.name}")
        self._thread.start()

    def stop(self) -> None:
        """Stop the watcher thread."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=self.poll_interval + 0.5)
            self._thread = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
