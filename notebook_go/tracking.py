"""
Tracked paths and the events published for language-server collaborators.

The kernel does not talk to a language server itself. It publishes:

- DOCUMENT_CHANGED(path, text) whenever a new main.go is assembled;
- TRACKED_PATH_ADDED(path) / TRACKED_PATH_REMOVED(path) from %track/%untrack
  and from go.mod auto-tracking;
- TRACKED_PATH_CHANGED(path) when the contents of a tracked path change.

Handlers are advisory: their failures are logged and never reach the cell.
"""

import logging
import re
from pathlib import Path
from typing import Callable, Union

from notebook_go.errors import TrackingError
from notebook_go.file_watcher import PathWatcher

logger = logging.getLogger(__name__)

DOCUMENT_CHANGED = "document_changed"
TRACKED_PATH_ADDED = "tracked_path_added"
TRACKED_PATH_REMOVED = "tracked_path_removed"
TRACKED_PATH_CHANGED = "tracked_path_changed"

# Suffix of %untrack arguments removing everything below a directory.
RECURSIVE_SUFFIX = "..."

_REPLACE_RE = re.compile(r"=>\s*(?P<target>\S+)(?:\s+(?P<version>\S+))?\s*$")


class EventBus:
    """Minimal publish/subscribe for kernel events."""

    def __init__(self):
        self._handlers: dict[str, list[Callable]] = {}

    def subscribe(self, event: str, handler: Callable) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def unsubscribe(self, event: str, handler: Callable) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    def emit(self, event: str, *args) -> None:
        for handler in list(self._handlers.get(event, [])):
            try:
                handler(*args)
            except Exception:
                logger.exception("Handler for %s failed", event)


def local_replacements(go_mod: Path) -> list[Path]:
    """Local directories that go.mod `replace` directives point to."""
    targets = []
    in_block = False
    for raw in go_mod.read_text().splitlines():
        line = raw.split("//", 1)[0].strip()
        if in_block and line == ")":
            in_block = False
            continue
        if line == "replace (":
            in_block = True
            continue
        if not (in_block or line.startswith("replace ")):
            continue
        match = _REPLACE_RE.search(line)
        if match is None or match["version"]:
            continue
        target = match["target"]
        if target.startswith(("./", "../", "/")):
            targets.append((go_mod.parent / target).resolve())
    return targets


class Tracker:
    """Paths tracked for the language server, each with its own watcher."""

    def __init__(self, events: EventBus, poll_interval: float = 1.0, watch: bool = True):
        self.events = events
        self.poll_interval = poll_interval
        self.watch = watch
        self._watchers: dict[Path, PathWatcher] = {}

    def _changed(self, path: Path) -> None:
        self.events.emit(TRACKED_PATH_CHANGED, path)

    def tracked(self) -> list[Path]:
        return sorted(self._watchers)

    def track(self, path: Union[str, Path]) -> Path:
        """Start tracking a file or directory. Returns its resolved path."""
        resolved = Path(path).expanduser().resolve()
        if not resolved.exists():
            raise TrackingError(str(path), "no such file or directory")
        if resolved in self._watchers:
            return resolved
        watcher = PathWatcher(resolved, poll_interval=self.poll_interval, on_change=self._changed)
        if self.watch:
            watcher.start()
        self._watchers[resolved] = watcher
        logger.info("Tracking %s", resolved)
        self.events.emit(TRACKED_PATH_ADDED, resolved)
        return resolved

    def untrack(self, path: Union[str, Path]) -> list[Path]:
        """
        Stop tracking a path. A trailing `...` removes every tracked path
        below the given directory. Returns the paths removed.
        """
        text = str(path)
        recursive = text.endswith(RECURSIVE_SUFFIX)
        if recursive:
            text = text[:-len(RECURSIVE_SUFFIX)] or "."
        resolved = Path(text).expanduser().resolve()
        if recursive:
            removed = [p for p in self._watchers if p == resolved or resolved in p.parents]
        else:
            removed = [resolved] if resolved in self._watchers else []
        if not removed:
            raise TrackingError(str(path), "not tracked")
        for tracked_path in removed:
            self._watchers.pop(tracked_path).stop()
            logger.info("Untracked %s", tracked_path)
            self.events.emit(TRACKED_PATH_REMOVED, tracked_path)
        return removed

    def auto_track(self, go_mod: Path) -> list[Path]:
        """Track local `replace` targets of go.mod. Failures are only logged."""
        added = []
        try:
            targets = local_replacements(go_mod) if go_mod.exists() else []
        except OSError as e:
            logger.error("Auto-track: cannot read %s: %s", go_mod, e)
            return added
        for target in targets:
            if target in self._watchers:
                continue
            try:
                added.append(self.track(target))
            except TrackingError as e:
                logger.warning("Auto-track: %s", e)
        return added

    def close(self) -> None:
        for watcher in self._watchers.values():
            watcher.stop()
        self._watchers.clear()
