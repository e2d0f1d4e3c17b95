"""Filesystem change notifier built on watchdog."""

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .constants import APP_NAME, GIT_DIR_NAME

logger = logging.getLogger(APP_NAME)


class EventKind(Enum):
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"
    ADD_DIR = "addDir"
    UNLINK_DIR = "unlinkDir"


@dataclass(frozen=True)
class ChangeEvent:
    """A single filesystem mutation under the watched root.

    Attributes:
        kind (EventKind): What happened.
        path (Path): The absolute path affected.
    """

    kind: EventKind
    path: Path


def is_ignored(path: Path) -> bool:
    """True for anything inside a version-control metadata directory."""
    return GIT_DIR_NAME in path.parts


def translate(event: FileSystemEvent) -> list[ChangeEvent]:
    """Maps a watchdog event onto zero or more change events.

    Moves become an unlink of the source plus an add of the destination.
    Directory modifications (emitted whenever a child changes) and
    open/close notifications carry no content change and are dropped.

    Args:
        event (FileSystemEvent): The raw watchdog event.

    Returns:
        list[ChangeEvent]: The translated events, minus ignored paths.
    """
    src = Path(os.fsdecode(event.src_path))
    is_dir = event.is_directory
    added = EventKind.ADD_DIR if is_dir else EventKind.ADD
    removed = EventKind.UNLINK_DIR if is_dir else EventKind.UNLINK

    if event.event_type == "created":
        changes = [ChangeEvent(added, src)]
    elif event.event_type == "modified" and not is_dir:
        changes = [ChangeEvent(EventKind.CHANGE, src)]
    elif event.event_type == "deleted":
        changes = [ChangeEvent(removed, src)]
    elif event.event_type == "moved":
        dest = Path(os.fsdecode(event.dest_path))
        changes = [ChangeEvent(removed, src), ChangeEvent(added, dest)]
    else:
        changes = []

    return [c for c in changes if not is_ignored(c.path)]


class ChangeHandler(FileSystemEventHandler):
    """Forwards translated change events to a sink.

    The handler runs on watchdog's observer thread; the sink must therefore be
    thread-safe (the daemon passes `queue.Queue.put`).
    """

    def __init__(self, sink: Callable[[ChangeEvent], None]):
        super().__init__()
        self._sink = sink

    def on_any_event(self, event: FileSystemEvent) -> None:
        for change in translate(event):
            self._sink(change)


def start_observer(root: Path, sink: Callable[[ChangeEvent], None]) -> Observer:
    """Starts a recursive watchdog observer on `root`.

    Args:
        root (Path): The directory to watch.
        sink (Callable[[ChangeEvent], None]): Receives every change event.

    Returns:
        Observer: The running observer; call `stop()` and `join()` to shut down.
    """
    observer = Observer()
    observer.schedule(ChangeHandler(sink), str(root), recursive=True)
    observer.start()
    logger.info(f"Watching {root} for changes...")
    return observer
