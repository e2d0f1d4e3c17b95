from pathlib import Path
from unittest.mock import MagicMock

import pytest
from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from git_autosync.watcher import ChangeEvent, ChangeHandler, EventKind, translate


@pytest.mark.parametrize(
    "event, expected",
    [
        (FileCreatedEvent("/w/a.md"), [ChangeEvent(EventKind.ADD, Path("/w/a.md"))]),
        (
            FileModifiedEvent("/w/a.md"),
            [ChangeEvent(EventKind.CHANGE, Path("/w/a.md"))],
        ),
        (
            FileDeletedEvent("/w/a.md"),
            [ChangeEvent(EventKind.UNLINK, Path("/w/a.md"))],
        ),
        (DirCreatedEvent("/w/d"), [ChangeEvent(EventKind.ADD_DIR, Path("/w/d"))]),
        (DirDeletedEvent("/w/d"), [ChangeEvent(EventKind.UNLINK_DIR, Path("/w/d"))]),
        (DirModifiedEvent("/w/d"), []),
        (FileClosedEvent("/w/a.md"), []),
    ],
)
def test_translate(event: object, expected: list[ChangeEvent]) -> None:
    assert translate(event) == expected


def test_move_becomes_unlink_and_add() -> None:
    changes = translate(FileMovedEvent("/w/old.md", "/w/new.md"))

    assert changes == [
        ChangeEvent(EventKind.UNLINK, Path("/w/old.md")),
        ChangeEvent(EventKind.ADD, Path("/w/new.md")),
    ]


def test_git_metadata_is_ignored() -> None:
    """Verifies that only `.git` components are ignored, not look-alike files."""
    assert translate(FileModifiedEvent("/w/.git/index")) == []
    assert translate(FileModifiedEvent("/w/lib/.git")) == []
    assert translate(FileModifiedEvent("/w/.gitignore")) == [
        ChangeEvent(EventKind.CHANGE, Path("/w/.gitignore"))
    ]
    # A move out of .git still reports the destination.
    assert translate(FileMovedEvent("/w/.git/tmp", "/w/notes.md")) == [
        ChangeEvent(EventKind.ADD, Path("/w/notes.md"))
    ]


def test_handler_forwards_to_sink() -> None:
    sink = MagicMock()
    handler = ChangeHandler(sink)

    handler.dispatch(FileCreatedEvent("/w/a.md"))
    handler.dispatch(FileModifiedEvent("/w/.git/HEAD"))

    sink.assert_called_once_with(ChangeEvent(EventKind.ADD, Path("/w/a.md")))
