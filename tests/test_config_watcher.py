import asyncio
import os
from unittest.mock import MagicMock

import pytest
from watchdog.events import FileModifiedEvent, FileMovedEvent

from eventbot.config.watcher import ConfigFileHandler, ConfigWatcher


def test_handler_debounces_by_mtime(tmp_path):
    path = tmp_path / "events.json"
    path.write_text("{}")
    watcher = MagicMock()
    watcher.is_watched.return_value = True
    handler = ConfigFileHandler(watcher)

    handler.on_modified(FileModifiedEvent(str(path)))
    handler.on_modified(FileModifiedEvent(str(path)))
    assert watcher.notify.call_count == 1

    stat = os.stat(path)
    os.utime(path, (stat.st_atime, stat.st_mtime + 5))
    handler.on_modified(FileModifiedEvent(str(path)))
    assert watcher.notify.call_count == 2
    watcher.notify.assert_called_with(str(path))


def test_handler_ignores_unwatched_and_missing_files(tmp_path):
    watcher = MagicMock()
    watcher.is_watched.return_value = False
    handler = ConfigFileHandler(watcher)
    other = tmp_path / "notes.txt"
    other.write_text("x")

    handler.on_modified(FileModifiedEvent(str(other)))
    watcher.is_watched.return_value = True
    handler.on_created(FileModifiedEvent(str(tmp_path / "gone.json")))
    watcher.notify.assert_not_called()


def test_handler_uses_move_destination(tmp_path):
    final = tmp_path / "commands.json"
    final.write_text("{}")
    watcher = MagicMock()
    watcher.is_watched.side_effect = lambda p: p == str(final)
    handler = ConfigFileHandler(watcher)

    handler.on_moved(FileMovedEvent(str(tmp_path / ".commands.json.swp"), str(final)))
    watcher.notify.assert_called_once_with(str(final))


@pytest.mark.asyncio
async def test_notify_runs_callback_on_loop(tmp_path):
    calls = []
    watcher = ConfigWatcher(str(tmp_path))
    watcher.watch("events.json", lambda: calls.append("events"))
    watcher.start()
    try:
        assert watcher.running
        assert watcher.is_watched(os.path.join(str(tmp_path), "events.json"))

        watcher.notify(os.path.join(str(tmp_path), "events.json"))
        watcher.notify(os.path.join(str(tmp_path), "other.json"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert calls == ["events"]
    finally:
        watcher.stop()
    assert not watcher.running


@pytest.mark.asyncio
async def test_failing_callback_is_logged(tmp_path, caplog):
    def boom():
        raise RuntimeError("bad reload")

    watcher = ConfigWatcher(str(tmp_path))
    watcher.watch("events.json", boom)
    watcher.start()
    try:
        watcher.notify(os.path.join(str(tmp_path), "events.json"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
    finally:
        watcher.stop()
    assert "Reload handler for events.json failed" in caplog.text


@pytest.mark.asyncio
async def test_missing_directory_disables_watching(tmp_path, caplog):
    watcher = ConfigWatcher(str(tmp_path / "absent"))
    watcher.start()
    assert not watcher.running
    assert "hot reload disabled" in caplog.text
    watcher.stop()
