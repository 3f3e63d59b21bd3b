"""Parallel scanning of a directory tree."""

from __future__ import annotations

import dataclasses
import logging
import os
import queue
import stat
import threading
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from gdu.items import Dir, File

_log = logging.getLogger(__name__)

_DEV_BSIZE = 512
_HAS_BLOCKS = hasattr(os.stat_result, "st_blocks")

IgnoreFunc = Callable[[str, str], bool]


@dataclass
class CurrentProgress:
    """Running totals of a scan."""

    current_item_name: str = ""
    item_count: int = 0
    total_size: int = 0


def _mtime(info: os.stat_result) -> datetime:
    seconds, nanos = divmod(info.st_mtime_ns, 10**9)
    return datetime.fromtimestamp(seconds, tz=timezone.utc) + timedelta(
        microseconds=nanos // 1000
    )


def _set_file_attrs(file: File, info: os.stat_result) -> None:
    if not _HAS_BLOCKS:
        return
    file.usage = info.st_blocks * _DEV_BSIZE
    file.mtime = _mtime(info)
    if info.st_nlink > 1:
        file.mli = info.st_ino


def _set_dir_attrs(directory: Dir, path: str) -> None:
    if not _HAS_BLOCKS:
        return
    try:
        info = os.stat(path)
    except OSError:
        return
    directory.mtime = _mtime(info)


def _dir_flag(error: Optional[OSError], items: int) -> str:
    if error is not None:
        return "!"
    if items == 0:
        return "e"
    return " "


def _file_flag(info: os.stat_result) -> str:
    if stat.S_ISLNK(info.st_mode) or stat.S_ISSOCK(info.st_mode):
        return "@"
    return " "


def _base_name(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip(os.sep)
    if not stripped:
        return os.sep
    return os.path.basename(stripped)


class ParallelAnalyzer:
    """Scans directories on a pool of worker threads.

    The latest progress snapshot is offered on ``progress_queue`` (a snapshot is
    dropped when the previous one has not been consumed yet) and ``done`` is set
    when a scan finishes.
    """

    def __init__(self, max_workers: Optional[int] = None) -> None:
        self.progress = CurrentProgress()
        self.progress_queue: queue.Queue[CurrentProgress] = queue.Queue(maxsize=1)
        self.done = threading.Event()
        self.max_workers = max_workers or 3 * (os.cpu_count() or 1)
        self._ignore: Optional[IgnoreFunc] = None
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._pending = 0

    def reset_progress(self) -> None:
        with self._lock:
            self.progress.item_count = 0
            self.progress.total_size = 0
            self.progress.current_item_name = ""

    def analyze_dir(self, path: str, ignore: IgnoreFunc) -> Dir:
        """Scan the tree under path, skipping directories for which ignore is true."""
        self._ignore = ignore
        self.done.clear()
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            root = self._process_dir(path, None, pool)
            with self._idle:
                self._idle.wait_for(lambda: self._pending == 0)
        root.base_path = os.path.normpath(os.path.dirname(path))
        self.done.set()
        return root

    def _is_ignored(self, name: str, path: str) -> bool:
        return self._ignore is not None and self._ignore(name, path)

    def _schedule(self, pool: Executor, path: str, parent: Dir) -> None:
        with self._lock:
            self._pending += 1
        pool.submit(self._process_subdir, pool, path, parent)

    def _process_subdir(self, pool: Executor, path: str, parent: Dir) -> None:
        try:
            subdir = self._process_dir(path, parent, pool)
            with self._lock:
                parent.files.append(subdir)
        except Exception:
            _log.exception("Scanning %s failed", path)
        finally:
            with self._idle:
                self._pending -= 1
                if self._pending == 0:
                    self._idle.notify_all()

    def _process_dir(self, path: str, parent: Optional[Dir], pool: Executor) -> Dir:
        error: Optional[OSError] = None
        try:
            with os.scandir(path) as listing:
                entries = sorted(listing, key=lambda entry: entry.name)
        except OSError as exc:
            _log.warning("%s", exc)
            error = exc
            entries = []

        directory = Dir(
            name=_base_name(path),
            flag=_dir_flag(error, len(entries)),
            parent=parent,
            item_count=1,
        )
        _set_dir_attrs(directory, path)

        total_size = 0
        subdirs: list[str] = []
        for entry in entries:
            entry_path = os.path.join(path, entry.name)
            if entry.is_dir(follow_symlinks=False):
                if not self._is_ignored(entry.name, entry_path):
                    subdirs.append(entry_path)
                continue
            try:
                info = entry.stat(follow_symlinks=False)
            except OSError as exc:
                _log.warning("%s", exc)
                continue
            file = File(
                name=entry.name,
                flag=_file_flag(info),
                size=info.st_size,
                parent=directory,
            )
            _set_file_attrs(file, info)
            total_size += info.st_size
            directory.files.append(file)

        for subdir_path in subdirs:
            self._schedule(pool, subdir_path, directory)

        self._report_progress(path, len(entries), total_size)
        return directory

    def _report_progress(self, path: str, items: int, size: int) -> None:
        with self._lock:
            self.progress.current_item_name = path
            self.progress.item_count += items
            self.progress.total_size += size
            snapshot = dataclasses.replace(self.progress)
        try:
            self.progress_queue.put_nowait(snapshot)
        except queue.Full:
            pass


def create_analyzer() -> ParallelAnalyzer:
    return ParallelAnalyzer()