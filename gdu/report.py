"""Exporting an analysis to a JSON report and reading such reports back."""

from __future__ import annotations

import io
import itertools
import json
import queue
import threading
import time
from datetime import datetime, timezone
from typing import IO, Any, NoReturn, Optional

from termcolor import colored

from gdu.analyzer import CurrentProgress, create_analyzer
from gdu.common import EB, GB, KB, MB, PB, TB, UI, format_number
from gdu.items import Dir, File, sort_by_usage

PROGRAM_NAME = "gdu"
PROGRAM_VERSION = "development"

_SPINNER = "⠇⠏⠋⠙⠹⠸⠼⠴⠦⠧"
_EMPTY_ROW = "\r" + " " * 100
_TICK = 0.1

_UNSUPPORTED = {
    "list_devices": "Exporting devices list is not supported",
    "read_analysis": "Reading analysis is not possible while exporting",
}


class ExportError(RuntimeError):
    """Raised for operations the exporting UI does not support."""

    def __init__(self, message: str, operation: str = "") -> None:
        super().__init__(message)
        self.operation = operation


class AnalysisReadError(ValueError):
    """Raised when a JSON report cannot be turned into a directory tree."""


def _is_os_file(stream: Any) -> bool:
    try:
        stream.fileno()
    except (AttributeError, OSError, ValueError):
        return False
    return True


def _write(stream: IO[Any], text: str) -> None:
    if isinstance(stream, (io.RawIOBase, io.BufferedIOBase)):
        stream.write(text.encode("utf-8", "surrogateescape"))
    else:
        stream.write(text)


class ExportUI(UI):
    """UI that scans a path and writes the result as a JSON report."""

    def __init__(
        self,
        output: IO[str],
        export_output: IO[Any],
        use_colors: bool = False,
        show_progress: bool = False,
    ) -> None:
        super().__init__(
            analyzer=create_analyzer(),
            use_colors=use_colors,
            show_progress=show_progress,
        )
        self.output = output
        self.export_output = export_output

    def _red(self, text: str) -> str:
        return colored(text, "red", attrs=["bold"]) if self.use_colors else text

    def _orange(self, text: str) -> str:
        return colored(text, "yellow", attrs=["bold"]) if self.use_colors else text

    def _refuse(self, operation: str) -> NoReturn:
        raise ExportError(_UNSUPPORTED[operation], operation)

    def start_ui_loop(self) -> None:
        """Flush the progress output; the export itself is finished already."""
        flush = getattr(self.output, "flush", None)
        if callable(flush) and not getattr(self.output, "closed", False):
            flush()

    def list_devices(self, getter: Any) -> None:
        self._refuse("list_devices")

    def read_analysis(self, stream: IO[Any]) -> None:
        self._refuse("read_analysis")

    def analyze_path(self, path: str, parent_dir: Optional[Dir] = None) -> None:
        """Scan path and write the JSON report to the export output."""
        written = threading.Event()
        progress_thread: Optional[threading.Thread] = None
        if self.show_progress:
            progress_thread = threading.Thread(
                target=self._update_progress, args=(written,), daemon=True
            )
            progress_thread.start()

        try:
            directory = self.analyzer.analyze_dir(path, self.create_ignore_func())
            directory.update_stats({})
            sort_by_usage(directory.files)

            buffer = io.StringIO()
            buffer.write(
                f'[1,2,{{"progname":"{PROGRAM_NAME}","progver":"{PROGRAM_VERSION}",'
                f'"timestamp":{int(time.time())}}},\n'
            )
            directory.encode_json(buffer, True)
            buffer.write("]\n")

            _write(self.export_output, buffer.getvalue())
            if _is_os_file(self.export_output):
                self.export_output.close()
            elif hasattr(self.export_output, "flush"):
                self.export_output.flush()
        finally:
            if progress_thread is not None:
                written.set()
                progress_thread.join()

    def _update_progress(self, written: threading.Event) -> None:
        progress = CurrentProgress()
        waiting_for_write = False
        for frame in itertools.cycle(_SPINNER):
            self.output.write(_EMPTY_ROW)

            if written.is_set():
                self.output.write("\r")
                return
            try:
                progress = self.analyzer.progress_queue.get_nowait()
            except queue.Empty:
                if self.analyzer.done.is_set() and not waiting_for_write:
                    self.output.write("\r")
                    waiting_for_write = True

            self.output.write(f"\r {frame} ")
            if waiting_for_write:
                self.output.write("Writing output file...")
            else:
                self.output.write(
                    "Scanning... Total items: "
                    + self._red(format_number(progress.item_count))
                    + " size: "
                    + self.format_size(progress.total_size)
                )
            written.wait(_TICK)

    def format_size(self, size: int) -> str:
        """Return size in binary units with one decimal place."""
        fsize = float(size)
        for limit, unit in (
            (EB, "EiB"),
            (PB, "PiB"),
            (TB, "TiB"),
            (GB, "GiB"),
            (MB, "MiB"),
            (KB, "KiB"),
        ):
            if fsize >= limit:
                return self._orange(f"{fsize / limit:.1f}") + " " + unit
        return self._orange(str(size)) + " B"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _from_unix(value: float) -> datetime:
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def read_analysis(stream: IO[Any]) -> Dir:
    """Read a JSON report and return the root directory it describes."""
    data = stream.read()
    if isinstance(data, (bytes, bytearray)):
        data = bytes(data).decode("utf-8", "surrogateescape")
    if not data.strip():
        raise AnalysisReadError("unexpected end of JSON input")
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as exc:
        raise AnalysisReadError(str(exc)) from exc

    if not isinstance(parsed, list):
        raise AnalysisReadError("JSON file does not contain top level array")
    if len(parsed) < 4:
        raise AnalysisReadError("Top level array must have at least 4 items")
    items = parsed[3]
    if not isinstance(items, list):
        raise AnalysisReadError(
            "Array of maps not found in the top level array on 4th position"
        )
    return _process_dir(items)


def _process_dir(items: list[Any]) -> Dir:
    directory = Dir(flag=" ")
    if not items or not isinstance(items[0], dict):
        raise AnalysisReadError("Directory item is not a map")
    header = items[0]
    name = header.get("name")
    if not isinstance(name, str):
        raise AnalysisReadError("Directory name is not a string")
    mtime = header.get("mtime")
    if _is_number(mtime):
        directory.mtime = _from_unix(mtime)

    head, slash, tail = name.rpartition("/")
    if slash:
        directory.name = tail
        directory.base_path = head + slash
    else:
        directory.name = name

    for entry in items[1:]:
        if isinstance(entry, dict):
            directory.files.append(_process_file(entry, directory))
        elif isinstance(entry, list):
            subdir = _process_dir(entry)
            subdir.parent = directory
            directory.files.append(subdir)
    return directory


def _process_file(entry: dict[str, Any], parent: Dir) -> File:
    name = entry.get("name")
    if not isinstance(name, str):
        raise AnalysisReadError("File name is not a string")
    file = File(name=name, parent=parent)
    if _is_number(entry.get("asize")):
        file.size = int(entry["asize"])
    if _is_number(entry.get("dsize")):
        file.usage = int(entry["dsize"])
    if _is_number(entry.get("mtime")):
        file.mtime = _from_unix(entry["mtime"])
    file.flag = "@" if isinstance(entry.get("notreg"), bool) else " "
    if _is_number(entry.get("ino")):
        file.mli = int(entry["ino"])
    if isinstance(entry.get("hlnkc"), bool):
        file.flag = "H"
    return file