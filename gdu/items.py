"""Files and directories of an analysed tree, their statistics and JSON encoding."""

from __future__ import annotations

import json
import os
import shutil
import stat
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, TextIO

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MIN_TIME = datetime.min.replace(tzinfo=timezone.utc)

_JSON_ESCAPES = (
    ("&", "\\u0026"),
    ("<", "\\u003c"),
    (">", "\\u003e"),
    ("\u2028", "\\u2028"),
    ("\u2029", "\\u2029"),
)

# Maps inode number to every item hard linked to it.
HardLinkedItems = dict[int, list["File"]]


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def unix_time(moment: datetime) -> int:
    """Return whole seconds since the epoch, rounded down."""
    return (_aware(moment) - EPOCH) // timedelta(seconds=1)


def _json_string(value: str) -> str:
    try:
        raw = value.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        raw = value.encode("utf-8", "surrogatepass")
    text = json.dumps(raw.decode("utf-8", "replace"), ensure_ascii=False)
    for char, escaped in _JSON_ESCAPES:
        text = text.replace(char, escaped)
    return text


def _clean_join(base: str, name: str) -> str:
    return os.path.normpath(os.path.join(base, name))


@dataclass(eq=False)
class File:
    """A non-directory item of the scanned tree."""

    name: str = ""
    size: int = 0
    usage: int = 0
    mtime: Optional[datetime] = None
    parent: Optional["Dir"] = field(default=None, repr=False)
    mli: int = 0
    flag: str = " "

    @property
    def path(self) -> str:
        if self.parent is None:
            raise ValueError(f"item {self.name!r} has no parent")
        return _clean_join(self.parent.path, self.name)

    def is_dir(self) -> bool:
        return False

    @property
    def type_name(self) -> str:
        return "Other" if self.flag == "@" else "File"

    @property
    def item_count(self) -> int:
        return 1

    def _already_counted(self, linked_items: HardLinkedItems) -> bool:
        if self.mli <= 0:
            return False
        counted = self.mli in linked_items
        if counted:
            self.flag = "H"
        linked_items.setdefault(self.mli, []).append(self)
        return counted

    def item_stats(self, linked_items: HardLinkedItems) -> tuple[int, int, int]:
        """Return (item count, apparent size, disk usage) contributed by this file."""
        if self._already_counted(linked_items):
            return 1, 0, 0
        return 1, self.size, self.usage

    def encode_json(self, writer: TextIO, top_level: bool = False) -> None:
        parts = ['{"name":', _json_string(self.name)]
        if self.size > 0:
            parts.append(f',"asize":{self.size}')
        if self.usage > 0:
            parts.append(f',"dsize":{self.usage}')
        if self.mtime is not None:
            parts.append(f',"mtime":{unix_time(self.mtime)}')
        if self.flag == "@":
            parts.append(',"notreg":true')
        if self.flag == "H":
            parts.append(f',"ino":{self.mli},"hlnkc":true')
        parts.append("}")
        writer.write("".join(parts))


class Files(list["File"]):
    """Items of a directory."""

    def index_of(self, item: File) -> Optional[int]:
        """Return the position of this very item, or None."""
        for index, candidate in enumerate(self):
            if candidate is item:
                return index
        return None

    def find_by_name(self, name: str) -> Optional[int]:
        """Return the position of the first item with the name, or None."""
        for index, candidate in enumerate(self):
            if candidate.name == name:
                return index
        return None

    def remove_item(self, item: File) -> bool:
        index = self.index_of(item)
        if index is None:
            return False
        del self[index]
        return True

    def remove_by_name(self, name: str) -> bool:
        index = self.find_by_name(name)
        if index is None:
            return False
        del self[index]
        return True


@dataclass(eq=False)
class Dir(File):
    """A directory of the scanned tree."""

    base_path: str = ""
    files: Files = field(default_factory=Files)
    item_count: int = 0

    @property
    def path(self) -> str:
        if self.base_path:
            return _clean_join(self.base_path, self.name)
        if self.parent is None:
            raise ValueError(f"directory {self.name!r} has neither base path nor parent")
        return _clean_join(self.parent.path, self.name)

    def is_dir(self) -> bool:
        return True

    @property
    def type_name(self) -> str:
        return "Directory"

    def item_stats(self, linked_items: HardLinkedItems) -> tuple[int, int, int]:
        self.update_stats(linked_items)
        return self.item_count, self.size, self.usage

    def update_stats(self, linked_items: Optional[HardLinkedItems] = None) -> None:
        """Recompute size, usage, item count, mtime and flag from the children."""
        if linked_items is None:
            linked_items = {}
        total_size = 4096
        total_usage = 4096
        count = 0
        for entry in self.files:
            entry_count, entry_size, entry_usage = entry.item_stats(linked_items)
            total_size += entry_size
            total_usage += entry_usage
            count += entry_count

            if entry.mtime is not None and (
                self.mtime is None or _aware(entry.mtime) > _aware(self.mtime)
            ):
                self.mtime = entry.mtime

            if entry.flag in ("!", ".") and self.flag != "!":
                self.flag = "."
        self.item_count = count + 1
        self.size = total_size
        self.usage = total_usage

    def encode_json(self, writer: TextIO, top_level: bool = False) -> None:
        name = self.path if top_level else self.name
        parts = ['[{"name":', _json_string(name)]
        if self.mtime is not None:
            parts.append(f',"mtime":{unix_time(self.mtime)}')
        parts.append("}")
        if self.files:
            parts.append(",")
        parts.append("\n")
        writer.write("".join(parts))

        for index, item in enumerate(self.files):
            if index:
                writer.write(",\n")
            item.encode_json(writer, False)
        writer.write("]")


def _mtime_key(item: File) -> datetime:
    return _aware(item.mtime) if item.mtime is not None else _MIN_TIME


def sort_by_usage(files: list[File], reverse: bool = False) -> None:
    """Sort in place, largest disk usage first (smallest first if reversed)."""
    files.sort(key=lambda item: item.usage, reverse=not reverse)


def sort_by_apparent_size(files: list[File], reverse: bool = False) -> None:
    files.sort(key=lambda item: item.size, reverse=not reverse)


def sort_by_item_count(files: list[File], reverse: bool = False) -> None:
    files.sort(key=lambda item: item.item_count, reverse=not reverse)


def sort_by_name(files: list[File], reverse: bool = False) -> None:
    """Sort in place by name, descending (ascending if reversed)."""
    files.sort(key=lambda item: item.name, reverse=not reverse)


def sort_by_mtime(files: list[File], reverse: bool = False) -> None:
    """Sort in place, newest first (oldest first if reversed)."""
    files.sort(key=_mtime_key, reverse=not reverse)


def _ancestors(directory: Optional[Dir]) -> Iterator[Dir]:
    while directory is not None:
        yield directory
        directory = directory.parent


def _remove_all(path: str) -> None:
    try:
        info = os.lstat(path)
    except FileNotFoundError:
        return
    if stat.S_ISDIR(info.st_mode):
        shutil.rmtree(path)
    else:
        os.remove(path)


def remove_item_from_dir(dir: Dir, item: File) -> None:
    """Delete the item from disk and from the tree, updating all ancestors."""
    removed_count = item.item_count
    _remove_all(item.path)
    dir.files.remove_item(item)
    for ancestor in _ancestors(dir):
        ancestor.item_count -= removed_count
        ancestor.size -= item.size
        ancestor.usage -= item.usage


def empty_file_from_dir(dir: Dir, file: File) -> None:
    """Truncate the file on disk and replace it in the tree by an empty one."""
    os.truncate(file.path, 0)
    for ancestor in _ancestors(dir):
        ancestor.size -= file.size
        ancestor.usage -= file.usage
    dir.files.remove_item(file)
    dir.files.append(File(name=file.name, flag=file.flag, size=0, parent=dir))