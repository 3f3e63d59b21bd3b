"""Shared UI state: number formatting and rules for ignoring directories."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from gdu.analyzer import ParallelAnalyzer

_log = logging.getLogger(__name__)

# file size constants
KB = float(1 << 10)
MB = float(1 << 20)
GB = float(1 << 30)
TB = float(1 << 40)
PB = float(1 << 50)
EB = float(1 << 60)

# file count constants
K = 10**3
M = 10**6
G = 10**9

IgnoreFunc = Callable[[str, str], bool]


def format_number(n: int) -> str:
    """Return the number with commas as thousands separators."""
    digits = str(n)
    head = digits[: len(digits) % 3]
    groups = [head] if head else []
    groups.extend(digits[i : i + 3] for i in range(len(head), len(digits), 3))
    return ",".join(groups)


def create_ignore_pattern(paths: Iterable[str]) -> re.Pattern[str]:
    """Combine path patterns into one expression; raises re.error on a bad one."""
    wrapped = []
    for path in paths:
        re.compile(path)
        wrapped.append(f"({path})")
    return re.compile("^" + "|".join(wrapped) + r"\Z")


@dataclass
class UI:
    """Settings shared by all user interfaces."""

    analyzer: Optional["ParallelAnalyzer"] = None
    ignore_dir_paths: set[str] = field(default_factory=set)
    ignore_dir_path_patterns: Optional[re.Pattern[str]] = None
    ignore_hidden: bool = False
    use_colors: bool = False
    show_progress: bool = False
    show_apparent_size: bool = False

    def set_ignore_dir_paths(self, paths: Iterable[str]) -> None:
        paths = list(paths)
        _log.info("Ignoring dirs %s", ", ".join(paths))
        self.ignore_dir_paths = set(paths)

    def set_ignore_dir_patterns(self, paths: Iterable[str]) -> None:
        paths = list(paths)
        _log.info("Ignoring dir patterns %s", ", ".join(paths))
        self._set_patterns(paths)

    def set_ignore_from_file(self, ignore_file: str) -> None:
        """Read one path pattern per line from the file."""
        _log.info("Reading ignoring dir patterns from file '%s'", ignore_file)
        with open(ignore_file, encoding="utf-8", newline="") as file:
            paths = [_strip_line_end(line) for line in file]
        self._set_patterns(paths)

    def _set_patterns(self, paths: list[str]) -> None:
        try:
            self.ignore_dir_path_patterns = create_ignore_pattern(paths)
        except re.error:
            self.ignore_dir_path_patterns = None
            raise

    def set_ignore_hidden(self, value: bool) -> None:
        _log.info("Ignoring hidden dirs")
        self.ignore_hidden = value

    def should_dir_be_ignored(self, name: str, path: str) -> bool:
        ignored = path in self.ignore_dir_paths
        if ignored:
            _log.info("Directory %s ignored", path)
        return ignored

    def should_dir_be_ignored_using_pattern(self, name: str, path: str) -> bool:
        pattern = self.ignore_dir_path_patterns
        ignored = pattern is not None and pattern.search(path) is not None
        if ignored:
            _log.info("Directory %s ignored", path)
        return ignored

    def is_hidden_dir(self, name: str, path: str) -> bool:
        ignored = name.startswith(".")
        if ignored:
            _log.info("Directory %s ignored", path)
        return ignored

    def create_ignore_func(self) -> IgnoreFunc:
        """Return a predicate telling whether a directory should be skipped."""
        checks: list[IgnoreFunc] = []
        if self.ignore_dir_paths:
            checks.append(self.should_dir_be_ignored)
        if self.ignore_dir_path_patterns is not None:
            checks.append(self.should_dir_be_ignored_using_pattern)
        if self.ignore_hidden:
            checks.append(self.is_hidden_dir)

        def should_be_ignored(name: str, path: str) -> bool:
            return any(check(name, path) for check in checks)

        return should_be_ignored


def _strip_line_end(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line