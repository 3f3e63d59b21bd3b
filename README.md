# gdu

A library for analysing disk usage. It scans a directory tree on a pool of
worker threads, adds up apparent sizes and real disk usage (counting
hard-linked files only once), flags unreadable, empty and non-regular
entries, and writes or reads the result in the JSON format used by ncdu.

## Modules

- `gdu.analyzer` – `create_analyzer()` returns a `ParallelAnalyzer`.
  `analyze_dir(path, ignore)` builds a tree of `Dir` and `File` items;
  `ignore(name, path)` decides which directories are skipped. While a scan
  runs, the latest `CurrentProgress` snapshot is offered on
  `progress_queue`, and the `done` event is set when the scan finishes.
  `reset_progress()` clears the running totals.
- `gdu.items` – the `File`, `Dir` and `Files` types.
  `Dir.update_stats(linked_items)` recomputes size, usage, item count,
  newest mtime and error flags from the children; `encode_json(writer,
  top_level)` writes ncdu-style JSON. `Files` adds `index_of`,
  `find_by_name`, `remove_item` and `remove_by_name`. The sort helpers
  `sort_by_usage`, `sort_by_apparent_size`, `sort_by_item_count`,
  `sort_by_name` and `sort_by_mtime` sort in place, largest/newest/last
  first, or the other way round with `reverse=True`.
  `remove_item_from_dir(dir, item)` deletes an item from disk and from the
  tree; `empty_file_from_dir(dir, file)` truncates a file and replaces it
  by an empty entry. Both update every ancestor's totals.
- `gdu.common` – the `UI` settings class with ignore rules: exact paths
  (`set_ignore_dir_paths`), regular expressions (`set_ignore_dir_patterns`),
  patterns read one per line from a file (`set_ignore_from_file`) and
  hidden directories (`set_ignore_hidden`), combined by
  `create_ignore_func()`. `create_ignore_pattern` joins patterns into one
  anchored expression and raises `re.error` on a bad one. `format_number`
  adds thousands separators.
- `gdu.device` – `Device` records of mounted filesystems with their
  `usage`. `LinuxDevicesInfoGetter` reads `/proc/mounts`;
  `FreeBSDDevicesInfoGetter` runs `/sbin/mount` and parses its output;
  `OtherDevicesInfoGetter` raises `UnsupportedPlatformError`.
  `default_getter()` picks one for the running platform.
  `get_nested_mountpoints_paths(path, mounts)` lists mount points below a
  path, useful for staying on one filesystem. `sort_by_used_size` and
  `sort_by_name` sort devices in place.
- `gdu.report` – `ExportUI` scans a path with `analyze_path(path)` and
  writes an ncdu-compatible JSON report to its export output (a real file is
  closed afterwards). With `show_progress` a spinner with item count and
  size is written to its output while scanning. `list_devices` and
  `read_analysis` on it raise `ExportError`. The module function
  `read_analysis(stream)` loads a report back into a `Dir` tree and raises
  `AnalysisReadError` on malformed input, for example
  "Top level array must have at least 4 items".

## Example

```python
import io

from gdu.analyzer import create_analyzer
from gdu.common import UI, format_number
from gdu.items import sort_by_usage
from gdu.report import read_analysis

ui = UI()
ui.set_ignore_dir_paths(["/proc", "/dev", "/sys", "/run"])
ui.set_ignore_hidden(True)

analyzer = create_analyzer()
root = analyzer.analyze_dir("/home", ui.create_ignore_func())
root.update_stats({})
sort_by_usage(root.files)

print(root.path, root.type_name, root.usage, root.item_count)

buffer = io.StringIO()
root.encode_json(buffer, True)

print(format_number(1234567890))  # 1,234,567,890
```

Writing a complete report:

```python
import sys

from gdu.report import ExportUI

with open("report.json", "w") as report:
    ui = ExportUI(sys.stderr, report, use_colors=False, show_progress=True)
    ui.analyze_path("/home")
```

A report written earlier can be loaded again:

```python
with open("report.json") as stream:
    tree = read_analysis(stream)
print(tree.path)
```

## What it does not do

This package is a library only. It installs no command-line program, and it
has no interactive terminal browser and no plain-text listing of results;
the only output it produces itself is the JSON report and the progress line
of `ExportUI`.