import io
import json

import pytest

from gdu.device import OtherDevicesInfoGetter
from gdu.items import Dir, File
from gdu.report import (
    AnalysisReadError,
    ExportError,
    ExportUI,
    read_analysis,
)


@pytest.fixture
def sample_tree(tmp_path):
    root = tmp_path / "test_dir"
    (root / "nested" / "subnested").mkdir(parents=True)
    (root / "nested" / "subnested" / "file").write_bytes(b"hello")
    (root / "nested" / "file2").write_bytes(b"go")
    return root


def test_analyze_path(sample_tree):
    output = io.StringIO()
    report = io.StringIO()
    ui = ExportUI(output, report, False, False)
    ui.set_ignore_dir_paths(["/xxx"])
    ui.analyze_path(str(sample_tree), None)
    ui.start_ui_loop()

    text = report.getvalue()
    assert '"name":"nested"' in text
    data = json.loads(text)
    assert data[2]["progname"] == "gdu"
    assert data[3][0]["name"] == str(sample_tree)
    assert output.getvalue() == ""


def test_analyze_path_with_progress(sample_tree):
    output = io.StringIO()
    report = io.StringIO()
    ui = ExportUI(output, report, True, True)
    ui.set_ignore_dir_paths(["/xxx"])
    ui.analyze_path(str(sample_tree), None)
    ui.start_ui_loop()

    assert '"name":"nested"' in report.getvalue()
    assert output.getvalue().startswith("\r")


def test_show_devices():
    ui = ExportUI(io.StringIO(), io.StringIO(), False, True)
    with pytest.raises(ExportError, match="not supported"):
        ui.list_devices(OtherDevicesInfoGetter())


def test_read_analysis_while_exporting():
    ui = ExportUI(io.StringIO(), io.StringIO(), False, True)
    with pytest.raises(ExportError, match="not possible while exporting"):
        ui.read_analysis(io.StringIO("[]"))


def test_export_to_file(sample_tree, tmp_path):
    target = tmp_path / "output.json"
    report = open(target, "w", encoding="utf-8")
    ui = ExportUI(io.StringIO(), report, False, True)
    ui.set_ignore_dir_paths(["/xxx"])
    ui.analyze_path(str(sample_tree), None)
    ui.start_ui_loop()

    assert report.closed
    assert '"name":"nested"' in target.read_text(encoding="utf-8")


def test_export_to_binary_file(sample_tree, tmp_path):
    target = tmp_path / "output.json"
    report = open(target, "wb")
    ui = ExportUI(io.StringIO(), report, False, False)
    ui.analyze_path(str(sample_tree), None)

    assert report.closed
    assert '"name":"file2"' in target.read_text(encoding="utf-8")


def test_export_then_import_round_trip(sample_tree):
    report = io.StringIO()
    ui = ExportUI(io.StringIO(), report, False, False)
    ui.analyze_path(str(sample_tree), None)

    directory = read_analysis(io.StringIO(report.getvalue()))
    assert directory.name == "test_dir"
    assert directory.path == str(sample_tree)
    nested = directory.files[0]
    assert isinstance(nested, Dir)
    assert nested.name == "nested"
    names = sorted(item.name for item in nested.files)
    assert names == ["file2", "subnested"]
    file2 = next(item for item in nested.files if item.name == "file2")
    assert file2.size == 2


def test_format_size_units():
    ui = ExportUI(io.StringIO(), io.StringIO(), False, True)
    assert "B" in ui.format_size(1)
    assert "KiB" in ui.format_size((1 << 10) + 1)
    assert "MiB" in ui.format_size((1 << 20) + 1)
    assert "GiB" in ui.format_size((1 << 30) + 1)
    assert "TiB" in ui.format_size((1 << 40) + 1)
    assert "PiB" in ui.format_size((1 << 50) + 1)
    assert "EiB" in ui.format_size((1 << 60) + 1)


def test_format_size_values():
    ui = ExportUI(io.StringIO(), io.StringIO(), False, False)
    assert ui.format_size(1) == "1 B"
    assert ui.format_size((1 << 10) + 1) == "1.0 KiB"
    assert ui.format_size(3 << 19) == "1.5 MiB"


REPORT = """
    [1,2,{"progname":"gdu","progver":"development","timestamp":1626806293},
    [{"name":"/home/xxx","mtime":1629333600},
    {"name":"gdu.json","asize":33805233,"dsize":33808384},
    {"name":"sock","notreg":true},
    [{"name":"app"},
    {"name":"app.go","asize":4638,"dsize":8192},
    {"name":"app_linux_test.go","asize":1410,"dsize":4096},
    {"name":"app_linux_test2.go","ino":1234,"hlnkc":true,"asize":1410,"dsize":4096},
    {"name":"app_test.go","asize":4974,"dsize":8192}],
    {"name":"main.go","asize":3205,"dsize":4096,"mtime":1629333600}]]
"""


def test_read_analysis():
    directory = read_analysis(io.StringIO(REPORT))

    assert directory.name == "xxx"
    assert directory.path == "/home/xxx"
    assert directory.mtime.year == 2021
    assert directory.files[3].mtime.year == 2021
    assert directory.files[1].flag == "@"
    assert directory.files[0].size == 33805233
    assert directory.files[0].usage == 33808384
    app = directory.files[2]
    assert isinstance(app, Dir)
    assert app.parent is directory
    alt2 = app.files[2]
    assert isinstance(alt2, File)
    assert alt2.name == "app_linux_test2.go"
    assert alt2.mli == 1234
    assert alt2.flag == "H"


def test_read_analysis_from_bytes():
    directory = read_analysis(io.BytesIO(REPORT.encode("utf-8")))
    assert directory.name == "xxx"


def test_read_analysis_with_empty_input():
    with pytest.raises(AnalysisReadError) as info:
        read_analysis(io.StringIO(""))
    assert str(info.value) == "unexpected end of JSON input"


def test_read_analysis_with_empty_dict():
    with pytest.raises(AnalysisReadError) as info:
        read_analysis(io.StringIO("{}"))
    assert str(info.value) == "JSON file does not contain top level array"


class BrokenInput:
    def read(self, *args):
        raise OSError("IO error")


def test_read_from_broken_input():
    with pytest.raises(OSError) as info:
        read_analysis(BrokenInput())
    assert str(info.value) == "IO error"


def test_read_analysis_with_empty_array():
    with pytest.raises(AnalysisReadError) as info:
        read_analysis(io.StringIO("[]"))
    assert str(info.value) == "Top level array must have at least 4 items"


def test_read_analysis_with_wrong_content():
    with pytest.raises(AnalysisReadError) as info:
        read_analysis(io.StringIO("[1,2,3,4]"))
    assert (
        str(info.value)
        == "Array of maps not found in the top level array on 4th position"
    )


def test_read_analysis_with_empty_dir_content():
    with pytest.raises(AnalysisReadError) as info:
        read_analysis(io.StringIO("[1,2,3,[{}]]"))
    assert str(info.value) == "Directory name is not a string"


def test_read_analysis_with_wrong_dir_item():
    with pytest.raises(AnalysisReadError) as info:
        read_analysis(io.StringIO("[1,2,3,[1, 2, 3]]"))
    assert str(info.value) == "Directory item is not a map"


def test_read_analysis_with_wrong_subdir_item():
    with pytest.raises(AnalysisReadError) as info:
        read_analysis(io.StringIO('[1,2,3,[{"name":"xxx"}, [1,2,3]]]'))
    assert str(info.value) == "Directory item is not a map"


def test_read_analysis_with_invalid_json():
    with pytest.raises(AnalysisReadError):
        read_analysis(io.StringIO("[1,2,"))