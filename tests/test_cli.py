import json
from pathlib import Path

import ezdxf
import openpyxl
import pytest

from cadmodules.cli import main
from cadmodules.modules import ModuleTree
from cadmodules.storage import save_modules_file


def write_plan(path: Path) -> None:
    doc = ezdxf.new("R2018")
    doc.layers.new(name="OFF").off()
    tree = doc.blocks.new(name="Oak")
    tree.add_circle((0.0, 0.0), 1.0)
    doc.blocks.new(name="Rose").add_circle((0.0, 0.0), 0.5)

    msp = doc.modelspace()
    msp.add_blockref("Oak", (1.0, 1.0))
    msp.add_blockref("Oak", (2.0, 2.0))
    msp.add_blockref("Rose", (20.0, 20.0))
    msp.add_blockref("Rose", (3.0, 3.0), dxfattribs={"layer": "OFF"})
    msp.add_lwpolyline(
        [(0.0, 0.0), (5.0, 0.0), (5.0, 5.0), (0.0, 5.0)],
        close=True,
        dxfattribs={"layer": "_A_M_Front"},
    )
    msp.add_line((0.0, 0.0), (8.0, 0.0), dxfattribs={"layer": "PATHS"})
    doc.saveas(str(path))


def test_count_all_inserts(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    assert main(["count", str(plan)]) == 0
    out = capsys.readouterr().out
    assert "Block references in plan.dxf (layout: Model)" in out
    assert "Unique blocks: 2    Total inserts: 4" in out
    assert out.index("Oak") < out.index("Rose")


def test_count_inside_rect_with_ignore_list(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    ignore = tmp_path / "ignore.json"
    ignore.write_text(json.dumps({"blocks": ["ROSE"]}), encoding="utf-8")

    code = main(["count", str(plan), "--rect", "0", "0", "10", "10", "--ignore", str(ignore)])
    assert code == 0
    out = capsys.readouterr().out
    assert "Ignoring 1 block name(s)." in out
    assert "Total inserts: 2" in out
    assert "Rose" not in out.split("Ignoring 1 block name(s).")[1]


def test_count_visible_only(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    assert main(["count", str(plan), "--visible-only"]) == 0
    assert "Total inserts: 3" in capsys.readouterr().out


def test_count_by_layer_modules(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    assert main(["count", str(plan), "--modules", "--sort", "name"]) == 0
    out = capsys.readouterr().out
    assert "module: Front" in out
    assert "Unique blocks: 2    Total inserts: 3" in out


def test_count_by_modules_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    tree = ModuleTree()
    far = tree.add_module("Far corner")
    tree.add_polygon(far, [(15.0, 15.0), (25.0, 15.0), (25.0, 25.0), (15.0, 25.0)])
    modules_file = tmp_path / "plan.modules.json"
    save_modules_file(modules_file, tree)

    assert main(["count", str(plan), "--modules-file", str(modules_file)]) == 0
    out = capsys.readouterr().out
    assert "module: Far corner" in out
    assert "Unique blocks: 1    Total inserts: 1" in out


def test_count_reports_errors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    assert main(["count", str(plan), "--layout", "Nope"]) == 1
    assert "Layout not found: Nope" in capsys.readouterr().err

    assert main(["count", str(tmp_path / "missing.dxf")]) == 1
    assert "File not found" in capsys.readouterr().err


def test_bounds_command(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    assert main(["bounds", str(plan), "--layer", "paths", "--pad", "1"]) == 0
    out = capsys.readouterr().out
    assert "(-1.000, -1.000) - (9.000, 1.000)" in out

    assert main(["bounds", str(plan), "--layer", "OFF"]) == 0
    assert "No visible geometry on layer OFF." in capsys.readouterr().out

    assert main(["bounds", str(plan), "--layer", "0", "--kind", "insert"]) == 0
    assert "(0.000, 0.000) - (20.500, 20.500)" in capsys.readouterr().out


def test_export_modules(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    tree = ModuleTree()
    tree.add_polygon(tree.add_module("Back"), [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0)])
    modules_file = tmp_path / "plan.modules.json"
    save_modules_file(modules_file, tree)
    target = tmp_path / "out.dxf"

    assert main(["export-modules", str(plan), str(target), "--modules-file", str(modules_file)]) == 0
    assert "Wrote 1 module polygon(s)" in capsys.readouterr().out
    layers = {e.dxf.layer for e in ezdxf.readfile(str(target)).modelspace().query("LWPOLYLINE")}
    assert layers == {"_A_M_Front", "_A_M_Back"}


def test_count_modules_export_xlsx(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    report = tmp_path / "reports" / "plan"

    assert main(["count", str(plan), "--modules", "--export", str(report)]) == 0
    assert "Exported 1 module table(s)" in capsys.readouterr().out

    workbook = openpyxl.load_workbook(tmp_path / "reports" / "plan.xlsx")
    assert workbook.sheetnames == ["Front"]
    rows = list(workbook["Front"].iter_rows(values_only=True))
    assert rows == [("Block", "Count"), ("Oak", 2), ("Rose", 1)]


def test_export_requires_module_counting(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    assert main(["count", str(plan), "--export", str(tmp_path / "out.xlsx")]) == 1
    assert "--export can only be used together with --modules" in capsys.readouterr().err
    assert not (tmp_path / "out.xlsx").exists()


def test_ignore_command_writes_default_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    assert main(["ignore", str(plan)]) == 0
    assert "Ignored block names: 2" in capsys.readouterr().out
    data = json.loads((tmp_path / "plan.dxf.ignore.json").read_text(encoding="utf-8"))
    assert data == {"blocks": ["Oak", "Rose"]}


def test_ignore_command_merges_existing_list(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    plan = tmp_path / "plan.dxf"
    write_plan(plan)
    output = tmp_path / "skip.json"
    output.write_text(json.dumps({"blocks": ["Lamp", "OAK"]}), encoding="utf-8")

    assert main(["ignore", str(plan), "-o", str(output), "--keep", "rose"]) == 0
    out = capsys.readouterr().out
    assert "Merging 2 name(s)" in out
    assert json.loads(output.read_text(encoding="utf-8")) == {"blocks": ["Lamp", "Oak"]}

    assert main(["count", str(plan), "--ignore", str(output)]) == 0
    assert "Unique blocks: 1    Total inserts: 2" in capsys.readouterr().out
