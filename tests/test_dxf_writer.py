from pathlib import Path

import ezdxf

from cadmodules.dxf_reader import read_dxf
from cadmodules.dxf_writer import module_layer_name, write_modules_dxf
from cadmodules.modules import ModuleTree


def test_modules_are_drawn_as_closed_polylines(tmp_path: Path) -> None:
    source = tmp_path / "plan.dxf"
    target = tmp_path / "plan_modules.dxf"
    doc = ezdxf.new("R2018")
    doc.modelspace().add_line((0.0, 0.0), (1.0, 1.0))
    doc.saveas(str(source))

    tree = ModuleTree()
    north = tree.add_module("North")
    tree.add_polygon(north, [(0.0, 0.0), (5.0, 0.0), (5.0, 5.0)])
    tree.add_polygon(north, [(0.0, 0.0), (1.0, 0.0)])
    south = tree.add_module("South", parent=north)
    tree.add_polygon(south, [(10.0, 10.0), (12.0, 10.0), (12.0, 12.0), (10.0, 12.0)])

    assert write_modules_dxf(source, target, tree) == 2

    out = ezdxf.readfile(str(target))
    polylines = out.modelspace().query("LWPOLYLINE")
    assert sorted(p.dxf.layer for p in polylines) == ["_A_M_North", "_A_M_South"]
    assert all(p.closed for p in polylines)
    assert len(out.modelspace().query("LINE")) == 1

    restored = ModuleTree.from_layer_polylines(read_dxf(target), "_A_M_")
    assert sorted(m.name for m in restored.roots) == ["North", "South"]


def test_module_layer_name_is_sanitized() -> None:
    assert module_layer_name("Bed 1") == "_A_M_Bed 1"
    assert module_layer_name("a/b:c", "M_") == "M_a_b_c"
    assert module_layer_name("  ") == "_A_M_module"
