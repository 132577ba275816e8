from pathlib import Path

import pytest

from cadmodules.modules import ModuleTree
from cadmodules.storage import (
    ModulesFileError,
    load_modules,
    load_modules_file,
    resolve_modules_path,
    save_modules,
)


def test_modules_file_sits_next_to_drawing(tmp_path: Path) -> None:
    assert resolve_modules_path(tmp_path / "plan.dxf") == tmp_path / "plan.modules.json"
    with pytest.raises(ValueError):
        resolve_modules_path("  ")


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    cad = tmp_path / "plan.dxf"
    tree = ModuleTree()
    pond = tree.add_module("Pond")
    tree.add_polygon(pond, [(0.0, 0.0), (3.0, 0.0), (3.0, 2.0)])

    saved = save_modules(cad, tree)
    assert saved == tmp_path / "plan.modules.json"
    assert saved.exists()

    loaded = load_modules(cad)
    assert loaded is not None
    assert loaded.cad_file_path == str(cad)
    assert loaded.find_by_id(pond.id).shapes[0].points == [(0.0, 0.0), (3.0, 0.0), (3.0, 2.0)]


def test_missing_file_loads_as_none(tmp_path: Path) -> None:
    assert load_modules(tmp_path / "absent.dxf") is None


def test_corrupt_file_raises(tmp_path: Path) -> None:
    broken = tmp_path / "plan.modules.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(ModulesFileError):
        load_modules_file(broken)

    wrong_shape = tmp_path / "other.modules.json"
    wrong_shape.write_text('{"modules": [{"polygons": [[{"x": 1}]]}]}', encoding="utf-8")
    with pytest.raises(ModulesFileError):
        load_modules_file(wrong_shape)
