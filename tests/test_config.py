from pathlib import Path

import pytest

from cadmodules.config import (
    EditorSettings,
    IgnoreListError,
    load_ignore_list,
    normalize_block_names,
    save_ignore_list,
)


def test_editor_settings_defaults() -> None:
    settings = EditorSettings()
    assert settings.hit_tolerance_sq == 36.0
    assert settings.edge_tolerance_sq == 81.0


def test_normalize_block_names() -> None:
    assert normalize_block_names(["oak", " ", None, "Birch", "OAK", "ash"]) == ["ash", "Birch", "oak"]


def test_ignore_list_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "cfg" / "ignore.json"
    save_ignore_list(path, ["Tree", "tree", "", "Arrow"])
    assert path.read_text(encoding="utf-8").startswith("{")
    assert load_ignore_list(path) == ["Arrow", "Tree"]


def test_ignore_list_accepts_any_key_case_and_bare_list(tmp_path: Path) -> None:
    keyed = tmp_path / "keyed.json"
    keyed.write_text('{"Blocks": ["North arrow", "Title"]}', encoding="utf-8")
    assert load_ignore_list(keyed) == ["North arrow", "Title"]

    bare = tmp_path / "bare.json"
    bare.write_text('["b", "a"]', encoding="utf-8")
    assert load_ignore_list(bare) == ["a", "b"]


def test_ignore_list_errors(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_ignore_list(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("[", encoding="utf-8")
    with pytest.raises(IgnoreListError):
        load_ignore_list(broken)

    scalar = tmp_path / "scalar.json"
    scalar.write_text('{"blocks": "Tree"}', encoding="utf-8")
    with pytest.raises(IgnoreListError):
        load_ignore_list(scalar)
