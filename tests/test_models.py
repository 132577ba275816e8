from cadmodules.models import CadModel, EntityKind, InsertEntity, LayerInfo, LineEntity, Rect, is_child_id


def test_rect_helpers() -> None:
    rect = Rect(0.0, 0.0, 4.0, 2.0)
    assert (rect.width, rect.height, rect.center) == (4.0, 2.0, (2.0, 1.0))
    assert rect.contains((4.0, 2.0))
    assert not rect.contains((4.1, 2.0))
    assert rect.union(Rect(-1.0, 1.0, 1.0, 5.0)) == Rect(-1.0, 0.0, 4.0, 5.0)
    assert rect.inflate(1.0) == Rect(-1.0, -1.0, 5.0, 3.0)


def test_cad_model_queries() -> None:
    model = CadModel(layers=[LayerInfo("Plants"), LayerInfo("Hidden", is_frozen=True)])
    model.add(InsertEntity("A", "Oak", (0.0, 0.0)))
    model.add(LineEntity("A:0", (0.0, 0.0), (1.0, 1.0)))
    model.add(InsertEntity("A:1", "Leaf", (0.0, 0.0)))

    assert len(model) == 3
    assert [e.id for e in model.top_level()] == ["A"]
    assert [e.id for e in model.inserts()] == ["A"]
    assert [e.id for e in model.inserts(include_nested=True)] == ["A", "A:1"]
    assert [e.id for e in model.of_kind(EntityKind.LINE)] == ["A:0"]
    assert model.layer("PLANTS").name == "Plants"
    assert not model.layer("hidden").is_visible
    assert model.layer("") is None
    assert is_child_id("A:0") and not is_child_id("A")
