from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any

import ezdxf
from ezdxf import path as dxfpath
from ezdxf.document import Drawing

from .models import (
    ArcEntity, CadModel, CircleEntity, DimAlignedEntity, DimLinearEntity, DimOrientation,
    EllipseEntity, Entity, HatchEntity, InsertEntity, LayerInfo, LeaderEntity, LineEntity,
    MTextEntity, Point, PolylineEntity, SolidEntity, SplineEntity, TextEntity,
)

logger = logging.getLogger(__name__)

# Max chord deviation used when hatch boundary curves are turned into rings.
_HATCH_FLATTENING = 0.01

_DIM_LINEAR = 0
_DIM_ALIGNED = 1


class LayoutNotFoundError(ValueError):
    def __init__(self, layout: str, available: list[str]) -> None:
        super().__init__(f"Layout not found: {layout} (available: {', '.join(available)})")
        self.layout = layout
        self.available = available


def read_dxf(path: str | Path, *, layout: str | None = None, all_layouts: bool = False) -> CadModel:
    """Load the primitives of one or more layouts of a DXF file.

    Block references are expanded: each INSERT is followed by its flattened
    content, with ids ``"<insert handle>:<n>"``.
    """
    doc = ezdxf.readfile(str(path))
    names = select_layouts(doc, layout=layout, all_layouts=all_layouts)
    model = CadModel(source=str(path), layouts=names, layers=read_layers(doc))
    for name in names:
        for index, entity in enumerate(doc.layouts.get(name)):
            entity_id = entity.dxf.handle or f"#{index}"
            model.entities.extend(convert_entity(entity, entity_id))
    logger.info(f"Read {len(model.entities)} primitive(s) from {path} (layouts: {', '.join(names)})")
    return model


def select_layouts(doc: Drawing, *, layout: str | None = None, all_layouts: bool = False) -> list[str]:
    names = list(doc.layouts.names_in_taborder())
    if all_layouts:
        return names
    if layout:
        wanted = layout.casefold()
        for name in names:
            if name.casefold() == wanted:
                return [name]
        raise LayoutNotFoundError(layout, names)
    return [doc.modelspace().name]


def read_layers(doc: Drawing) -> list[LayerInfo]:
    return [
        LayerInfo(name=layer.dxf.name, is_on=layer.is_on(), is_frozen=layer.is_frozen())
        for layer in doc.layers
    ]


def convert_entity(entity: Any, entity_id: str) -> list[Entity]:
    """Convert one DXF entity; an INSERT yields itself followed by its children."""
    dxftype = entity.dxftype()
    layer = entity.dxf.get("layer", "0")
    converted = _convert(entity, dxftype, entity_id, layer)
    if converted is None:
        return []
    out: list[Entity] = [converted]
    if isinstance(converted, InsertEntity):
        out.extend(_flatten_insert(entity, entity_id))
    return out


def _flatten_insert(insert: Any, insert_id: str) -> list[Entity]:
    try:
        children = list(insert.virtual_entities())
    except (ezdxf.DXFError, ArithmeticError, ValueError) as exc:
        logger.warning(f"Cannot expand block {insert.dxf.name!r} of insert {insert_id}: {exc}")
        return []
    out: list[Entity] = []
    for index, child in enumerate(children):
        out.extend(convert_entity(child, f"{insert_id}:{index}"))
    return out


def _xy(v: Any) -> Point:
    return (float(v[0]), float(v[1]))


def _wcs(entity: Any, point: Any) -> Point:
    return _xy(entity.ocs().to_wcs(point))


def _mirrored(entity: Any) -> bool:
    extrusion = entity.dxf.get("extrusion", (0.0, 0.0, 1.0))
    return float(extrusion[2]) < 0.0


def _convert(entity: Any, dxftype: str, entity_id: str, layer: str) -> Entity | None:
    dxf = entity.dxf

    if dxftype == "LINE":
        return LineEntity(id=entity_id, start=_xy(dxf.start), end=_xy(dxf.end), layer=layer)

    if dxftype == "CIRCLE":
        return CircleEntity(id=entity_id, center=_wcs(entity, dxf.center), radius=float(dxf.radius), layer=layer)

    if dxftype == "ARC":
        start, end = float(dxf.start_angle), float(dxf.end_angle)
        if _mirrored(entity):
            start, end = 180.0 - end, 180.0 - start
        return ArcEntity(
            id=entity_id,
            center=_wcs(entity, dxf.center),
            radius=float(dxf.radius),
            start_angle=start,
            end_angle=end,
            layer=layer,
        )

    if dxftype == "ELLIPSE":
        major = dxf.major_axis
        radius_x = math.hypot(major[0], major[1])
        start, end = float(dxf.start_param), float(dxf.end_param)
        span = (end - start) % math.tau
        is_arc = not (math.isclose(span, 0.0, abs_tol=1e-9) or math.isclose(span, math.tau, abs_tol=1e-9))
        return EllipseEntity(
            id=entity_id,
            center=_xy(dxf.center),
            radius_x=radius_x,
            radius_y=radius_x * float(dxf.ratio),
            rotation=math.degrees(math.atan2(major[1], major[0])),
            is_arc=is_arc,
            start_angle=math.degrees(start),
            end_angle=math.degrees(end),
            layer=layer,
        )

    if dxftype == "LWPOLYLINE":
        elevation = float(dxf.get("elevation", 0.0))
        raw = entity.get_points("xyb")
        return PolylineEntity(
            id=entity_id,
            points=[_wcs(entity, (x, y, elevation)) for x, y, _ in raw],
            closed=bool(entity.closed),
            bulges=[float(b) for _, _, b in raw],
            layer=layer,
        )

    if dxftype == "POLYLINE":
        if entity.is_poly_face_mesh or entity.is_polygon_mesh:
            logger.debug(f"Skipping mesh POLYLINE {entity_id}")
            return None
        vertices = list(entity.vertices)
        if entity.is_2d_polyline:
            points = [_wcs(entity, v.dxf.location) for v in vertices]
        else:
            points = [_xy(v.dxf.location) for v in vertices]
        return PolylineEntity(
            id=entity_id,
            points=points,
            closed=bool(entity.is_closed),
            bulges=[float(v.dxf.get("bulge", 0.0)) for v in vertices],
            layer=layer,
        )

    if dxftype == "SPLINE":
        points = [_xy(p) for p in entity.fit_points] or [_xy(p) for p in entity.control_points]
        return SplineEntity(id=entity_id, points=points, closed=bool(entity.closed), layer=layer)

    if dxftype in ("SOLID", "TRACE", "3DFACE"):
        corners = [dxf.get(f"vtx{i}") for i in range(4)]
        if dxftype == "3DFACE":
            vertices = [_xy(c) for c in corners if c is not None]
        else:
            vertices = [_wcs(entity, c) for c in corners if c is not None]
        return SolidEntity(id=entity_id, vertices=vertices, layer=layer)

    if dxftype == "TEXT":
        return TextEntity(
            id=entity_id,
            text=dxf.get("text", ""),
            insert=_wcs(entity, dxf.insert),
            height=float(dxf.get("height", 2.5)),
            rotation=float(dxf.get("rotation", 0.0)),
            layer=layer,
        )

    if dxftype == "MTEXT":
        return MTextEntity(
            id=entity_id,
            text=entity.plain_text(),
            insert=_xy(dxf.insert),
            height=float(dxf.get("char_height", 2.5)),
            rotation=float(dxf.get("rotation", 0.0)),
            rect_width=float(dxf.get("width", 0.0)),
            layer=layer,
        )

    if dxftype == "HATCH":
        loops = []
        for boundary in dxfpath.from_hatch(entity):
            ring = [_xy(v) for v in boundary.flattening(_HATCH_FLATTENING)]
            if ring:
                loops.append(ring)
        return HatchEntity(id=entity_id, loops=loops, layer=layer)

    if dxftype == "INSERT":
        return InsertEntity(
            id=entity_id,
            block_name=dxf.get("name", ""),
            position=_wcs(entity, dxf.insert),
            scale_x=float(dxf.get("xscale", 1.0)),
            scale_y=float(dxf.get("yscale", 1.0)),
            rotation=float(dxf.get("rotation", 0.0)),
            layer=layer,
        )

    if dxftype == "LEADER":
        return LeaderEntity(id=entity_id, points=[_xy(v) for v in entity.vertices], layer=layer)

    if dxftype == "DIMENSION":
        return _convert_dimension(entity, entity_id, layer)

    logger.debug(f"Skipping unsupported entity {dxftype} ({entity_id})")
    return None


def _convert_dimension(entity: Any, entity_id: str, layer: str) -> Entity | None:
    dxf = entity.dxf
    p1 = _xy(dxf.get("defpoint2", (0.0, 0.0)))
    p2 = _xy(dxf.get("defpoint3", (0.0, 0.0)))
    line_point = _xy(dxf.get("defpoint", (0.0, 0.0)))
    dimtype = entity.dimtype

    if dimtype == _DIM_ALIGNED:
        vx, vy = p2[0] - p1[0], p2[1] - p1[1]
        length = math.hypot(vx, vy)
        offset = 0.0
        if length > 1e-12:
            # signed distance along the left-hand normal of p1 -> p2
            offset = ((line_point[0] - p1[0]) * -vy + (line_point[1] - p1[1]) * vx) / length
        return DimAlignedEntity(id=entity_id, p1=p1, p2=p2, offset=offset, layer=layer)

    if dimtype == _DIM_LINEAR:
        angle = float(dxf.get("angle", 0.0)) % 180.0
        if math.isclose(angle, 90.0, abs_tol=1e-6):
            return DimLinearEntity(
                id=entity_id, p1=p1, p2=p2, offset=line_point[0] - p1[0],
                orientation=DimOrientation.VERTICAL, layer=layer,
            )
        return DimLinearEntity(
            id=entity_id, p1=p1, p2=p2, offset=line_point[1] - p1[1],
            orientation=DimOrientation.HORIZONTAL, layer=layer,
        )

    logger.debug(f"Skipping dimension type {dimtype} ({entity_id})")
    return None
