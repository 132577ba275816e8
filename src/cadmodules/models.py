from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterator, TypeAlias

Point: TypeAlias = tuple[float, float]
Polygon: TypeAlias = list[Point]


class EntityKind(Enum):
    LINE = "line"
    CIRCLE = "circle"
    ARC = "arc"
    ELLIPSE = "ellipse"
    POLYLINE = "polyline"
    SPLINE = "spline"
    SOLID = "solid"
    TEXT = "text"
    MTEXT = "mtext"
    HATCH = "hatch"
    INSERT = "insert"
    LEADER = "leader"
    DIM_ALIGNED = "dim_aligned"
    DIM_LINEAR = "dim_linear"


class DimOrientation(Enum):
    HORIZONTAL = "horizontal"
    VERTICAL = "vertical"


@dataclass(slots=True, frozen=True)
class Rect:
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return max(0.0, self.max_x - self.min_x)

    @property
    def height(self) -> float:
        return max(0.0, self.max_y - self.min_y)

    @property
    def center(self) -> Point:
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)

    def contains(self, point: Point) -> bool:
        x, y = point
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    def union(self, other: Rect) -> Rect:
        return Rect(
            min(self.min_x, other.min_x),
            min(self.min_y, other.min_y),
            max(self.max_x, other.max_x),
            max(self.max_y, other.max_y),
        )

    def inflate(self, pad: float) -> Rect:
        return Rect(self.min_x - pad, self.min_y - pad, self.max_x + pad, self.max_y + pad)


@dataclass(slots=True)
class LineEntity:
    kind: ClassVar[EntityKind] = EntityKind.LINE
    id: str
    start: Point
    end: Point
    layer: str = ""


@dataclass(slots=True)
class CircleEntity:
    kind: ClassVar[EntityKind] = EntityKind.CIRCLE
    id: str
    center: Point
    radius: float
    layer: str = ""


@dataclass(slots=True)
class ArcEntity:
    kind: ClassVar[EntityKind] = EntityKind.ARC
    id: str
    center: Point
    radius: float
    start_angle: float  # degrees, CCW from positive X
    end_angle: float    # degrees, CCW from positive X
    layer: str = ""


@dataclass(slots=True)
class EllipseEntity:
    kind: ClassVar[EntityKind] = EntityKind.ELLIPSE
    id: str
    center: Point
    radius_x: float
    radius_y: float
    rotation: float = 0.0  # degrees, major axis direction
    is_arc: bool = False
    start_angle: float = 0.0  # degrees, in the rotated local frame
    end_angle: float = 360.0
    layer: str = ""


@dataclass(slots=True)
class PolylineEntity:
    kind: ClassVar[EntityKind] = EntityKind.POLYLINE
    id: str
    points: list[Point]
    closed: bool = False
    bulges: list[float] = field(default_factory=list)
    layer: str = ""


@dataclass(slots=True)
class SplineEntity:
    kind: ClassVar[EntityKind] = EntityKind.SPLINE
    id: str
    points: list[Point]
    closed: bool = False
    layer: str = ""


@dataclass(slots=True)
class SolidEntity:
    kind: ClassVar[EntityKind] = EntityKind.SOLID
    id: str
    vertices: list[Point]
    layer: str = ""


@dataclass(slots=True)
class TextEntity:
    kind: ClassVar[EntityKind] = EntityKind.TEXT
    id: str
    text: str
    insert: Point
    height: float
    rotation: float = 0.0
    layer: str = ""


@dataclass(slots=True)
class MTextEntity:
    kind: ClassVar[EntityKind] = EntityKind.MTEXT
    id: str
    text: str
    insert: Point
    height: float
    rotation: float = 0.0
    rect_width: float = 0.0
    layer: str = ""


@dataclass(slots=True)
class HatchEntity:
    kind: ClassVar[EntityKind] = EntityKind.HATCH
    id: str
    loops: list[list[Point]]
    layer: str = ""


@dataclass(slots=True)
class InsertEntity:
    kind: ClassVar[EntityKind] = EntityKind.INSERT
    id: str
    block_name: str
    position: Point
    scale_x: float = 1.0
    scale_y: float = 1.0
    rotation: float = 0.0
    layer: str = ""

    @property
    def child_prefix(self) -> str:
        return f"{self.id}:"


@dataclass(slots=True)
class LeaderEntity:
    kind: ClassVar[EntityKind] = EntityKind.LEADER
    id: str
    points: list[Point]
    layer: str = ""


@dataclass(slots=True)
class DimAlignedEntity:
    kind: ClassVar[EntityKind] = EntityKind.DIM_ALIGNED
    id: str
    p1: Point
    p2: Point
    offset: float = 5.0  # distance from the measured segment to the dimension line
    layer: str = ""


@dataclass(slots=True)
class DimLinearEntity:
    kind: ClassVar[EntityKind] = EntityKind.DIM_LINEAR
    id: str
    p1: Point
    p2: Point
    offset: float = 5.0
    orientation: DimOrientation = DimOrientation.HORIZONTAL
    layer: str = ""


Entity: TypeAlias = (
    LineEntity | CircleEntity | ArcEntity | EllipseEntity | PolylineEntity | SplineEntity
    | SolidEntity | TextEntity | MTextEntity | HatchEntity | InsertEntity | LeaderEntity
    | DimAlignedEntity | DimLinearEntity
)


@dataclass(slots=True)
class LayerInfo:
    name: str
    is_on: bool = True
    is_frozen: bool = False

    @property
    def is_visible(self) -> bool:
        return self.is_on and not self.is_frozen


@dataclass(slots=True)
class CadModel:
    """Read-only snapshot of the primitives of one drawing.

    Flattened block content is stored alongside the top-level entities; a child
    of an insert carries an id prefixed with ``"<insert id>:"``.
    """

    entities: list[Entity] = field(default_factory=list)
    layers: list[LayerInfo] = field(default_factory=list)
    source: str = ""
    layouts: list[str] = field(default_factory=list)

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.entities)

    def __len__(self) -> int:
        return len(self.entities)

    def of_kind(self, kind: EntityKind) -> Iterator[Entity]:
        return (e for e in self.entities if e.kind is kind)

    def inserts(self, *, include_nested: bool = False) -> Iterator[InsertEntity]:
        """Block placements of the drawing; nested ones come from flattened blocks."""
        return (
            e for e in self.entities
            if isinstance(e, InsertEntity) and (include_nested or not is_child_id(e.id))
        )

    def top_level(self) -> Iterator[Entity]:
        return (e for e in self.entities if not is_child_id(e.id))

    def add(self, entity: Entity) -> None:
        self.entities.append(entity)

    def layer(self, name: str | None) -> LayerInfo | None:
        if not name:
            return None
        wanted = name.casefold()
        for info in self.layers:
            if info.name.casefold() == wanted:
                return info
        return None


def is_child_id(entity_id: str) -> bool:
    return ":" in entity_id
