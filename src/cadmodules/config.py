from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

DEFAULT_MODULE_PREFIX = "_A_M_"
DEFAULT_INSERT_FALLBACK_RADIUS = 1.0
UNNAMED_BLOCK = "<Unnamed>"
MODULES_FILE_SUFFIX = ".modules.json"


@dataclass(slots=True)
class EditorSettings:
    hit_tolerance_px: float = 6.0
    edge_tolerance_px: float = 9.0

    @property
    def hit_tolerance_sq(self) -> float:
        return self.hit_tolerance_px * self.hit_tolerance_px

    @property
    def edge_tolerance_sq(self) -> float:
        return self.edge_tolerance_px * self.edge_tolerance_px


class IgnoreListError(RuntimeError):
    pass


def normalize_block_names(names: Iterable[str | None]) -> list[str]:
    """Drop blanks, de-duplicate case-insensitively, sort by folded name."""
    seen: dict[str, str] = {}
    for name in names:
        if name is None or not name.strip():
            continue
        seen.setdefault(name.casefold(), name)
    return sorted(seen.values(), key=str.casefold)


def load_ignore_list(path: str | Path) -> list[str]:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Ignore list not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise IgnoreListError(f"Failed to parse ignore list JSON: {path}") from exc

    # {"blocks": [...]} with any key casing, or a bare list
    if isinstance(data, dict):
        data = next((v for k, v in data.items() if k.lower() == "blocks"), [])
    if not isinstance(data, list):
        raise IgnoreListError(f"Ignore list must contain a list of block names: {path}")
    names = normalize_block_names(str(v) for v in data if v is not None)
    logger.debug(f"Loaded {len(names)} ignored block name(s) from {path}")
    return names


def save_ignore_list(path: str | Path, names: Iterable[str | None]) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"blocks": normalize_block_names(names)}
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
