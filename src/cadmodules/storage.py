from __future__ import annotations

import json
import logging
from pathlib import Path

from .config import MODULES_FILE_SUFFIX
from .modules import ModuleTree

logger = logging.getLogger(__name__)


class ModulesFileError(RuntimeError):
    pass


def resolve_modules_path(cad_path: str | Path) -> Path:
    """Modules live next to the drawing: ``plan.dxf`` -> ``plan.modules.json``."""
    if cad_path is None or not str(cad_path).strip():
        raise ValueError("CAD path must not be empty.")
    path = Path(cad_path)
    return path.with_name(path.stem + MODULES_FILE_SUFFIX)


def load_modules(cad_path: str | Path) -> ModuleTree | None:
    path = resolve_modules_path(cad_path)
    if not path.exists():
        logger.debug(f"No modules file at {path}")
        return None
    return load_modules_file(path)


def load_modules_file(path: str | Path) -> ModuleTree:
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        tree = ModuleTree.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise ModulesFileError(f"Failed to load modules file: {path}") from exc
    logger.info(f"Loaded {sum(1 for _ in tree.iter_modules())} module(s) from {path}")
    return tree


def save_modules(cad_path: str | Path, tree: ModuleTree) -> Path:
    path = resolve_modules_path(cad_path)
    if not tree.cad_file_path:
        tree.cad_file_path = str(cad_path)
    save_modules_file(path, tree)
    return path


def save_modules_file(path: str | Path, tree: ModuleTree) -> None:
    if tree is None:
        raise ValueError("module tree is required")
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(tree.to_dict(), indent=2), encoding="utf-8")
    except (OSError, TypeError, ValueError) as exc:
        raise ModulesFileError(f"Failed to save modules file: {path}") from exc
    logger.info(f"Saved modules to {path}")
