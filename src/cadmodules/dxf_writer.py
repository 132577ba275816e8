from __future__ import annotations

import logging
from pathlib import Path

import ezdxf
from ezdxf.document import Drawing

from .config import DEFAULT_MODULE_PREFIX
from .modules import ModuleTree

logger = logging.getLogger(__name__)


def write_modules_dxf(
    source: str | Path,
    target: str | Path,
    tree: ModuleTree,
    *,
    prefix: str = DEFAULT_MODULE_PREFIX,
) -> int:
    """Copy ``source`` to ``target`` with every module polygon drawn on its own layer.

    Each polygon becomes a closed LWPOLYLINE on layer ``prefix + module name``
    so the drawing can be read back with ``ModuleTree.from_layer_polylines``.
    Returns the number of polylines written.
    """
    if tree is None:
        raise ValueError("module tree is required")
    doc = ezdxf.readfile(str(source))
    msp = doc.modelspace()

    written = 0
    for module in tree.iter_modules():
        layer = module_layer_name(module.name, prefix)
        for shape in module.shapes:
            if len(shape.points) < 3:
                continue
            _ensure_layer(doc, layer)
            msp.add_lwpolyline(shape.points, close=True, dxfattribs={"layer": layer})
            written += 1

    doc.saveas(str(target))
    logger.info(f"Wrote {written} module polygon(s) to {target}")
    return written


def module_layer_name(name: str, prefix: str = DEFAULT_MODULE_PREFIX) -> str:
    # DXF table names may not contain these characters
    cleaned = "".join("_" if ch in '<>/\\":;?*|=`' else ch for ch in (name or "").strip())
    return prefix + (cleaned or "module")


def _ensure_layer(doc: Drawing, layer_name: str) -> None:
    if layer_name in doc.layers:
        return
    doc.layers.new(name=layer_name)
