from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, NamedTuple

from openpyxl import Workbook
from openpyxl.styles import Font

from .counting import CountResult

logger = logging.getLogger(__name__)

MAX_SHEET_NAME = 31
DEFAULT_SHEET_NAME = "Module"
_INVALID_SHEET_CHARS = re.compile(r"[:\\/?*\[\]]")


class ModuleTable(NamedTuple):
    module_name: str
    result: CountResult


def sheet_name(name: str | None) -> str:
    """Excel-safe worksheet title: no ``:\\/?*[]`` and at most 31 characters."""
    if name is None or not name.strip():
        return DEFAULT_SHEET_NAME
    cleaned = _INVALID_SHEET_CHARS.sub("", name.strip())[:MAX_SHEET_NAME].strip()
    return cleaned or DEFAULT_SHEET_NAME


def unique_sheet_name(base: str, used: set[str]) -> str:
    name = base
    n = 1
    while name.casefold() in used:
        n += 1
        suffix = f" ({n})"
        name = base[: MAX_SHEET_NAME - len(suffix)] + suffix
    used.add(name.casefold())
    return name


def export_module_counts(
    path: str | Path,
    tables: Iterable[ModuleTable],
    *,
    sort: str = "count",
) -> Path:
    """Write one worksheet per module with ``Block``/``Count`` columns.

    A path without an extension gets ``.xlsx``. Returns the written path.
    """
    tables = list(tables)
    if not tables:
        raise ValueError("No module tables to export.")
    path = Path(path)
    if not path.suffix:
        path = path.with_suffix(".xlsx")
    path.parent.mkdir(parents=True, exist_ok=True)

    workbook = Workbook()
    workbook.remove(workbook.active)
    used: set[str] = set()
    for table in tables:
        sheet = workbook.create_sheet(unique_sheet_name(sheet_name(table.module_name), used))
        sheet.append(["Block", "Count"])
        for cell in sheet[1]:
            cell.font = Font(bold=True)
        for name, n in table.result.sorted_items(sort):
            sheet.append([name, n])
        sheet.freeze_panes = "A2"
        sheet.column_dimensions["A"].width = max([len("Block"), *(len(name) for name in table.result.counts)]) + 2

    workbook.save(path)
    logger.info(f"Exported {len(tables)} module table(s) to {path}")
    return path
