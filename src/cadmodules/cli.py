from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .bounds import BoundsCalculator, LayerPredicate
from .config import DEFAULT_MODULE_PREFIX, load_ignore_list, normalize_block_names, save_ignore_list
from .counting import CountResult, LayerFilter, count_all, count_by_modules, count_by_rect
from .dxf_reader import read_dxf
from .dxf_writer import write_modules_dxf
from .logging_config import setup_logging
from .models import CadModel, EntityKind, Rect
from .modules import ModuleTree
from .storage import load_modules_file
from .xlsx_export import ModuleTable, export_module_counts

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Count and locate blocks in DXF landscape plans.")
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    common.add_argument("--log-file", help="Also write the log to this file")

    sub = parser.add_subparsers(dest="command", required=True)

    count = sub.add_parser("count", parents=[common], help="Count block references by name")
    count.add_argument("path", help="Path to input DXF file")
    where = count.add_mutually_exclusive_group()
    where.add_argument("--layout", "-l", help="Layout to analyze (default: model space)")
    where.add_argument("--all", dest="all_layouts", action="store_true", help="Count across every layout")
    region = count.add_mutually_exclusive_group()
    region.add_argument(
        "--rect",
        nargs=4,
        type=float,
        metavar=("MINX", "MINY", "MAXX", "MAXY"),
        help="Only count inserts placed inside this rectangle",
    )
    region.add_argument("--modules-file", help="Count per module of a saved modules JSON file")
    region.add_argument(
        "--modules",
        action="store_true",
        help="Count per module outlined by polylines on layers starting with --module-prefix",
    )
    count.add_argument(
        "--module-prefix",
        default=DEFAULT_MODULE_PREFIX,
        help=f"Layer prefix of module polylines (default: {DEFAULT_MODULE_PREFIX})",
    )
    count.add_argument("--ignore", "-i", help="Ignore-list JSON with block names to skip")
    count.add_argument(
        "--visible-only",
        action="store_true",
        help="Skip inserts on layers that are switched off or frozen",
    )
    count.add_argument(
        "--sort",
        "-s",
        choices=("count", "name"),
        default="count",
        help="Sort by count (desc) or name (asc) (default: count)",
    )
    count.add_argument("--export", metavar="XLSX", help="Also write per-module counts to an Excel workbook")
    count.set_defaults(handler=_run_count)

    ignore = sub.add_parser("ignore", parents=[common], help="Build an ignore list from the blocks of a drawing")
    ignore.add_argument("path", help="Path to input DXF file")
    ignore.add_argument("--output", "-o", help="Ignore-list JSON to write (default: <input>.ignore.json)")
    ignore.add_argument(
        "--keep",
        "-k",
        action="append",
        default=[],
        metavar="NAME",
        help="Block name to leave countable (repeatable)",
    )
    ignore.set_defaults(handler=_run_ignore)

    bounds = sub.add_parser("bounds", parents=[common], help="Print the extent of a layer")
    bounds.add_argument("path", help="Path to input DXF file")
    bounds.add_argument("--layer", required=True, help="Layer name (case-insensitive)")
    bounds.add_argument(
        "--kind",
        choices=[kind.value for kind in EntityKind],
        help="Restrict to one primitive kind",
    )
    bounds.add_argument("--pad", type=float, default=0.0, help="Grow the box by this margin")
    bounds.set_defaults(handler=_run_bounds)

    export = sub.add_parser("export-modules", parents=[common], help="Draw saved modules into a copy of a DXF file")
    export.add_argument("source", help="Path to input DXF file")
    export.add_argument("target", help="Path to output DXF file")
    export.add_argument("--modules-file", required=True, help="Modules JSON file to draw")
    export.add_argument(
        "--module-prefix",
        default=DEFAULT_MODULE_PREFIX,
        help=f"Layer prefix for module polylines (default: {DEFAULT_MODULE_PREFIX})",
    )
    export.set_defaults(handler=_run_export)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    try:
        args.handler(args)
    except Exception as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"{args.command} failed: {exc}", file=sys.stderr)
        return 1
    return 0


def _require_file(path: str) -> None:
    if not Path(path).is_file():
        raise FileNotFoundError(f"File not found: {path}")


def _run_count(args: argparse.Namespace) -> None:
    _require_file(args.path)
    if args.modules and not args.module_prefix.strip():
        raise ValueError("--module-prefix cannot be empty when --modules is set.")
    if args.export and not (args.modules or args.modules_file):
        raise ValueError("--export can only be used together with --modules or --modules-file.")

    ignore: list[str] = []
    if args.ignore:
        ignore = load_ignore_list(args.ignore)
        print(f"Ignoring {len(ignore)} block name(s).")

    model = read_dxf(args.path, layout=args.layout, all_layouts=args.all_layouts)
    layer_filter = LayerFilter() if args.visible_only else None
    target = _layouts_label(model, args.all_layouts)

    if args.modules or args.modules_file:
        if args.modules_file:
            tree = load_modules_file(args.modules_file)
        else:
            tree = ModuleTree.from_layer_polylines(model, args.module_prefix)
        tables = _print_module_counts(model, tree, target, ignore, layer_filter, args.sort)
        if args.export:
            written = export_module_counts(args.export, tables, sort=args.sort)
            print(f"Exported {len(tables)} module table(s) to {written}")
        return

    if args.rect:
        min_x, min_y, max_x, max_y = args.rect
        rect = Rect(min(min_x, max_x), min(min_y, max_y), max(min_x, max_x), max(min_y, max_y))
        result = count_by_rect(model, rect, ignore=ignore, layer_filter=layer_filter)
        title = f"Block references in {Path(args.path).name} ({target}, inside {_format_rect(rect)})"
    else:
        result = count_all(model, ignore=ignore, layer_filter=layer_filter)
        title = f"Block references in {Path(args.path).name} ({target})"
    _print_table(title, result, args.sort)


def _print_module_counts(
    model: CadModel,
    tree: ModuleTree,
    target: str,
    ignore: list[str],
    layer_filter: LayerFilter | None,
    sort: str,
) -> list[ModuleTable]:
    modules = list(tree.iter_modules())
    if not modules:
        print("No modules found.")
        return []
    results = count_by_modules(model, tree, ignore=ignore, layer_filter=layer_filter)
    tables = []
    for module in modules:
        title = f"Blocks in {Path(model.source).name} ({target}) module: {module.name}"
        _print_table(title, results[module.id], sort)
        tables.append(ModuleTable(module.name, results[module.id]))
    return tables


def _run_ignore(args: argparse.Namespace) -> None:
    _require_file(args.path)
    source = Path(args.path)
    output = Path(args.output) if args.output else source.with_name(f"{source.name}.ignore.json")

    model = read_dxf(source, all_layouts=True)
    found = count_all(model).counts
    if not found:
        print("No block references found. Nothing to ignore.")
        return

    existing: list[str] = []
    if output.exists():
        existing = load_ignore_list(output)
        print(f"Merging {len(existing)} name(s) from {output}")

    kept = {name.casefold() for name in args.keep}
    names = [name for name in normalize_block_names([*found, *existing]) if name.casefold() not in kept]
    save_ignore_list(output, names)
    print(f"Saved ignore list: {output}")
    print(f"Ignored block names: {len(names)}")


def _run_bounds(args: argparse.Namespace) -> None:
    _require_file(args.path)
    model = read_dxf(args.path)
    calculator = BoundsCalculator(model, _model_visibility(model))
    if args.kind:
        rect = calculator.bounds_for_kind_in_layer(EntityKind(args.kind), args.layer)
    else:
        rect = calculator.bounds_for_layer(args.layer)
    if rect is None:
        print(f"No visible geometry on layer {args.layer}.")
        return
    if args.pad:
        rect = rect.inflate(args.pad)
    print(f"Layer {args.layer}: {_format_rect(rect)}")
    print(f"Size: {rect.width:.3f} x {rect.height:.3f}")


def _run_export(args: argparse.Namespace) -> None:
    _require_file(args.source)
    tree = load_modules_file(args.modules_file)
    written = write_modules_dxf(args.source, args.target, tree, prefix=args.module_prefix)
    print(f"Wrote {written} module polygon(s) to {args.target}")


def _model_visibility(model: CadModel) -> LayerPredicate:
    def is_visible(layer: str | None) -> bool:
        info = model.layer(layer)
        return info is None or info.is_visible

    return is_visible


def _layouts_label(model: CadModel, all_layouts: bool) -> str:
    if all_layouts:
        return "all layouts"
    return f"layout: {', '.join(model.layouts)}"


def _format_rect(rect: Rect) -> str:
    return f"({rect.min_x:.3f}, {rect.min_y:.3f}) - ({rect.max_x:.3f}, {rect.max_y:.3f})"


def _print_table(title: str, result: CountResult, sort: str) -> None:
    rows = result.sorted_items(sort)
    print(title)
    if not rows:
        print("  (no block references)")
    else:
        width = max(len("Block"), *(len(name) for name, _ in rows))
        print(f"  {'Block':<{width}}  {'Count':>7}")
        print(f"  {'-' * width}  {'-' * 7}")
        for name, n in rows:
            print(f"  {name:<{width}}  {n:>7}")
    print(f"Unique blocks: {len(result.counts)}    Total inserts: {result.total}")
