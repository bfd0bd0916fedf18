"""Command line entry point: convert a flat BOM file into a multi-level BOM.

Usage:
    bomtree INPUT [-o OUTPUT] [--format csv|excel|json]
    bomtree INPUT --header-row 0 --parent 0 --child 2 --quantity 4 -o out.xlsx

Exit codes: 0 success, 1 fatal error, 2 manual column selection required.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .column_resolver import NeedsManualSelection
from .exceptions import BomTreeError
from .parser import BomConverter

EXIT_SUCCESS = 0
EXIT_FATAL = 1
EXIT_NEEDS_SELECTION = 2

logger = logging.getLogger("bomtree")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="bomtree",
        description="Expand a flat parent/child BOM into a multi-level BOM",
    )
    p.add_argument("input", help="CSV, TSV or XLSX file with one parent/child row per line")
    p.add_argument("-o", "--output", help="Output file (.xlsx, .csv or .json)")
    p.add_argument("--format", choices=["csv", "excel", "json"], help="Force the output format")
    p.add_argument("--header-row", type=int, help="Row index of the header (manual selection)")
    p.add_argument("--parent", type=int, help="Parent identifier column index")
    p.add_argument("--child", type=int, help="Child identifier column index")
    p.add_argument("--quantity", type=int, help="Quantity column index")
    p.add_argument("--save-history", action="store_true",
                   help="Store the result in Postgres (BOMTREE_DB_* settings)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _print_selection(selection: NeedsManualSelection) -> None:
    print(selection.message)
    print(f"Header row guess: {selection.header_row_index}")
    detected = selection.partial_detection
    for index, header in enumerate(selection.potential_headers):
        roles = [role for role in detected.detected_roles() if getattr(detected, role).index == index]
        marker = f"  <- {', '.join(roles)}" if roles else ""
        print(f"  [{index}] {header}{marker}")
    if selection.numeric_columns:
        print(f"Mostly numeric columns: {selection.numeric_columns}")
    print("Sample rows:")
    for row in selection.sample_rows:
        print("  " + " | ".join(row))
    print("Re-run with --header-row N --parent I --child I --quantity I")


def _manual_selection_given(args: argparse.Namespace) -> bool:
    return any(v is not None for v in (args.header_row, args.parent, args.child, args.quantity))


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    history = None
    try:
        if args.save_history:
            from .history import PostgresHistoryStore
            history = PostgresHistoryStore()
            history.ensure_schema()

        converter = BomConverter.with_default_adapters(history=history)

        if _manual_selection_given(args):
            raw_table = converter.read(args.input)
            chosen = {
                "parent_index": args.parent,
                "child_index": args.child,
                "quantity_index": args.quantity,
            }
            result = converter.convert_with_columns(
                raw_table,
                args.header_row or 0,
                chosen,
                filename=Path(args.input).name,
            )
        else:
            result = converter.convert_file(args.input)

        if isinstance(result, NeedsManualSelection):
            _print_selection(result)
            return EXIT_NEEDS_SELECTION

        if args.output:
            converter.export(result, args.output, format=args.format)
        else:
            data = converter.serialize(result, args.format or "csv")
            if args.format == "excel":
                sys.stdout.buffer.write(data)
            else:
                sys.stdout.write(data.decode("utf-8"))
        return EXIT_SUCCESS

    except (BomTreeError, FileNotFoundError, ValueError) as e:
        logger.error(str(e))
        return EXIT_FATAL
    finally:
        if history is not None:
            history.close()


if __name__ == "__main__":
    sys.exit(main())
