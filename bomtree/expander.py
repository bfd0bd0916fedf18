"""
Multi-level expansion of a flat BOM table.

Every part that appears as a parent is treated as an independent top-level
root. For each root the parent -> child graph is walked depth first, pre-order,
emitting one row per reachable descendant with its depth (Level) and the
product of the quantities along the path from the root.

The visitation guard is keyed on (root, ancestor chain, next child):
- the same component reached through two different sub-assemblies under one
  root is emitted once per path, with its own cumulative quantity
- an edge that repeats an exact path (duplicate rows) is emitted once
- an edge leading back into its own ancestor chain is a cycle and is skipped

All state (adjacency, guard, output) is local to one expand() call.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Sequence, Set, Tuple

from .column_profiler import cell_text
from .column_resolver import ColumnMapping, ResolvedTable
from .exceptions import EmptyInputError
from .schema import LEVEL_HEADER

logger = logging.getLogger(__name__)


@dataclass
class ExpansionStats:
    """Counts of what the expansion skipped or produced.

    Malformed input is absorbed rather than raised; these counters are the
    only record of it.
    """
    input_rows: int = 0
    short_rows: int = 0              # too few cells to index parent/child/quantity
    rows_without_parent: int = 0
    edges_without_child: int = 0
    defaulted_quantities: int = 0    # unparseable quantity cells read as 0.0
    duplicate_edges: int = 0         # exact path already emitted under this root
    cycles_broken: int = 0
    roots: int = 0
    emitted_rows: int = 0

    @property
    def skipped_rows(self) -> int:
        return self.short_rows + self.rows_without_parent

    def to_dict(self) -> Dict[str, int]:
        result = asdict(self)
        result["skipped_rows"] = self.skipped_rows
        return result


@dataclass
class ExpandedTable:
    """The fully expanded multi-level BOM."""
    headers: List[str]
    rows: List[List[Any]]
    column_mapping: ColumnMapping
    stats: ExpansionStats = field(default_factory=ExpansionStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": self.headers,
            "rows": self.rows,
            "column_mapping": self.column_mapping.to_dict(),
        }


@dataclass(frozen=True)
class OutputLayout:
    """
    Column layout of an expanded row.

    parent_columns come from the root's representative row: every column left
    of the child identifier, or just the parent identifier when it sits to the
    right of the child. child_columns run from the child identifier to the end
    of the header. The quantity column always ends up in the output, holding
    the cumulative quantity.
    """
    parent_columns: Tuple[int, ...]
    child_columns: Tuple[int, ...]
    quantity_index: int

    @classmethod
    def from_mapping(cls, mapping: ColumnMapping, header_count: int) -> "OutputLayout":
        if mapping.parent_index < mapping.child_index:
            parent_columns = tuple(range(0, mapping.child_index))
        else:
            parent_columns = (mapping.parent_index,)

        child_columns = tuple(range(mapping.child_index, header_count))
        q = mapping.quantity_index
        if q not in parent_columns and q not in child_columns:
            child_columns = child_columns + (q,)

        return cls(parent_columns, child_columns, q)

    def headers(self, headers: Sequence[str]) -> List[str]:
        return (
            [_cell(headers, i) for i in self.parent_columns]
            + [LEVEL_HEADER]
            + [_cell(headers, i) for i in self.child_columns]
        )

    def build_row(self, root_row: Sequence[Any], level: int,
                  edge_row: Sequence[Any], quantity: float) -> List[Any]:
        parent_side = [
            quantity if i == self.quantity_index else _cell(root_row, i)
            for i in self.parent_columns
        ]
        child_side = [
            quantity if i == self.quantity_index else _cell(edge_row, i)
            for i in self.child_columns
        ]
        return parent_side + [level] + child_side


def _cell(row: Sequence[Any], index: int) -> Any:
    return row[index] if index < len(row) else ""


def _identifier(value: Any) -> str:
    return cell_text(value).strip()


class HierarchyExpander:
    """Expands a resolved flat BOM table into a multi-level BOM."""

    def expand(self, table: ResolvedTable) -> ExpandedTable:
        """Expand every parent in the table into its full descendant tree.

        Args:
            table: Resolved table; its quantity cells must already be numeric

        Returns:
            ExpandedTable with the "Level" column inserted between the parent
            and child sides

        Raises:
            EmptyInputError: If the table has no headers or no rows
            InvalidColumnMappingError: If the mapping does not fit the headers
        """
        headers, rows, mapping = table.headers, table.rows, table.column_mapping
        if not headers or not rows:
            raise EmptyInputError("No data found in file")
        mapping.validate(len(headers))

        layout = OutputLayout.from_mapping(mapping, len(headers))
        stats = ExpansionStats(
            input_rows=len(rows),
            defaulted_quantities=table.defaulted_quantities,
        )
        children, root_rows = self._build_adjacency(rows, mapping, stats)

        output: List[List[Any]] = []
        for root_id, root_row in root_rows.items():
            stats.roots += 1
            self._expand_root(root_id, root_row, children, mapping, layout, output, stats)

        stats.emitted_rows = len(output)
        logger.info(
            f"Expanded {stats.input_rows} rows into {stats.emitted_rows} "
            f"multi-level rows across {stats.roots} top-level parts"
        )
        if stats.skipped_rows or stats.edges_without_child or stats.defaulted_quantities:
            logger.debug(f"Expansion diagnostics: {stats.to_dict()}")

        return ExpandedTable(
            headers=layout.headers(headers),
            rows=output,
            column_mapping=mapping,
            stats=stats,
        )

    @staticmethod
    def _build_adjacency(
        rows: Sequence[Sequence[Any]],
        mapping: ColumnMapping,
        stats: ExpansionStats,
    ) -> Tuple[Dict[str, List[Sequence[Any]]], Dict[str, Sequence[Any]]]:
        """Group edge rows by parent identifier.

        Returns:
            (parent -> edge rows in input order, parent -> first row seen)
        """
        children: Dict[str, List[Sequence[Any]]] = {}
        root_rows: Dict[str, Sequence[Any]] = {}
        min_length = mapping.min_row_length

        for row in rows:
            if row is None or len(row) < min_length:
                stats.short_rows += 1
                continue

            parent_id = _identifier(row[mapping.parent_index])
            if not parent_id:
                stats.rows_without_parent += 1
                continue
            if not _identifier(row[mapping.child_index]):
                stats.edges_without_child += 1

            children.setdefault(parent_id, []).append(row)
            root_rows.setdefault(parent_id, row)

        return children, root_rows

    @staticmethod
    def _expand_root(
        root_id: str,
        root_row: Sequence[Any],
        children: Dict[str, List[Sequence[Any]]],
        mapping: ColumnMapping,
        layout: OutputLayout,
        output: List[List[Any]],
        stats: ExpansionStats,
    ) -> None:
        """Pre-order walk from one root using an explicit stack.

        One frame per node on the current path: (level, multiplier, remaining
        edges, children already taken). Each frame stands for a distinct
        root-to-node path, so the per-frame `taken` set is the
        (root, path, child) guard.
        """
        path: List[str] = [root_id]
        on_path: Set[str] = {root_id}
        stack: List[Tuple[int, float, Iterator[Sequence[Any]], Set[str]]] = [
            (1, 1.0, iter(children.get(root_id, ())), set())
        ]

        while stack:
            level, multiplier, edges, taken = stack[-1]
            edge = next(edges, None)
            if edge is None:
                stack.pop()
                on_path.discard(path.pop())
                continue

            child_id = _identifier(edge[mapping.child_index])
            if not child_id:
                continue

            if child_id in taken:
                stats.duplicate_edges += 1
                continue
            taken.add(child_id)

            if child_id in on_path:
                stats.cycles_broken += 1
                logger.warning(
                    f"Cycle under '{root_id}': {' -> '.join(path)} -> {child_id}; edge skipped"
                )
                continue

            cumulative = (edge[mapping.quantity_index] or 0.0) * multiplier
            output.append(layout.build_row(root_row, level, edge, cumulative))

            if child_id in children:
                path.append(child_id)
                on_path.add(child_id)
                stack.append((level + 1, cumulative, iter(children[child_id]), set()))


def expand_hierarchy(table: ResolvedTable) -> ExpandedTable:
    """Expand a resolved table with a fresh HierarchyExpander."""
    return HierarchyExpander().expand(table)
