"""
Column resolution for flat BOM tables.

Locates the header row of a raw table and works out which columns hold the
parent identifier, the child identifier and the quantity.

Resolution is a tagged result, never an exception for ambiguity:
- ResolvedTable: headers, data rows and an immutable ColumnMapping
- NeedsManualSelection: everything a UI needs to let a person pick the
  columns (best-guess header row, sample rows, partial detection), after which
  resolve_manual_columns() finishes the job without re-reading the file

Roles are resolved in a fixed order (parent, child, quantity). A column
claimed by an earlier role is never offered to a later one.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Pattern, Sequence, Tuple, Union

from .column_profiler import ColumnProfiler, cell_text, is_blank, parse_quantity
from .exceptions import EmptyInputError, InvalidColumnMappingError
from .schema import (
    CHILD,
    COMPILED_ROLE_PATTERNS,
    HEADER_SCAN_LIMIT,
    MIN_HEADER_CELLS,
    MIN_TEXT_RATIO,
    PARENT,
    QUANTITY,
    ROLE_KEYWORDS,
    ROLES,
    SAMPLE_ROW_LIMIT,
)

logger = logging.getLogger(__name__)

RawTable = Sequence[Sequence[Any]]


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class ColumnMatch:
    """A header claimed by one role."""
    index: int
    name: str


@dataclass(frozen=True)
class ColumnDetection:
    """Outcome of header vocabulary matching. Any role may be missing."""
    parent: Optional[ColumnMatch] = None
    child: Optional[ColumnMatch] = None
    quantity: Optional[ColumnMatch] = None

    @property
    def all_detected(self) -> bool:
        return bool(self.parent and self.child and self.quantity)

    @property
    def has_hierarchy(self) -> bool:
        """Parent and child found; enough to accept a header row."""
        return bool(self.parent and self.child)

    def detected_roles(self) -> List[str]:
        return [role for role in ROLES if getattr(self, role) is not None]

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for role in ROLES:
            match = getattr(self, role)
            result[role] = {"index": match.index, "name": match.name} if match else None
        result["all_detected"] = self.all_detected
        return result


@dataclass(frozen=True)
class ColumnMapping:
    """
    Which column holds each role for one input file.

    Created once, by detection or by explicit user selection, and never
    mutated afterwards.
    """
    parent_index: int
    child_index: int
    quantity_index: int
    parent_name: str = ""
    child_name: str = ""
    quantity_name: str = ""
    detected_automatically: bool = False

    def indices(self) -> Dict[str, int]:
        return {
            PARENT: self.parent_index,
            CHILD: self.child_index,
            QUANTITY: self.quantity_index,
        }

    @property
    def min_row_length(self) -> int:
        """Cells a row needs before all three roles can be indexed."""
        return max(self.parent_index, self.child_index, self.quantity_index) + 1

    def validate(self, header_count: int) -> None:
        """Check the three indices are usable against a header of given width.

        Raises:
            InvalidColumnMappingError: If an index is out of range or two roles
                share a column
        """
        indices = self.indices()

        for role, index in indices.items():
            if isinstance(index, bool) or not isinstance(index, int):
                raise InvalidColumnMappingError(
                    f"Column index for {role} must be an integer, got {index!r}",
                    conflicts=[role],
                )
            if not 0 <= index < header_count:
                raise InvalidColumnMappingError(
                    f"Column index {index} for {role} is outside the header "
                    f"(0 to {header_count - 1})",
                    conflicts=[role],
                )

        by_index: Dict[int, List[str]] = {}
        for role, index in indices.items():
            by_index.setdefault(index, []).append(role)
        for index, roles in by_index.items():
            if len(roles) > 1:
                raise InvalidColumnMappingError(
                    f"Column {index} is selected for both {' and '.join(roles)}; "
                    "parent, child and quantity must be different columns",
                    conflicts=roles,
                )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "parent_index": self.parent_index,
            "parent_name": self.parent_name,
            "child_index": self.child_index,
            "child_name": self.child_name,
            "quantity_index": self.quantity_index,
            "quantity_name": self.quantity_name,
            "detected_automatically": self.detected_automatically,
        }


@dataclass(frozen=True)
class HeaderRow:
    """A located header row and the detection run against it."""
    index: int
    headers: List[str]
    detection: ColumnDetection


@dataclass
class ResolvedTable:
    """Headers, data rows and mapping ready for hierarchy expansion.

    Rows are copies of the raw rows below the header, with the quantity cell
    already coerced to float.
    """
    headers: List[str]
    rows: List[List[Any]]
    column_mapping: ColumnMapping
    header_row_index: int = 0
    defaulted_quantities: int = 0


@dataclass
class NeedsManualSelection:
    """Automatic detection failed; a person has to choose the columns."""
    raw_data: RawTable
    potential_headers: List[str]
    header_row_index: int
    sample_rows: List[List[str]]
    partial_detection: ColumnDetection
    numeric_columns: List[int] = field(default_factory=list)
    message: str = (
        "Could not automatically detect all required columns. "
        "Please select the columns manually."
    )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for a UI column picker."""
        return {
            "needs_column_selection": True,
            "raw_data": [list(row) for row in self.raw_data],
            "potential_headers": self.potential_headers,
            "header_row_index": self.header_row_index,
            "sample_rows": self.sample_rows,
            "partial_detection": self.partial_detection.to_dict(),
            "numeric_columns": self.numeric_columns,
            "message": self.message,
        }


ResolutionResult = Union[ResolvedTable, NeedsManualSelection]


# =============================================================================
# RESOLVER
# =============================================================================

class ColumnResolver:
    """Turns ambiguous tabular input into a validated ColumnMapping."""

    def __init__(
        self,
        header_scan_limit: int = HEADER_SCAN_LIMIT,
        sample_row_limit: int = SAMPLE_ROW_LIMIT,
        profiler: Optional[ColumnProfiler] = None,
    ):
        """Initialize the resolver.

        Args:
            header_scan_limit: Number of leading rows searched for a header
            sample_row_limit: Number of sample rows offered for manual selection
            profiler: Profiler used to classify cells (default: ColumnProfiler())
        """
        self.header_scan_limit = header_scan_limit
        self.sample_row_limit = sample_row_limit
        self.profiler = profiler or ColumnProfiler()
        self._patterns: Tuple[Tuple[str, Tuple[Pattern, ...]], ...] = COMPILED_ROLE_PATTERNS

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def detect_columns(self, headers: Sequence[Any]) -> ColumnDetection:
        """Assign parent, child and quantity roles to header columns.

        Each role first tries its precise patterns against whole headers, then
        falls back to keyword substrings. Columns already claimed by an
        earlier role are skipped.

        Args:
            headers: Header labels, left to right

        Returns:
            ColumnDetection with whichever roles were found
        """
        labels = [cell_text(h).strip() for h in headers]
        used: List[int] = []
        found: Dict[str, Optional[ColumnMatch]] = {}

        for role, patterns in self._patterns:
            match = self._match_pattern(labels, patterns, used)
            if match is None:
                match = self._match_keyword(labels, ROLE_KEYWORDS[role], used)
            if match is not None:
                used.append(match.index)
            found[role] = match

        detection = ColumnDetection(**found)
        logger.debug(f"Column detection for {labels}: {detection.to_dict()}")
        return detection

    @staticmethod
    def _match_pattern(labels: List[str], patterns: Tuple[Pattern, ...],
                       excluded: List[int]) -> Optional[ColumnMatch]:
        for index, label in enumerate(labels):
            if index in excluded:
                continue
            for pattern in patterns:
                if pattern.match(label):
                    return ColumnMatch(index=index, name=label)
        return None

    @staticmethod
    def _match_keyword(labels: List[str], keywords: List[str],
                       excluded: List[int]) -> Optional[ColumnMatch]:
        for index, label in enumerate(labels):
            if index in excluded:
                continue
            lowered = label.lower()
            for keyword in keywords:
                if keyword in lowered:
                    return ColumnMatch(index=index, name=label)
        return None

    def locate_header_row(self, raw_table: RawTable) -> Optional[HeaderRow]:
        """Find the first plausible header row where parent and child are detected.

        Args:
            raw_table: Decoded rows of the input file

        Returns:
            HeaderRow, or None when no row within the scan limit qualifies
        """
        for index, row in enumerate(raw_table[:self.header_scan_limit]):
            if all(is_blank(cell) for cell in row):
                continue
            if not self.profiler.is_header_candidate(row, MIN_HEADER_CELLS, MIN_TEXT_RATIO):
                continue

            headers = [cell_text(cell).strip() for cell in row]
            detection = self.detect_columns(headers)
            if detection.has_hierarchy:
                logger.debug(f"Header row found at index {index}: {headers}")
                return HeaderRow(index=index, headers=headers, detection=detection)
            logger.debug(f"Row {index} looks like a header but lacks parent/child columns")

        return None

    def find_potential_headers(self, raw_table: RawTable) -> NeedsManualSelection:
        """Build the manual-selection payload around a best-guess header row.

        The guess is the first row (within the scan limit) with at least three
        text cells; otherwise the first row, with blank labels filled in.
        """
        for index, row in enumerate(raw_table[:self.header_scan_limit]):
            if self.profiler.profile_row(row)['text'] >= MIN_HEADER_CELLS:
                headers = [cell_text(cell).strip() for cell in row]
                return self._selection_payload(raw_table, index, headers)

        first_row = raw_table[0] if raw_table else []
        headers = [
            cell_text(cell).strip() or f"Column {i + 1}"
            for i, cell in enumerate(first_row)
        ]
        return self._selection_payload(raw_table, 0, headers)

    def _selection_payload(self, raw_table: RawTable, header_row_index: int,
                           headers: List[str], message: Optional[str] = None,
                           detection: Optional[ColumnDetection] = None) -> NeedsManualSelection:
        below = raw_table[header_row_index + 1:]
        sample_rows = [
            [cell_text(cell) for cell in row]
            for row in below[:self.sample_row_limit]
        ]
        selection = NeedsManualSelection(
            raw_data=raw_table,
            potential_headers=headers,
            header_row_index=header_row_index,
            sample_rows=sample_rows,
            partial_detection=detection or self.detect_columns(headers),
            numeric_columns=self.profiler.numeric_columns(headers, below),
        )
        if message:
            selection.message = message
        return selection

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(self, raw_table: RawTable) -> ResolutionResult:
        """Resolve columns automatically.

        Args:
            raw_table: Decoded rows of the input file

        Returns:
            ResolvedTable when parent, child and quantity were all detected,
            NeedsManualSelection otherwise

        Raises:
            EmptyInputError: If the table has no non-blank cells
        """
        self._require_data(raw_table)

        header_row = self.locate_header_row(raw_table)
        if header_row is None:
            logger.info("Automatic column detection failed; manual selection required")
            return self.find_potential_headers(raw_table)

        detection = header_row.detection
        if detection.quantity is None:
            logger.info(
                f"Header row {header_row.index} has parent and child columns "
                "but no quantity column; manual selection required"
            )
            return self._selection_payload(
                raw_table,
                header_row.index,
                header_row.headers,
                message="Could not detect a quantity column. Please select the columns manually.",
                detection=detection,
            )

        mapping = ColumnMapping(
            parent_index=detection.parent.index,
            child_index=detection.child.index,
            quantity_index=detection.quantity.index,
            parent_name=detection.parent.name,
            child_name=detection.child.name,
            quantity_name=detection.quantity.name,
            detected_automatically=True,
        )
        logger.info(
            f"Columns detected: parent='{mapping.parent_name}' ({mapping.parent_index}), "
            f"child='{mapping.child_name}' ({mapping.child_index}), "
            f"quantity='{mapping.quantity_name}' ({mapping.quantity_index})"
        )
        return self._build_table(raw_table, header_row.index, header_row.headers, mapping)

    def resolve_manual_columns(
        self,
        raw_table: RawTable,
        header_row_index: int,
        chosen: Union[ColumnMapping, Mapping[str, int]],
    ) -> ResolvedTable:
        """Resolve a table with user-chosen column indices.

        Args:
            raw_table: Decoded rows of the input file
            header_row_index: Row holding the header labels
            chosen: ColumnMapping, or a mapping with 'parent_index',
                'child_index' and 'quantity_index' keys

        Returns:
            ResolvedTable sliced below the header row

        Raises:
            EmptyInputError: If the table has no non-blank cells
            InvalidColumnMappingError: If the indices are missing, out of range
                or not pairwise distinct
        """
        self._require_data(raw_table)

        if not 0 <= header_row_index < len(raw_table):
            raise InvalidColumnMappingError(
                f"Header row index {header_row_index} is outside the table "
                f"(0 to {len(raw_table) - 1})"
            )

        headers = [cell_text(cell).strip() for cell in raw_table[header_row_index]]
        parent_index, child_index, quantity_index = self._chosen_indices(chosen)

        # Validate before naming, so out-of-range indices fail with a clear message
        ColumnMapping(parent_index, child_index, quantity_index).validate(len(headers))
        mapping = ColumnMapping(
            parent_index=parent_index,
            child_index=child_index,
            quantity_index=quantity_index,
            parent_name=headers[parent_index],
            child_name=headers[child_index],
            quantity_name=headers[quantity_index],
            detected_automatically=False,
        )
        logger.info(f"Using manually selected columns: {mapping.to_dict()}")
        return self._build_table(raw_table, header_row_index, headers, mapping)

    @staticmethod
    def _chosen_indices(chosen: Union[ColumnMapping, Mapping[str, int]]) -> Tuple[int, int, int]:
        if isinstance(chosen, ColumnMapping):
            return chosen.parent_index, chosen.child_index, chosen.quantity_index

        missing = [
            role for role in ROLES
            if chosen.get(f"{role}_index") is None
        ]
        if missing:
            raise InvalidColumnMappingError(
                f"No column selected for {', '.join(missing)}",
                conflicts=missing,
            )
        return chosen["parent_index"], chosen["child_index"], chosen["quantity_index"]

    @staticmethod
    def _require_data(raw_table: RawTable) -> None:
        if not raw_table or all(all(is_blank(cell) for cell in row) for row in raw_table):
            raise EmptyInputError("No data found in file")

    def _build_table(self, raw_table: RawTable, header_row_index: int,
                     headers: List[str], mapping: ColumnMapping) -> ResolvedTable:
        mapping.validate(len(headers))

        rows: List[List[Any]] = []
        defaulted = 0
        q = mapping.quantity_index
        for raw_row in raw_table[header_row_index + 1:]:
            row = list(raw_row)
            if q < len(row):
                quantity = parse_quantity(row[q])
                if quantity is None:
                    quantity = 0.0
                    if not all(is_blank(cell) for cell in row):
                        defaulted += 1
                row[q] = quantity
            rows.append(row)

        if defaulted:
            logger.debug(f"{defaulted} quantity cells could not be parsed and default to 0.0")

        return ResolvedTable(
            headers=headers,
            rows=rows,
            column_mapping=mapping,
            header_row_index=header_row_index,
            defaulted_quantities=defaulted,
        )


# =============================================================================
# MODULE-LEVEL CONVENIENCE
# =============================================================================

_default_resolver = ColumnResolver()


def detect_columns(headers: Sequence[Any]) -> ColumnDetection:
    return _default_resolver.detect_columns(headers)


def locate_header_row(raw_table: RawTable) -> Optional[HeaderRow]:
    return _default_resolver.locate_header_row(raw_table)


def resolve_columns(raw_table: RawTable) -> ResolutionResult:
    return _default_resolver.resolve(raw_table)


def resolve_manual_columns(raw_table: RawTable, header_row_index: int,
                           chosen: Union[ColumnMapping, Mapping[str, int]]) -> ResolvedTable:
    return _default_resolver.resolve_manual_columns(raw_table, header_row_index, chosen)
