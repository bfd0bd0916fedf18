from .column_profiler import cell_text
from .column_resolver import ColumnMapping, ColumnResolver, NeedsManualSelection, ResolvedTable
from .expander import ExpandedTable, HierarchyExpander
from .exceptions import EmptyInputError, UnsupportedFileError
from .history import HistoryStore
from typing import List, Dict, Any, Mapping, Optional, Union
from pathlib import Path
from openpyxl.utils import get_column_letter
import csv
import io
import json
import logging
import openpyxl
import re

logger = logging.getLogger(__name__)

ConversionResult = Union[ExpandedTable, NeedsManualSelection]

EXCEL_SHEET_TITLE = "Multi-Level BOM"
EXCEL_MAX_COLUMN_WIDTH = 50

# Characters XML (and therefore xlsx) cannot carry
_XML_ILLEGAL = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f]')


class BomConverter:
    """Converts flat single-level BOM files into multi-level BOMs."""

    def __init__(self,
                 resolver: Optional[ColumnResolver] = None,
                 expander: Optional[HierarchyExpander] = None,
                 history: Optional[HistoryStore] = None):
        """Initialize the BOM converter.

        Args:
            resolver: Column resolver (default: ColumnResolver())
            expander: Hierarchy expander (default: HierarchyExpander())
            history: Store that receives every successful file conversion (optional)
        """
        self.adapters = []
        self.resolver = resolver or ColumnResolver()
        self.expander = expander or HierarchyExpander()
        self.history = history

    @classmethod
    def with_default_adapters(cls, **kwargs) -> "BomConverter":
        """Create a converter with the CSV and Excel adapters registered."""
        from .adapters.csv_adapter import CsvAdapter
        from .adapters.excel_adapter import ExcelAdapter

        converter = cls(**kwargs)
        converter.register_adapter(CsvAdapter())
        converter.register_adapter(ExcelAdapter())
        return converter

    def register_adapter(self, adapter):
        """Register a file adapter for reading.

        Args:
            adapter: Adapter instance with can_handle() and read() methods
        """
        self.adapters.append(adapter)

    def _find_adapter(self, file_path: str):
        for a in self.adapters:
            if a.can_handle(file_path):
                return a
        raise UnsupportedFileError(
            f"No adapter found for {file_path}. Supported formats: CSV, XLSX.",
            file_path=str(file_path),
        )

    def read(self, file_path: str) -> List[List[Any]]:
        """Decode a file into a raw table (header row not interpreted).

        Raises:
            UnsupportedFileError: If no adapter handles the file
        """
        adapter = self._find_adapter(file_path)
        return adapter.read(file_path)

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def convert(self, raw_table: List[List[Any]]) -> ConversionResult:
        """Resolve columns automatically and expand the hierarchy.

        Args:
            raw_table: Decoded rows, header somewhere in the first rows

        Returns:
            ExpandedTable, or NeedsManualSelection when the columns could not be
            detected (pass the user's choice to convert_with_columns())

        Raises:
            EmptyInputError: If the table holds no data
        """
        resolution = self.resolver.resolve(raw_table)
        if isinstance(resolution, NeedsManualSelection):
            return resolution
        return self.expand(resolution)

    def convert_with_columns(self,
                             raw_table: List[List[Any]],
                             header_row_index: int,
                             chosen: Union[ColumnMapping, Mapping[str, int]],
                             filename: Optional[str] = None) -> ExpandedTable:
        """Expand a table using manually chosen columns.

        Args:
            raw_table: Raw table, typically NeedsManualSelection.raw_data
            header_row_index: Row holding the header labels
            chosen: Parent, child and quantity column indices
            filename: Source file name; when given and a history store is
                configured, the result is saved

        Raises:
            InvalidColumnMappingError: If the chosen indices are unusable
            EmptyInputError: If the table holds no data
        """
        resolved = self.resolver.resolve_manual_columns(raw_table, header_row_index, chosen)
        expanded = self.expand(resolved)
        if filename:
            self._record(expanded, filename)
        return expanded

    def expand(self, resolved: ResolvedTable) -> ExpandedTable:
        return self.expander.expand(resolved)

    def convert_file(self, file_path: str) -> ConversionResult:
        """Read, resolve and expand a BOM file.

        Successful conversions are saved to the history store when one is
        configured.

        Args:
            file_path: Path to a CSV/TSV/XLSX file

        Returns:
            ExpandedTable or NeedsManualSelection
        """
        raw_table = self.read(file_path)
        if not raw_table:
            raise EmptyInputError(f"No data found in file {file_path}")

        result = self.convert(raw_table)
        if isinstance(result, ExpandedTable):
            self._record(result, Path(file_path).name)
        return result

    def _record(self, table: ExpandedTable, filename: str) -> None:
        if self.history is None:
            return
        record = self.history.save(table, filename)
        logger.debug(f"Conversion of {filename} stored as history entry {record.id}")

    def get_mapping_report(self, file_path: str) -> Dict[str, Any]:
        """Report how the columns of a file were (or were not) detected.

        Args:
            file_path: Path to the BOM file

        Returns:
            Dictionary with the header row index, headers and per-role detection
        """
        raw_table = self.read(file_path)
        header_row = self.resolver.locate_header_row(raw_table)
        if header_row is None:
            selection = self.resolver.find_potential_headers(raw_table)
            return {
                "header_row_index": selection.header_row_index,
                "headers": selection.potential_headers,
                "detection": selection.partial_detection.to_dict(),
                "header_confirmed": False,
            }
        return {
            "header_row_index": header_row.index,
            "headers": header_row.headers,
            "detection": header_row.detection.to_dict(),
            "header_confirmed": True,
        }

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def serialize(self, table: ExpandedTable, format: str = "excel") -> bytes:
        """Serialize a {headers, rows} table to bytes.

        Args:
            table: Object with `headers` and `rows`
            format: 'csv', 'excel' or 'json'

        Returns:
            Encoded file contents

        Raises:
            UnsupportedFileError: If the format is not supported
        """
        format = format.lower()
        if format == 'csv':
            return self._serialize_csv(table.headers, table.rows)
        elif format == 'excel':
            return self._serialize_excel(table.headers, table.rows)
        elif format == 'json':
            return self._serialize_json(table.headers, table.rows)
        raise UnsupportedFileError(
            f"Unsupported export format: {format}. Supported formats: csv, excel, json"
        )

    def export(self, table: ExpandedTable, output_path: str, format: Optional[str] = None) -> str:
        """Export an expanded BOM to a file.

        Args:
            table: Expanded table to write
            output_path: Path where the file should be saved
            format: Output format ('csv', 'excel', 'json', or None for auto-detect from extension)

        Returns:
            Path to the exported file

        Raises:
            ValueError: If the table has no rows
            UnsupportedFileError: If format is not supported
        """
        if not table.rows:
            raise ValueError("Cannot export empty data")

        output_path = Path(output_path)

        # Auto-detect format from extension if not provided
        if format is None:
            suffix = output_path.suffix.lower()
            if suffix in ['.csv', '.tsv']:
                format = 'csv'
            elif suffix in ['.xlsx', '.xlsm']:
                format = 'excel'
            elif suffix == '.json':
                format = 'json'
            else:
                # Default to CSV if extension is not recognized
                format = 'csv'
                output_path = output_path.with_suffix('.csv')

        output_path.write_bytes(self.serialize(table, format))
        logger.info(f"Exported {len(table.rows)} rows to {output_path}")
        return str(output_path)

    def _serialize_csv(self, headers: List[str], rows: List[List[Any]]) -> bytes:
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(headers)
        for row in rows:
            writer.writerow([cell_text(value) for value in row])
        return buffer.getvalue().encode('utf-8')

    def _serialize_excel(self, headers: List[str], rows: List[List[Any]]) -> bytes:
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = EXCEL_SHEET_TITLE

        ws.append([_sanitize_for_xml(h) for h in headers])
        for row in rows:
            ws.append([_sanitize_for_xml(value) for value in row])

        # Size columns to content, capped
        for col_idx, header in enumerate(headers, start=1):
            longest = max(
                [len(cell_text(header))]
                + [len(cell_text(row[col_idx - 1])) for row in rows if col_idx - 1 < len(row)]
            )
            width = min(longest + 2, EXCEL_MAX_COLUMN_WIDTH)
            ws.column_dimensions[get_column_letter(col_idx)].width = width

        buffer = io.BytesIO()
        wb.save(buffer)
        return buffer.getvalue()

    def _serialize_json(self, headers: List[str], rows: List[List[Any]]) -> bytes:
        payload = {"headers": headers, "rows": rows}
        return json.dumps(payload, indent=2, ensure_ascii=False, allow_nan=False, default=str).encode('utf-8')


def _sanitize_for_xml(value: Any) -> Any:
    if isinstance(value, str):
        return _XML_ILLEGAL.sub('', value)
    return value
