import openpyxl
from pathlib import Path


class ExcelAdapter:
    """Reads the first worksheet of an .xlsx/.xlsm workbook as a raw table."""

    def can_handle(self, file_path):
        return Path(file_path).suffix.lower() in [".xlsx", ".xlsm"]

    def read(self, file_path):
        if not Path(file_path).exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        wb = openpyxl.load_workbook(file_path, data_only=True, read_only=True)
        try:
            ws = wb.worksheets[0]
            rows = []
            for row in ws.iter_rows(values_only=True):
                rows.append(['' if value is None else value for value in row])
        finally:
            wb.close()

        return rows
