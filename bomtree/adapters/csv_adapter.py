import csv
import logging
import chardet
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

# Tried in order when the detected encoding fails to decode the file
FALLBACK_ENCODINGS = ['latin-1', 'cp1252', 'iso-8859-1']

CANDIDATE_DELIMITERS = (',', ';', '\t')


class CsvAdapter:
    """Reads CSV and TSV exports into a raw table of cell strings.

    No row is treated as the header here. Title lines, blank cells and the
    header itself all come back as ordinary rows; the column resolver decides
    where the header is. Lines with no content at all are dropped.

    Encoding is taken from a UTF-8 BOM when present, otherwise guessed with
    chardet. The delimiter is sniffed among comma, semicolon and tab.
    """

    def can_handle(self, file_path: str) -> bool:
        return Path(file_path).suffix.lower() in [".csv", ".tsv"]

    def _detect_encoding(self, file_path: str) -> str:
        with open(file_path, 'rb') as f:
            head = f.read(10000)

        if head.startswith(b'\xef\xbb\xbf'):
            return 'utf-8-sig'

        guessed = (chardet.detect(head).get('encoding') or 'utf-8').lower()
        # chardet reports ascii when only the sampled head is plain
        if guessed in ('ascii', 'utf-8', 'utf8'):
            return 'utf-8'
        return guessed

    def _detect_delimiter(self, sample: str, suffix: str) -> str:
        if suffix == '.tsv':
            return '\t'

        try:
            return csv.Sniffer().sniff(sample, delimiters=''.join(CANDIDATE_DELIMITERS)).delimiter
        except csv.Error:
            logger.debug("csv.Sniffer could not decide; counting delimiters on the first line")

        first_line = sample.splitlines()[0] if sample else ''
        counts = {d: first_line.count(d) for d in CANDIDATE_DELIMITERS}
        best = max(CANDIDATE_DELIMITERS, key=lambda d: counts[d])
        return best if counts[best] else ','

    def _read_rows(self, file_path: str, encoding: str, suffix: str) -> List[List[str]]:
        with open(file_path, 'r', encoding=encoding, newline='') as f:
            sample = f.read(4096)
            f.seek(0)
            reader = csv.reader(f, delimiter=self._detect_delimiter(sample, suffix))
            return [row for row in reader if any(cell.strip() for cell in row)]

    def _read_with_fallbacks(self, file_path: str, suffix: str, error: UnicodeDecodeError) -> List[List[str]]:
        for encoding in FALLBACK_ENCODINGS:
            try:
                rows = self._read_rows(file_path, encoding, suffix)
            except UnicodeDecodeError:
                continue
            logger.debug(f"{file_path} decoded as {encoding} after detection failed")
            return rows
        raise ValueError(f"Could not decode file {file_path}: {error}")

    def read(self, file_path: str) -> List[List[str]]:
        """Decode a CSV/TSV file into rows of strings.

        Args:
            file_path: Path to the file

        Returns:
            Raw rows in file order; an empty file gives an empty list

        Raises:
            FileNotFoundError: If the path does not exist
            ValueError: If no encoding decodes the file or the CSV is malformed
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")
        if path.stat().st_size == 0:
            return []

        suffix = path.suffix.lower()
        encoding = self._detect_encoding(file_path)

        try:
            rows = self._read_rows(file_path, encoding, suffix)
        except UnicodeDecodeError as e:
            rows = self._read_with_fallbacks(file_path, suffix, e)
        except csv.Error as e:
            raise ValueError(f"Error parsing CSV file {file_path}: {e}")

        logger.debug(f"Read {len(rows)} rows from {file_path} (encoding={encoding})")
        return rows
