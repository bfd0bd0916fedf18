"""
Exceptions raised by bomtree.

Structural failures get their own type so callers can react to each one
differently. Ambiguous columns are not an exception: the resolver returns a
NeedsManualSelection value instead.
"""

from typing import List, Optional


class BomTreeError(Exception):
    """Base exception for all bomtree errors."""
    pass


class EmptyInputError(BomTreeError):
    """Raised when a table has no headers or no data rows."""
    pass


class InvalidColumnMappingError(BomTreeError):
    """Raised when a column mapping is unusable.

    Attributes:
        conflicts: Role names involved in the conflict (e.g. ["parent", "child"])
    """
    def __init__(self, message: str, conflicts: Optional[List[str]] = None):
        super().__init__(message)
        self.conflicts = conflicts or []


class UnsupportedFileError(BomTreeError):
    """Raised when no adapter or export format handles a file."""
    def __init__(self, message: str, file_path: str = None):
        super().__init__(message)
        self.file_path = file_path


class HistoryStoreError(BomTreeError):
    """Raised when the history store is misconfigured or a storage call fails."""
    pass
