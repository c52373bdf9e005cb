"""Best-effort error policy shared by the batch operations."""

from __future__ import annotations

import sys
from typing import List, Optional

from .errors import ErrorCategory, ErrorRecord


class ErrorPolicy:
    """Records skipped items and lets the batch continue.

    Nothing handled here is fatal: a missing element or a host that refuses a
    rename only drops that one item. Records are kept so callers can list
    them in a report, and echoed to stderr when running verbose.
    """

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose
        self.records: List[ErrorRecord] = []

    def skip(
        self,
        category: ErrorCategory,
        message: str,
        details: Optional[str] = None,
    ) -> None:
        """Record a skipped item."""

        self.records.append(ErrorRecord(category=category, message=message, details=details))
        if self.verbose:
            suffix = f" ({details})" if details else ""
            print(f"{message}{suffix}", file=sys.stderr)

    def messages(self, since: int = 0) -> List[str]:
        return [record.message for record in self.records[since:]]

    def count(self, category: ErrorCategory | None = None) -> int:
        if category is None:
            return len(self.records)
        return sum(1 for record in self.records if record.category == category)
