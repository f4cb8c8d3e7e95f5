"""CSV storage implementation for mop audit entries."""

import asyncio
import logging
import os

import pandas as pd

from comment_mop.models.audit import AuditEntry

logger = logging.getLogger(__name__)


class CsvAuditSink:
    """CSV file implementation of the AuditSink interface."""

    COLUMNS = ["created_at", "action", "target", "moderator", "details", "description"]

    def __init__(self, csv_path: str):
        """
        Initialize the CSV sink with a file path.

        Args:
            csv_path: Path to the CSV file
        """
        self.csv_path = csv_path
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Ensure the directory for the CSV file exists."""
        directory = os.path.dirname(self.csv_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def _file_exists(self) -> bool:
        return os.path.exists(self.csv_path) and os.path.getsize(self.csv_path) > 0

    def _write(self, entry: AuditEntry) -> None:
        df = pd.DataFrame([entry.to_record()]).reindex(columns=self.COLUMNS)
        df.to_csv(
            self.csv_path,
            mode="a",
            header=not self._file_exists(),
            index=False,
            encoding="utf-8",
        )

    async def append(self, entry: AuditEntry) -> None:
        """
        Append one entry to the CSV file.

        Args:
            entry: Audit entry to write

        Raises:
            OSError: If the file cannot be written
        """
        await asyncio.to_thread(self._write, entry)
        logger.debug(f"Wrote audit entry {entry.action} for {entry.target} to {self.csv_path}")

    def load(self) -> pd.DataFrame:
        """Read every audit entry written so far."""
        if not self._file_exists():
            return pd.DataFrame(columns=self.COLUMNS)
        return pd.read_csv(self.csv_path, encoding="utf-8")
