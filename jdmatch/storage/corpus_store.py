"""Persistence of tagged resume records and the ingestion failure ledger."""
from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Sequence

from pydantic import ValidationError

from jdmatch.resume.models import CorpusRecord, FailureRecord

from .tabular import Row, SheetNotFoundError, TabularStore

logger = logging.getLogger(__name__)

RESUME_TAGS_SHEET = "Resume Tags"
FAILED_FILES_SHEET = "Failed Files"


class CorpusStore:
    """Owns the "Resume Tags" and "Failed Files" sheets of a tabular store.

    Records are keyed by ``resume_file_name``. The ingestion pipeline is the
    only writer; the matching path only calls ``read_all``.
    """

    def __init__(self, store: TabularStore, tags_sheet: str = RESUME_TAGS_SHEET,
                 failures_sheet: str = FAILED_FILES_SHEET):
        self.store = store
        self.tags_sheet = tags_sheet
        self.failures_sheet = failures_sheet

    def read_all(self) -> List[CorpusRecord]:
        """All corpus records; raises SheetNotFoundError when nothing was ingested yet."""
        records = []
        for i, row in enumerate(self.store.read_sheet(self.tags_sheet)):
            try:
                records.append(CorpusRecord.from_row(row))
            except ValidationError as e:
                logger.warning("Skipping malformed corpus row %d: %s", i + 2, e.errors()[0].get("msg"))
        return records

    def _existing_rows(self) -> List[Row]:
        try:
            return self.store.read_sheet(self.tags_sheet)
        except SheetNotFoundError:
            logger.info("No '%s' sheet yet; it will be created", self.tags_sheet)
            return []

    def upsert(self, records: Iterable[CorpusRecord]) -> int:
        """Merge ``records`` into the corpus by file name and rewrite the sheet.

        Existing rows that do not parse as records are written back untouched.

        Returns:
            Number of rows in the corpus after the merge.
        """
        rows: List[Row] = []
        positions: Dict[str, int] = {}

        def put(record: CorpusRecord) -> None:
            key = record.resume_file_name
            if key in positions:
                rows[positions[key]] = record.to_row()
            else:
                positions[key] = len(rows)
                rows.append(record.to_row())

        for i, row in enumerate(self._existing_rows()):
            try:
                put(CorpusRecord.from_row(row))
            except ValidationError as e:
                logger.warning("Keeping unparseable corpus row %d as is: %s", i + 2, e.errors()[0].get("msg"))
                rows.append(dict(row))
        for record in records:
            put(record)

        self.store.write_sheet(self.tags_sheet, rows)
        logger.debug("Corpus now holds %d rows", len(rows))
        return len(rows)

    def record_failures(self, filenames: Sequence[str]) -> None:
        """Replace the failure ledger with this run's failures."""
        rows = [FailureRecord(file=f).to_row() for f in filenames]
        self.store.write_sheet(self.failures_sheet, rows)

    def read_failures(self) -> List[FailureRecord]:
        try:
            rows = self.store.read_sheet(self.failures_sheet)
        except SheetNotFoundError:
            return []
        return [FailureRecord(file=str(r["file"])) for r in rows if r.get("file")]
