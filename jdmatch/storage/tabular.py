"""Sheet-oriented tabular storage.

A store is a set of named sheets, each a list of row dicts. Writes replace a
sheet wholesale and leave other sheets untouched.
"""
from __future__ import annotations
import copy
import logging
import os
import shutil
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Sequence

from openpyxl import Workbook, load_workbook

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class SheetNotFoundError(Exception):
    """The store or the named sheet does not exist"""

    def __init__(self, sheet: str, location: str = ""):
        self.sheet = sheet
        self.location = location
        where = f" in {location}" if location else ""
        super().__init__(f"Sheet '{sheet}' not found{where}")


class TabularStore(ABC):

    @abstractmethod
    def read_sheet(self, name: str) -> List[Row]:
        """Return every row of sheet ``name``; raise SheetNotFoundError if absent."""
        pass

    @abstractmethod
    def write_sheet(self, name: str, rows: Sequence[Row]) -> None:
        """Replace sheet ``name`` with ``rows``, creating store/sheet as needed."""
        pass

    @abstractmethod
    def sheet_names(self) -> List[str]:
        pass


def _columns(rows: Sequence[Row]) -> List[str]:
    """Union of row keys in first-seen order."""
    seen: Dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


class InMemoryTabularStore(TabularStore):
    """Dict-backed store for tests and dry runs."""

    def __init__(self, sheets: Dict[str, List[Row]] = None):
        self._sheets: Dict[str, List[Row]] = copy.deepcopy(sheets) if sheets else {}

    def read_sheet(self, name: str) -> List[Row]:
        if name not in self._sheets:
            raise SheetNotFoundError(name, "memory")
        return copy.deepcopy(self._sheets[name])

    def write_sheet(self, name: str, rows: Sequence[Row]) -> None:
        self._sheets[name] = [dict(r) for r in rows]

    def sheet_names(self) -> List[str]:
        return list(self._sheets)


class ExcelTabularStore(TabularStore):
    """An .xlsx workbook, one worksheet per sheet, header row first.

    Writes go through a lock; callers running several writers in one process
    share the instance. Each write saves to a temporary file next to the
    workbook and renames it into place, so readers in other processes see
    either the previous or the new workbook, never a partial one.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def sheet_names(self) -> List[str]:
        if not self.path.exists():
            return []
        wb = load_workbook(self.path, read_only=True)
        try:
            return list(wb.sheetnames)
        finally:
            wb.close()

    def read_sheet(self, name: str) -> List[Row]:
        if not self.path.exists():
            raise SheetNotFoundError(name, str(self.path))
        wb = load_workbook(self.path, read_only=True, data_only=True)
        try:
            if name not in wb.sheetnames:
                raise SheetNotFoundError(name, str(self.path))
            rows = wb[name].iter_rows(values_only=True)
            header = next(rows, None)
            if not header:
                return []
            columns = [str(h) if h is not None else "" for h in header]
            result = []
            for values in rows:
                row = {
                    col: value
                    for col, value in zip(columns, values)
                    if col and value is not None
                }
                if row:
                    result.append(row)
            return result
        finally:
            wb.close()

    def write_sheet(self, name: str, rows: Sequence[Row]) -> None:
        with self._lock:
            if self.path.exists():
                wb = load_workbook(self.path)
                created = False
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                wb = Workbook()
                created = True

            index = None
            if name in wb.sheetnames:
                index = wb.sheetnames.index(name)
                wb.remove(wb[name])
            ws = wb.create_sheet(title=name, index=index)
            if created:
                # Drop the default empty sheet a new Workbook starts with
                default = wb.worksheets[0] if wb.worksheets[0] is not ws else None
                if default is not None and default.title != name:
                    wb.remove(default)

            columns = _columns(rows)
            if columns:
                ws.append(columns)
                for row in rows:
                    ws.append([row.get(col) for col in columns])

            self._save_atomically(wb)
            logger.debug("Wrote %d rows to sheet '%s' in %s", len(rows), name, self.path)

    def _save_atomically(self, wb: Workbook) -> None:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.stem}-", suffix=".xlsx.tmp", dir=self.path.parent)
        os.close(fd)
        try:
            wb.save(tmp_name)
            if self.path.exists():
                shutil.copymode(self.path, tmp_name)
            os.replace(tmp_name, self.path)
        except Exception:
            Path(tmp_name).unlink(missing_ok=True)
            raise
