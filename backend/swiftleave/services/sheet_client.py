"""Tabular store client — the spreadsheet acting as system of record.

Two implementations share one small interface:
- GoogleSheetsStore: Sheets v4 REST over ``requests``
- InMemoryTabularStore: process-local grids for development and tests

Transport problems are always converted to RemoteUnavailable and missing
credentials to ConfigMissing, so callers deal with exactly two failure types.
"""
import logging
import re
from functools import lru_cache
from typing import Iterable, Optional
from urllib.parse import quote

import requests

from swiftleave.config import settings
from swiftleave.errors import ConfigMissing, RemoteUnavailable

logger = logging.getLogger(__name__)

Grid = list[list[str]]

_COLUMN_SPAN = re.compile(r"^([A-Za-z]+)\d*(?::([A-Za-z]+)\d*)?$")
_PLAIN_SHEET = re.compile(r"^[A-Za-z0-9_]+$")

# Width fallbacks for the Logs sheet, widest first
LOG_WIDTH_VARIANTS = ("A:P", "A:O", "A:K", "A:I")


def column_letter(col: int) -> str:
    """1 → A, 26 → Z, 27 → AA."""
    letters = ""
    while col > 0:
        col, rem = divmod(col - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def column_number(letters: str) -> int:
    n = 0
    for ch in letters.upper():
        n = n * 26 + (ord(ch) - 64)
    return n


def split_range(range_a1: str) -> tuple[str, str]:
    """Split ``'Leave Logs'!A:P`` into (``Leave Logs``, ``A:P``)."""
    if "!" not in range_a1:
        return _unquote(range_a1), ""
    sheet, cells = range_a1.rsplit("!", 1)
    return _unquote(sheet), cells


def _unquote(sheet: str) -> str:
    sheet = sheet.strip()
    if len(sheet) >= 2 and sheet[0] == sheet[-1] == "'":
        return sheet[1:-1].replace("''", "'")
    return sheet


def quote_sheet(sheet: str) -> str:
    """Sheet name as written in an A1 range; ``Leave Logs`` → ``'Leave Logs'``."""
    if _PLAIN_SHEET.match(sheet):
        return sheet
    return "'" + sheet.replace("'", "''") + "'"


def cell_range(sheet: str, row: int, col: int) -> str:
    return f"{quote_sheet(sheet)}!{column_letter(col)}{row}"


def _coerce_grid(values: list) -> Grid:
    return [["" if cell is None else str(cell) for cell in row] for row in values if isinstance(row, list)]


class TabularStore:
    """Range-addressed read, append-only row writes, explicit cell writes."""

    def read_range(self, range_a1: str) -> Optional[Grid]:
        raise NotImplementedError

    def append_row(self, range_a1: str, values: list[str]) -> None:
        raise NotImplementedError

    def set_cell(self, sheet: str, row: int, col: int, value: str) -> None:
        raise NotImplementedError

    def set_cells(self, sheet: str, row: int, values: dict[int, str]) -> None:
        """Write several cells of one row as a single all-or-nothing update."""
        raise NotImplementedError


class GoogleSheetsStore(TabularStore):
    def __init__(
        self,
        sheet_id: str,
        api_key: str = "",
        access_token: str = "",
        base_url: str = "https://sheets.googleapis.com/v4/spreadsheets",
        timeout: float = 10.0,
        http: Optional[requests.Session] = None,
    ):
        self.sheet_id = sheet_id
        self.api_key = api_key
        self.access_token = access_token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_settings(cls) -> "GoogleSheetsStore":
        return cls(
            sheet_id=settings.SHEET_ID,
            api_key=settings.SHEETS_API_KEY,
            access_token=settings.SHEETS_ACCESS_TOKEN,
            base_url=settings.SHEETS_API_BASE,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )

    def _values_url(self, range_a1: str) -> str:
        return f"{self.base_url}/{self.sheet_id}/values/{quote(range_a1, safe='')}"

    def _headers(self) -> dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        return {}

    def _send(self, method: str, url: str, what: str, **kwargs) -> requests.Response:
        try:
            resp = self.http.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"Sheets {what} failed: {exc}") from exc
        if not resp.ok:
            logger.error("Sheets API error %s on %s: %s", resp.status_code, what, resp.text[:500])
            raise RemoteUnavailable(f"Sheets API returned {resp.status_code} on {what}")
        return resp

    def read_range(self, range_a1: str) -> Optional[Grid]:
        if not self.sheet_id or not (self.api_key or self.access_token):
            raise ConfigMissing("SHEET_ID and SHEETS_API_KEY are required to read the sheet")

        params = {"key": self.api_key} if self.api_key else {}
        resp = self._send("GET", self._values_url(range_a1), f"read {range_a1}", params=params)
        try:
            data = resp.json()
        except ValueError as exc:
            raise RemoteUnavailable(f"Malformed Sheets response for {range_a1}") from exc
        if not isinstance(data, dict):
            raise RemoteUnavailable(f"Malformed Sheets response for {range_a1}")

        values = data.get("values")
        if values is None:
            return None
        if not isinstance(values, list):
            raise RemoteUnavailable(f"Malformed Sheets values for {range_a1}")
        return _coerce_grid(values)

    def _require_write_access(self) -> None:
        if not self.sheet_id or not self.access_token:
            raise ConfigMissing("SHEET_ID and SHEETS_ACCESS_TOKEN are required to write to the sheet")

    def append_row(self, range_a1: str, values: list[str]) -> None:
        self._require_write_access()
        self._send(
            "POST",
            self._values_url(range_a1) + ":append",
            f"append {range_a1}",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [values]},
        )

    def set_cell(self, sheet: str, row: int, col: int, value: str) -> None:
        self._require_write_access()
        cell = cell_range(sheet, row, col)
        self._send(
            "PUT",
            self._values_url(cell),
            f"update {cell}",
            params={"valueInputOption": "RAW"},
            json={"range": cell, "values": [[value]]},
        )

    def set_cells(self, sheet: str, row: int, values: dict[int, str]) -> None:
        self._require_write_access()
        data = [{"range": cell_range(sheet, row, col), "values": [[value]]} for col, value in sorted(values.items())]
        self._send(
            "POST",
            f"{self.base_url}/{self.sheet_id}/values:batchUpdate",
            f"batch update of row {row} in {sheet}",
            json={"valueInputOption": "RAW", "data": data},
        )


class InMemoryTabularStore(TabularStore):
    """Grids held in a dict keyed by sheet name (case-insensitive, like Sheets).

    ``fail_reads`` simulates an outage. ``writes`` records every write call in
    order as tuples so callers can inspect exactly what was written.
    """

    def __init__(self, sheets: Optional[dict[str, Grid]] = None):
        self.sheets: dict[str, Grid] = {}
        for name, grid in (sheets or {}).items():
            self.sheets[name.lower()] = [list(row) for row in grid]
        self.fail_reads = False
        self.writes: list[tuple] = []

    def _span(self, cells: str) -> tuple[int, Optional[int]]:
        match = _COLUMN_SPAN.match(cells or "")
        if not match:
            return 1, None
        start = column_number(match.group(1))
        end = column_number(match.group(2)) if match.group(2) else start
        return start, end

    def read_range(self, range_a1: str) -> Optional[Grid]:
        if self.fail_reads:
            raise RemoteUnavailable(f"Simulated outage reading {range_a1}")
        sheet, cells = split_range(range_a1)
        grid = self.sheets.get(sheet.lower())
        if not grid:
            return None
        start, end = self._span(cells)
        return [list(row[start - 1:end]) for row in grid]

    def append_row(self, range_a1: str, values: list[str]) -> None:
        sheet, _ = split_range(range_a1)
        self.sheets.setdefault(sheet.lower(), []).append(["" if v is None else str(v) for v in values])
        self.writes.append(("append", sheet, list(values)))

    def _put(self, sheet: str, row: int, col: int, value: str) -> None:
        grid = self.sheets.setdefault(sheet.lower(), [])
        while len(grid) < row:
            grid.append([])
        target = grid[row - 1]
        while len(target) < col:
            target.append("")
        target[col - 1] = value

    def set_cell(self, sheet: str, row: int, col: int, value: str) -> None:
        self._put(sheet, row, col, value)
        self.writes.append(("set", sheet, row, col, value))

    def set_cells(self, sheet: str, row: int, values: dict[int, str]) -> None:
        for col, value in values.items():
            self._put(sheet, row, col, value)
        self.writes.append(("set_cells", sheet, row, dict(values)))


def log_range_candidates(configured: str) -> list[str]:
    """Configured range first, then sheet-name case and column-width variants."""
    sheet, cells = split_range(configured)
    names = [sheet, sheet.lower(), sheet.capitalize(), sheet.upper()]
    widths = [cells] + list(LOG_WIDTH_VARIANTS) if cells else list(LOG_WIDTH_VARIANTS)

    candidates = [configured]
    for name in names:
        for width in widths:
            candidate = f"{quote_sheet(name)}!{width}"
            if candidate not in candidates:
                candidates.append(candidate)
    return candidates


def locate_first_available(store: TabularStore, candidates: Iterable[str]) -> tuple[Optional[str], Grid]:
    """Return ``(range, grid)`` for the first candidate answering with values.

    Candidates that answer with no values are skipped; candidates that fail are
    skipped too. Only when every candidate failed is the last failure raised.
    When some answered but none had values the result is ``(None, [])``.
    """
    last_error: Optional[RemoteUnavailable] = None
    answered = False
    for attempt, candidate in enumerate(candidates):
        try:
            grid = store.read_range(candidate)
        except RemoteUnavailable as exc:
            logger.debug("Range %s unavailable: %s", candidate, exc.detail)
            last_error = exc
            continue
        answered = True
        if grid is not None:
            if attempt:
                logger.info("Read succeeded with fallback range %s", candidate)
            return candidate, grid
    if not answered and last_error is not None:
        raise last_error
    return None, []


def read_first_available(store: TabularStore, candidates: Iterable[str]) -> Grid:
    return locate_first_available(store, candidates)[1]


@lru_cache
def _default_store() -> GoogleSheetsStore:
    return GoogleSheetsStore.from_settings()


def get_store() -> TabularStore:
    """FastAPI dependency — the configured tabular store."""
    return _default_store()
