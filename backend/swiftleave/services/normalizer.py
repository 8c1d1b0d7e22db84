"""Schema normalizer — untyped sheet grids in, typed records out.

Responsibilities:
- Header detection by sentinel first cell (header may be absent)
- Positional binding for the Logs and TaskLogs sheets
- Synonym-based header binding for the employee directory
- Defensive coercion: missing cells become "", emails lower-cased
- Newest-first ordering that tolerates unparsable timestamps
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, TypeVar

import pytz

from swiftleave.models.log_row import LogRow, TaskLogRow, LOG_COLUMN_COUNT, TASK_LOG_COLUMN_COUNT
from swiftleave.models.request import UserRole
from swiftleave.schemas.employee import EmployeeRecord, LookupOptions
from swiftleave.schemas.task import TaskLookups

logger = logging.getLogger(__name__)

T = TypeVar("T")

LOG_SENTINEL = "timestamp"
LOOKUP_SENTINEL = "permissiontype"
TASK_LOOKUP_SENTINEL = "company"

EMAIL_HEADERS = ("email", "email_id", "emailid")
NAME_HEADERS = ("name", "emp_name", "employee_name")
EMPLOYEE_ID_HEADERS = ("employeeid", "emp_code", "employee_code")
ROLE_HEADERS = ("role",)
VALID_ROLES = {r.value for r in UserRole}

_TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y, %I:%M:%S %p",
    "%m/%d/%Y %H:%M",
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y",
    "%Y-%m-%d",
)


def cell(row: Sequence, idx: int) -> str:
    """Cell at ``idx`` as a string; missing or None → ''."""
    if idx < 0 or idx >= len(row):
        return ""
    value = row[idx]
    return "" if value is None else str(value)


def normalize_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def is_header(row: Sequence, sentinel: str) -> bool:
    return bool(row) and normalize_key(cell(row, 0)) == sentinel


def data_rows(grid: Optional[Sequence[Sequence]], sentinel: str) -> list[Sequence]:
    """Strip a leading header row if its first cell is ``sentinel``."""
    if not grid:
        return []
    rows = list(grid)
    if is_header(rows[0], sentinel):
        return rows[1:]
    return rows


def _fixed_width(row: Sequence, width: int) -> list[str]:
    return [cell(row, i) for i in range(width)]


def bind_log_row(row: Sequence) -> LogRow:
    """One sheet row → LogRow; short rows padded, long rows truncated."""
    record = LogRow(*_fixed_width(row, LOG_COLUMN_COUNT))
    return record._replace(employee_email=normalize_key(record.employee_email))


def parse_log_grid(grid: Optional[Sequence[Sequence]]) -> list[LogRow]:
    """Bind Logs sheet rows by column position (header optional)."""
    records = []
    for row in data_rows(grid, LOG_SENTINEL):
        record = bind_log_row(row)
        if not any(v.strip() for v in record):
            continue
        records.append(record)
    return records


def bind_task_log_row(row: Sequence) -> TaskLogRow:
    record = TaskLogRow(*_fixed_width(row, TASK_LOG_COLUMN_COUNT))
    return record._replace(employee_email=normalize_key(record.employee_email))


def parse_task_log_grid(grid: Optional[Sequence[Sequence]]) -> list[TaskLogRow]:
    records = []
    for row in data_rows(grid, LOG_SENTINEL):
        record = bind_task_log_row(row)
        if any(v.strip() for v in record):
            records.append(record)
    return records


def _find_column(headers: list[str], names: Sequence[str]) -> int:
    for name in names:
        if name in headers:
            return headers.index(name)
    return -1


def parse_employees(grid: Optional[Sequence[Sequence]]) -> list[EmployeeRecord]:
    """Bind the directory by header name with synonyms.

    The directory must have a header row. Without an email or role column the
    whole table is treated as empty rather than guessing.
    """
    if not grid or len(grid) < 2:
        return []
    headers = [normalize_key(h) for h in _fixed_width(grid[0], len(grid[0]))]

    email_idx = _find_column(headers, EMAIL_HEADERS)
    name_idx = _find_column(headers, NAME_HEADERS)
    id_idx = _find_column(headers, EMPLOYEE_ID_HEADERS)
    role_idx = _find_column(headers, ROLE_HEADERS)
    if email_idx == -1 or role_idx == -1:
        logger.warning("Employee directory has no email/role column (headers: %s)", headers)
        return []

    employees = []
    for row in grid[1:]:
        email = normalize_key(cell(row, email_idx))
        if not email:
            continue
        role = normalize_key(cell(row, role_idx))
        employees.append(EmployeeRecord(
            email=email,
            name=cell(row, name_idx).strip(),
            employee_id=cell(row, id_idx).strip(),
            role=role if role in VALID_ROLES else UserRole.employee.value,
        ))
    return employees


def _column_values(rows: list[Sequence], idx: int) -> list[str]:
    seen: list[str] = []
    for row in rows:
        value = cell(row, idx).strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def parse_lookup_options(grid: Optional[Sequence[Sequence]]) -> LookupOptions:
    rows = data_rows(grid, LOOKUP_SENTINEL)
    return LookupOptions(
        permission_types=_column_values(rows, 0),
        leave_types=_column_values(rows, 1),
    )


def parse_task_lookups(grid: Optional[Sequence[Sequence]]) -> TaskLookups:
    rows = data_rows(grid, TASK_LOOKUP_SENTINEL)
    return TaskLookups(
        companies=_column_values(rows, 0),
        platforms=_column_values(rows, 1),
        fulfillments=_column_values(rows, 2),
        tasks=_column_values(rows, 3),
    )


def parse_int(value: str) -> int:
    try:
        return int(float(value.strip()))
    except (ValueError, AttributeError):
        return 0


def parse_timestamp(value: Optional[str], tz_name: str = "UTC") -> Optional[datetime]:
    """Parse a sheet timestamp into an aware UTC datetime, or None.

    Accepts ISO 8601, epoch seconds/milliseconds and common spreadsheet
    formats. Naive values are read in ``tz_name``.
    """
    text = (value or "").strip()
    if not text:
        return None
    tz = pytz.timezone(tz_name)

    parsed: Optional[datetime] = None
    try:
        number = float(text)
    except ValueError:
        number = None
    if number is not None:
        # Date.now() style milliseconds vs. epoch seconds
        seconds = number / 1000.0 if number > 1e11 else number
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = tz.localize(parsed)
    return parsed.astimezone(timezone.utc)


def sort_newest_first(
    records: Sequence[T],
    timestamp_of: Callable[[T], str] = lambda r: r.timestamp,
    tz_name: str = "UTC",
) -> list[T]:
    """Order records newest first by parsed timestamp.

    Records whose timestamp does not parse keep their original index; the
    parsable ones fill the remaining slots in newest-first order. Ties keep
    input order.
    """
    parsed = [parse_timestamp(timestamp_of(r), tz_name) for r in records]
    slots = [i for i, ts in enumerate(parsed) if ts is not None]
    ordered = sorted(slots, key=lambda i: parsed[i], reverse=True)

    result = list(records)
    for slot, source in zip(slots, ordered):
        result[slot] = records[source]
    return result
