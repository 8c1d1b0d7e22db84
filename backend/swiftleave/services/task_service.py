"""Task ledger — daily work entries appended to the TaskLogs sheet."""
import logging
import secrets
from datetime import date
from typing import Optional

import pytz
from sqlalchemy.orm import Session

from swiftleave.config import settings
from swiftleave.errors import ValidationFailed
from swiftleave.models.log_row import TaskLogRow
from swiftleave.schemas.employee import UserProfile
from swiftleave.schemas.task import TaskDraft, TaskEntry, TaskLookups
from swiftleave.services.lookup_cache import TASK_LOGS_KEY, TASK_LOOKUPS_KEY, fetch_with_fallback
from swiftleave.services.normalizer import (
    bind_task_log_row,
    normalize_key,
    parse_int,
    parse_task_log_grid,
    parse_task_lookups,
    parse_timestamp,
    sort_newest_first,
)
from swiftleave.services.notification_service import NotificationDispatcher, NotificationKind, NotifyResult
from swiftleave.services.request_service import REQUEST_ID_ALPHABET, REQUEST_ID_LENGTH, now_timestamp
from swiftleave.services.sheet_client import TabularStore

logger = logging.getLogger(__name__)

TASK_ID_PREFIX = "TASK-"
FULFILLMENT_PLATFORMS = {"amazon", "flipkart"}
MATERIAL_PLATFORM = "material"
MATERIAL_TASK = "Inward"


def mint_task_id() -> str:
    return TASK_ID_PREFIX + "".join(secrets.choice(REQUEST_ID_ALPHABET) for _ in range(REQUEST_ID_LENGTH))


def needs_fulfillment(platform: str) -> bool:
    return normalize_key(platform) in FULFILLMENT_PLATFORMS


def apply_task_rules(draft: TaskDraft) -> TaskDraft:
    """Clear fulfillment where the platform has none; Material is always Inward."""
    updates = {}
    if not needs_fulfillment(draft.platform):
        updates["fulfillment"] = ""
    if normalize_key(draft.platform) == MATERIAL_PLATFORM:
        updates["task"] = MATERIAL_TASK
    return draft.model_copy(update=updates)


def validate_task(draft: TaskDraft) -> TaskDraft:
    cleaned = apply_task_rules(draft)
    missing = [f for f in ("company", "platform", "task") if not getattr(cleaned, f).strip()]
    if needs_fulfillment(cleaned.platform) and not cleaned.fulfillment.strip():
        missing.append("fulfillment")
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", missing)
    if cleaned.quantity <= 0:
        raise ValidationFailed("Quantity must be greater than zero", ["quantity"])
    if cleaned.claimed_quantity < 0:
        raise ValidationFailed("Claimed quantity cannot be negative", ["claimed_quantity"])
    return cleaned


def to_task_log_row(entry: TaskEntry) -> TaskLogRow:
    return TaskLogRow(
        timestamp=entry.timestamp,
        task_id=entry.task_id,
        employee_email=entry.employee_email,
        employee_name=entry.employee_name,
        company=entry.company,
        platform=entry.platform,
        fulfillment=entry.fulfillment,
        task=entry.task,
        quantity=str(entry.quantity),
        claimed_quantity=str(entry.claimed_quantity),
    )


def to_task_entry(row: TaskLogRow) -> TaskEntry:
    return TaskEntry(
        task_id=row.task_id,
        employee_email=row.employee_email,
        employee_name=row.employee_name,
        company=row.company,
        platform=row.platform,
        fulfillment=row.fulfillment,
        task=row.task,
        quantity=parse_int(row.quantity),
        claimed_quantity=parse_int(row.claimed_quantity),
        timestamp=row.timestamp,
    )


def task_payload(entry: TaskEntry) -> dict:
    return {
        "taskId": entry.task_id,
        "employeeEmail": entry.employee_email,
        "employeeName": entry.employee_name,
        "company": entry.company,
        "platform": entry.platform,
        "fulfillment": entry.fulfillment,
        "task": entry.task,
        "quantity": entry.quantity,
        "claimedQuantity": entry.claimed_quantity,
        "timestamp": entry.timestamp,
    }


def submit_task(
    store: TabularStore,
    dispatcher: NotificationDispatcher,
    user: UserProfile,
    draft: TaskDraft,
) -> tuple[TaskEntry, NotifyResult]:
    cleaned = validate_task(draft)
    entry = TaskEntry(
        task_id=mint_task_id(),
        employee_email=normalize_key(user.email),
        employee_name=user.name or user.email,
        company=cleaned.company.strip(),
        platform=cleaned.platform.strip(),
        fulfillment=cleaned.fulfillment.strip(),
        task=cleaned.task.strip(),
        quantity=cleaned.quantity,
        claimed_quantity=cleaned.claimed_quantity,
        timestamp=now_timestamp(),
    )
    store.append_row(settings.SHEET_TASK_LOG_RANGE, list(to_task_log_row(entry)))
    logger.info("Logged task %s for %s", entry.task_id, entry.employee_email)

    result = dispatcher.notify(NotificationKind.task, task_payload(entry))
    return entry, result


def fetch_task_lookups(db: Session, store: TabularStore) -> TaskLookups:
    def _remote() -> dict:
        return parse_task_lookups(store.read_range(settings.SHEET_TASK_LOOKUP_RANGE)).model_dump()

    return TaskLookups(**fetch_with_fallback(db, TASK_LOOKUPS_KEY, _remote, default=dict))


def fetch_task_entries(db: Session, store: TabularStore) -> list[TaskEntry]:
    def _remote() -> list[list[str]]:
        return [list(row) for row in parse_task_log_grid(store.read_range(settings.SHEET_TASK_LOG_RANGE))]

    rows = fetch_with_fallback(db, TASK_LOGS_KEY, _remote)
    entries = [to_task_entry(bind_task_log_row(row)) for row in rows]
    return sort_newest_first(entries, tz_name=settings.TIMEZONE)


def list_tasks_for_employee(db: Session, store: TabularStore, email: str) -> list[TaskEntry]:
    target = normalize_key(email)
    return [e for e in fetch_task_entries(db, store) if e.employee_email == target]


def _entry_date(entry: TaskEntry) -> Optional[date]:
    parsed = parse_timestamp(entry.timestamp, settings.TIMEZONE)
    if parsed is None:
        return None
    return parsed.astimezone(pytz.timezone(settings.TIMEZONE)).date()


def task_report(
    db: Session,
    store: TabularStore,
    search: str = "",
    company: str = "",
    platform: str = "",
    from_date: Optional[date] = None,
    to_date: Optional[date] = None,
) -> list[TaskEntry]:
    """Manager report; every filter is optional and the date range is inclusive.

    Entries whose timestamp cannot be parsed are excluded once a date bound is
    given.
    """
    term = normalize_key(search)
    results = []
    for entry in fetch_task_entries(db, store):
        if term and term not in entry.employee_name.lower() and term not in entry.employee_email:
            continue
        if company and normalize_key(entry.company) != normalize_key(company):
            continue
        if platform and normalize_key(entry.platform) != normalize_key(platform):
            continue
        if from_date or to_date:
            day = _entry_date(entry)
            if day is None:
                continue
            if from_date and day < from_date:
                continue
            if to_date and day > to_date:
                continue
        results.append(entry)
    return results
