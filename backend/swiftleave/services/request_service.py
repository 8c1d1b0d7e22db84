"""Request lifecycle engine — the only code that creates or transitions requests.

Responsibilities:
- Conditional form-field policy for partial-day permissions
- Validation and request-id minting
- Append-only persistence: exactly one Logs row per request id
- Decisions rewrite status/comment/action cells of that row in place
- Per-request in-flight guard against duplicate concurrent decisions
- Read projections over the Logs sheet (all, mine, queue, history)

State machine: PENDING → APPROVED | REJECTED. Nothing returns to PENDING and
no row is ever deleted.
"""
import logging
import secrets
import string
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator, Optional, Sequence

import pytz
from sqlalchemy.orm import Session

from swiftleave.config import settings
from swiftleave.errors import (
    DecisionAlreadyRecorded,
    DecisionInFlight,
    NotFound,
    ValidationFailed,
)
from swiftleave.models.log_row import (
    LogRow,
    MANAGER_ACTION_COLUMN,
    MANAGER_COMMENT_COLUMN,
    REQUEST_ID_COLUMN,
    STATUS_COLUMN,
)
from swiftleave.models.request import (
    ACTION_FOR_STATUS,
    PERMISSION_ONLY_LEAVE_TYPES,
    STATUS_FOR_ACTION,
    ManagerAction,
    RequestStatus,
    RowType,
)
from swiftleave.schemas.request import FormState, LeaveRequest, RequestDraft
from swiftleave.services.lookup_cache import LOGS_KEY, fetch_with_fallback
from swiftleave.services.normalizer import (
    bind_log_row,
    cell,
    normalize_key,
    parse_log_grid,
    sort_newest_first,
)
from swiftleave.services.notification_service import (
    NotificationDispatcher,
    NotificationKind,
    NotifyResult,
    decision_payload,
    new_request_payload,
)
from swiftleave.services.sheet_client import (
    TabularStore,
    locate_first_available,
    log_range_candidates,
    read_first_available,
    split_range,
)

logger = logging.getLogger(__name__)

REQUEST_ID_PREFIX = "REQ-"
REQUEST_ID_ALPHABET = string.digits + string.ascii_uppercase  # base-36
REQUEST_ID_LENGTH = 8

REQUIRED_FIELDS = (
    ("name", "Full name"),
    ("emp_id", "Employee ID"),
    ("email", "Email"),
    ("permission_type", "Permission type"),
    ("leave_type", "Leave type"),
    ("start_date", "Start date"),
    ("end_date", "End date"),
    ("reason", "Reason"),
)

_PERMISSION_ONLY = {normalize_key(t) for t in PERMISSION_ONLY_LEAVE_TYPES}
_NEEDS_IN_TIME = {normalize_key("FN Permission"), normalize_key("In Between Permission")}
_NEEDS_OUT_TIME = {normalize_key("AN Permission"), normalize_key("In Between Permission")}

_decisions_in_flight: set[str] = set()
_in_flight_lock = threading.Lock()


# ---------------------------------------------------------------------------
# Form-field policy
# ---------------------------------------------------------------------------
def is_permission(permission_type: str) -> bool:
    return normalize_key(permission_type) == "permission"


def is_permission_only(leave_type: str) -> bool:
    return normalize_key(leave_type) in _PERMISSION_ONLY


def time_window(permission_type: str, leave_type: str) -> tuple[bool, bool]:
    """(needs in-time, needs out-time) for a classification."""
    if not is_permission(permission_type):
        return False, False
    lt = normalize_key(leave_type)
    return lt in _NEEDS_IN_TIME, lt in _NEEDS_OUT_TIME


def apply_field_policy(draft: RequestDraft) -> RequestDraft:
    """Clear fields the current classification does not allow.

    Must run after every change of permission_type or leave_type, not only on
    submit, so stale times or leave types never survive a switch.
    """
    updates: dict[str, str] = {}
    if is_permission(draft.permission_type):
        if draft.leave_type and not is_permission_only(draft.leave_type):
            updates["leave_type"] = ""
    elif is_permission_only(draft.leave_type):
        updates["leave_type"] = ""

    needs_in, needs_out = time_window(draft.permission_type, updates.get("leave_type", draft.leave_type))
    if not needs_in:
        updates["requested_in_time"] = ""
    if not needs_out:
        updates["requested_out_time"] = ""
    return draft.model_copy(update=updates)


def filter_leave_type_options(permission_type: str, options: Sequence[str]) -> list[str]:
    """Leave types selectable for a permission type."""
    if is_permission(permission_type):
        from_sheet = [t for t in options if is_permission_only(t)]
        return from_sheet or list(PERMISSION_ONLY_LEAVE_TYPES)
    return [t for t in options if not is_permission_only(t)]


def form_state(draft: RequestDraft, leave_type_options: Sequence[str] = ()) -> FormState:
    cleaned = apply_field_policy(draft)
    needs_in, needs_out = time_window(cleaned.permission_type, cleaned.leave_type)
    return FormState(
        draft=cleaned,
        leave_type_options=filter_leave_type_options(cleaned.permission_type, leave_type_options),
        show_in_time=needs_in,
        show_out_time=needs_out,
    )


# ---------------------------------------------------------------------------
# Create / persist
# ---------------------------------------------------------------------------
def mint_request_id() -> str:
    return REQUEST_ID_PREFIX + "".join(secrets.choice(REQUEST_ID_ALPHABET) for _ in range(REQUEST_ID_LENGTH))


def now_timestamp() -> str:
    return datetime.now(pytz.timezone(settings.TIMEZONE)).isoformat(timespec="seconds")


def format_dates(start_date: str, end_date: str) -> str:
    return f"{start_date} - {end_date}"


def _parse_date(value: str, field: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        raise ValidationFailed(f"{field} must be a date in YYYY-MM-DD format", [field])


def validate_draft(draft: RequestDraft) -> RequestDraft:
    """Apply the field policy and reject incomplete drafts before any network call."""
    cleaned = apply_field_policy(draft)

    missing = [field for field, _ in REQUIRED_FIELDS if not getattr(cleaned, field).strip()]
    needs_in, needs_out = time_window(cleaned.permission_type, cleaned.leave_type)
    if needs_in and not cleaned.requested_in_time.strip():
        missing.append("requested_in_time")
    if needs_out and not cleaned.requested_out_time.strip():
        missing.append("requested_out_time")
    if missing:
        labels = dict(REQUIRED_FIELDS)
        names = ", ".join(labels.get(f, f.replace("_", " ")) for f in missing)
        raise ValidationFailed(f"Missing required fields: {names}", missing)

    start = _parse_date(cleaned.start_date, "start_date")
    end = _parse_date(cleaned.end_date, "end_date")
    if end < start:
        raise ValidationFailed("End date cannot be before start date", ["end_date"])
    return cleaned


def create_request(draft: RequestDraft) -> LeaveRequest:
    """Validate a draft and mint a PENDING request (nothing is written yet)."""
    cleaned = validate_draft(draft)
    return LeaveRequest(
        request_id=mint_request_id(),
        employee_name=cleaned.name,
        employee_email=normalize_key(cleaned.email),
        employee_id=cleaned.emp_id,
        permission_type=cleaned.permission_type,
        leave_type=cleaned.leave_type,
        requested_in_time=cleaned.requested_in_time,
        requested_out_time=cleaned.requested_out_time,
        start_date=cleaned.start_date.strip(),
        end_date=cleaned.end_date.strip(),
        reason=cleaned.reason,
        alternate_staff=cleaned.alternate_staff,
        status=RequestStatus.pending.value,
        timestamp=now_timestamp(),
    )


def to_log_row(req: LeaveRequest) -> LogRow:
    return LogRow(
        timestamp=req.timestamp,
        request_id=req.request_id,
        type=RowType.request.value,
        status=req.status,
        employee_name=req.employee_name,
        employee_email=req.employee_email,
        employee_id=req.employee_id,
        dates=format_dates(req.start_date, req.end_date),
        reason=req.reason,
        manager_comment=req.manager_comment,
        manager_action="",
        permission_type=req.permission_type,
        leave_type=req.leave_type,
        requested_in_time=req.requested_in_time,
        requested_out_time=req.requested_out_time,
        alternate_staff=req.alternate_staff,
    )


def persist_request(store: TabularStore, req: LeaveRequest) -> None:
    """Append the request's single Logs row. The only path that creates rows."""
    store.append_row(settings.SHEET_LOG_RANGE, list(to_log_row(req)))
    logger.info("Persisted request %s for %s", req.request_id, req.employee_email)


def submit_request(
    store: TabularStore,
    dispatcher: NotificationDispatcher,
    draft: RequestDraft,
) -> tuple[LeaveRequest, NotifyResult]:
    """Create → persist → alert the approver with decision deep links.

    A persist failure propagates so the submitter can retry; in that case no
    notification goes out.
    """
    req = create_request(draft)
    persist_request(store, req)
    payload = {**new_request_payload(req), **dispatcher.approval_links(req.request_id)}
    result = dispatcher.notify(NotificationKind.new_request, payload)
    if result != NotifyResult.sent:
        logger.warning("Approver notification for %s not sent: %s", req.request_id, result.value)
    return req, result


# ---------------------------------------------------------------------------
# Decide
# ---------------------------------------------------------------------------
def parse_decision(value: str) -> RequestStatus:
    """Accept APPROVED/REJECTED or the link verbs APPROVE/DENY."""
    token = (value or "").strip().upper()
    if token in (RequestStatus.approved.value, RequestStatus.rejected.value):
        return RequestStatus(token)
    if token in (ManagerAction.approve.value, ManagerAction.deny.value):
        return STATUS_FOR_ACTION[ManagerAction(token)]
    raise ValidationFailed("Decision must be APPROVED or REJECTED", ["status"])


@contextmanager
def decision_guard(request_id: str) -> Iterator[None]:
    """Mark ``request_id`` in flight; a second concurrent decision is refused."""
    with _in_flight_lock:
        if request_id in _decisions_in_flight:
            raise DecisionInFlight(f"A decision for {request_id} is already being processed")
        _decisions_in_flight.add(request_id)
    try:
        yield
    finally:
        with _in_flight_lock:
            _decisions_in_flight.discard(request_id)


def find_request_row(grid: Sequence[Sequence], request_id: str) -> tuple[Optional[int], Optional[LogRow]]:
    """1-based sheet row number and bound row for an exact request-id match."""
    matches = [i for i, raw in enumerate(grid) if cell(raw, REQUEST_ID_COLUMN - 1).strip() == request_id]
    if not matches:
        return None, None
    if len(matches) > 1:
        logger.warning("Request %s appears in %d rows; using the first", request_id, len(matches))
    idx = matches[0]
    return idx + 1, bind_log_row(grid[idx])


def decide(
    store: TabularStore,
    request_id: str,
    decision: RequestStatus,
    comment: str = "",
) -> LogRow:
    """Write a decision into the request's existing row.

    Only the status, manager comment and manager action cells change. An
    unknown id raises NotFound before any write. Deciding an already decided
    request rewrites the cells (logged) unless DECISION_REQUIRE_PENDING is set.
    """
    rid = (request_id or "").strip()
    if decision not in ACTION_FOR_STATUS:
        raise ValidationFailed("Decision must be APPROVED or REJECTED", ["status"])
    if not rid:
        raise NotFound("Request id is required")

    with decision_guard(rid):
        answered_range, grid = locate_first_available(store, log_range_candidates(settings.SHEET_LOG_RANGE))
        row_number, current = find_request_row(grid, rid)
        if row_number is None:
            raise NotFound(f"Request {rid} not found")

        previous = current.status.strip().upper()
        if previous != RequestStatus.pending.value:
            if settings.DECISION_REQUIRE_PENDING:
                raise DecisionAlreadyRecorded(f"Request {rid} is already {previous}")
            logger.warning("Request %s already %s; overwriting with %s", rid, previous, decision.value)

        sheet, _ = split_range(answered_range or settings.SHEET_LOG_RANGE)
        action = ACTION_FOR_STATUS[decision]
        comment = comment or ""
        store.set_cells(sheet, row_number, {
            STATUS_COLUMN: decision.value,
            MANAGER_COMMENT_COLUMN: comment,
            MANAGER_ACTION_COLUMN: action.value,
        })

    logger.info("Request %s %s (row %d)", rid, decision.value, row_number)
    return current._replace(status=decision.value, manager_comment=comment, manager_action=action.value)


def decide_and_notify(
    store: TabularStore,
    dispatcher: NotificationDispatcher,
    request_id: str,
    decision: RequestStatus,
    comment: str = "",
) -> tuple[LogRow, NotifyResult]:
    """Shared by the in-app and email-link entry points: persist, then notify once."""
    row = decide(store, request_id, decision, comment)
    result = dispatcher.notify(NotificationKind.decision, decision_payload(row))
    if result != NotifyResult.sent:
        logger.warning("Requester notification for %s not sent: %s", row.request_id, result.value)
    return row, result


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def fetch_log_records(db: Session, store: TabularStore) -> list[LogRow]:
    """Every Logs row, newest first; the cached copy when the sheet is unreachable."""

    def _remote() -> list[list[str]]:
        grid = read_first_available(store, log_range_candidates(settings.SHEET_LOG_RANGE))
        return [list(row) for row in parse_log_grid(grid)]

    rows = fetch_with_fallback(db, LOGS_KEY, _remote)
    return sort_newest_first([bind_log_row(row) for row in rows], tz_name=settings.TIMEZONE)


def list_for_employee(db: Session, store: TabularStore, email: str) -> list[LogRow]:
    target = normalize_key(email)
    return [r for r in fetch_log_records(db, store) if r.employee_email == target]


def list_pending(db: Session, store: TabularStore) -> list[LogRow]:
    """The approval queue: PENDING rows of type request."""
    return [
        r for r in fetch_log_records(db, store)
        if r.status.strip().upper() == RequestStatus.pending.value
        and normalize_key(r.type) == RowType.request.value
    ]


def list_history(db: Session, store: TabularStore) -> list[LogRow]:
    return [r for r in fetch_log_records(db, store) if r.status.strip().upper() != RequestStatus.pending.value]
