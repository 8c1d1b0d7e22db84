"""Leave request API routes — delegates to request_service for the lifecycle."""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from swiftleave.auth import get_current_user, require_manager
from swiftleave.database import get_db
from swiftleave.schemas.employee import AuthenticatedUser, UserProfile
from swiftleave.schemas.request import (
    DecisionIn,
    DecisionOut,
    FormState,
    FormStateIn,
    LogRecordOut,
    RequestDraft,
    SubmitResult,
)
from swiftleave.services import request_service
from swiftleave.services.directory_service import fetch_lookup_options
from swiftleave.services.notification_service import NotificationDispatcher, get_dispatcher
from swiftleave.services.sheet_client import TabularStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=SubmitResult, status_code=status.HTTP_201_CREATED)
def submit_request(
    payload: RequestDraft,
    user: AuthenticatedUser = Depends(get_current_user),
    store: TabularStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Create, persist and announce a leave request for the signed-in user."""
    if not payload.email.strip():
        payload = payload.model_copy(update={"email": user.email})
    req, result = request_service.submit_request(store, dispatcher, payload)
    return SubmitResult(request=req, notified=result.value)


@router.post("/form-state", response_model=FormState)
def evaluate_form(
    payload: FormStateIn,
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
):
    """Re-apply the field policy after the form's classification changed."""
    options = payload.leave_type_options
    if options is None:
        options = fetch_lookup_options(db, store).leave_types
    return request_service.form_state(payload.draft, options)


@router.get("/", response_model=list[LogRecordOut])
def list_requests(
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
    _: UserProfile = Depends(require_manager),
):
    rows = request_service.fetch_log_records(db, store)
    return [LogRecordOut.from_row(r) for r in rows]


@router.get("/mine", response_model=list[LogRecordOut])
def my_requests(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
):
    """The caller's own requests, newest first."""
    rows = request_service.list_for_employee(db, store, user.email)
    return [LogRecordOut.from_row(r) for r in rows]


@router.get("/pending", response_model=list[LogRecordOut])
def approval_queue(
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
    _: UserProfile = Depends(require_manager),
):
    rows = request_service.list_pending(db, store)
    return [LogRecordOut.from_row(r) for r in rows]


@router.get("/history", response_model=list[LogRecordOut])
def decision_history(
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
    _: UserProfile = Depends(require_manager),
):
    rows = request_service.list_history(db, store)
    return [LogRecordOut.from_row(r) for r in rows]


@router.post("/{rid}/decision", response_model=DecisionOut)
def decide_request(
    rid: str,
    payload: DecisionIn,
    store: TabularStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    manager: UserProfile = Depends(require_manager),
):
    """Approve or reject a request in-app, then notify the requester."""
    decision = request_service.parse_decision(payload.status)
    row, result = request_service.decide_and_notify(store, dispatcher, rid, decision, payload.manager_comment)
    logger.info("%s recorded %s on %s", manager.email, decision.value, rid)
    return DecisionOut(record=LogRecordOut.from_row(row), notified=result.value)
