"""Task ledger API routes."""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from swiftleave.auth import get_current_profile, get_current_user, require_manager
from swiftleave.database import get_db
from swiftleave.schemas.employee import AuthenticatedUser, UserProfile
from swiftleave.schemas.task import TaskDraft, TaskEntry, TaskLookups, TaskSubmitOut
from swiftleave.services import task_service
from swiftleave.services.notification_service import NotificationDispatcher, get_dispatcher
from swiftleave.services.sheet_client import TabularStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=TaskSubmitOut, status_code=status.HTTP_201_CREATED)
def log_task(
    payload: TaskDraft,
    profile: UserProfile = Depends(get_current_profile),
    store: TabularStore = Depends(get_store),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    entry, result = task_service.submit_task(store, dispatcher, profile, payload)
    return TaskSubmitOut(entry=entry, notified=result.value)


@router.get("/", response_model=list[TaskEntry])
def task_report(
    search: str = Query(""),
    company: str = Query(""),
    platform: str = Query(""),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
    _: UserProfile = Depends(require_manager),
):
    """All logged tasks, filtered for the manager report."""
    return task_service.task_report(
        db, store,
        search=search,
        company=company,
        platform=platform,
        from_date=from_date,
        to_date=to_date,
    )


@router.get("/mine", response_model=list[TaskEntry])
def my_tasks(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
):
    return task_service.list_tasks_for_employee(db, store, user.email)


@router.get("/lookups", response_model=TaskLookups)
def task_lookups(
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
):
    return task_service.fetch_task_lookups(db, store)
