"""Session, directory and lookup API routes."""
import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from swiftleave.auth import decode_identity_assertion, get_current_user
from swiftleave.database import get_db
from swiftleave.schemas.employee import (
    AuthenticatedUser,
    EmployeeRecord,
    LookupOptions,
    SessionIn,
    SessionOut,
)
from swiftleave.services import directory_service
from swiftleave.services.session import SessionContext, get_session_context
from swiftleave.services.sheet_client import TabularStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/session", response_model=SessionOut)
def sign_in(
    payload: SessionIn,
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
    ctx: SessionContext = Depends(get_session_context),
):
    """Exchange an identity credential for the caller's profile and role."""
    user = decode_identity_assertion(payload.credential)
    profile, message = ctx.load(db, store, user)
    logger.info("Session for %s resolved as %s", user.email, profile.role)
    return SessionOut(user=user, profile=profile, message=message)


@router.delete("/session", status_code=status.HTTP_204_NO_CONTENT)
def sign_out(
    user: AuthenticatedUser = Depends(get_current_user),
    ctx: SessionContext = Depends(get_session_context),
):
    """Forget the caller's cached role."""
    ctx.clear(user.email)


@router.get("/directory", response_model=list[EmployeeRecord])
def employee_directory(
    _: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
    ctx: SessionContext = Depends(get_session_context),
):
    return ctx.refresh_directory(db, store)


@router.get("/directory/alternates", response_model=list[EmployeeRecord])
def alternate_staff(
    _: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
):
    """Employees selectable as cover while the requester is away."""
    return directory_service.list_alternate_staff(db, store)


@router.get("/lookups", response_model=LookupOptions)
def lookup_options(
    db: Session = Depends(get_db),
    store: TabularStore = Depends(get_store),
):
    return directory_service.fetch_lookup_options(db, store)
