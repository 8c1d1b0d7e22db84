"""Employee directory, role resolution and form lookups."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from swiftleave.config import settings
from swiftleave.models.request import UserRole
from swiftleave.schemas.employee import EmployeeRecord, LookupOptions, UserProfile
from swiftleave.services.lookup_cache import (
    DIRECTORY_KEY,
    LOOKUPS_KEY,
    RoleCache,
    fetch_with_fallback,
)
from swiftleave.services.normalizer import normalize_key, parse_employees, parse_lookup_options
from swiftleave.services.sheet_client import TabularStore

logger = logging.getLogger(__name__)


def fetch_employee_directory(db: Session, store: TabularStore) -> list[EmployeeRecord]:
    """Directory from the sheet, or the last cached copy when the sheet is unreachable."""

    def _remote() -> list[dict]:
        grid = store.read_range(settings.SHEET_EMPLOYEE_RANGE)
        return [emp.model_dump() for emp in parse_employees(grid)]

    rows = fetch_with_fallback(db, DIRECTORY_KEY, _remote)
    return [EmployeeRecord(**row) for row in rows]


def find_employee(db: Session, store: TabularStore, email: str) -> Optional[EmployeeRecord]:
    normalized = normalize_key(email)
    if not normalized:
        return None
    for emp in fetch_employee_directory(db, store):
        if emp.email == normalized:
            return emp
    return None


def fetch_user_role(
    db: Session,
    store: TabularStore,
    role_cache: RoleCache,
    email: str,
) -> Optional[UserProfile]:
    """Resolve an email to a profile, short-circuiting through ``role_cache``."""
    normalized = normalize_key(email)
    if not normalized:
        return None

    cached = role_cache.get(normalized)
    if cached:
        return cached

    match = find_employee(db, store, normalized)
    if not match:
        logger.info("No directory entry for %s", normalized)
        return None

    profile = UserProfile(email=match.email, name=match.name, role=match.role)
    role_cache.put(profile)
    return profile


def list_alternate_staff(db: Session, store: TabularStore) -> list[EmployeeRecord]:
    """Colleagues who can cover for a requester (plain employees only)."""
    return [emp for emp in fetch_employee_directory(db, store) if emp.role == UserRole.employee.value]


def fetch_lookup_options(db: Session, store: TabularStore) -> LookupOptions:
    def _remote() -> dict:
        grid = store.read_range(settings.SHEET_LOOKUP_RANGE)
        return parse_lookup_options(grid).model_dump()

    data = fetch_with_fallback(db, LOOKUPS_KEY, _remote, default=dict)
    return LookupOptions(**data)
