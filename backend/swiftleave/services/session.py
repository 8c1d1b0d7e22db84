"""Session context — role cache and directory snapshot with explicit lifecycle.

One SessionContext lives on ``app.state`` and is injected into every route
that needs it. ``load`` resolves a signed-in user's role; ``clear`` forgets one
user's resolved role on sign-out. The durable directory entry is a fallback
for role resolution and outlives every session.

Refreshes are ticketed per view: each refresh takes a monotonically increasing
ticket and only the holder of the newest ticket may publish its result, so a
slow earlier refresh never overwrites a newer one.
"""
import itertools
import logging
import threading
from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from swiftleave.schemas.employee import AuthenticatedUser, EmployeeRecord, UserProfile
from swiftleave.services import directory_service
from swiftleave.services.lookup_cache import RoleCache
from swiftleave.services.sheet_client import TabularStore

logger = logging.getLogger(__name__)


class SessionContext:
    def __init__(self, role_cache: Optional[RoleCache] = None):
        self.role_cache = role_cache or RoleCache()
        self.directory: list[EmployeeRecord] = []
        self._counter = itertools.count(1)
        self._latest: dict[str, int] = {}
        self._lock = threading.Lock()

    def begin_refresh(self, view: str) -> int:
        with self._lock:
            ticket = next(self._counter)
            self._latest[view] = ticket
            return ticket

    def is_current(self, view: str, ticket: int) -> bool:
        with self._lock:
            return self._latest.get(view) == ticket

    def refresh_directory(self, db: Session, store: TabularStore) -> list[EmployeeRecord]:
        """Fetch the directory and publish it unless a newer refresh started meanwhile."""
        ticket = self.begin_refresh("directory")
        records = directory_service.fetch_employee_directory(db, store)
        if self.is_current("directory", ticket):
            self.directory = records
        else:
            logger.debug("Discarding stale directory refresh (ticket %d)", ticket)
        return records

    def load(self, db: Session, store: TabularStore, user: AuthenticatedUser) -> tuple[UserProfile, str]:
        """Resolve ``user``'s role; unknown users fall back to employee access."""
        profile = directory_service.fetch_user_role(db, store, self.role_cache, user.email)
        if profile:
            return profile, f"Signed in as {profile.name or profile.email} ({profile.role})"

        fallback = UserProfile(email=user.email.strip().lower(), name=user.name, role="employee")
        return fallback, "Could not verify role from Sheets; defaulting to employee access."

    def clear(self, email: str) -> None:
        """Forget ``email``'s resolved role; other users' entries stay cached."""
        self.role_cache.evict(email)
        logger.info("Cleared cached role for %s", email)


def get_session_context(request: Request) -> SessionContext:
    """FastAPI dependency — the process-wide session context."""
    return request.app.state.session_context
