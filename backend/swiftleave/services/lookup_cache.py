"""Resilient lookup cache — last good remote read per dataset, served on failure.

The cache stores the *normalized* JSON form of a dataset in the
``cache_entries`` table. Entries are keyed by logical dataset name
(``directory``, ``logs``, ``lookups``, ...), never per request. There is no
locking: when two fetches for the same key overlap, the one that resolves last
wins.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from swiftleave.errors import ConfigMissing, RemoteUnavailable
from swiftleave.models.cache_entry import CacheEntry
from swiftleave.schemas.employee import UserProfile

logger = logging.getLogger(__name__)

DIRECTORY_KEY = "directory"
LOGS_KEY = "logs"
LOOKUPS_KEY = "lookups"
TASK_LOOKUPS_KEY = "task_lookups"
TASK_LOGS_KEY = "task_logs"


def load_cached(db: Session, dataset_key: str) -> Optional[Any]:
    """Return the cached payload for ``dataset_key`` or None."""
    try:
        entry = db.query(CacheEntry).filter(CacheEntry.dataset_key == dataset_key).first()
    except SQLAlchemyError:
        logger.exception("Failed to read cache entry %s", dataset_key)
        db.rollback()
        return None
    return entry.payload if entry else None


def save_cached(db: Session, dataset_key: str, payload: Any) -> None:
    """Upsert ``payload`` under ``dataset_key``. Cache write failures are logged only."""
    try:
        entry = db.query(CacheEntry).filter(CacheEntry.dataset_key == dataset_key).first()
        if entry is None:
            entry = CacheEntry(dataset_key=dataset_key, payload=payload)
            db.add(entry)
        else:
            entry.payload = payload
            entry.updated_at = datetime.now(timezone.utc)
        db.commit()
    except SQLAlchemyError:
        logger.exception("Failed to write cache entry %s", dataset_key)
        db.rollback()


def fetch_with_fallback(
    db: Session,
    dataset_key: str,
    remote_fetch: Callable[[], Any],
    default: Callable[[], Any] = list,
) -> Any:
    """Run ``remote_fetch``; cache and return its result, or fall back.

    ``remote_fetch`` must return a JSON-serializable, already normalized value.
    On RemoteUnavailable/ConfigMissing the last cached value is returned, or
    ``default()`` when nothing was ever cached. The failure is logged, never
    raised.
    """
    try:
        value = remote_fetch()
    except (RemoteUnavailable, ConfigMissing) as exc:
        cached = load_cached(db, dataset_key)
        logger.warning(
            "Remote fetch for '%s' failed (%s); serving %s",
            dataset_key, exc.detail, "cached copy" if cached is not None else "empty result",
        )
        return cached if cached is not None else default()

    save_cached(db, dataset_key, value)
    return value


class RoleCache:
    """Normalized email → resolved UserProfile, kept until evicted."""

    def __init__(self):
        self._profiles: dict[str, UserProfile] = {}
        self._lock = threading.Lock()

    def get(self, email: str) -> Optional[UserProfile]:
        with self._lock:
            return self._profiles.get(email.strip().lower())

    def put(self, profile: UserProfile) -> None:
        with self._lock:
            self._profiles[profile.email.strip().lower()] = profile

    def evict(self, email: str) -> None:
        with self._lock:
            self._profiles.pop(email.strip().lower(), None)

    def __len__(self) -> int:
        return len(self._profiles)
