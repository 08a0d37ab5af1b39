"""
Race store queries: finished records, rejected sessions and the session list cache.
"""
import json
import random
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.exceptions import RaceNotFoundException
from app.core.logging import get_logger
from app.models.base import utcnow
from app.models.race import CachedRace, RejectedSession, SessionList
from app.schemas.replay import CanonicalRaceRecord
from app.schemas.sources import SESSIONS_ADAPTER, OpenF1Session

logger = get_logger(__name__)

SESSION_LIST_MAX_AGE = timedelta(hours=24)


def get_race_json(db: Session, session_key: int) -> str:
    """Get a stored record's JSON document."""
    race = db.get(CachedRace, session_key)
    if not race:
        raise RaceNotFoundException(f"Race {session_key} not found")
    return race.data


def get_race(db: Session, session_key: int) -> CanonicalRaceRecord:
    """Get a stored record."""
    return CanonicalRaceRecord.model_validate_json(get_race_json(db, session_key))


def save_race(db: Session, session_key: int, record: CanonicalRaceRecord) -> bool:
    """
    Store a finished record.

    Records are immutable once written: an existing key is left untouched.

    Returns:
        True if the record was written, False if the key already existed
    """
    if db.get(CachedRace, session_key) is not None:
        logger.warning(f"Race {session_key} already stored, keeping existing record")
        return False

    db.add(CachedRace(session_key=session_key, title=record.title, data=record.to_json()))
    db.flush()
    logger.info(f"Stored race {session_key}: {record.title}")
    return True


def get_cached_race_keys(db: Session) -> list[int]:
    stmt = select(CachedRace.session_key).order_by(CachedRace.session_key)
    return list(db.execute(stmt).scalars().all())


def get_race_titles(db: Session) -> list[tuple[int, str]]:
    stmt = select(CachedRace.session_key, CachedRace.title).order_by(CachedRace.session_key)
    return [(key, title) for key, title in db.execute(stmt).all()]


def pick_race_key(
    db: Session,
    exclude: int | None = None,
    force_key: int | None = None,
    rng: random.Random | None = None,
) -> int | None:
    """
    Choose the race to serve.

    A forced key wins if it is stored. Otherwise a random stored race,
    avoiding `exclude` unless it is the only one.
    """
    keys = get_cached_race_keys(db)
    if not keys:
        return None
    if force_key is not None and force_key in keys:
        return force_key

    candidates = [k for k in keys if k != exclude] or keys
    return (rng or random).choice(candidates)


def is_rejected(db: Session, session_key: int) -> bool:
    return db.get(RejectedSession, session_key) is not None


def set_rejected(db: Session, session_key: int) -> None:
    if not is_rejected(db, session_key):
        db.add(RejectedSession(session_key=session_key))
        db.flush()


def get_session_list(db: Session, max_age: timedelta = SESSION_LIST_MAX_AGE) -> list[OpenF1Session] | None:
    """Cached upstream session list, or None if missing or older than `max_age`."""
    row = db.get(SessionList, 1)
    if row is None or utcnow() - row.fetched_at > max_age:
        return None
    return SESSIONS_ADAPTER.validate_json(row.data)


def set_session_list(db: Session, sessions: list[OpenF1Session]) -> None:
    data = json.dumps([s.model_dump(mode="json") for s in sessions])
    row = db.get(SessionList, 1)
    if row is None:
        db.add(SessionList(id=1, data=data, fetched_at=utcnow()))
    else:
        row.data = data
        row.fetched_at = utcnow()
    db.flush()
