from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class CachedRace(Base, TimestampMixin):
    """
    A finished canonical race record, stored as its JSON document.

    Keyed by OpenF1 session key; historical races use negative synthetic keys.
    Written once, never updated.
    """

    __tablename__ = "races"

    session_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    data: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<CachedRace(session_key={self.session_key}, title={self.title!r})>"


class RejectedSession(Base, TimestampMixin):
    """Live session known to have no usable trajectory data."""

    __tablename__ = "rejected_sessions"

    session_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    def __repr__(self) -> str:
        return f"<RejectedSession(session_key={self.session_key})>"


class SessionList(Base):
    """Single-row cache of the upstream race session list."""

    __tablename__ = "session_list"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=1)
    data: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<SessionList(fetched_at={self.fetched_at})>"
