# app/core/deps.py
"""FastAPI dependencies."""
from typing import Generator
from sqlalchemy.orm import Session

from app.db import get_db
from app.config import Settings, get_settings


def get_db_session() -> Generator[Session, None, None]:
    """Get database session dependency."""
    yield from get_db()


def get_app_settings() -> Settings:
    """Get application settings dependency."""
    return get_settings()
