"""
Database session management using SQLAlchemy 2.x.
"""
from typing import Generator
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker, Session
from app.config import get_settings
from app.models.base import Base
from app.models import race  # noqa: F401  (registers the race store tables)

settings = get_settings()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the race store.

    SQLite gets thread-sharing enabled (the API serves from a threadpool);
    server databases get a connection pool.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20
    )


# Create SQLAlchemy engine
engine = create_db_engine(settings.database_url, echo=settings.debug)

# Create SessionLocal factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


def init_db(bind: Engine | None = None) -> None:
    """Create the race store tables if they do not exist."""
    Base.metadata.create_all(bind or engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that provides a database session.

    Yields:
        Session: SQLAlchemy database session

    Usage:
        @app.get("/")
        def read_root(db: Session = Depends(get_db)):
            # use db here
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
