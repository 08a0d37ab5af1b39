# app/core/exceptions.py
"""Custom exceptions."""
from fastapi import HTTPException, status


class ReplayException(Exception):
    """Base exception for the race replay backend."""
    pass


class RaceNotFoundException(ReplayException):
    """Raised when a race is not found at the source or in the store."""
    pass


class GeometryNotFoundException(ReplayException):
    """Raised when no circuit mapping or boundary feature exists for a circuit."""
    pass


class UnsupportedGeometryException(ReplayException):
    """Raised when a boundary feature has a geometry kind we cannot reduce to a path."""
    pass


class TrackGeometryException(ReplayException):
    """Raised when an outline is too small to parameterize."""
    pass


class NoLapDataException(ReplayException):
    """Raised when a race has no lap data at all."""
    pass


class NoTimingDataException(ReplayException):
    """Raised when neither laps nor positions carry a timestamp."""
    pass


class FetchFailedException(ReplayException):
    """Raised when an upstream fetch fails or exhausts its retries."""

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TimelineInvariantError(ReplayException):
    """Raised when an assembled record has a time value outside the playback window."""
    pass


def race_not_found(session_key: int) -> HTTPException:
    """Create HTTPException for race not found."""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Race with session key {session_key} not found"
    )


def no_race_available() -> HTTPException:
    """Create HTTPException for an empty race store."""
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="No races cached yet, please wait"
    )
