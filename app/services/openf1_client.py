"""
OpenF1 live telemetry provider.
"""
from datetime import datetime, timezone
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from app.config import Settings
from app.core.exceptions import FetchFailedException
from app.core.logging import get_logger
from app.schemas.sources import (
    DRIVERS_ADAPTER,
    LAPS_ADAPTER,
    LOCATIONS_ADAPTER,
    POSITIONS_ADAPTER,
    RACE_CONTROL_ADAPTER,
    SESSIONS_ADAPTER,
    STINTS_ADAPTER,
    OpenF1Driver,
    OpenF1Lap,
    OpenF1Location,
    OpenF1Position,
    OpenF1RaceControl,
    OpenF1Session,
    OpenF1Stint,
)
from app.services.http_client import JsonApiClient

logger = get_logger(__name__)


class OpenF1Client(JsonApiClient):
    """
    Client for the OpenF1 REST API.

    OpenF1 answers 404 when a query matches nothing; that is returned as an
    empty list rather than an error.
    """

    source_name = "OpenF1"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(
            settings.openf1_base_url,
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            retry_backoff_s=settings.retry_backoff_s,
            transport=transport,
        )

    async def _fetch_list(self, path: str, adapter: TypeAdapter, **params: Any) -> list:
        try:
            data = await self.fetch_json(path, params=params)
        except FetchFailedException as e:
            if e.status_code == 404:
                return []
            raise
        try:
            return adapter.validate_python(data)
        except ValidationError as e:
            logger.error(f"Unexpected {path} payload from OpenF1: {e.error_count()} errors")
            raise FetchFailedException(
                f"Unexpected OpenF1 payload for {path}", url=f"{self.base_url}/{path}"
            ) from e

    async def get_race_sessions(self, from_year: int, now: datetime | None = None) -> list[OpenF1Session]:
        """All race and sprint sessions from `from_year` that have already started."""
        now = now or datetime.now(timezone.utc)
        sessions: list[OpenF1Session] = []
        for year in range(from_year, now.year + 1):
            sessions.extend(
                await self._fetch_list("sessions", SESSIONS_ADAPTER, session_type="Race", year=year)
            )
        return [s for s in sessions if s.date_start and s.date_start < now]

    async def probe_location_data(self, session_key: int) -> bool:
        """Whether the first roster driver has any real (non-sentinel) trajectory sample."""
        drivers = await self.get_drivers(session_key)
        if not drivers:
            return False
        samples = await self.get_driver_locations(session_key, drivers[0].driver_number)
        return any(not s.is_sentinel for s in samples)

    async def get_drivers(self, session_key: int) -> list[OpenF1Driver]:
        return await self._fetch_list("drivers", DRIVERS_ADAPTER, session_key=session_key)

    async def get_positions(self, session_key: int) -> list[OpenF1Position]:
        return await self._fetch_list("position", POSITIONS_ADAPTER, session_key=session_key)

    async def get_laps(self, session_key: int) -> list[OpenF1Lap]:
        return await self._fetch_list("laps", LAPS_ADAPTER, session_key=session_key)

    async def get_race_control(self, session_key: int) -> list[OpenF1RaceControl]:
        return await self._fetch_list("race_control", RACE_CONTROL_ADAPTER, session_key=session_key)

    async def get_stints(self, session_key: int) -> list[OpenF1Stint]:
        return await self._fetch_list("stints", STINTS_ADAPTER, session_key=session_key)

    async def get_driver_locations(self, session_key: int, driver_number: int) -> list[OpenF1Location]:
        return await self._fetch_list(
            "location",
            LOCATIONS_ADAPTER,
            session_key=session_key,
            driver_number=driver_number,
        )
