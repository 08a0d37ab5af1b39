"""
Ergast (jolpica mirror) results and lap timing provider.
"""
from typing import Any

import httpx

from app.config import Settings
from app.core.exceptions import FetchFailedException
from app.core.logging import get_logger
from app.schemas.sources import ErgastLapTiming, ErgastPitStop, ErgastRace, ErgastResult
from app.services.http_client import JsonApiClient

logger = get_logger(__name__)

# The API caps responses at ~100 timing records regardless of `limit`
PAGE_SIZE = 100


def _race_table(data: dict[str, Any]) -> list[dict[str, Any]]:
    return data.get("MRData", {}).get("RaceTable", {}).get("Races", [])


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_result(raw: dict[str, Any]) -> ErgastResult:
    driver = raw.get("Driver", {})
    constructor = raw.get("Constructor", {})
    return ErgastResult(
        driver_id=driver.get("driverId", ""),
        number=_int_or_none(raw.get("number")) or 0,
        code=driver.get("code"),
        given_name=driver.get("givenName", ""),
        family_name=driver.get("familyName", ""),
        constructor_id=constructor.get("constructorId", ""),
        constructor_name=constructor.get("name", "Unknown"),
        grid=_int_or_none(raw.get("grid")) or 0,
        status=raw.get("status", ""),
        position=_int_or_none(raw.get("position")),
    )


def parse_race(raw: dict[str, Any]) -> ErgastRace:
    circuit = raw.get("Circuit", {})
    location = circuit.get("Location", {})
    lat = location.get("lat")
    lon = location.get("long")
    return ErgastRace(
        season=int(raw["season"]),
        round=int(raw["round"]),
        race_name=raw.get("raceName", ""),
        date=raw.get("date"),
        circuit_id=circuit.get("circuitId", ""),
        circuit_name=circuit.get("circuitName", ""),
        lat=float(lat) if lat else None,
        lon=float(lon) if lon else None,
        results=[parse_result(r) for r in raw.get("Results", [])],
    )


class ErgastClient(JsonApiClient):
    """Client for the Ergast-compatible results API."""

    source_name = "Ergast"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(
            settings.ergast_base_url,
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            retry_backoff_s=settings.retry_backoff_s,
            transport=transport,
        )
        self.pit_stop_cutoff_season = settings.pit_stop_cutoff_season

    async def get_season(self, year: int) -> list[ErgastRace]:
        """Race calendar of a season (no results)."""
        data = await self.fetch_json(f"{year}.json")
        return [parse_race(r) for r in _race_table(data)]

    async def get_race_results(self, year: int, round_num: int) -> ErgastRace | None:
        """Race metadata with classified results, or None if the race does not exist."""
        data = await self.fetch_json(f"{year}/{round_num}/results.json")
        races = _race_table(data)
        return parse_race(races[0]) if races else None

    async def get_laps(self, year: int, round_num: int) -> list[ErgastLapTiming]:
        """
        All lap timings of a race, sorted by lap number.

        The API paginates by timing record (laps x drivers), not by lap, so a
        lap's timings can be split over two pages.
        """
        timings_by_lap: dict[int, list[ErgastLapTiming]] = {}
        offset = 0

        while True:
            data = await self.fetch_json(
                f"{year}/{round_num}/laps.json",
                params={"limit": PAGE_SIZE, "offset": offset},
            )
            total = int(data.get("MRData", {}).get("total", 0))
            races = _race_table(data)
            race_laps = races[0].get("Laps", []) if races else []
            if not race_laps:
                break

            for lap in race_laps:
                lap_number = int(lap["number"])
                bucket = timings_by_lap.setdefault(lap_number, [])
                for timing in lap.get("Timings", []):
                    bucket.append(ErgastLapTiming(
                        lap_number=lap_number,
                        driver_id=timing.get("driverId", ""),
                        time=timing.get("time"),
                        position=_int_or_none(timing.get("position")),
                    ))

            offset += PAGE_SIZE
            if offset >= total:
                break

        return [t for lap_number in sorted(timings_by_lap) for t in timings_by_lap[lap_number]]

    async def get_pit_stops(self, year: int, round_num: int) -> list[ErgastPitStop]:
        """
        Pit stops of a race.

        Stop records only exist from the cutoff season on; earlier seasons and
        failed fetches give an empty list.
        """
        if year < self.pit_stop_cutoff_season:
            return []

        try:
            data = await self.fetch_json(
                f"{year}/{round_num}/pitstops.json", params={"limit": PAGE_SIZE}
            )
        except FetchFailedException as e:
            logger.warning(f"No pit stop data for {year} round {round_num}: {e}")
            return []

        races = _race_table(data)
        raw_stops = races[0].get("PitStops", []) if races else []
        return [
            ErgastPitStop(driver_id=s.get("driverId", ""), lap=int(s["lap"]))
            for s in raw_stops
            if _int_or_none(s.get("lap")) is not None
        ]
