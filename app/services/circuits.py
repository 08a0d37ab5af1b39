"""
Circuit reference data and the boundary-geometry (GeoJSON) provider.
"""
import json
from pathlib import Path
from typing import Any

import httpx

from app.config import Settings
from app.core.logging import get_logger
from app.schemas.geometry import CircuitCoords
from app.services.http_client import JsonApiClient

logger = get_logger(__name__)


# Ergast circuitId -> substring of the GeoJSON feature name.
# Not in the GeoJSON (generation fails for these): yeongam, buddh, valencia,
# fuji, adelaide, jerez, aida, donington.
CIRCUIT_NAME_MAPPING: dict[str, str] = {
    "albert_park": "Albert Park",
    "bahrain": "Bahrain",
    "shanghai": "Shanghai",
    "baku": "Baku",
    "catalunya": "Barcelona",
    "monaco": "Monaco",
    "villeneuve": "Gilles-Villeneuve",
    "ricard": "Paul Ricard",
    "spielberg": "Red Bull Ring",
    "red_bull_ring": "Red Bull Ring",
    "silverstone": "Silverstone",
    "hockenheimring": "Hockenheim",
    "hungaroring": "Hungaroring",
    "spa": "Spa-Francorchamps",
    "monza": "Monza",
    "marina_bay": "Marina Bay",
    "suzuka": "Suzuka",
    "losail": "Losail",
    "americas": "Circuit of the Americas",
    "rodriguez": "Hermanos Rodríguez",
    "interlagos": "Interlagos",
    "yas_marina": "Yas Marina",
    "jeddah": "Jeddah",
    "miami": "Miami",
    "vegas": "Las Vegas",
    "zandvoort": "Zandvoort",
    "imola": "Enzo e Dino Ferrari",
    "portimao": "Algarve",
    "mugello": "Mugello",
    "nurburgring": "Nürburgring",
    "istanbul": "Istanbul",
    "sochi": "Sochi",
    "sepang": "Sepang",
    "magny_cours": "Magny-Cours",
    "indianapolis": "Indianapolis",
    "kyalami": "Kyalami",
    "estoril": "Estoril",
    "galvez": "Gálvez",
    "jacarepagua": "Nelson Piquet",
}

# OpenF1 circuit_short_name -> location
CIRCUIT_COORDS: dict[str, CircuitCoords] = {
    "Sakhir": CircuitCoords(lat=26.0325, lon=50.5106),
    "Jeddah": CircuitCoords(lat=21.6319, lon=39.1044),
    "Melbourne": CircuitCoords(lat=-37.8497, lon=144.9680),
    "Baku": CircuitCoords(lat=40.3725, lon=49.8533),
    "Miami": CircuitCoords(lat=25.9581, lon=-80.2389),
    "Imola": CircuitCoords(lat=44.3439, lon=11.7167),
    "Monte Carlo": CircuitCoords(lat=43.7347, lon=7.4206),
    "Catalunya": CircuitCoords(lat=41.5700, lon=2.2611),
    "Montreal": CircuitCoords(lat=45.5000, lon=-73.5228),
    "Spielberg": CircuitCoords(lat=47.2197, lon=14.7647),
    "Silverstone": CircuitCoords(lat=52.0786, lon=-1.0169),
    "Hungaroring": CircuitCoords(lat=47.5789, lon=19.2486),
    "Spa-Francorchamps": CircuitCoords(lat=50.4372, lon=5.9714),
    "Zandvoort": CircuitCoords(lat=52.3888, lon=4.5409),
    "Monza": CircuitCoords(lat=45.6156, lon=9.2811),
    "Singapore": CircuitCoords(lat=1.2914, lon=103.8640),
    "Suzuka": CircuitCoords(lat=34.8431, lon=136.5406),
    "Lusail": CircuitCoords(lat=25.4900, lon=51.4542),
    "Austin": CircuitCoords(lat=30.1328, lon=-97.6411),
    "Mexico City": CircuitCoords(lat=19.4042, lon=-99.0907),
    "Interlagos": CircuitCoords(lat=-23.7014, lon=-46.6969),
    "Las Vegas": CircuitCoords(lat=36.1147, lon=-115.1728),
    "Yas Marina Circuit": CircuitCoords(lat=24.4672, lon=54.6031),
    "Shanghai": CircuitCoords(lat=31.3389, lon=121.2197),
}


def get_circuit_coords(circuit_short_name: str | None) -> CircuitCoords | None:
    """Look up a live-session circuit location by OpenF1 short name."""
    if not circuit_short_name:
        return None
    return CIRCUIT_COORDS.get(circuit_short_name)


class CircuitGeometryProvider:
    """
    Loads the circuit boundary FeatureCollection.

    The document is read from `cache_path` when present, otherwise downloaded
    once and written there. The loaded collection is kept on the instance.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = settings.circuits_geojson_url
        self.cache_path = Path(settings.circuits_cache_path)
        self.timeout = settings.http_timeout
        self.max_retries = settings.max_retries
        self.retry_backoff_s = settings.retry_backoff_s
        self._transport = transport
        self._collection: dict[str, Any] | None = None

    async def load(self) -> dict[str, Any]:
        """Get the GeoJSON FeatureCollection."""
        if self._collection is not None:
            return self._collection

        if self.cache_path.exists():
            logger.info(f"Loading circuits GeoJSON from {self.cache_path}")
            self._collection = json.loads(self.cache_path.read_text(encoding="utf-8"))
            return self._collection

        logger.info(f"Fetching circuits GeoJSON from {self.url}")
        base_url, _, file_name = self.url.rpartition("/")
        client = JsonApiClient(
            base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            retry_backoff_s=self.retry_backoff_s,
            transport=self._transport,
        )
        async with client:
            self._collection = await client.fetch_json(file_name)

        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        self.cache_path.write_text(json.dumps(self._collection, indent=2), encoding="utf-8")
        logger.info("Cached circuits GeoJSON locally")
        return self._collection
