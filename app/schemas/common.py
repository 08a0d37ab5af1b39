# app/schemas/common.py
"""Common response schemas."""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for everything the replay client reads: camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    cached_races: int


class AppInfoResponse(BaseModel):
    """Root endpoint response."""
    app: str
    version: str
    docs: str
    redoc: str


class RaceSummarySchema(CamelModel):
    """Stored race listing entry."""
    session_key: int
    title: str
