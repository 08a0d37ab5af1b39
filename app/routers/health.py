from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_db_session
from app.schemas.common import HealthResponse
from app.services import race_store

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health(db: Session = Depends(get_db_session)) -> HealthResponse:
    """
    Liveness check with the number of stored races.
    """
    return HealthResponse(status="ok", cached_races=len(race_store.get_cached_race_keys(db)))
