from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from app.config import Settings
from app.core.deps import get_app_settings, get_db_session
from app.core.exceptions import RaceNotFoundException, no_race_available, race_not_found
from app.schemas.common import RaceSummarySchema
from app.services import race_store

router = APIRouter(prefix="/api", tags=["Races"])

JSON_MEDIA_TYPE = "application/json"


def select_current_race(request: Request, db: Session, settings: Settings) -> int | None:
    """
    Key of the race currently being served.

    Picks one on first use, or when the selected race is no longer stored.
    """
    key = getattr(request.app.state, "current_race_key", None)
    if key is None or key not in race_store.get_cached_race_keys(db):
        key = race_store.pick_race_key(db, exclude=key, force_key=settings.force_race_key)
        request.app.state.current_race_key = key
    return key


@router.get("/race")
async def get_current_race(
    request: Request,
    db: Session = Depends(get_db_session),
    settings: Settings = Depends(get_app_settings),
) -> Response:
    """
    Get the currently selected race record.
    """
    key = select_current_race(request, db, settings)
    if key is None:
        raise no_race_available()

    try:
        data = race_store.get_race_json(db, key)
    except RaceNotFoundException:
        raise no_race_available()

    # stored documents are already serialized records
    return Response(content=data, media_type=JSON_MEDIA_TYPE)


@router.get("/races", response_model=list[RaceSummarySchema])
async def list_races(db: Session = Depends(get_db_session)) -> list[RaceSummarySchema]:
    """
    List stored races.
    """
    return [
        RaceSummarySchema(session_key=key, title=title)
        for key, title in race_store.get_race_titles(db)
    ]


@router.get("/races/{session_key}")
async def get_race(
    session_key: int,
    db: Session = Depends(get_db_session),
) -> Response:
    """
    Get a stored race record by session key.
    """
    try:
        data = race_store.get_race_json(db, session_key)
    except RaceNotFoundException:
        raise race_not_found(session_key)

    return Response(content=data, media_type=JSON_MEDIA_TYPE)
