from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import crud, schemas, serializers
from ..database import get_db
from ..errors import StorageUnavailableError, to_http_exception

router = APIRouter(tags=["matches"])


@router.get("/", response_model=list[schemas.MatchRead])
def list_matches(
    tournament_id: int | None = Query(default=None, ge=1),
    phase: Literal["group", "playoff"] | None = Query(default=None),
    status_filter: Literal["scheduled", "in_progress", "finished"] | None = Query(default=None, alias="status"),
    group_id: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
) -> list[schemas.MatchRead]:
    matches = crud.list_matches(
        db,
        tournament_id=tournament_id,
        phase=phase,
        status=status_filter,
        group_id=group_id,
    )
    return [serializers.match_to_read(match) for match in matches]


@router.get("/{match_id}", response_model=schemas.MatchRead)
def get_match(match_id: int, db: Session = Depends(get_db)) -> schemas.MatchRead:
    try:
        match = crud.get_match_or_raise(db, match_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc

    return serializers.match_to_read(match)


@router.put("/{match_id}/result", response_model=schemas.MatchRead)
def submit_match_result(
    match_id: int,
    payload: schemas.MatchResultSubmit,
    db: Session = Depends(get_db),
) -> schemas.MatchRead:
    try:
        match = crud.submit_match_result(db, match_id, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return serializers.match_to_read(match)


@router.patch("/{match_id}/schedule", response_model=schemas.MatchRead)
def update_match_schedule(
    match_id: int,
    payload: schemas.MatchScheduleUpdate,
    db: Session = Depends(get_db),
) -> schemas.MatchRead:
    try:
        match = crud.update_match_schedule(db, match_id, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return serializers.match_to_read(match)


@router.patch("/{match_id}/status", response_model=schemas.MatchRead)
def update_match_status(
    match_id: int,
    payload: schemas.MatchStatusUpdate,
    db: Session = Depends(get_db),
) -> schemas.MatchRead:
    try:
        match = crud.update_match_status(db, match_id, payload.status)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return serializers.match_to_read(match)
