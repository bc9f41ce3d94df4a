from typing import Literal

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..errors import StorageUnavailableError, to_http_exception

router = APIRouter(tags=["tournaments"])

TournamentStatusFilter = Literal["draft", "schedule_review", "in_progress", "finished", "cancelled"]


@router.get("/", response_model=list[schemas.TournamentRead])
def list_tournaments(
    status_filter: TournamentStatusFilter | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[schemas.TournamentRead]:
    return crud.list_tournaments(db, status=status_filter)


@router.post("/", response_model=schemas.TournamentRead, status_code=status.HTTP_201_CREATED)
def create_tournament(payload: schemas.TournamentCreate, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.create_tournament(db, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.get("/{tournament_id}", response_model=schemas.TournamentRead)
def get_tournament(tournament_id: int, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.get_tournament_or_raise(db, tournament_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/{tournament_id}", response_model=schemas.TournamentRead)
def update_tournament(
    tournament_id: int,
    payload: schemas.TournamentUpdate,
    db: Session = Depends(get_db),
) -> schemas.TournamentRead:
    try:
        return crud.update_tournament(db, tournament_id, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.delete("/{tournament_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tournament(tournament_id: int, db: Session = Depends(get_db)) -> Response:
    try:
        crud.delete_tournament(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.post("/{tournament_id}/close-registration", response_model=schemas.TournamentRead)
def close_registration(tournament_id: int, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.close_registration(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.post("/{tournament_id}/close-schedule-review", response_model=schemas.TournamentRead)
def close_schedule_review(tournament_id: int, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.close_schedule_review(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.post("/{tournament_id}/reopen-schedule-review", response_model=schemas.TournamentRead)
def reopen_schedule_review(tournament_id: int, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.reopen_schedule_review(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.post("/{tournament_id}/finish", response_model=schemas.TournamentRead)
def finish_tournament(tournament_id: int, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.finish_tournament(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.post("/{tournament_id}/cancel", response_model=schemas.TournamentRead)
def cancel_tournament(tournament_id: int, db: Session = Depends(get_db)) -> schemas.TournamentRead:
    try:
        return crud.cancel_tournament(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.get("/{tournament_id}/standings", response_model=list[schemas.GroupStandingsRead])
def get_standings(tournament_id: int, db: Session = Depends(get_db)) -> list[schemas.GroupStandingsRead]:
    try:
        return crud.get_standings(db, tournament_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc
