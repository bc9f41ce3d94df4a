from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..errors import StorageUnavailableError, to_http_exception

router = APIRouter(tags=["schedule"])


@router.get("/{tournament_id}/available-schedules", response_model=list[schemas.AvailableScheduleRead])
def list_available_schedules(
    tournament_id: int,
    db: Session = Depends(get_db),
) -> list[schemas.AvailableScheduleRead]:
    try:
        return crud.list_available_schedules(db, tournament_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/{tournament_id}/available-schedules",
    response_model=schemas.AvailableScheduleRead,
    status_code=status.HTTP_201_CREATED,
)
def create_available_schedule(
    tournament_id: int,
    payload: schemas.ScheduleWindow,
    db: Session = Depends(get_db),
) -> schemas.AvailableScheduleRead:
    try:
        return crud.create_available_schedule(db, tournament_id, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.delete(
    "/{tournament_id}/available-schedules/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
def delete_available_schedule(
    tournament_id: int,
    schedule_id: int,
    db: Session = Depends(get_db),
) -> Response:
    try:
        crud.delete_available_schedule(db, tournament_id, schedule_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)
