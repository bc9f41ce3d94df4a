from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import crud, schemas, serializers
from ..database import get_db
from ..errors import StorageUnavailableError, to_http_exception

router = APIRouter(tags=["playoffs"])


@router.post("/{tournament_id}/playoffs/preview", response_model=schemas.PlayoffPreviewRead)
def preview_playoffs(
    tournament_id: int,
    payload: schemas.PlayoffRequest | None = None,
    db: Session = Depends(get_db),
) -> schemas.PlayoffPreviewRead:
    try:
        return crud.get_playoff_preview(db, tournament_id, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc


@router.get("/{tournament_id}/playoffs", response_model=schemas.PlayoffsRead)
def list_playoffs(tournament_id: int, db: Session = Depends(get_db)) -> schemas.PlayoffsRead:
    try:
        slots = crud.list_playoffs(db, tournament_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc

    return serializers.playoffs_to_read(slots)


@router.post(
    "/{tournament_id}/playoffs",
    response_model=schemas.PlayoffsRead,
    status_code=status.HTTP_201_CREATED,
)
def generate_playoffs(
    tournament_id: int,
    payload: schemas.PlayoffRequest | None = None,
    db: Session = Depends(get_db),
) -> schemas.PlayoffsRead:
    try:
        slots = crud.generate_playoffs(db, tournament_id, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return serializers.playoffs_to_read(slots)


@router.delete("/{tournament_id}/playoffs", status_code=status.HTTP_204_NO_CONTENT)
def delete_playoffs(tournament_id: int, db: Session = Depends(get_db)) -> Response:
    try:
        crud.delete_playoffs(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)
