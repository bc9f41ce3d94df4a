from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import crud, schemas, serializers
from ..database import get_db
from ..errors import StorageUnavailableError, to_http_exception

router = APIRouter(tags=["teams"])


@router.get("/{tournament_id}/teams", response_model=list[schemas.TeamRead])
def list_teams(tournament_id: int, db: Session = Depends(get_db)) -> list[schemas.TeamRead]:
    try:
        teams = crud.list_teams(db, tournament_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc

    return [serializers.team_to_read(team) for team in teams]


@router.post(
    "/{tournament_id}/teams",
    response_model=schemas.TeamRead,
    status_code=status.HTTP_201_CREATED,
)
def create_team(
    tournament_id: int,
    team: schemas.TeamCreate,
    db: Session = Depends(get_db),
) -> schemas.TeamRead:
    try:
        created = crud.create_team(db, tournament_id, team)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return serializers.team_to_read(created)


@router.delete("/{tournament_id}/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_team(tournament_id: int, team_id: int, db: Session = Depends(get_db)) -> Response:
    try:
        crud.delete_team(db, tournament_id, team_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{tournament_id}/teams/{team_id}/restrictions", response_model=list[schemas.RestrictionRead])
def get_team_restrictions(
    tournament_id: int,
    team_id: int,
    db: Session = Depends(get_db),
) -> list[schemas.RestrictionRead]:
    try:
        return crud.get_team_restrictions(db, tournament_id, team_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc


@router.put("/{tournament_id}/teams/{team_id}/restrictions", response_model=list[schemas.RestrictionRead])
def set_team_restrictions(
    tournament_id: int,
    team_id: int,
    payload: schemas.TeamRestrictionsUpdate,
    db: Session = Depends(get_db),
) -> list[schemas.RestrictionRead]:
    try:
        team = crud.set_team_restrictions(db, tournament_id, team_id, payload)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return list(team.restrictions)
