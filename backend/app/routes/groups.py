from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import crud, models, schemas, serializers
from ..database import get_db
from ..errors import StorageUnavailableError, to_http_exception

router = APIRouter(tags=["groups"])


def _groups_response(db: Session, tournament_id: int, groups: list[models.Group]) -> schemas.GroupsResponse:
    matches = crud.list_matches(db, tournament_id=tournament_id, phase="group")
    group_ids = {group.id for group in groups}
    return schemas.GroupsResponse(
        groups=[serializers.group_to_read(group) for group in groups],
        matches=[serializers.match_to_read(match) for match in matches if match.group_id in group_ids],
    )


@router.get("/{tournament_id}/groups", response_model=schemas.GroupsResponse)
def list_groups(tournament_id: int, db: Session = Depends(get_db)) -> schemas.GroupsResponse:
    try:
        groups = crud.list_groups(db, tournament_id)
    except LookupError as exc:
        raise to_http_exception(exc) from exc

    return _groups_response(db, tournament_id, groups)


@router.post(
    "/{tournament_id}/groups",
    response_model=schemas.GroupsResponse,
    status_code=status.HTTP_201_CREATED,
)
def generate_groups(
    tournament_id: int,
    payload: schemas.GroupGenerateRequest | None = None,
    db: Session = Depends(get_db),
) -> schemas.GroupsResponse:
    try:
        groups = crud.generate_groups(db, tournament_id, payload or schemas.GroupGenerateRequest())
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return _groups_response(db, tournament_id, groups)


@router.delete("/{tournament_id}/groups", status_code=status.HTTP_204_NO_CONTENT)
def delete_groups(tournament_id: int, db: Session = Depends(get_db)) -> Response:
    try:
        crud.delete_groups(db, tournament_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{tournament_id}/groups/reschedule", response_model=list[schemas.MatchRead])
def reschedule_group_matches(
    tournament_id: int,
    payload: schemas.RescheduleRequest | None = None,
    db: Session = Depends(get_db),
) -> list[schemas.MatchRead]:
    court_ids = (payload or schemas.RescheduleRequest()).court_ids
    try:
        matches = crud.reschedule_group_matches(db, tournament_id, court_ids)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return [serializers.match_to_read(match) for match in matches]


@router.post("/{tournament_id}/groups/swap-schedules", response_model=list[schemas.MatchRead])
def swap_group_schedules(
    tournament_id: int,
    payload: schemas.GroupScheduleSwap,
    db: Session = Depends(get_db),
) -> list[schemas.MatchRead]:
    try:
        matches = crud.swap_group_schedules(db, tournament_id, payload.group_a_id, payload.group_b_id)
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return [serializers.match_to_read(match) for match in matches]


@router.post("/{tournament_id}/groups/swap-teams", response_model=schemas.GroupsResponse)
def swap_teams(
    tournament_id: int,
    payload: schemas.TeamSwap,
    db: Session = Depends(get_db),
) -> schemas.GroupsResponse:
    try:
        groups = crud.swap_teams(
            db,
            tournament_id,
            team1_id=payload.team1_id,
            group1_id=payload.group1_id,
            team2_id=payload.team2_id,
            group2_id=payload.group2_id,
        )
    except (LookupError, ValueError, StorageUnavailableError) as exc:
        raise to_http_exception(exc) from exc

    return _groups_response(db, tournament_id, groups)
