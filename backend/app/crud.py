import datetime as dt
import logging
from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session, selectinload

from . import config, models, schemas, serializers
from .bracket import ROUND_ORDER, Bracket, GroupResult, ResolvedSide, Side, build_bracket, rank_qualifiers
from .database import atomic
from .errors import ConsistencyError, PreconditionError, TournamentStateError
from .lifecycle import (
    PLAY_STATUSES,
    SCHEDULE_EDIT_STATUSES,
    TEAM_EDIT_STATUSES,
    TournamentFacts,
    ensure_status,
    ensure_transition,
)
from .scheduling import (
    Booking,
    PendingMatch,
    TimeSlot,
    TimeWindow,
    assign_round_slots,
    assign_teams_to_groups,
    build_time_slots,
    find_conflict,
    group_name,
    plan_group_sizes,
    round_robin_rounds,
    schedule_matches,
    slot_end_time,
)
from .scoring import MatchOutcome, SetScore, pad_sets, validate_sets
from .standings import FinishedResult, StandingLine, compute_standings, qualifiers_for_group_size

logger = logging.getLogger(__name__)

DELETABLE_STATUSES = frozenset({"draft", "cancelled", "finished"})
TERMINAL_STATUSES = frozenset({"finished", "cancelled"})


def _normalize_text(value: str) -> str:
    return " ".join(value.split())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _match_sort_key(match: models.Match) -> tuple:
    phase_rank = 0 if match.phase == "group" else 1
    round_rank = ROUND_ORDER.get(match.round, -1) if match.round else -1
    return (
        match.tournament_id,
        phase_rank,
        round_rank,
        match.match_date or dt.date.max,
        match.start_time or dt.time.max,
        match.court_id or 0,
        match.group_id or 0,
        match.match_order or match.bracket_pos or 0,
        match.id,
    )


def _lock_tournament(db: Session, tournament_id: int) -> models.Tournament:
    """Row-lock the tournament and bump its version.

    Every tournament-scoped write goes through here first. On PostgreSQL the
    SELECT ... FOR UPDATE serializes writers; everywhere else the version
    column makes the second of two interleaved writers fail at flush time.
    """
    tournament = (
        db.query(models.Tournament)
        .filter(models.Tournament.id == tournament_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not tournament:
        raise LookupError("Tournament not found.")

    tournament.updated_at = _utcnow()
    return tournament


def _tournament_facts(db: Session, tournament_id: int) -> TournamentFacts:
    matches = db.query(models.Match).filter(models.Match.tournament_id == tournament_id).all()
    group_matches = [match for match in matches if match.phase == "group"]
    group_count = db.query(models.Group).filter(models.Group.tournament_id == tournament_id).count()

    return TournamentFacts(
        group_count=group_count,
        group_match_count=len(group_matches),
        unscheduled_group_matches=sum(
            1 for match in group_matches if match.match_date is None or match.start_time is None
        ),
        scored_group_matches=sum(1 for match in group_matches if match.has_scores()),
        started_group_matches=sum(1 for match in group_matches if match.status in ("in_progress", "finished")),
        match_count=len(matches),
        unfinished_matches=sum(1 for match in matches if match.status != "finished"),
    )


def _team_ids(match: models.Match) -> tuple[int, ...]:
    return tuple(team_id for team_id in (match.team1_id, match.team2_id) if team_id is not None)


def _match_window(match: models.Match) -> TimeWindow | None:
    if match.match_date is None or match.start_time is None or match.end_time is None:
        return None
    return TimeWindow(match.match_date, match.start_time, match.end_time)


def _apply_window(match: models.Match, window: TimeSlot | None, court_id: int | None) -> None:
    match.match_date = window.date if window else None
    match.start_time = window.start_time if window else None
    match.end_time = window.end_time if window else None
    match.court_id = court_id


def _available_windows(tournament: models.Tournament) -> list[TimeWindow]:
    return [
        TimeWindow(schedule.date, schedule.start_time, schedule.end_time)
        for schedule in tournament.available_schedules
    ]


def _restrictions_by_team(teams: list[models.Team]) -> dict[int, list[TimeWindow]]:
    return {
        team.id: [TimeWindow(item.date, item.start_time, item.end_time) for item in team.restrictions]
        for team in teams
        if team.restrictions
    }


def _bookings(matches: list[models.Match], exclude_ids: set[int]) -> list[Booking]:
    bookings = []
    for match in matches:
        window = _match_window(match)
        if match.id in exclude_ids or window is None:
            continue
        bookings.append(Booking(team_ids=_team_ids(match), court_id=match.court_id, window=window))
    return bookings


def _match_label(match: models.Match, team_names: dict[int, str]) -> str:
    team1 = team_names.get(match.team1_id, match.source_team1 or "TBD")
    team2 = team_names.get(match.team2_id, match.source_team2 or "TBD")
    prefix = match.group.name if match.group else f"{match.round} {match.bracket_pos}"
    return f"{prefix}: {team1} vs {team2}"


def _team_names(tournament: models.Tournament) -> dict[int, str]:
    return {team.id: serializers.team_label(team) or "" for team in tournament.teams}


def _ensure_no_conflicts(db: Session, tournament: models.Tournament, changed: list[models.Match]) -> None:
    """Reject the pending write if any changed match now collides with a restriction, a team or a court."""
    all_matches = db.query(models.Match).filter(models.Match.tournament_id == tournament.id).all()
    restrictions = _restrictions_by_team(tournament.teams)
    team_names = _team_names(tournament)

    for match in changed:
        window = _match_window(match)
        if window is None:
            continue
        conflict = find_conflict(
            _team_ids(match),
            match.court_id,
            window,
            _bookings(all_matches, exclude_ids={match.id}),
            restrictions,
        )
        if conflict:
            raise PreconditionError(f"{_match_label(match, team_names)}: {conflict}.")


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------


def list_tournaments(db: Session, status: str | None = None) -> list[models.Tournament]:
    query = db.query(models.Tournament)
    if status:
        query = query.filter(models.Tournament.status == status)
    return query.order_by(models.Tournament.created_at.desc(), models.Tournament.id.desc()).all()


def get_tournament_or_raise(db: Session, tournament_id: int) -> models.Tournament:
    tournament = db.get(models.Tournament, tournament_id)
    if not tournament:
        raise LookupError("Tournament not found.")
    return tournament


def _check_date_range(start_date: dt.date | None, end_date: dt.date | None) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValueError("end_date cannot be before start_date.")


def create_tournament(db: Session, payload: schemas.TournamentCreate) -> models.Tournament:
    name = _normalize_text(payload.name)
    if not name:
        raise ValueError("Tournament name cannot be empty.")
    _check_date_range(payload.start_date, payload.end_date)

    with atomic(db):
        tournament = models.Tournament(
            name=name,
            description=payload.description,
            category=payload.category,
            status="draft",
            has_super_tiebreak=payload.has_super_tiebreak,
            match_duration_minutes=payload.match_duration_minutes,
            start_date=payload.start_date,
            end_date=payload.end_date,
            registration_fee=payload.registration_fee,
        )
        db.add(tournament)

    logger.info("Created tournament %s (%s)", tournament.id, name)
    return get_tournament_or_raise(db, tournament.id)


def update_tournament(db: Session, tournament_id: int, payload: schemas.TournamentUpdate) -> models.Tournament:
    changes = serializers.model_dump_compat(payload, exclude_unset=True)

    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        if tournament.status in TERMINAL_STATUSES:
            raise PreconditionError(f"A {tournament.status} tournament cannot be edited.")

        rule_fields = {"has_super_tiebreak", "match_duration_minutes"} & set(changes)
        if rule_fields:
            ensure_status(tournament.status, SCHEDULE_EDIT_STATUSES, f"change {', '.join(sorted(rule_fields))}")

        if "name" in changes:
            name = _normalize_text(changes["name"] or "")
            if not name:
                raise ValueError("Tournament name cannot be empty.")
            changes["name"] = name
        for field in ("has_super_tiebreak", "match_duration_minutes"):
            if field in changes and changes[field] is None:
                raise ValueError(f"{field} cannot be null.")

        _check_date_range(
            changes.get("start_date", tournament.start_date),
            changes.get("end_date", tournament.end_date),
        )
        for field, value in changes.items():
            setattr(tournament, field, value)

    return get_tournament_or_raise(db, tournament_id)


def delete_tournament(db: Session, tournament_id: int) -> None:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        if tournament.status not in DELETABLE_STATUSES:
            raise PreconditionError(
                f"Cannot delete a tournament that is {tournament.status}; cancel or finish it first."
            )
        db.delete(tournament)

    logger.info("Deleted tournament %s", tournament_id)


def _transition(db: Session, tournament_id: int, target: str, source: str | None = None) -> models.Tournament:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        current = tournament.status
        if source is not None and current != source:
            raise TournamentStateError(
                f"Cannot move tournament to {target}: it is {current}, not {source}.",
                current=current,
                target=target,
            )
        ensure_transition(current, target, _tournament_facts(db, tournament.id))
        tournament.status = target

    logger.info("Tournament %s moved from %s to %s", tournament_id, current, target)
    return get_tournament_or_raise(db, tournament_id)


def close_registration(db: Session, tournament_id: int) -> models.Tournament:
    return _transition(db, tournament_id, "schedule_review", source="draft")


def close_schedule_review(db: Session, tournament_id: int) -> models.Tournament:
    return _transition(db, tournament_id, "in_progress")


def reopen_schedule_review(db: Session, tournament_id: int) -> models.Tournament:
    return _transition(db, tournament_id, "schedule_review", source="in_progress")


def finish_tournament(db: Session, tournament_id: int) -> models.Tournament:
    return _transition(db, tournament_id, "finished")


def cancel_tournament(db: Session, tournament_id: int) -> models.Tournament:
    return _transition(db, tournament_id, "cancelled")


# ---------------------------------------------------------------------------
# Teams and availability
# ---------------------------------------------------------------------------


def list_teams(db: Session, tournament_id: int) -> list[models.Team]:
    get_tournament_or_raise(db, tournament_id)
    return (
        db.query(models.Team)
        .options(selectinload(models.Team.membership))
        .filter(models.Team.tournament_id == tournament_id)
        .order_by(models.Team.display_order.asc(), models.Team.id.asc())
        .all()
    )


def get_team_or_raise(db: Session, tournament_id: int, team_id: int) -> models.Team:
    team = (
        db.query(models.Team)
        .options(selectinload(models.Team.membership), selectinload(models.Team.restrictions))
        .filter(models.Team.id == team_id, models.Team.tournament_id == tournament_id)
        .first()
    )
    if not team:
        raise LookupError("Team not found.")
    return team


def create_team(db: Session, tournament_id: int, payload: schemas.TeamCreate) -> models.Team:
    if payload.player1_id == payload.player2_id:
        raise ValueError("A team needs two different players.")

    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, TEAM_EDIT_STATUSES, "register teams")
        if tournament.groups and not payload.is_substitute:
            raise PreconditionError("Groups already exist. Delete them before registering more teams.")

        existing = list(tournament.teams)
        registered = {player_id for team in existing for player_id in (team.player1_id, team.player2_id)}
        for player_id in (payload.player1_id, payload.player2_id):
            if player_id in registered:
                raise ValueError(f"Player {player_id} is already registered in this tournament.")

        display_order = payload.display_order
        if display_order is None:
            display_order = max((team.display_order for team in existing), default=-1) + 1

        team = models.Team(
            tournament_id=tournament.id,
            player1_id=payload.player1_id,
            player2_id=payload.player2_id,
            display_name=_normalize_text(payload.display_name or "") or f"Team {len(existing) + 1}",
            seed_number=payload.seed_number,
            is_substitute=payload.is_substitute,
            display_order=display_order,
            notes=payload.notes,
        )
        db.add(team)

    logger.info("Registered team %s in tournament %s", team.id, tournament_id)
    return get_team_or_raise(db, tournament_id, team.id)


def delete_team(db: Session, tournament_id: int, team_id: int) -> None:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, TEAM_EDIT_STATUSES, "remove teams")
        team = get_team_or_raise(db, tournament_id, team_id)
        if team.membership is not None:
            raise PreconditionError(
                f"{serializers.team_label(team)} belongs to a group. Delete the groups before removing it."
            )
        db.delete(team)

    logger.info("Removed team %s from tournament %s", team_id, tournament_id)


def get_team_restrictions(db: Session, tournament_id: int, team_id: int) -> list[models.TeamRestriction]:
    return list(get_team_or_raise(db, tournament_id, team_id).restrictions)


def set_team_restrictions(
    db: Session,
    tournament_id: int,
    team_id: int,
    payload: schemas.TeamRestrictionsUpdate,
) -> models.Team:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, TEAM_EDIT_STATUSES, "change team restrictions")
        if tournament.groups:
            raise PreconditionError("Restrictions must be set before the groups are generated.")

        team = get_team_or_raise(db, tournament_id, team_id)
        windows = sorted({TimeWindow(item.date, item.start_time, item.end_time) for item in payload.restricted_schedules})
        for window in windows:
            if window.start_time >= window.end_time:
                raise ValueError("Restriction start_time must be before end_time.")

        team.restrictions = [
            models.TeamRestriction(date=window.date, start_time=window.start_time, end_time=window.end_time)
            for window in windows
        ]
        team.schedule_notes = payload.schedule_notes

    logger.info("Team %s now has %s schedule restrictions", team_id, len(windows))
    return get_team_or_raise(db, tournament_id, team_id)


def list_available_schedules(db: Session, tournament_id: int) -> list[models.AvailableSchedule]:
    return list(get_tournament_or_raise(db, tournament_id).available_schedules)


def create_available_schedule(
    db: Session,
    tournament_id: int,
    payload: schemas.ScheduleWindow,
) -> models.AvailableSchedule:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, SCHEDULE_EDIT_STATUSES, "edit available schedules")

        for schedule in tournament.available_schedules:
            if (schedule.date, schedule.start_time, schedule.end_time) == (
                payload.date,
                payload.start_time,
                payload.end_time,
            ):
                raise ValueError("This window is already available.")

        schedule = models.AvailableSchedule(
            date=payload.date,
            start_time=payload.start_time,
            end_time=payload.end_time,
        )
        tournament.available_schedules.append(schedule)

    return db.get(models.AvailableSchedule, schedule.id)


def delete_available_schedule(db: Session, tournament_id: int, schedule_id: int) -> None:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, SCHEDULE_EDIT_STATUSES, "edit available schedules")
        schedule = db.get(models.AvailableSchedule, schedule_id)
        if not schedule or schedule.tournament_id != tournament.id:
            raise LookupError("Available schedule not found.")
        db.delete(schedule)


# ---------------------------------------------------------------------------
# Groups, scheduling and standings
# ---------------------------------------------------------------------------


def list_groups(db: Session, tournament_id: int) -> list[models.Group]:
    get_tournament_or_raise(db, tournament_id)
    return (
        db.query(models.Group)
        .options(
            selectinload(models.Group.memberships).selectinload(models.GroupTeam.team),
            selectinload(models.Group.matches),
            selectinload(models.Group.standings).selectinload(models.Standing.team),
        )
        .filter(models.Group.tournament_id == tournament_id)
        .order_by(models.Group.group_order.asc())
        .all()
    )


def _get_group_or_raise(db: Session, tournament_id: int, group_id: int) -> models.Group:
    group = db.get(models.Group, group_id)
    if not group or group.tournament_id != tournament_id:
        raise LookupError(f"Group {group_id} not found in this tournament.")
    return group


def _clear_groups(db: Session, tournament: models.Tournament) -> None:
    if not tournament.groups:
        return
    count = len(tournament.groups)
    # delete-orphan takes memberships, standings and group matches along.
    tournament.groups.clear()
    db.flush()
    logger.info("Removed %s existing groups from tournament %s", count, tournament.id)


def _schedule_group_matches(
    db: Session,
    tournament: models.Tournament,
    matches: list[models.Match],
    court_ids: list[int],
) -> int:
    windows = _available_windows(tournament)
    if not windows:
        logger.warning(
            "Tournament %s has no available schedules; %s group matches left unscheduled",
            tournament.id,
            len(matches),
        )
        return 0

    team_names = _team_names(tournament)
    pending = [
        PendingMatch(
            key=match.id,
            team1_id=match.team1_id,
            team2_id=match.team2_id,
            label=_match_label(match, team_names),
        )
        for match in matches
    ]
    others = db.query(models.Match).filter(models.Match.tournament_id == tournament.id).all()
    placements = schedule_matches(
        pending,
        build_time_slots(windows, tournament.match_duration_minutes),
        court_ids,
        restrictions=_restrictions_by_team(tournament.teams),
        fixed=_bookings(others, exclude_ids={match.id for match in matches}),
    )

    by_id = {match.id: match for match in matches}
    for placement in placements:
        _apply_window(by_id[placement.key], placement.slot, placement.court_id)
    return len(placements)


def generate_groups(db: Session, tournament_id: int, payload: schemas.GroupGenerateRequest) -> list[models.Group]:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, TEAM_EDIT_STATUSES, "generate groups")

        teams = [team for team in tournament.teams if not team.is_substitute]
        sizes = plan_group_sizes(len(teams), payload.group_size, payload.group_count)
        _clear_groups(db, tournament)

        matches: list[models.Match] = []
        for group_order, members in enumerate(assign_teams_to_groups([team.id for team in teams], sizes), start=1):
            group = models.Group(name=group_name(group_order), group_order=group_order)
            tournament.groups.append(group)

            for position, team_id in enumerate(members, start=1):
                group.memberships.append(models.GroupTeam(team_id=team_id))
                group.standings.append(models.Standing(team_id=team_id, position=position))

            match_order = 0
            for round_pairs in round_robin_rounds(members):
                for team1_id, team2_id in round_pairs:
                    match_order += 1
                    match = models.Match(
                        tournament_id=tournament.id,
                        phase="group",
                        status="scheduled",
                        match_order=match_order,
                        team1_id=team1_id,
                        team2_id=team2_id,
                    )
                    group.matches.append(match)
                    matches.append(match)

        db.flush()
        scheduled = _schedule_group_matches(db, tournament, matches, payload.court_ids)

    logger.info(
        "Generated %s groups with %s teams and %s matches (%s scheduled) for tournament %s",
        len(sizes),
        len(teams),
        len(matches),
        scheduled,
        tournament_id,
    )
    return list_groups(db, tournament_id)


def delete_groups(db: Session, tournament_id: int) -> None:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, TEAM_EDIT_STATUSES, "delete groups")
        if tournament.playoff_slots:
            raise PreconditionError("Delete the playoff bracket before deleting the groups.")
        if not tournament.groups:
            raise LookupError("This tournament has no groups.")
        _clear_groups(db, tournament)


def reschedule_group_matches(db: Session, tournament_id: int, court_ids: list[int]) -> list[models.Match]:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, SCHEDULE_EDIT_STATUSES, "reschedule group matches")
        if not tournament.available_schedules:
            raise PreconditionError("Add available schedules before scheduling matches.")

        matches = (
            db.query(models.Match)
            .filter(models.Match.tournament_id == tournament.id, models.Match.phase == "group")
            .all()
        )
        if not matches:
            raise PreconditionError("There are no group matches to schedule. Generate the groups first.")

        for match in matches:
            _apply_window(match, None, None)
        scheduled = _schedule_group_matches(db, tournament, matches, court_ids)

    logger.info("Rescheduled %s group matches for tournament %s", scheduled, tournament_id)
    return list_matches(db, tournament_id=tournament_id, phase="group")


def swap_group_schedules(db: Session, tournament_id: int, group_a_id: int, group_b_id: int) -> list[models.Match]:
    if group_a_id == group_b_id:
        raise PreconditionError("Choose two different groups to swap schedules.")

    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, SCHEDULE_EDIT_STATUSES, "swap group schedules")
        group_a = _get_group_or_raise(db, tournament.id, group_a_id)
        group_b = _get_group_or_raise(db, tournament.id, group_b_id)

        matches_a = sorted(group_a.matches, key=lambda match: (match.match_order or 0, match.id))
        matches_b = sorted(group_b.matches, key=lambda match: (match.match_order or 0, match.id))
        if len(matches_a) != len(matches_b):
            raise PreconditionError(
                f"{group_a.name} has {len(matches_a)} matches and {group_b.name} has {len(matches_b)}. "
                "Only groups with the same number of matches can swap schedules."
            )

        for first, second in zip(matches_a, matches_b):
            first_slot = (_match_window(first), first.court_id)
            second_slot = (_match_window(second), second.court_id)
            _apply_window(first, *second_slot)
            _apply_window(second, *first_slot)

        _ensure_no_conflicts(db, tournament, matches_a + matches_b)

    logger.info("Swapped schedules of groups %s and %s in tournament %s", group_a_id, group_b_id, tournament_id)
    return list_matches(db, tournament_id=tournament_id, group_id=group_a_id) + list_matches(
        db, tournament_id=tournament_id, group_id=group_b_id
    )


def _replace_team(match: models.Match, old_team_id: int, new_team_id: int) -> None:
    if match.team1_id == old_team_id:
        match.team1_id = new_team_id
    if match.team2_id == old_team_id:
        match.team2_id = new_team_id


def swap_teams(
    db: Session,
    tournament_id: int,
    team1_id: int,
    group1_id: int,
    team2_id: int,
    group2_id: int,
) -> list[models.Group]:
    if group1_id == group2_id:
        raise PreconditionError("Teams must be in different groups to be swapped.")

    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, SCHEDULE_EDIT_STATUSES, "swap teams")
        group1 = _get_group_or_raise(db, tournament.id, group1_id)
        group2 = _get_group_or_raise(db, tournament.id, group2_id)

        memberships = {membership.team_id: membership for membership in group1.memberships + group2.memberships}
        membership1 = memberships.get(team1_id)
        membership2 = memberships.get(team2_id)
        if membership1 is None or membership1.group_id != group1.id:
            raise ConsistencyError(f"Team {team1_id} is not in {group1.name}.")
        if membership2 is None or membership2.group_id != group2.id:
            raise ConsistencyError(f"Team {team2_id} is not in {group2.name}.")

        group1_matches = list(group1.matches)
        group2_matches = list(group2.matches)
        for match in group1_matches:
            _replace_team(match, team1_id, team2_id)
        for match in group2_matches:
            _replace_team(match, team2_id, team1_id)

        membership1.group = group2
        membership2.group = group1

        _ensure_no_conflicts(db, tournament, group1_matches + group2_matches)
        recompute_group_standings(db, group1)
        recompute_group_standings(db, group2)

    logger.info(
        "Swapped team %s (%s) with team %s (%s) in tournament %s",
        team1_id,
        group1_id,
        team2_id,
        group2_id,
        tournament_id,
    )
    return [group for group in list_groups(db, tournament_id) if group.id in (group1_id, group2_id)]


def _finished_results(matches: list[models.Match]) -> list[FinishedResult]:
    return [
        FinishedResult(
            team1_id=match.team1_id,
            team2_id=match.team2_id,
            set_scores=tuple(
                (games1, games2) for games1, games2 in match.set_scores() if games1 is not None and games2 is not None
            ),
        )
        for match in matches
        if match.status == "finished" and match.team1_id is not None and match.team2_id is not None
    ]


def recompute_group_standings(db: Session, group: models.Group) -> list[StandingLine]:
    team_ids = [membership.team_id for membership in group.memberships]
    lines = compute_standings(team_ids, _finished_results(list(group.matches)))
    line_ids = {line.team_id for line in lines}

    rows_by_team = {row.team_id: row for row in group.standings}
    spare = [row for row in group.standings if row.team_id not in line_ids]
    for line in lines:
        row = rows_by_team.get(line.team_id)
        if row is None:
            if spare:
                row = spare.pop()
            else:
                row = models.Standing()
                group.standings.append(row)
            row.team_id = line.team_id

        row.position = line.position
        row.matches_played = line.matches_played
        row.wins = line.wins
        row.losses = line.losses
        row.sets_won = line.sets_won
        row.sets_lost = line.sets_lost
        row.games_won = line.games_won
        row.games_lost = line.games_lost

    for row in spare:
        group.standings.remove(row)

    db.flush()
    return lines


def get_standings(db: Session, tournament_id: int) -> list[schemas.GroupStandingsRead]:
    tables: list[schemas.GroupStandingsRead] = []
    for group in list_groups(db, tournament_id):
        qualifying = qualifiers_for_group_size(len(group.memberships))
        completed = bool(group.matches) and all(match.status == "finished" for match in group.matches)
        tables.append(
            schemas.GroupStandingsRead(
                group_id=group.id,
                name=group.name,
                group_order=group.group_order,
                completed=completed,
                standings=[
                    serializers.standing_to_read(row, qualifies=row.position <= qualifying)
                    for row in sorted(group.standings, key=lambda item: item.position)
                ],
            )
        )
    return tables


# ---------------------------------------------------------------------------
# Matches and results
# ---------------------------------------------------------------------------


def list_matches(
    db: Session,
    tournament_id: int | None = None,
    phase: str | None = None,
    status: str | None = None,
    group_id: int | None = None,
) -> list[models.Match]:
    query = db.query(models.Match).options(
        selectinload(models.Match.team1),
        selectinload(models.Match.team2),
        selectinload(models.Match.group),
    )
    if tournament_id is not None:
        query = query.filter(models.Match.tournament_id == tournament_id)
    if phase:
        query = query.filter(models.Match.phase == phase)
    if status:
        query = query.filter(models.Match.status == status)
    if group_id is not None:
        query = query.filter(models.Match.group_id == group_id)

    matches = query.all()
    matches.sort(key=_match_sort_key)
    return matches


def get_match_or_raise(db: Session, match_id: int) -> models.Match:
    match = (
        db.query(models.Match)
        .options(
            selectinload(models.Match.team1),
            selectinload(models.Match.team2),
            selectinload(models.Match.group),
        )
        .filter(models.Match.id == match_id)
        .first()
    )
    if not match:
        raise LookupError("Match not found.")
    return match


def _lock_match(db: Session, match_id: int) -> tuple[models.Tournament, models.Match]:
    tournament_id = db.query(models.Match.tournament_id).filter(models.Match.id == match_id).scalar()
    if tournament_id is None:
        raise LookupError("Match not found.")

    tournament = _lock_tournament(db, tournament_id)
    match = db.query(models.Match).filter(models.Match.id == match_id).populate_existing().one()
    return tournament, match


def _downstream_slots(db: Session, match_id: int) -> list[models.PlayoffSlot]:
    return (
        db.query(models.PlayoffSlot)
        .filter(
            or_(
                models.PlayoffSlot.source1_match_id == match_id,
                models.PlayoffSlot.source2_match_id == match_id,
            )
        )
        .all()
    )


def _propagate_winner(db: Session, match: models.Match) -> None:
    for slot in _downstream_slots(db, match.id):
        target = slot.match
        if slot.source1_match_id == match.id:
            target.team1_id = match.winner_team_id
        if slot.source2_match_id == match.id:
            target.team2_id = match.winner_team_id


def _write_result(
    match: models.Match,
    sets: tuple[SetScore, SetScore, SetScore],
    outcome: MatchOutcome,
    winner_team_id: int,
) -> None:
    set1, set2, set3 = sets
    match.set1_team1_games, match.set1_team2_games = set1
    match.set2_team1_games, match.set2_team2_games = set2
    match.set3_team1_games, match.set3_team2_games = set3

    match.team1_sets = outcome.team1_sets
    match.team2_sets = outcome.team2_sets
    match.team1_games_total = outcome.team1_games
    match.team2_games_total = outcome.team2_games
    match.winner_team_id = winner_team_id
    match.status = "finished"


def submit_match_result(db: Session, match_id: int, payload: schemas.MatchResultSubmit) -> models.Match:
    raw_sets = [(item.team1, item.team2) for item in payload.sets]

    with atomic(db):
        tournament, match = _lock_match(db, match_id)
        ensure_status(tournament.status, PLAY_STATUSES, "record results")
        if match.is_bye:
            raise PreconditionError("Bye matches advance automatically and take no result.")
        if match.team1_id is None or match.team2_id is None:
            raise PreconditionError("Both teams must be known before a result is recorded.")

        sets = pad_sets(raw_sets)
        outcome = validate_sets(*sets, has_super_tiebreak=tournament.has_super_tiebreak)
        winner_team_id = match.team1_id if outcome.winner == 1 else match.team2_id

        if match.phase == "playoff" and match.winner_team_id not in (None, winner_team_id):
            for slot in _downstream_slots(db, match.id):
                if slot.match.status == "finished" or slot.match.has_scores():
                    raise PreconditionError(
                        "Cannot change the winner: the next match "
                        f"({slot.match.round} {slot.match.bracket_pos}) already has a result."
                    )

        _write_result(match, sets, outcome, winner_team_id)
        if match.phase == "group":
            recompute_group_standings(db, match.group)
        else:
            _propagate_winner(db, match)

    logger.info(
        "Recorded result for match %s: %s-%s in sets, winner team %s",
        match_id,
        outcome.team1_sets,
        outcome.team2_sets,
        winner_team_id,
    )
    return get_match_or_raise(db, match_id)


def update_match_status(db: Session, match_id: int, status: str) -> models.Match:
    with atomic(db):
        tournament, match = _lock_match(db, match_id)
        ensure_status(tournament.status, PLAY_STATUSES, "change match status")
        if match.status == "finished":
            raise PreconditionError("A finished match cannot change status. Submit a corrected result instead.")

        if status == "in_progress" and (match.team1_id is None or match.team2_id is None):
            raise PreconditionError("Both teams must be known before the match starts.")

        match.status = status

    return get_match_or_raise(db, match_id)


def update_match_schedule(db: Session, match_id: int, payload: schemas.MatchScheduleUpdate) -> models.Match:
    with atomic(db):
        tournament, match = _lock_match(db, match_id)
        if match.phase == "group":
            ensure_status(tournament.status, SCHEDULE_EDIT_STATUSES, "edit the group schedule")
        else:
            ensure_status(tournament.status, PLAY_STATUSES, "edit the playoff schedule")
            if match.status == "finished":
                raise PreconditionError("A finished match cannot be rescheduled.")

        end_time = payload.end_time or slot_end_time(payload.start_time, tournament.match_duration_minutes)
        if end_time <= payload.start_time:
            raise ValueError("end_time must be after start_time.")

        _apply_window(match, TimeWindow(payload.match_date, payload.start_time, end_time), payload.court_id)
        _ensure_no_conflicts(db, tournament, [match])

    logger.info("Match %s moved to %s %s on court %s", match_id, payload.match_date, payload.start_time, payload.court_id)
    return get_match_or_raise(db, match_id)


# ---------------------------------------------------------------------------
# Playoffs
# ---------------------------------------------------------------------------


def _group_results(groups: list[models.Group]) -> list[GroupResult]:
    results = []
    for group in groups:
        team_ids = [membership.team_id for membership in group.memberships]
        lines = compute_standings(team_ids, _finished_results(list(group.matches)))
        finished = bool(group.matches) and all(match.status == "finished" for match in group.matches)
        results.append(
            GroupResult(
                group_order=group.group_order,
                ranked_team_ids=[line.team_id for line in lines],
                finished=finished,
            )
        )
    return results


def _plan_playoff_times(
    bracket: Bracket,
    payload: schemas.PlayoffRequest | None,
    match_duration_minutes: int,
) -> tuple[dict[tuple[int, int], tuple[TimeSlot, int]], int, int]:
    """Slots for the playable (non-bye) matches, keyed by (round number, bracket position)."""
    playable = [[match for match in round_matches if not match.is_bye] for round_matches in bracket.rounds]
    needed = sum(len(round_matches) for round_matches in playable)
    if payload is None or not payload.days:
        return {}, needed, 0

    court_ids = list(dict.fromkeys(payload.court_ids or config.DEFAULT_COURT_IDS))
    slots = build_time_slots(
        [TimeWindow(day.date, day.start_time, day.end_time) for day in payload.days],
        match_duration_minutes,
    )
    assigned = assign_round_slots([len(round_matches) for round_matches in playable], slots, court_ids)

    plan = {
        (match.round_number, match.bracket_pos): pick
        for round_matches, picks in zip(playable, assigned)
        for match, pick in zip(round_matches, picks)
    }
    return plan, needed, len(slots) * len(court_ids)


def get_playoff_preview(
    db: Session,
    tournament_id: int,
    payload: schemas.PlayoffRequest | None = None,
) -> schemas.PlayoffPreviewRead:
    tournament = get_tournament_or_raise(db, tournament_id)
    if tournament.status == "cancelled":
        raise PreconditionError("A cancelled tournament has no playoffs.")

    groups = list_groups(db, tournament_id)
    if not groups:
        raise PreconditionError("Generate the groups before previewing the playoffs.")

    bracket = build_bracket(rank_qualifiers(_group_results(groups)))
    plan, needed, available = _plan_playoff_times(bracket, payload, tournament.match_duration_minutes)
    return serializers.bracket_to_read(
        bracket,
        _team_names(tournament),
        slots=plan,
        time_slots_needed=needed,
        time_slots_available=available,
    )


def _side_team_id(side: Side | None) -> int | None:
    return side.team_id if isinstance(side, ResolvedSide) else None


def generate_playoffs(
    db: Session,
    tournament_id: int,
    payload: schemas.PlayoffRequest | None = None,
) -> list[models.PlayoffSlot]:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, PLAY_STATUSES, "generate the playoffs")
        if tournament.playoff_slots:
            raise PreconditionError("A playoff bracket already exists. Delete it before generating a new one.")
        if not tournament.groups:
            raise PreconditionError("Generate the groups before the playoffs.")

        unfinished = sum(
            1 for group in tournament.groups for match in group.matches if match.status != "finished"
        )
        if unfinished:
            raise PreconditionError(
                f"Cannot generate the playoffs: {unfinished} group match(es) are not finished. "
                "Use the preview until group play ends."
            )

        bracket = build_bracket(rank_qualifiers(_group_results(list(tournament.groups))))
        plan, _, _ = _plan_playoff_times(bracket, payload, tournament.match_duration_minutes)

        created: dict[tuple[int, int], models.Match] = {}
        for item in bracket.matches():
            match = models.Match(
                tournament_id=tournament.id,
                phase="playoff",
                status="scheduled",
                round=item.round,
                bracket_pos=item.bracket_pos,
                team1_id=_side_team_id(item.side1),
                team2_id=_side_team_id(item.side2),
                source_team1=item.source1,
                source_team2=item.source2,
                is_bye=item.is_bye,
            )
            if item.is_bye:
                match.status = "finished"
                match.winner_team_id = _side_team_id(item.bye_winner)
            pick = plan.get((item.round_number, item.bracket_pos))
            if pick:
                _apply_window(match, *pick)
            db.add(match)
            created[(item.round_number, item.bracket_pos)] = match

        db.flush()

        for item in bracket.matches():
            feeders = [
                created[(item.round_number - 1, feeder)].id if feeder else None
                for feeder in (item.feeder1, item.feeder2)
            ]
            tournament.playoff_slots.append(
                models.PlayoffSlot(
                    round=item.round,
                    bracket_pos=item.bracket_pos,
                    match_id=created[(item.round_number, item.bracket_pos)].id,
                    source1_label=item.source1,
                    source1_seed=item.seed1,
                    source1_match_id=feeders[0],
                    source2_label=item.source2,
                    source2_seed=item.seed2,
                    source2_match_id=feeders[1],
                )
            )

    logger.info(
        "Generated playoffs for tournament %s: %s qualifiers, %s slots, %s byes",
        tournament_id,
        bracket.slots_needed,
        bracket.slots_available,
        bracket.byes,
    )
    return list_playoffs(db, tournament_id)


def list_playoffs(db: Session, tournament_id: int) -> list[models.PlayoffSlot]:
    get_tournament_or_raise(db, tournament_id)
    slots = (
        db.query(models.PlayoffSlot)
        .options(
            selectinload(models.PlayoffSlot.match).selectinload(models.Match.team1),
            selectinload(models.PlayoffSlot.match).selectinload(models.Match.team2),
        )
        .filter(models.PlayoffSlot.tournament_id == tournament_id)
        .all()
    )
    slots.sort(key=lambda slot: (ROUND_ORDER.get(slot.round, 0), slot.bracket_pos))
    return slots


def delete_playoffs(db: Session, tournament_id: int) -> None:
    with atomic(db):
        tournament = _lock_tournament(db, tournament_id)
        ensure_status(tournament.status, PLAY_STATUSES, "delete the playoffs")
        matches = (
            db.query(models.Match)
            .filter(models.Match.tournament_id == tournament.id, models.Match.phase == "playoff")
            .all()
        )
        if not matches:
            raise LookupError("This tournament has no playoff bracket.")

        # Each match takes its PlayoffSlot along.
        for match in matches:
            db.delete(match)

    logger.info("Deleted the playoff bracket of tournament %s (%s matches)", tournament_id, len(matches))
