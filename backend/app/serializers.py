from . import models, schemas
from .bracket import Bracket, BracketMatch, PlaceholderSide, ResolvedSide, Side
from .scheduling import TimeSlot


def model_dump_compat(value: object, exclude_unset: bool = False) -> dict[str, object]:
    if hasattr(value, "model_dump"):
        return value.model_dump(exclude_unset=exclude_unset)  # type: ignore[attr-defined]
    return value.dict(exclude_unset=exclude_unset)  # type: ignore[union-attr]


def team_label(team: models.Team | None) -> str | None:
    if team is None:
        return None
    return team.display_name or f"Team {team.id}"


def team_to_read(team: models.Team) -> schemas.TeamRead:
    return schemas.TeamRead(
        id=team.id,
        tournament_id=team.tournament_id,
        player1_id=team.player1_id,
        player2_id=team.player2_id,
        display_name=team_label(team) or "",
        seed_number=team.seed_number,
        is_substitute=team.is_substitute,
        display_order=team.display_order,
        notes=team.notes,
        schedule_notes=team.schedule_notes,
        group_id=team.membership.group_id if team.membership else None,
    )


def match_to_read(match: models.Match) -> schemas.MatchRead:
    return schemas.MatchRead(
        id=match.id,
        tournament_id=match.tournament_id,
        phase=match.phase,
        status=match.status,
        group_id=match.group_id,
        group_name=match.group.name if match.group else None,
        match_order=match.match_order,
        round=match.round,
        bracket_pos=match.bracket_pos,
        team1_id=match.team1_id,
        team1=team_label(match.team1),
        team2_id=match.team2_id,
        team2=team_label(match.team2),
        source_team1=match.source_team1,
        source_team2=match.source_team2,
        match_date=match.match_date,
        start_time=match.start_time,
        end_time=match.end_time,
        court_id=match.court_id,
        set1_team1_games=match.set1_team1_games,
        set1_team2_games=match.set1_team2_games,
        set2_team1_games=match.set2_team1_games,
        set2_team2_games=match.set2_team2_games,
        set3_team1_games=match.set3_team1_games,
        set3_team2_games=match.set3_team2_games,
        team1_sets=match.team1_sets or 0,
        team2_sets=match.team2_sets or 0,
        team1_games_total=match.team1_games_total or 0,
        team2_games_total=match.team2_games_total or 0,
        winner_team_id=match.winner_team_id,
        is_bye=bool(match.is_bye),
    )


def group_to_read(group: models.Group) -> schemas.GroupRead:
    return schemas.GroupRead(
        id=group.id,
        name=group.name,
        group_order=group.group_order,
        teams=[
            schemas.GroupTeamRead(team_id=membership.team_id, team=team_label(membership.team) or "")
            for membership in group.memberships
        ],
    )


def standing_to_read(standing: models.Standing, qualifies: bool) -> schemas.StandingRead:
    return schemas.StandingRead(
        group_id=standing.group_id,
        team_id=standing.team_id,
        team=team_label(standing.team) or "",
        position=standing.position,
        matches_played=standing.matches_played,
        wins=standing.wins,
        losses=standing.losses,
        sets_won=standing.sets_won,
        sets_lost=standing.sets_lost,
        games_won=standing.games_won,
        games_lost=standing.games_lost,
        set_difference=standing.sets_won - standing.sets_lost,
        game_difference=standing.games_won - standing.games_lost,
        qualifies=qualifies,
    )


def bracket_side_to_read(side: Side | None, team_names: dict[int, str]) -> schemas.BracketSideRead | None:
    if side is None:
        return None
    if isinstance(side, ResolvedSide):
        return schemas.BracketSideRead(
            team_id=side.team_id,
            team=team_names.get(side.team_id),
            label=side.label,
        )
    if isinstance(side, PlaceholderSide):
        return schemas.BracketSideRead(label=side.label, placeholder=True)
    raise TypeError(f"Unknown bracket side: {side!r}")


def bracket_match_to_read(
    match: BracketMatch,
    team_names: dict[int, str],
    slot: tuple[TimeSlot, int] | None = None,
) -> schemas.BracketMatchRead:
    window, court_id = slot if slot else (None, None)
    return schemas.BracketMatchRead(
        round=match.round,
        bracket_pos=match.bracket_pos,
        team1=bracket_side_to_read(match.side1, team_names),
        team2=bracket_side_to_read(match.side2, team_names),
        source_team1=match.source1,
        source_team2=match.source2,
        is_bye=match.is_bye,
        match_date=window.date if window else None,
        start_time=window.start_time if window else None,
        end_time=window.end_time if window else None,
        court_id=court_id,
    )


def bracket_to_read(
    bracket: Bracket,
    team_names: dict[int, str],
    slots: dict[tuple[int, int], tuple[TimeSlot, int]] | None = None,
    time_slots_needed: int = 0,
    time_slots_available: int = 0,
) -> schemas.PlayoffPreviewRead:
    slots = slots or {}
    rounds = [
        schemas.BracketRoundRead(
            round=round_matches[0].round,
            matches=[
                bracket_match_to_read(
                    match,
                    team_names,
                    slots.get((match.round_number, match.bracket_pos)),
                )
                for match in round_matches
            ],
        )
        for round_matches in bracket.rounds
        if round_matches
    ]
    return schemas.PlayoffPreviewRead(
        rounds=rounds,
        slots_needed=bracket.slots_needed,
        slots_available=bracket.slots_available,
        byes=bracket.byes,
        placeholders_used=bracket.placeholders_used,
        time_slots_needed=time_slots_needed,
        time_slots_available=time_slots_available,
    )


def playoff_slot_to_read(slot: models.PlayoffSlot) -> schemas.PlayoffRowRead:
    return schemas.PlayoffRowRead(
        id=slot.id,
        round=slot.round,
        bracket_pos=slot.bracket_pos,
        source_team1=slot.source1_label,
        source_team2=slot.source2_label,
        match=match_to_read(slot.match),
    )


def playoffs_to_read(slots: list[models.PlayoffSlot]) -> schemas.PlayoffsRead:
    first_round = [slot for slot in slots if slot.round == slots[0].round] if slots else []
    slots_available = 2 * len(first_round)
    byes = sum(1 for slot in first_round if slot.match.is_bye)
    return schemas.PlayoffsRead(
        rows=[playoff_slot_to_read(slot) for slot in slots],
        slots_needed=slots_available - byes,
        slots_available=slots_available,
        byes=byes,
    )
