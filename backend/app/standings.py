from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class FinishedResult:
    """A finished group match reduced to what the table needs."""

    team1_id: int
    team2_id: int
    set_scores: tuple[tuple[int, int], ...]


@dataclass(frozen=True)
class StandingLine:
    team_id: int
    position: int
    matches_played: int
    wins: int
    losses: int
    sets_won: int
    sets_lost: int
    games_won: int
    games_lost: int

    @property
    def set_difference(self) -> int:
        return self.sets_won - self.sets_lost

    @property
    def game_difference(self) -> int:
        return self.games_won - self.games_lost


def qualifiers_for_group_size(size: int) -> int:
    """Groups of 4 send 3 teams to the playoffs, every other group sends 2."""
    if size == 4:
        return 3
    return min(size, 2)


def compute_standings(team_ids: list[int], results: Iterable[FinishedResult]) -> list[StandingLine]:
    table: dict[int, dict[str, int]] = {
        team_id: {
            "matches_played": 0,
            "wins": 0,
            "losses": 0,
            "sets_won": 0,
            "sets_lost": 0,
            "games_won": 0,
            "games_lost": 0,
        }
        for team_id in team_ids
    }

    for result in results:
        if result.team1_id not in table or result.team2_id not in table:
            continue

        team1_sets = 0
        team2_sets = 0
        team1_games = 0
        team2_games = 0
        for games1, games2 in result.set_scores:
            team1_games += games1
            team2_games += games2
            if games1 > games2:
                team1_sets += 1
            elif games2 > games1:
                team2_sets += 1

        row1 = table[result.team1_id]
        row2 = table[result.team2_id]
        row1["matches_played"] += 1
        row2["matches_played"] += 1
        row1["sets_won"] += team1_sets
        row1["sets_lost"] += team2_sets
        row2["sets_won"] += team2_sets
        row2["sets_lost"] += team1_sets
        row1["games_won"] += team1_games
        row1["games_lost"] += team2_games
        row2["games_won"] += team2_games
        row2["games_lost"] += team1_games

        if team1_sets >= 2 and team1_sets > team2_sets:
            row1["wins"] += 1
            row2["losses"] += 1
        elif team2_sets >= 2 and team2_sets > team1_sets:
            row2["wins"] += 1
            row1["losses"] += 1

    # sorted() is stable, so teams level on every criterion keep their input order.
    ranked = sorted(
        table.items(),
        key=lambda item: (
            -item[1]["wins"],
            -(item[1]["sets_won"] - item[1]["sets_lost"]),
            -(item[1]["games_won"] - item[1]["games_lost"]),
        ),
    )

    return [
        StandingLine(team_id=team_id, position=position, **row)
        for position, (team_id, row) in enumerate(ranked, start=1)
    ]
