"""Tennis-style set score validation.

A normal set is won 6-0 through 6-4, 7-5 or 7-6. Sets 1 and 2 are always
played. Set 3 is only played on a 1-1 split; when the tournament uses a super
tie-break instead of a third set, the winner of that tie-break is recorded as
a 7-6 set (the tie-break points themselves are not kept).
"""
from dataclasses import dataclass

from .errors import MatchResultError

SetScore = tuple[int | None, int | None]


@dataclass(frozen=True)
class MatchOutcome:
    winner: int
    team1_sets: int
    team2_sets: int
    team1_games: int
    team2_games: int


def normal_set_violation(team1_games: int, team2_games: int) -> str | None:
    if team1_games < 0 or team2_games < 0:
        return "Games cannot be negative"

    winner = max(team1_games, team2_games)
    loser = min(team1_games, team2_games)

    if winner == 6 and loser <= 4:
        return None
    if winner == 7 and loser in (5, 6):
        return None

    if winner == 6 and loser == 5:
        return "6-5 must continue to 7-5"
    if winner == 6 and loser == 6:
        return "At 6-6 a tie-break must be played (7-6)"
    if winner == 7 and loser < 5:
        return "If a set reaches 7 it must be 7-5 or 7-6"
    if winner > 7 or loser >= 7:
        return "Maximum is 7-6"
    if winner == loser:
        return "A set cannot end tied"
    return "A set must be won with at least 6 games"


def is_valid_normal_set(team1_games: int, team2_games: int) -> bool:
    return normal_set_violation(team1_games, team2_games) is None


def _is_empty(score: SetScore) -> bool:
    return score[0] is None and score[1] is None


def _is_complete(score: SetScore) -> bool:
    return score[0] is not None and score[1] is not None


def _check_normal(number: int, score: SetScore) -> None:
    team1_games, team2_games = score
    reason = normal_set_violation(int(team1_games), int(team2_games))
    if reason:
        raise MatchResultError(f"Set {number}: {reason} (got {team1_games}-{team2_games})")


def _set_winner(score: SetScore) -> int:
    return 1 if int(score[0]) > int(score[1]) else 2


def validate_sets(
    set1: SetScore,
    set2: SetScore,
    set3: SetScore = (None, None),
    has_super_tiebreak: bool = False,
) -> MatchOutcome:
    for number, score in ((1, set1), (2, set2)):
        if not _is_complete(score):
            raise MatchResultError(f"Set {number} must have values for both teams")

    _check_normal(1, set1)
    _check_normal(2, set2)

    split = _set_winner(set1) != _set_winner(set2)
    if not split and not _is_empty(set3):
        raise MatchResultError("Set 3 must not be played when a team already won the first two sets")
    if split and _is_empty(set3):
        raise MatchResultError("Set 3 is required when each team won one of the first two sets")

    played = [set1, set2]
    if not _is_empty(set3):
        if not _is_complete(set3):
            raise MatchResultError("Set 3 must have values for both teams")
        if has_super_tiebreak:
            if set(set3) != {6, 7}:
                raise MatchResultError("Super tie-break set 3 must be recorded as 7-6 for the winner")
        else:
            _check_normal(3, set3)
        played.append(set3)

    team1_sets = sum(1 for score in played if _set_winner(score) == 1)
    team2_sets = len(played) - team1_sets
    if team1_sets < 2 and team2_sets < 2:
        raise MatchResultError("There must be a winner: one team has to win 2 sets")

    return MatchOutcome(
        winner=1 if team1_sets > team2_sets else 2,
        team1_sets=team1_sets,
        team2_sets=team2_sets,
        team1_games=sum(int(score[0]) for score in played),
        team2_games=sum(int(score[1]) for score in played),
    )


def pad_sets(sets: list[SetScore]) -> tuple[SetScore, SetScore, SetScore]:
    if len(sets) > 3:
        raise MatchResultError("A match has at most 3 sets")
    padded = list(sets) + [(None, None)] * (3 - len(sets))
    return padded[0], padded[1], padded[2]
