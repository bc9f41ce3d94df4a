import pytest

from app.errors import MatchResultError
from app.scoring import is_valid_normal_set, normal_set_violation, pad_sets, validate_sets


def test_normal_set_accepts_finished_scores():
    for score in [(6, 0), (6, 4), (4, 6), (7, 5), (7, 6), (6, 7)]:
        assert is_valid_normal_set(*score)


def test_normal_set_accepts_nothing_else():
    finished_scores = {(6, loser) for loser in range(5)} | {(7, 5), (7, 6)}
    for team1 in range(12):
        for team2 in range(12):
            expected = (max(team1, team2), min(team1, team2)) in finished_scores
            assert is_valid_normal_set(team1, team2) == expected, (team1, team2)
            assert (normal_set_violation(team1, team2) is None) == expected, (team1, team2)


def test_normal_set_explains_rejections():
    rejections = [
        ((6, 5), "6-5 must continue to 7-5"),
        ((6, 6), "At 6-6 a tie-break must be played (7-6)"),
        ((7, 3), "If a set reaches 7 it must be 7-5 or 7-6"),
        ((8, 6), "Maximum is 7-6"),
        ((3, 3), "A set cannot end tied"),
        ((5, 3), "A set must be won with at least 6 games"),
        ((-1, 6), "Games cannot be negative"),
    ]
    for score, reason in rejections:
        assert normal_set_violation(*score) == reason


def test_straight_sets_win():
    outcome = validate_sets((6, 3), (6, 4))
    assert outcome.winner == 1
    assert (outcome.team1_sets, outcome.team2_sets) == (2, 0)
    assert (outcome.team1_games, outcome.team2_games) == (12, 7)


def test_three_set_match_counts_every_game():
    outcome = validate_sets((6, 3), (4, 6), (7, 5))
    assert outcome.winner == 1
    assert (outcome.team1_sets, outcome.team2_sets) == (2, 1)
    assert (outcome.team1_games, outcome.team2_games) == (17, 14)


def test_third_set_rejected_after_straight_sets():
    with pytest.raises(MatchResultError, match="Set 3 must not be played"):
        validate_sets((6, 3), (6, 4), (6, 2))


def test_third_set_required_on_split():
    with pytest.raises(MatchResultError, match="Set 3 is required"):
        validate_sets((6, 3), (3, 6))


def test_first_two_sets_must_be_complete():
    with pytest.raises(MatchResultError, match="Set 2 must have values for both teams"):
        validate_sets((6, 3), (6, None))


def test_invalid_set_reports_its_number():
    with pytest.raises(MatchResultError, match=r"Set 2: 6-5 must continue to 7-5 \(got 6-5\)"):
        validate_sets((6, 3), (6, 5))


def test_super_tiebreak_is_recorded_as_seven_six():
    outcome = validate_sets((6, 3), (3, 6), (6, 7), has_super_tiebreak=True)
    assert outcome.winner == 2
    assert (outcome.team1_sets, outcome.team2_sets) == (1, 2)

    with pytest.raises(MatchResultError, match="Super tie-break"):
        validate_sets((6, 3), (3, 6), (10, 8), has_super_tiebreak=True)
    with pytest.raises(MatchResultError, match="Super tie-break"):
        validate_sets((6, 3), (3, 6), (6, 4), has_super_tiebreak=True)


def test_pad_sets_fills_missing_sets():
    assert pad_sets([(6, 1), (6, 2)]) == ((6, 1), (6, 2), (None, None))
    with pytest.raises(MatchResultError):
        pad_sets([(6, 1), (1, 6), (6, 1), (6, 1)])
