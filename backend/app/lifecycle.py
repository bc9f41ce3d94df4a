"""Tournament status transitions.

    draft -> schedule_review -> in_progress -> finished
                   ^                 |
                   +-----------------+   (reopen, only before any result)

draft and schedule_review may also be cancelled. finished and cancelled are final.
"""
from dataclasses import dataclass
from typing import Literal

from .errors import PreconditionError, TournamentStateError

TournamentStatus = Literal["draft", "schedule_review", "in_progress", "finished", "cancelled"]

TRANSITIONS: dict[str, frozenset[str]] = {
    "draft": frozenset({"schedule_review", "cancelled"}),
    "schedule_review": frozenset({"in_progress", "cancelled"}),
    "in_progress": frozenset({"schedule_review", "finished"}),
    "finished": frozenset(),
    "cancelled": frozenset(),
}

TEAM_EDIT_STATUSES = frozenset({"draft"})
SCHEDULE_EDIT_STATUSES = frozenset({"draft", "schedule_review"})
PLAY_STATUSES = frozenset({"in_progress"})


@dataclass(frozen=True)
class TournamentFacts:
    """What the guards need to know about a tournament's groups and matches."""

    group_count: int = 0
    group_match_count: int = 0
    unscheduled_group_matches: int = 0
    scored_group_matches: int = 0
    started_group_matches: int = 0
    match_count: int = 0
    unfinished_matches: int = 0


def _plural(count: int, noun: str) -> str:
    if count == 1:
        return f"1 {noun}"
    suffix = "es" if noun.endswith("ch") else "s"
    return f"{count} {noun}{suffix}"


def transition_blocker(current: str, target: str, facts: TournamentFacts) -> str | None:
    if target not in TRANSITIONS.get(current, frozenset()):
        return f"Cannot move tournament from {current} to {target}."

    if current == "draft" and target == "schedule_review":
        if facts.group_count < 1:
            return "Cannot close registration: generate the groups first."

    if current == "schedule_review" and target == "in_progress":
        if facts.group_count < 1:
            return "Cannot close schedule review: the tournament has no groups."
        if facts.unscheduled_group_matches:
            return (
                "Cannot close schedule review: "
                f"{_plural(facts.unscheduled_group_matches, 'group match')} "
                "still lack a date or start time."
            )

    if current == "in_progress" and target == "schedule_review":
        if facts.scored_group_matches:
            return (
                "Cannot reopen schedule review: "
                f"{_plural(facts.scored_group_matches, 'group match')} already have set scores."
            )
        if facts.started_group_matches:
            return (
                "Cannot reopen schedule review: "
                f"{_plural(facts.started_group_matches, 'group match')} are in progress or finished."
            )

    if target == "finished":
        if facts.match_count == 0:
            return "Cannot finish tournament: it has no matches."
        if facts.unfinished_matches:
            return f"Cannot finish tournament: {_plural(facts.unfinished_matches, 'match')} are not finished."

    return None


def ensure_transition(current: str, target: str, facts: TournamentFacts) -> None:
    blocker = transition_blocker(current, target, facts)
    if blocker:
        raise TournamentStateError(blocker, current=current, target=target)


def ensure_status(current: str, allowed: frozenset[str], action: str) -> None:
    if current not in allowed:
        expected = " or ".join(sorted(allowed))
        raise PreconditionError(f"Cannot {action} while the tournament is {current} (requires {expected}).")
