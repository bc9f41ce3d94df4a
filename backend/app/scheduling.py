"""Group building and match scheduling.

Teams are dealt into balanced groups, each group plays a full round robin,
and every match is then placed on a (time slot, court) pair drawn from the
tournament's available windows. Placement is a bounded backtracking search
that honours three constraints:

* a team never plays two matches at overlapping times,
* a match never overlaps either team's restriction windows,
* a court never hosts two overlapping matches.
"""
import datetime as dt
import logging
import string
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from . import config
from .errors import InfeasibleScheduleError, PreconditionError

logger = logging.getLogger(__name__)

GROUP_NAME_PREFIX = "Zona"


@dataclass(frozen=True, order=True)
class TimeWindow:
    date: dt.date
    start_time: dt.time
    end_time: dt.time

    @property
    def start(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.start_time)

    @property
    def end(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.end_time)


# A slot is just a window produced by walking an available window in match-sized steps.
TimeSlot = TimeWindow


@dataclass(frozen=True)
class PendingMatch:
    key: int
    team1_id: int
    team2_id: int
    label: str = ""

    @property
    def team_ids(self) -> tuple[int, int]:
        return (self.team1_id, self.team2_id)


@dataclass(frozen=True)
class Booking:
    """An already fixed match that new placements must not collide with."""

    team_ids: tuple[int, ...]
    court_id: int | None
    window: TimeWindow


@dataclass(frozen=True)
class Placement:
    key: int
    slot: TimeSlot
    court_id: int


@dataclass
class SearchStats:
    iterations: int = 0
    best_placed: int = 0
    best: dict[int, Placement] = field(default_factory=dict)


class _SearchBudgetExhausted(Exception):
    pass


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------


def plan_group_sizes(team_count: int, group_size: int = 3, group_count: int | None = None) -> list[int]:
    if team_count < 3:
        raise PreconditionError("At least 3 teams are needed to create groups.")
    if group_size < 2:
        raise PreconditionError("Groups need at least 2 teams.")

    if group_count is None:
        group_count = max(1, team_count // group_size)
    if group_count < 1 or team_count // group_count < 2:
        raise PreconditionError(f"{team_count} teams cannot fill {group_count} groups of at least 2 teams.")

    base, extra = divmod(team_count, group_count)
    return [base + 1 if index < extra else base for index in range(group_count)]


def group_letter(group_order: int) -> str:
    """Spreadsheet-style letters: 1 -> A, 26 -> Z, 27 -> AA."""
    if group_order < 1:
        raise ValueError("Group order starts at 1.")

    letters = ""
    while group_order:
        group_order, remainder = divmod(group_order - 1, len(string.ascii_uppercase))
        letters = string.ascii_uppercase[remainder] + letters
    return letters


def group_name(group_order: int) -> str:
    return f"{GROUP_NAME_PREFIX} {group_letter(group_order)}"


def assign_teams_to_groups(team_ids: Sequence[int], sizes: Sequence[int]) -> list[list[int]]:
    """Deal teams over the groups in snake order: A, B, C, C, B, A, A, B, ..."""
    if sum(sizes) != len(team_ids):
        raise ValueError("Group sizes do not add up to the number of teams.")

    groups: list[list[int]] = [[] for _ in sizes]
    forward = list(range(len(sizes)))
    remaining = list(team_ids)
    pass_no = 0
    while remaining:
        order = forward if pass_no % 2 == 0 else forward[::-1]
        for index in order:
            if not remaining:
                break
            if len(groups[index]) < sizes[index]:
                groups[index].append(remaining.pop(0))
        pass_no += 1

    return groups


def round_robin_rounds(team_ids: Sequence[int]) -> list[list[tuple[int, int]]]:
    """Circle-method rounds; every unordered pair appears exactly once."""
    teams: list[int | None] = list(team_ids)
    if len(teams) % 2:
        teams.append(None)

    size = len(teams)
    rounds: list[list[tuple[int, int]]] = []
    for _ in range(size - 1):
        pairs = []
        for index in range(size // 2):
            home, away = teams[index], teams[size - 1 - index]
            if home is not None and away is not None:
                pairs.append((home, away))
        rounds.append(pairs)
        teams = [teams[0], teams[-1], *teams[1:-1]]

    return rounds


def round_robin_pairs(team_ids: Sequence[int]) -> list[tuple[int, int]]:
    return [pair for round_pairs in round_robin_rounds(team_ids) for pair in round_pairs]


# ---------------------------------------------------------------------------
# Slots
# ---------------------------------------------------------------------------


def overlaps(start1: dt.datetime, end1: dt.datetime, start2: dt.datetime, end2: dt.datetime) -> bool:
    return max(start1, start2) < min(end1, end2)


def windows_overlap(first: TimeWindow, second: TimeWindow) -> bool:
    return overlaps(first.start, first.end, second.start, second.end)


def slot_end_time(start_time: dt.time, match_duration_minutes: int) -> dt.time:
    start = dt.datetime.combine(dt.date.min, start_time)
    end = start + dt.timedelta(minutes=match_duration_minutes)
    if end.date() != start.date():
        return dt.time(23, 59)
    return end.time()


def build_time_slots(windows: Iterable[TimeWindow], match_duration_minutes: int) -> list[TimeSlot]:
    """Walk every window in match-length steps; the last slot is clipped to the window end."""
    if match_duration_minutes <= 0:
        raise ValueError("Match duration must be positive.")

    step = dt.timedelta(minutes=match_duration_minutes)
    slots: set[TimeSlot] = set()
    for window in windows:
        if window.end <= window.start:
            continue
        current = window.start
        while current < window.end:
            slot_end = min(current + step, window.end)
            slots.add(TimeSlot(window.date, current.time(), slot_end.time()))
            current += step

    return sorted(slots)


def is_restricted(team_ids: Iterable[int], window: TimeWindow, restrictions: dict[int, list[TimeWindow]]) -> bool:
    return any(
        windows_overlap(window, blocked)
        for team_id in team_ids
        for blocked in restrictions.get(team_id, ())
    )


def find_conflict(
    team_ids: tuple[int, ...],
    court_id: int | None,
    window: TimeWindow,
    bookings: Iterable[Booking],
    restrictions: dict[int, list[TimeWindow]],
) -> str | None:
    """Return a description of the first broken constraint, or None when the placement is clean."""
    for team_id in team_ids:
        for blocked in restrictions.get(team_id, ()):
            if windows_overlap(window, blocked):
                return (
                    f"Team {team_id} is unavailable on {blocked.date.isoformat()} "
                    f"{blocked.start_time:%H:%M}-{blocked.end_time:%H:%M}"
                )

    for booking in bookings:
        if not windows_overlap(window, booking.window):
            continue
        shared = set(team_ids) & set(booking.team_ids)
        if shared:
            return f"Team {min(shared)} already plays at an overlapping time"
        if court_id is not None and booking.court_id == court_id:
            return f"Court {court_id} is already booked at an overlapping time"

    return None


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------


def schedule_matches(
    matches: Sequence[PendingMatch],
    slots: Sequence[TimeSlot],
    court_ids: Sequence[int],
    restrictions: dict[int, list[TimeWindow]] | None = None,
    fixed: Iterable[Booking] = (),
    max_iterations: int | None = None,
    time_limit_seconds: float | None = None,
) -> list[Placement]:
    """Place every match on a slot and court, or raise InfeasibleScheduleError naming the leftovers."""
    restrictions = restrictions or {}
    max_iterations = max_iterations or config.SCHEDULER_MAX_ITERATIONS
    time_limit_seconds = time_limit_seconds or config.SCHEDULER_TIME_LIMIT_SECONDS
    courts = list(dict.fromkeys(court_ids))

    if not matches:
        return []
    if not courts:
        raise PreconditionError("At least one court is needed to schedule matches.")
    if not slots:
        raise InfeasibleScheduleError(
            "No available time slots to schedule matches.",
            unplaced=[match.label or f"match {match.key}" for match in matches],
        )

    ordered_slots = sorted(slots)
    candidates: dict[int, list[tuple[TimeSlot, int]]] = {}
    for match in matches:
        candidates[match.key] = [
            (slot, court)
            for slot in ordered_slots
            if not is_restricted(match.team_ids, slot, restrictions)
            for court in courts
        ]

    blocked = [match for match in matches if not candidates[match.key]]
    if blocked:
        raise InfeasibleScheduleError(
            f"{len(blocked)} match(es) have no slot outside their teams' restrictions.",
            unplaced=[match.label or f"match {match.key}" for match in blocked],
        )

    team_busy: dict[int, list[TimeWindow]] = {}
    court_busy: dict[int, list[TimeWindow]] = {}
    for booking in fixed:
        for team_id in booking.team_ids:
            team_busy.setdefault(team_id, []).append(booking.window)
        if booking.court_id is not None:
            court_busy.setdefault(booking.court_id, []).append(booking.window)

    def is_free(match: PendingMatch, slot: TimeSlot, court: int) -> bool:
        for team_id in match.team_ids:
            if any(windows_overlap(slot, busy) for busy in team_busy.get(team_id, ())):
                return False
        return not any(windows_overlap(slot, busy) for busy in court_busy.get(court, ()))

    def rest_penalty(match: PendingMatch, slot: TimeSlot) -> int:
        # Back-to-back matches for the same team are allowed but tried last.
        return sum(
            1
            for team_id in match.team_ids
            for busy in team_busy.get(team_id, ())
            if busy.end == slot.start or busy.start == slot.end
        )

    by_key = {match.key: match for match in matches}
    placed: dict[int, Placement] = {}
    stats = SearchStats()
    deadline = time.monotonic() + time_limit_seconds
    budget = max_iterations
    if len(ordered_slots) * len(courts) < len(matches):
        # Not enough room even without conflicts: a single greedy descent is enough to report leftovers.
        budget = min(budget, len(matches) * len(ordered_slots) * len(courts))

    def remember_best() -> None:
        if len(placed) > stats.best_placed:
            stats.best_placed = len(placed)
            stats.best = dict(placed)

    def solve() -> bool:
        remember_best()
        if len(placed) == len(matches):
            return True

        chosen: PendingMatch | None = None
        chosen_options: list[tuple[TimeSlot, int]] = []
        for key in sorted(by_key):
            if key in placed:
                continue
            match = by_key[key]
            options = [(slot, court) for slot, court in candidates[key] if is_free(match, slot, court)]
            if chosen is None or len(options) < len(chosen_options):
                chosen, chosen_options = match, options
            if not options:
                return False

        assert chosen is not None
        chosen_options.sort(
            key=lambda option: (rest_penalty(chosen, option[0]), option[0], courts.index(option[1]))
        )
        for slot, court in chosen_options:
            stats.iterations += 1
            if stats.iterations > budget or time.monotonic() > deadline:
                raise _SearchBudgetExhausted()

            placed[chosen.key] = Placement(chosen.key, slot, court)
            for team_id in chosen.team_ids:
                team_busy.setdefault(team_id, []).append(slot)
            court_busy.setdefault(court, []).append(slot)

            if solve():
                return True

            del placed[chosen.key]
            for team_id in chosen.team_ids:
                team_busy[team_id].pop()
            court_busy[court].pop()

        return False

    try:
        solved = solve()
        reason = "No assignment satisfies every team, court and restriction constraint."
    except _SearchBudgetExhausted:
        solved = False
        reason = f"Schedule search stopped after {stats.iterations} attempts without a complete assignment."

    if not solved:
        unplaced = [
            by_key[key].label or f"match {key}"
            for key in sorted(by_key)
            if key not in stats.best
        ]
        logger.warning(
            "Schedule search failed: placed %s of %s matches (%s attempts)",
            stats.best_placed,
            len(matches),
            stats.iterations,
        )
        raise InfeasibleScheduleError(f"{reason} {len(unplaced)} match(es) could not be placed.", unplaced=unplaced)

    logger.info("Scheduled %s matches in %s attempts", len(placed), stats.iterations)
    return [placed[key] for key in sorted(placed)]


def assign_round_slots(
    round_sizes: Sequence[int],
    slots: Sequence[TimeSlot],
    court_ids: Sequence[int],
) -> list[list[tuple[TimeSlot, int]]]:
    """Give each bracket round its own slots, every round starting after the previous one ends."""
    courts = list(dict.fromkeys(court_ids))
    if not courts:
        raise PreconditionError("At least one court is needed to schedule matches.")

    pool = [(slot, court) for slot in sorted(slots) for court in courts]
    assigned: list[list[tuple[TimeSlot, int]]] = []
    not_before: dt.datetime | None = None
    cursor = 0
    for round_index, size in enumerate(round_sizes):
        picks: list[tuple[TimeSlot, int]] = []
        while len(picks) < size and cursor < len(pool):
            slot, court = pool[cursor]
            cursor += 1
            if not_before is not None and slot.start < not_before:
                continue
            picks.append((slot, court))
        if len(picks) < size:
            missing = sum(round_sizes[round_index:]) - len(picks)
            raise InfeasibleScheduleError(
                f"Not enough time slots for the playoffs: {missing} more needed.",
                unplaced=[f"round {number}" for number in range(round_index + 1, len(round_sizes) + 1)],
            )
        if picks:
            not_before = max(slot.end for slot, _ in picks)
        assigned.append(picks)

    return assigned
