"""Single-elimination bracket construction.

Qualifiers are ranked across groups (every group winner first, then every
runner-up, then every third place, each tier in group order) and seeded into
the smallest power-of-two bracket that holds them. Missing seeds are byes:
the bye match is finished on the spot and its team moves straight into the
next round.
"""
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .errors import PreconditionError
from .scheduling import group_letter
from .standings import qualifiers_for_group_size

logger = logging.getLogger(__name__)

MAX_BRACKET_SIZE = 32
BYE_LABEL = "BYE"

# Keyed by the number of matches in the round.
ROUND_NAMES = {
    16: "16avos",
    8: "octavos",
    4: "cuartos",
    2: "semifinal",
    1: "final",
}
ROUND_ORDER = {name: index for index, name in enumerate(("16avos", "octavos", "cuartos", "semifinal", "final"))}


@dataclass(frozen=True)
class ResolvedSide:
    team_id: int
    label: str


@dataclass(frozen=True)
class PlaceholderSide:
    label: str


Side = ResolvedSide | PlaceholderSide


@dataclass(frozen=True)
class GroupResult:
    group_order: int
    ranked_team_ids: Sequence[int]
    finished: bool


@dataclass(frozen=True)
class Qualifier:
    seed: int
    position: int
    group_order: int
    side: Side

    @property
    def label(self) -> str:
        return self.side.label


@dataclass
class BracketMatch:
    round_number: int
    round: str
    bracket_pos: int
    side1: Side | None = None
    side2: Side | None = None
    source1: str | None = None
    source2: str | None = None
    seed1: int | None = None
    seed2: int | None = None
    feeder1: int | None = None
    feeder2: int | None = None
    is_bye: bool = False

    @property
    def bye_winner(self) -> Side | None:
        if not self.is_bye:
            return None
        return self.side1 or self.side2


@dataclass
class Bracket:
    slots_needed: int
    slots_available: int
    rounds: list[list[BracketMatch]] = field(default_factory=list)

    @property
    def byes(self) -> int:
        return self.slots_available - self.slots_needed

    @property
    def placeholders_used(self) -> bool:
        return any(
            isinstance(side, PlaceholderSide)
            for round_matches in self.rounds
            for match in round_matches
            for side in (match.side1, match.side2)
        )

    def matches(self) -> list[BracketMatch]:
        return [match for round_matches in self.rounds for match in round_matches]


def next_power_of_two(value: int) -> int:
    size = 1
    while size < value:
        size *= 2
    return size


def round_name(match_count: int) -> str:
    try:
        return ROUND_NAMES[match_count]
    except KeyError:
        raise PreconditionError(f"No round is defined for {match_count} matches.") from None


def winner_label(round_number: int, bracket_pos: int) -> str:
    return f"Winner R{round_number}-{bracket_pos}"


def standard_seed_order(size: int) -> list[int]:
    """Seed numbers by bracket line, e.g. 8 -> [1, 8, 4, 5, 2, 7, 3, 6]."""
    if size < 1 or size & (size - 1):
        raise ValueError("Bracket size must be a power of two.")
    if size == 1:
        return [1]

    order: list[int] = []
    for seed in standard_seed_order(size // 2):
        order.extend((seed, size + 1 - seed))
    return order


def rank_qualifiers(groups: Sequence[GroupResult]) -> list[Qualifier]:
    entries: list[tuple[int, int, Side]] = []
    for group in groups:
        letter = group_letter(group.group_order)
        count = qualifiers_for_group_size(len(group.ranked_team_ids))
        for position, team_id in enumerate(group.ranked_team_ids[:count], start=1):
            label = f"{position}{letter}"
            side: Side = ResolvedSide(team_id, label) if group.finished else PlaceholderSide(label)
            entries.append((position, group.group_order, side))

    entries.sort(key=lambda entry: (entry[0], entry[1]))
    return [
        Qualifier(seed=seed, position=position, group_order=group_order, side=side)
        for seed, (position, group_order, side) in enumerate(entries, start=1)
    ]


def _first_meetings(order: list[int], by_seed: dict[int, Qualifier]) -> set[tuple[int, int]]:
    """Bracket lines that can meet in each team's first real match.

    A team with a bye plays its first match in round 2, against either side
    of the neighbouring first-round pairing.
    """
    meetings: set[tuple[int, int]] = set()
    for start in range(0, len(order), 2):
        lines = [line for line in (start, start + 1) if order[line] in by_seed]
        if len(lines) == 2:
            meetings.add((start, start + 1))
            continue
        neighbour = start ^ 2
        for line in lines:
            for other in (neighbour, neighbour + 1):
                if order[other] in by_seed:
                    meetings.add((min(line, other), max(line, other)))
    return meetings


def _separate_group_rematches(order: list[int], by_seed: dict[int, Qualifier]) -> None:
    """Swap seeds between bracket lines so group mates do not meet in their first match.

    Group winners keep their lines, and a seed only trades places with a seed
    in the same situation (both with a bye, or both playing round one).
    """

    def clashes() -> list[tuple[int, int]]:
        return sorted(
            (first, second)
            for first, second in _first_meetings(order, by_seed)
            if by_seed[order[first]].group_order == by_seed[order[second]].group_order
        )

    def has_bye(line: int) -> bool:
        return order[line ^ 1] not in by_seed

    current = clashes()
    while current:
        best = None
        for first, second in current:
            weaker = first if order[first] > order[second] else second
            for line, seed in enumerate(order):
                if line == weaker or seed not in by_seed or by_seed[seed].position == 1:
                    continue
                if has_bye(line) != has_bye(weaker):
                    continue
                distance = abs(seed - order[weaker])
                order[weaker], order[line] = order[line], order[weaker]
                candidate = (len(clashes()), distance, weaker, line)
                order[weaker], order[line] = order[line], order[weaker]
                if best is None or candidate < best:
                    best = candidate

        if best is None or best[0] >= len(current):
            break
        _, _, weaker, line = best
        logger.debug("Swapped seeds %s and %s to keep group mates apart", order[weaker], order[line])
        order[weaker], order[line] = order[line], order[weaker]
        current = clashes()


def build_bracket(qualifiers: Sequence[Qualifier]) -> Bracket:
    slots_needed = len(qualifiers)
    if slots_needed < 2:
        raise PreconditionError("At least 2 qualified teams are needed to build the playoffs.")

    slots_available = next_power_of_two(slots_needed)
    if slots_available > MAX_BRACKET_SIZE:
        raise PreconditionError(
            f"{slots_needed} qualified teams exceed the largest supported bracket ({MAX_BRACKET_SIZE})."
        )

    by_seed = {qualifier.seed: qualifier for qualifier in qualifiers}
    order = standard_seed_order(slots_available)
    _separate_group_rematches(order, by_seed)
    pairs = [(order[index], order[index + 1]) for index in range(0, slots_available, 2)]

    bracket = Bracket(slots_needed=slots_needed, slots_available=slots_available)

    first_round: list[BracketMatch] = []
    name = round_name(len(pairs))
    for bracket_pos, (seed1, seed2) in enumerate(pairs, start=1):
        first = by_seed.get(seed1)
        second = by_seed.get(seed2)
        first_round.append(
            BracketMatch(
                round_number=1,
                round=name,
                bracket_pos=bracket_pos,
                side1=first.side if first else None,
                side2=second.side if second else None,
                source1=first.label if first else BYE_LABEL,
                source2=second.label if second else BYE_LABEL,
                seed1=seed1 if first else None,
                seed2=seed2 if second else None,
                is_bye=first is None or second is None,
            )
        )
    bracket.rounds.append(first_round)

    previous = first_round
    round_number = 1
    while len(previous) > 1:
        round_number += 1
        count = len(previous) // 2
        name = round_name(count)
        current = [
            BracketMatch(
                round_number=round_number,
                round=name,
                bracket_pos=bracket_pos,
                source1=winner_label(round_number - 1, 2 * bracket_pos - 1),
                source2=winner_label(round_number - 1, 2 * bracket_pos),
                feeder1=2 * bracket_pos - 1,
                feeder2=2 * bracket_pos,
            )
            for bracket_pos in range(1, count + 1)
        ]
        bracket.rounds.append(current)
        previous = current

    if len(bracket.rounds) > 1:
        for match in first_round:
            winner = match.bye_winner
            if winner is not None:
                advance(bracket.rounds[1], match.bracket_pos, winner)

    logger.debug(
        "Bracket built: %s qualifiers, %s slots, %s byes",
        slots_needed,
        slots_available,
        bracket.byes,
    )
    return bracket


def next_position(bracket_pos: int) -> tuple[int, int]:
    """Where the winner of a match goes: (bracket_pos in next round, side 1 or 2)."""
    return (bracket_pos + 1) // 2, 1 if bracket_pos % 2 else 2


def advance(next_round: list[BracketMatch], bracket_pos: int, side: Side) -> None:
    target_pos, target_side = next_position(bracket_pos)
    target = next_round[target_pos - 1]
    if target_side == 1:
        target.side1 = side
    else:
        target.side2 = side
