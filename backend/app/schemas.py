import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from . import config


class ORMBaseModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


TournamentStatus = Literal["draft", "schedule_review", "in_progress", "finished", "cancelled"]
MatchPhase = Literal["group", "playoff"]
MatchStatus = Literal["scheduled", "in_progress", "finished"]
PlayoffRound = Literal["16avos", "octavos", "cuartos", "semifinal", "final"]


def _default_court_ids() -> list[int]:
    return list(config.DEFAULT_COURT_IDS)


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------


class TournamentCreate(BaseModel):
    name: str = Field(min_length=2, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=60)
    has_super_tiebreak: bool = False
    match_duration_minutes: int = Field(default=config.DEFAULT_MATCH_DURATION_MINUTES, gt=0, le=600)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    registration_fee: int | None = Field(default=None, ge=0)


class TournamentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=2, max_length=120)
    description: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=60)
    has_super_tiebreak: bool | None = None
    match_duration_minutes: int | None = Field(default=None, gt=0, le=600)
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    registration_fee: int | None = Field(default=None, ge=0)


class TournamentRead(ORMBaseModel):
    id: int
    name: str
    description: str | None = None
    category: str | None = None
    status: TournamentStatus
    has_super_tiebreak: bool
    match_duration_minutes: int
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    registration_fee: int | None = Field(default=None, ge=0)
    version: int


# ---------------------------------------------------------------------------
# Teams and availability
# ---------------------------------------------------------------------------


class ScheduleWindow(BaseModel):
    date: dt.date
    start_time: dt.time
    end_time: dt.time

    @model_validator(mode="after")
    def check_order(self) -> "ScheduleWindow":
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class TeamCreate(BaseModel):
    player1_id: int = Field(gt=0)
    player2_id: int = Field(gt=0)
    display_name: str | None = Field(default=None, max_length=120)
    seed_number: int | None = Field(default=None, ge=1)
    is_substitute: bool = False
    display_order: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=2000)


class TeamRead(BaseModel):
    id: int
    tournament_id: int
    player1_id: int
    player2_id: int
    display_name: str
    seed_number: int | None = None
    is_substitute: bool
    display_order: int
    notes: str | None = None
    schedule_notes: str | None = None
    group_id: int | None = None


class RestrictionRead(ORMBaseModel):
    id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time


class TeamRestrictionsUpdate(BaseModel):
    restricted_schedules: list[ScheduleWindow] = Field(default_factory=list)
    schedule_notes: str | None = Field(default=None, max_length=2000)


class AvailableScheduleRead(ORMBaseModel):
    id: int
    tournament_id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time


# ---------------------------------------------------------------------------
# Groups and standings
# ---------------------------------------------------------------------------


class GroupGenerateRequest(BaseModel):
    group_size: int = Field(default=3, ge=2, le=8)
    group_count: int | None = Field(default=None, ge=1)
    court_ids: list[int] = Field(default_factory=_default_court_ids, min_length=1)


class RescheduleRequest(BaseModel):
    court_ids: list[int] = Field(default_factory=_default_court_ids, min_length=1)


class GroupScheduleSwap(BaseModel):
    group_a_id: int = Field(gt=0)
    group_b_id: int = Field(gt=0)


class TeamSwap(BaseModel):
    team1_id: int = Field(gt=0)
    group1_id: int = Field(gt=0)
    team2_id: int = Field(gt=0)
    group2_id: int = Field(gt=0)


class GroupTeamRead(BaseModel):
    team_id: int
    team: str


class GroupRead(BaseModel):
    id: int
    name: str
    group_order: int
    teams: list[GroupTeamRead] = Field(default_factory=list)


class StandingRead(BaseModel):
    group_id: int
    team_id: int
    team: str
    position: int
    matches_played: int
    wins: int
    losses: int
    sets_won: int
    sets_lost: int
    games_won: int
    games_lost: int
    set_difference: int
    game_difference: int
    qualifies: bool = False


class GroupStandingsRead(BaseModel):
    group_id: int
    name: str
    group_order: int
    completed: bool
    standings: list[StandingRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


class SetScoreInput(BaseModel):
    team1: int | None = Field(default=None, le=99)
    team2: int | None = Field(default=None, le=99)


class MatchResultSubmit(BaseModel):
    sets: list[SetScoreInput] = Field(max_length=3)


class MatchScheduleUpdate(BaseModel):
    match_date: dt.date
    start_time: dt.time
    end_time: dt.time | None = None
    court_id: int = Field(gt=0)


class MatchStatusUpdate(BaseModel):
    status: Literal["scheduled", "in_progress"]


class MatchRead(BaseModel):
    id: int
    tournament_id: int
    phase: MatchPhase
    status: MatchStatus

    group_id: int | None = None
    group_name: str | None = None
    match_order: int | None = None
    round: PlayoffRound | None = None
    bracket_pos: int | None = None

    team1_id: int | None = None
    team1: str | None = None
    team2_id: int | None = None
    team2: str | None = None
    source_team1: str | None = None
    source_team2: str | None = None

    match_date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    court_id: int | None = None

    set1_team1_games: int | None = None
    set1_team2_games: int | None = None
    set2_team1_games: int | None = None
    set2_team2_games: int | None = None
    set3_team1_games: int | None = None
    set3_team2_games: int | None = None

    team1_sets: int = 0
    team2_sets: int = 0
    team1_games_total: int = 0
    team2_games_total: int = 0
    winner_team_id: int | None = None
    is_bye: bool = False


class GroupsResponse(BaseModel):
    groups: list[GroupRead] = Field(default_factory=list)
    matches: list[MatchRead] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Playoffs
# ---------------------------------------------------------------------------


class PlayoffRequest(BaseModel):
    days: list[ScheduleWindow] = Field(default_factory=list)
    court_ids: list[int] = Field(default_factory=list)


class BracketSideRead(BaseModel):
    team_id: int | None = None
    team: str | None = None
    label: str
    placeholder: bool = False


class BracketMatchRead(BaseModel):
    round: PlayoffRound
    bracket_pos: int
    team1: BracketSideRead | None = None
    team2: BracketSideRead | None = None
    source_team1: str | None = None
    source_team2: str | None = None
    is_bye: bool = False
    match_date: dt.date | None = None
    start_time: dt.time | None = None
    end_time: dt.time | None = None
    court_id: int | None = None


class BracketRoundRead(BaseModel):
    round: PlayoffRound
    matches: list[BracketMatchRead] = Field(default_factory=list)


class PlayoffPreviewRead(BaseModel):
    rounds: list[BracketRoundRead] = Field(default_factory=list)
    slots_needed: int
    slots_available: int
    byes: int
    placeholders_used: bool
    time_slots_needed: int = 0
    time_slots_available: int = 0


class PlayoffRowRead(BaseModel):
    id: int
    round: PlayoffRound
    bracket_pos: int
    source_team1: str | None = None
    source_team2: str | None = None
    match: MatchRead


class PlayoffsRead(BaseModel):
    rows: list[PlayoffRowRead] = Field(default_factory=list)
    slots_needed: int = 0
    slots_available: int = 0
    byes: int = 0
