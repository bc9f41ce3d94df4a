from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base

TOURNAMENT_STATUSES = ("draft", "schedule_review", "in_progress", "finished", "cancelled")
MATCH_PHASES = ("group", "playoff")
MATCH_STATUSES = ("scheduled", "in_progress", "finished")
PLAYOFF_ROUNDS = ("16avos", "octavos", "cuartos", "semifinal", "final")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ", ".join(f"'{value}'" for value in values)
    return f"{column} in ({quoted})"


class Tournament(Base):
    __tablename__ = "tournaments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(60), nullable=True)

    status = Column(String(20), default="draft", nullable=False, index=True)
    has_super_tiebreak = Column(Boolean, default=False, nullable=False)
    match_duration_minutes = Column(Integer, default=90, nullable=False)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    registration_fee = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    teams = relationship(
        "Team",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by=lambda: [Team.display_order, Team.id],
    )
    available_schedules = relationship(
        "AvailableSchedule",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by=lambda: [AvailableSchedule.date, AvailableSchedule.start_time],
    )
    groups = relationship(
        "Group",
        back_populates="tournament",
        cascade="all, delete-orphan",
        order_by="Group.group_order",
    )
    matches = relationship("Match", back_populates="tournament", cascade="all, delete-orphan")
    playoff_slots = relationship("PlayoffSlot", back_populates="tournament", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(_in_list("status", TOURNAMENT_STATUSES), name="ck_tournament_status_valid"),
        CheckConstraint("match_duration_minutes > 0", name="ck_tournament_duration_positive"),
        CheckConstraint("registration_fee is null or registration_fee >= 0", name="ck_tournament_fee_nonnegative"),
    )


class Team(Base):
    __tablename__ = "tournament_teams"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)

    # Players live in the facility's customer registry; only their ids are kept here.
    player1_id = Column(Integer, nullable=False, index=True)
    player2_id = Column(Integer, nullable=False, index=True)

    display_name = Column(String(120), nullable=True)
    seed_number = Column(Integer, nullable=True)
    is_substitute = Column(Boolean, default=False, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    notes = Column(Text, nullable=True)
    schedule_notes = Column(Text, nullable=True)

    tournament = relationship("Tournament", back_populates="teams")
    restrictions = relationship(
        "TeamRestriction",
        back_populates="team",
        cascade="all, delete-orphan",
        order_by=lambda: [TeamRestriction.date, TeamRestriction.start_time],
    )
    membership = relationship("GroupTeam", back_populates="team", uselist=False)

    __table_args__ = (
        CheckConstraint("player1_id <> player2_id", name="ck_team_distinct_players"),
        CheckConstraint("seed_number is null or seed_number >= 1", name="ck_team_seed_positive"),
    )


class TeamRestriction(Base):
    __tablename__ = "team_schedule_restrictions"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("tournament_teams.id"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    team = relationship("Team", back_populates="restrictions")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_restriction_window_valid"),
    )


class AvailableSchedule(Base):
    __tablename__ = "available_schedules"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    tournament = relationship("Tournament", back_populates="available_schedules")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_available_window_valid"),
    )


class Group(Base):
    __tablename__ = "tournament_groups"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    name = Column(String(40), nullable=False)
    group_order = Column(Integer, nullable=False)

    tournament = relationship("Tournament", back_populates="groups")
    memberships = relationship(
        "GroupTeam",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="GroupTeam.id",
    )
    matches = relationship(
        "Match",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by=lambda: [Match.match_order, Match.id],
    )
    standings = relationship(
        "Standing",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by=lambda: [Standing.position, Standing.id],
    )

    __table_args__ = (
        UniqueConstraint("tournament_id", "group_order", name="uq_group_order"),
        CheckConstraint("group_order >= 1", name="ck_group_order_positive"),
    )


class GroupTeam(Base):
    __tablename__ = "tournament_group_teams"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("tournament_groups.id"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("tournament_teams.id"), nullable=False, unique=True, index=True)

    group = relationship("Group", back_populates="memberships")
    team = relationship("Team", back_populates="membership")


class Match(Base):
    __tablename__ = "tournament_matches"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)

    phase = Column(String(16), nullable=False, index=True)
    status = Column(String(16), default="scheduled", nullable=False, index=True)

    group_id = Column(Integer, ForeignKey("tournament_groups.id"), nullable=True, index=True)
    match_order = Column(Integer, nullable=True)

    round = Column(String(16), nullable=True)
    bracket_pos = Column(Integer, nullable=True)

    team1_id = Column(Integer, ForeignKey("tournament_teams.id"), nullable=True, index=True)
    team2_id = Column(Integer, ForeignKey("tournament_teams.id"), nullable=True, index=True)
    source_team1 = Column(String(40), nullable=True)
    source_team2 = Column(String(40), nullable=True)

    match_date = Column(Date, nullable=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    court_id = Column(Integer, nullable=True)

    set1_team1_games = Column(Integer, nullable=True)
    set1_team2_games = Column(Integer, nullable=True)
    set2_team1_games = Column(Integer, nullable=True)
    set2_team2_games = Column(Integer, nullable=True)
    set3_team1_games = Column(Integer, nullable=True)
    set3_team2_games = Column(Integer, nullable=True)

    team1_sets = Column(Integer, default=0, nullable=False)
    team2_sets = Column(Integer, default=0, nullable=False)
    team1_games_total = Column(Integer, default=0, nullable=False)
    team2_games_total = Column(Integer, default=0, nullable=False)

    winner_team_id = Column(Integer, ForeignKey("tournament_teams.id"), nullable=True)
    is_bye = Column(Boolean, default=False, nullable=False)

    tournament = relationship("Tournament", back_populates="matches")
    group = relationship("Group", back_populates="matches")
    team1 = relationship("Team", foreign_keys=[team1_id])
    team2 = relationship("Team", foreign_keys=[team2_id])
    winner_team = relationship("Team", foreign_keys=[winner_team_id])
    playoff_slot = relationship(
        "PlayoffSlot",
        foreign_keys="PlayoffSlot.match_id",
        back_populates="match",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(_in_list("phase", MATCH_PHASES), name="ck_match_phase_valid"),
        CheckConstraint(_in_list("status", MATCH_STATUSES), name="ck_match_status_valid"),
        CheckConstraint("round is null or " + _in_list("round", PLAYOFF_ROUNDS), name="ck_match_round_valid"),
        CheckConstraint("team1_id <> team2_id", name="ck_match_distinct_teams"),
        CheckConstraint(
            "(phase = 'group' and group_id is not null and round is null) "
            "or (phase = 'playoff' and group_id is null and round is not null)",
            name="ck_match_phase_link",
        ),
        CheckConstraint("team1_sets >= 0 and team2_sets >= 0", name="ck_match_sets_nonnegative"),
    )

    def set_scores(self) -> list[tuple[int | None, int | None]]:
        return [
            (self.set1_team1_games, self.set1_team2_games),
            (self.set2_team1_games, self.set2_team2_games),
            (self.set3_team1_games, self.set3_team2_games),
        ]

    def has_scores(self) -> bool:
        return any(games is not None for pair in self.set_scores() for games in pair)


class Standing(Base):
    __tablename__ = "tournament_group_standings"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("tournament_groups.id"), nullable=False, index=True)
    team_id = Column(Integer, ForeignKey("tournament_teams.id"), nullable=False, index=True)

    position = Column(Integer, nullable=False)
    matches_played = Column(Integer, default=0, nullable=False)
    wins = Column(Integer, default=0, nullable=False)
    losses = Column(Integer, default=0, nullable=False)
    sets_won = Column(Integer, default=0, nullable=False)
    sets_lost = Column(Integer, default=0, nullable=False)
    games_won = Column(Integer, default=0, nullable=False)
    games_lost = Column(Integer, default=0, nullable=False)

    group = relationship("Group", back_populates="standings")
    team = relationship("Team")

    __table_args__ = (
        UniqueConstraint("group_id", "team_id", name="uq_standing_group_team"),
        CheckConstraint("position >= 1", name="ck_standing_position_positive"),
    )


class PlayoffSlot(Base):
    __tablename__ = "tournament_playoffs"

    id = Column(Integer, primary_key=True, index=True)
    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    round = Column(String(16), nullable=False)
    bracket_pos = Column(Integer, nullable=False)
    match_id = Column(Integer, ForeignKey("tournament_matches.id"), nullable=False, unique=True)

    # Each side comes from a global qualifier seed (first round) or from the winner of a feeding match.
    source1_label = Column(String(40), nullable=True)
    source1_seed = Column(Integer, nullable=True)
    source1_match_id = Column(Integer, ForeignKey("tournament_matches.id"), nullable=True, index=True)
    source2_label = Column(String(40), nullable=True)
    source2_seed = Column(Integer, nullable=True)
    source2_match_id = Column(Integer, ForeignKey("tournament_matches.id"), nullable=True, index=True)

    tournament = relationship("Tournament", back_populates="playoff_slots")
    match = relationship("Match", foreign_keys=[match_id], back_populates="playoff_slot")

    __table_args__ = (
        UniqueConstraint("tournament_id", "round", "bracket_pos", name="uq_playoff_round_pos"),
        CheckConstraint(_in_list("round", PLAYOFF_ROUNDS), name="ck_playoff_round_valid"),
        CheckConstraint("bracket_pos >= 1", name="ck_playoff_bracket_pos_positive"),
    )
