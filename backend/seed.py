from __future__ import annotations

import argparse
from datetime import date, time, timedelta

from sqlalchemy.orm import Session

from app import crud, schemas
from app.database import Base, SessionLocal, engine

DEMO_TOURNAMENT = {
    "name": "Torneo Apertura",
    "category": "Mixed 6th",
    "description": "Weekend doubles tournament with round-robin zones and a playoff bracket.",
    "has_super_tiebreak": True,
    "match_duration_minutes": 90,
    "registration_fee": 20000,
}

# (player1_id, player2_id, display_name); player ids come from the facility's customer registry.
DEMO_TEAMS = [
    (101, 102, "Acosta / Benitez"),
    (103, 104, "Castro / Dominguez"),
    (105, 106, "Espinoza / Ferreyra"),
    (107, 108, "Gimenez / Herrera"),
    (109, 110, "Ibarra / Juarez"),
    (111, 112, "Ledesma / Molina"),
    (113, 114, "Navarro / Ortiz"),
    (115, 116, "Paz / Quiroga"),
    (117, 118, "Ramos / Sosa"),
]

# (day offset, start, end)
DEMO_WINDOWS = [
    (0, time(9, 0), time(13, 30)),
    (0, time(15, 0), time(21, 0)),
    (1, time(9, 0), time(13, 30)),
    (1, time(15, 0), time(21, 0)),
]

DEMO_RESULTS = [
    [(6, 3), (6, 4)],
    [(4, 6), (7, 5), (7, 6)],
    [(7, 6), (6, 2)],
    [(6, 1), (3, 6), (6, 7)],
]


def reset_database() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def next_saturday(today: date | None = None) -> date:
    today = today or date.today()
    return today + timedelta(days=(5 - today.weekday()) % 7 or 7)


def apply_demo_progress(db: Session, tournament_id: int) -> None:
    crud.close_registration(db, tournament_id)
    crud.close_schedule_review(db, tournament_id)

    matches = crud.list_matches(db, tournament_id=tournament_id, phase="group")
    for match, sets in zip(matches, DEMO_RESULTS):
        payload = schemas.MatchResultSubmit(
            sets=[schemas.SetScoreInput(team1=team1, team2=team2) for team1, team2 in sets]
        )
        crud.submit_match_result(db, match.id, payload)


def seed(*, demo_progress: bool = False) -> None:
    reset_database()

    db = SessionLocal()
    try:
        first_day = next_saturday()
        tournament = crud.create_tournament(
            db,
            schemas.TournamentCreate(
                start_date=first_day,
                end_date=first_day + timedelta(days=1),
                **DEMO_TOURNAMENT,
            ),
        )

        for order, (player1_id, player2_id, name) in enumerate(DEMO_TEAMS):
            crud.create_team(
                db,
                tournament.id,
                schemas.TeamCreate(
                    player1_id=player1_id,
                    player2_id=player2_id,
                    display_name=name,
                    display_order=order,
                ),
            )

        for offset, start, end in DEMO_WINDOWS:
            crud.create_available_schedule(
                db,
                tournament.id,
                schemas.ScheduleWindow(date=first_day + timedelta(days=offset), start_time=start, end_time=end),
            )

        # One team works Saturday mornings.
        first_team = crud.list_teams(db, tournament.id)[0]
        crud.set_team_restrictions(
            db,
            tournament.id,
            first_team.id,
            schemas.TeamRestrictionsUpdate(
                restricted_schedules=[
                    schemas.ScheduleWindow(date=first_day, start_time=time(9, 0), end_time=time(13, 0))
                ],
                schedule_notes="Not available on Saturday morning.",
            ),
        )

        crud.generate_groups(db, tournament.id, schemas.GroupGenerateRequest(group_size=3, court_ids=[1, 2]))

        if demo_progress:
            apply_demo_progress(db, tournament.id)
    finally:
        db.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed tournament data.")
    parser.add_argument(
        "--demo-progress",
        action="store_true",
        help="Move the demo tournament into play and record a few group results.",
    )
    args = parser.parse_args()

    seed(demo_progress=args.demo_progress)
    mode = "demo" if args.demo_progress else "fresh"
    print(f"Seed completed ({mode})")
