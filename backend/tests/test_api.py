import itertools
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app import crud, models, schemas
from app.database import Base, atomic, get_db
from app.errors import ConcurrentModificationError, StorageUnavailableError
from app.main import app

DAY_ONE = "2025-01-01"
DAY_TWO = "2025-01-02"

WEEKEND_WINDOWS = [
    (DAY_ONE, "09:00:00", "13:30:00"),
    (DAY_ONE, "15:00:00", "19:30:00"),
    (DAY_TWO, "09:00:00", "13:30:00"),
    (DAY_TWO, "15:00:00", "19:30:00"),
]


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    Base.metadata.create_all(bind=engine)
    return session_factory


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create_tournament(client, **overrides):
    payload = {"name": "Club Open", "match_duration_minutes": 90, **overrides}
    response = client.post("/tournaments/", json=payload)
    assert response.status_code == 201
    return response.json()


def register_teams(client, tournament_id, count):
    teams = []
    for index in range(count):
        response = client.post(
            f"/tournaments/{tournament_id}/teams",
            json={
                "player1_id": 2 * index + 1,
                "player2_id": 2 * index + 2,
                "display_name": f"Pair {index + 1}",
            },
        )
        assert response.status_code == 201
        teams.append(response.json())
    return teams


def add_windows(client, tournament_id, windows):
    for day, start_time, end_time in windows:
        response = client.post(
            f"/tournaments/{tournament_id}/available-schedules",
            json={"date": day, "start_time": start_time, "end_time": end_time},
        )
        assert response.status_code == 201


def build_grouped_tournament(client, team_count, windows=WEEKEND_WINDOWS, group_size=3, **overrides):
    tournament = create_tournament(client, **overrides)
    teams = register_teams(client, tournament["id"], team_count)
    add_windows(client, tournament["id"], windows)
    response = client.post(
        f"/tournaments/{tournament['id']}/groups",
        json={"group_size": group_size, "court_ids": [1, 2]},
    )
    assert response.status_code == 201
    return tournament, teams, response.json()


def start_play(client, tournament_id):
    response = client.post(f"/tournaments/{tournament_id}/close-registration")
    assert response.status_code == 200
    response = client.post(f"/tournaments/{tournament_id}/close-schedule-review")
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"


def sets_payload(*scores):
    return {"sets": [{"team1": team1, "team2": team2} for team1, team2 in scores]}


def group_matches(client, tournament_id, group_id=None):
    params = {"tournament_id": tournament_id, "phase": "group"}
    if group_id is not None:
        params["group_id"] = group_id
    response = client.get("/matches/", params=params)
    assert response.status_code == 200
    return response.json()


def finish_group_stage(client, tournament_id):
    for match in group_matches(client, tournament_id):
        response = client.put(f"/matches/{match['id']}/result", json=sets_payload((6, 3), (6, 4)))
        assert response.status_code == 200


def playoff_rows(client, tournament_id):
    response = client.get(f"/tournaments/{tournament_id}/playoffs")
    assert response.status_code == 200
    return response.json()


def slot_of(match):
    return (match["match_date"], match["start_time"], match["end_time"], match["court_id"])


def in_match_order(matches):
    return sorted(matches, key=lambda match: (match["match_order"] or 0, match["id"]))


def span_of(match):
    start = datetime.fromisoformat(f"{match['match_date']}T{match['start_time']}")
    end = datetime.fromisoformat(f"{match['match_date']}T{match['end_time']}")
    return start, end


def assert_no_clashes(matches):
    for first, second in itertools.combinations(matches, 2):
        first_start, first_end = span_of(first)
        second_start, second_end = span_of(second)
        if max(first_start, second_start) >= min(first_end, second_end):
            continue
        assert not {first["team1_id"], first["team2_id"]} & {second["team1_id"], second["team2_id"]}
        assert first["court_id"] != second["court_id"]


def test_healthcheck(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_tournament_crud_and_status_filter(client):
    tournament = create_tournament(client, registration_fee=15000, category="Mixed")
    assert tournament["status"] == "draft"
    assert tournament["has_super_tiebreak"] is False

    response = client.patch(f"/tournaments/{tournament['id']}", json={"name": "  Club   Closing  "})
    assert response.status_code == 200
    assert response.json()["name"] == "Club Closing"

    response = client.get("/tournaments/", params={"status": "draft"})
    assert [item["id"] for item in response.json()] == [tournament["id"]]
    response = client.get("/tournaments/", params={"status": "in_progress"})
    assert response.json() == []

    response = client.post("/tournaments/", json={"name": "Bad dates", "start_date": DAY_TWO, "end_date": DAY_ONE})
    assert response.status_code == 400

    response = client.delete(f"/tournaments/{tournament['id']}")
    assert response.status_code == 204
    assert client.get(f"/tournaments/{tournament['id']}").status_code == 404


def test_team_registration_rules(client):
    tournament = create_tournament(client)
    tournament_id = tournament["id"]
    first, second = register_teams(client, tournament_id, 2)
    assert first["display_order"] == 0
    assert second["display_order"] == 1

    response = client.post(f"/tournaments/{tournament_id}/teams", json={"player1_id": 50, "player2_id": 50})
    assert response.status_code == 400

    response = client.post(f"/tournaments/{tournament_id}/teams", json={"player1_id": 1, "player2_id": 60})
    assert response.status_code == 400
    assert "already registered" in response.json()["detail"]

    response = client.delete(f"/tournaments/{tournament_id}/teams/{second['id']}")
    assert response.status_code == 204
    response = client.get(f"/tournaments/{tournament_id}/teams")
    assert [team["id"] for team in response.json()] == [first["id"]]

    response = client.delete(f"/tournaments/{tournament_id}/teams/9999")
    assert response.status_code == 404


def test_generate_groups_builds_full_round_robin(client):
    tournament, teams, payload = build_grouped_tournament(client, 9, group_size=4)

    sizes = sorted(len(group["teams"]) for group in payload["groups"])
    assert sizes == [4, 5]
    assert [group["name"] for group in payload["groups"]] == ["Zona A", "Zona B"]

    for group in payload["groups"]:
        member_ids = {team["team_id"] for team in group["teams"]}
        matches = [match for match in payload["matches"] if match["group_id"] == group["id"]]
        pairs = [frozenset((match["team1_id"], match["team2_id"])) for match in matches]
        size = len(member_ids)
        assert len(matches) == size * (size - 1) // 2
        assert len(set(pairs)) == len(pairs)
        assert all(pair <= member_ids for pair in pairs)

    assert all(match["match_date"] and match["court_id"] in (1, 2) for match in payload["matches"])
    assert_no_clashes(payload["matches"])

    response = client.get(f"/tournaments/{tournament['id']}/teams")
    assert all(team["group_id"] is not None for team in response.json())

    response = client.delete(f"/tournaments/{tournament['id']}/teams/{teams[0]['id']}")
    assert response.status_code == 409


def test_restricted_team_is_never_scheduled_inside_its_blackout(client):
    tournament = create_tournament(client)
    tournament_id = tournament["id"]
    teams = register_teams(client, tournament_id, 6)
    add_windows(
        client,
        tournament_id,
        [(DAY_ONE, "13:00:00", "17:00:00"), (DAY_TWO, "13:00:00", "17:00:00")],
    )

    restricted = teams[0]
    response = client.put(
        f"/tournaments/{tournament_id}/teams/{restricted['id']}/restrictions",
        json={
            "restricted_schedules": [{"date": DAY_ONE, "start_time": "14:00:00", "end_time": "16:00:00"}],
            "schedule_notes": "Works until four.",
        },
    )
    assert response.status_code == 200
    assert len(response.json()) == 1

    response = client.post(f"/tournaments/{tournament_id}/groups", json={"court_ids": [1, 2]})
    assert response.status_code == 201
    matches = response.json()["matches"]
    assert_no_clashes(matches)

    blackout_start = datetime.fromisoformat(f"{DAY_ONE}T14:00:00")
    blackout_end = datetime.fromisoformat(f"{DAY_ONE}T16:00:00")
    own = [match for match in matches if restricted["id"] in (match["team1_id"], match["team2_id"])]
    assert own
    for match in own:
        start, end = span_of(match)
        assert not (start < blackout_end and blackout_start < end)

    response = client.put(
        f"/tournaments/{tournament_id}/teams/{restricted['id']}/restrictions",
        json={"restricted_schedules": []},
    )
    assert response.status_code == 409


def test_infeasible_schedule_reports_unplaced_matches_and_keeps_nothing(client):
    tournament = create_tournament(client)
    tournament_id = tournament["id"]
    register_teams(client, tournament_id, 3)
    add_windows(client, tournament_id, [(DAY_ONE, "09:00:00", "10:30:00")])

    response = client.post(f"/tournaments/{tournament_id}/groups", json={"court_ids": [1]})
    assert response.status_code == 422
    detail = response.json()["detail"]
    assert len(detail["unplaced"]) == 2
    assert "could not be placed" in detail["message"]

    response = client.get(f"/tournaments/{tournament_id}/groups")
    assert response.json() == {"groups": [], "matches": []}


def test_close_schedule_review_requires_every_match_scheduled(client):
    tournament = create_tournament(client)
    tournament_id = tournament["id"]

    response = client.post(f"/tournaments/{tournament_id}/close-registration")
    assert response.status_code == 409
    assert "generate the groups first" in response.json()["detail"]

    register_teams(client, tournament_id, 3)
    response = client.post(f"/tournaments/{tournament_id}/groups")
    assert response.status_code == 201
    assert all(match["match_date"] is None for match in response.json()["matches"])

    response = client.post(f"/tournaments/{tournament_id}/close-registration")
    assert response.status_code == 200
    response = client.post(f"/tournaments/{tournament_id}/close-schedule-review")
    assert response.status_code == 409
    assert "3 group matches still lack a date" in response.json()["detail"]

    add_windows(client, tournament_id, [(DAY_ONE, "09:00:00", "18:00:00")])
    response = client.post(f"/tournaments/{tournament_id}/groups/reschedule", json={"court_ids": [1]})
    assert response.status_code == 200
    assert all(match["start_time"] for match in response.json())

    response = client.post(f"/tournaments/{tournament_id}/close-schedule-review")
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"


def test_status_actions_only_apply_to_their_source_status(client):
    tournament, _, _ = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]

    response = client.post(f"/tournaments/{tournament_id}/reopen-schedule-review")
    assert response.status_code == 409

    start_play(client, tournament_id)
    response = client.post(f"/tournaments/{tournament_id}/close-registration")
    assert response.status_code == 409
    response = client.post(f"/tournaments/{tournament_id}/cancel")
    assert response.status_code == 409
    response = client.delete(f"/tournaments/{tournament_id}")
    assert response.status_code == 409

    response = client.post(f"/tournaments/{tournament_id}/reopen-schedule-review")
    assert response.status_code == 200
    assert response.json()["status"] == "schedule_review"

    response = client.post(f"/tournaments/{tournament_id}/cancel")
    assert response.status_code == 200
    response = client.patch(f"/tournaments/{tournament_id}", json={"name": "Renamed"})
    assert response.status_code == 409


def test_reopen_schedule_review_is_blocked_once_a_result_exists(client):
    tournament, _, payload = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]
    start_play(client, tournament_id)

    match_id = payload["matches"][0]["id"]
    response = client.put(f"/matches/{match_id}/result", json=sets_payload((6, 2), (6, 2)))
    assert response.status_code == 200

    response = client.post(f"/tournaments/{tournament_id}/reopen-schedule-review")
    assert response.status_code == 409
    assert "already have set scores" in response.json()["detail"]


def test_match_status_follows_play(client):
    tournament, _, payload = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]
    match_id = payload["matches"][0]["id"]

    response = client.patch(f"/matches/{match_id}/status", json={"status": "in_progress"})
    assert response.status_code == 409

    start_play(client, tournament_id)
    response = client.patch(f"/matches/{match_id}/status", json={"status": "in_progress"})
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"

    response = client.post(f"/tournaments/{tournament_id}/reopen-schedule-review")
    assert response.status_code == 409
    assert "in progress or finished" in response.json()["detail"]

    response = client.put(f"/matches/{match_id}/result", json=sets_payload((6, 2), (6, 2)))
    assert response.status_code == 200
    response = client.patch(f"/matches/{match_id}/status", json={"status": "scheduled"})
    assert response.status_code == 409


def test_swap_group_schedules_exchanges_slots(client):
    tournament, _, payload = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]
    group_a, group_b = payload["groups"]
    before_a = in_match_order(group_matches(client, tournament_id, group_a["id"]))
    before_b = in_match_order(group_matches(client, tournament_id, group_b["id"]))
    assert len(before_a) == len(before_b) == 3

    response = client.post(
        f"/tournaments/{tournament_id}/groups/swap-schedules",
        json={"group_a_id": group_a["id"], "group_b_id": group_b["id"]},
    )
    assert response.status_code == 200

    after_a = in_match_order(group_matches(client, tournament_id, group_a["id"]))
    after_b = in_match_order(group_matches(client, tournament_id, group_b["id"]))
    assert [match["id"] for match in after_a] == [match["id"] for match in before_a]
    assert [match["id"] for match in after_b] == [match["id"] for match in before_b]
    for index in range(len(before_a)):
        assert slot_of(after_a[index]) == slot_of(before_b[index])
        assert slot_of(after_b[index]) == slot_of(before_a[index])
    assert_no_clashes(group_matches(client, tournament_id))


def test_swap_group_schedules_rejects_groups_of_different_size(client):
    tournament, _, payload = build_grouped_tournament(client, 7)
    group_a, group_b = payload["groups"]
    assert (len(group_a["teams"]), len(group_b["teams"])) == (4, 3)
    before = {match["id"]: slot_of(match) for match in group_matches(client, tournament["id"])}

    response = client.post(
        f"/tournaments/{tournament['id']}/groups/swap-schedules",
        json={"group_a_id": group_a["id"], "group_b_id": group_b["id"]},
    )
    assert response.status_code == 409
    assert "same number of matches" in response.json()["detail"]

    after = {match["id"]: slot_of(match) for match in group_matches(client, tournament["id"])}
    assert after == before


def test_swap_teams_moves_membership_and_matches(client):
    tournament, _, payload = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]
    group_a, group_b = payload["groups"]
    team_a = group_a["teams"][0]["team_id"]
    team_b = group_b["teams"][0]["team_id"]

    response = client.post(
        f"/tournaments/{tournament_id}/groups/swap-teams",
        json={"team1_id": team_a, "group1_id": group_b["id"], "team2_id": team_b, "group2_id": group_a["id"]},
    )
    assert response.status_code == 409
    assert "is not in" in response.json()["detail"]

    response = client.post(
        f"/tournaments/{tournament_id}/groups/swap-teams",
        json={"team1_id": team_a, "group1_id": group_a["id"], "team2_id": team_b, "group2_id": group_b["id"]},
    )
    assert response.status_code == 200
    groups = {group["id"]: group for group in response.json()["groups"]}
    assert team_b in {team["team_id"] for team in groups[group_a["id"]]["teams"]}
    assert team_a in {team["team_id"] for team in groups[group_b["id"]]["teams"]}

    for match in group_matches(client, tournament_id, group_a["id"]):
        assert team_a not in (match["team1_id"], match["team2_id"])
    assert any(
        team_b in (match["team1_id"], match["team2_id"])
        for match in group_matches(client, tournament_id, group_a["id"])
    )

    standings = client.get(f"/tournaments/{tournament_id}/standings").json()
    table_a = next(table for table in standings if table["group_id"] == group_a["id"])
    assert team_b in {row["team_id"] for row in table_a["standings"]}
    assert team_a not in {row["team_id"] for row in table_a["standings"]}


def test_manual_match_schedule_rejects_conflicts(client):
    tournament, _, payload = build_grouped_tournament(client, 6)
    first, second = payload["matches"][0], payload["matches"][1]

    response = client.patch(
        f"/matches/{first['id']}/schedule",
        json={
            "match_date": second["match_date"],
            "start_time": second["start_time"],
            "court_id": second["court_id"],
        },
    )
    assert response.status_code == 409

    response = client.patch(
        f"/matches/{first['id']}/schedule",
        json={"match_date": "2025-01-03", "start_time": "10:00:00", "court_id": 3},
    )
    assert response.status_code == 200
    assert response.json()["end_time"] == "11:30:00"


def test_submit_result_validates_sets_and_updates_standings(client):
    tournament, _, payload = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]
    match = payload["matches"][0]

    response = client.put(f"/matches/{match['id']}/result", json=sets_payload((6, 3), (6, 4)))
    assert response.status_code == 409

    start_play(client, tournament_id)

    response = client.put(f"/matches/{match['id']}/result", json=sets_payload((6, 3), (6, 4), (6, 2)))
    assert response.status_code == 400
    assert "Set 3 must not be played" in response.json()["detail"]

    response = client.put(f"/matches/{match['id']}/result", json=sets_payload((6, 5), (6, 4)))
    assert response.status_code == 400
    assert "6-5 must continue to 7-5" in response.json()["detail"]

    response = client.put(f"/matches/{match['id']}/result", json=sets_payload((6, 3), (4, 6), (7, 5)))
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "finished"
    assert (body["team1_sets"], body["team2_sets"]) == (2, 1)
    assert (body["team1_games_total"], body["team2_games_total"]) == (17, 14)
    assert body["winner_team_id"] == match["team1_id"]

    tables = client.get(f"/tournaments/{tournament_id}/standings").json()
    table = next(item for item in tables if item["group_id"] == match["group_id"])
    rows = {row["team_id"]: row for row in table["standings"]}
    winner = rows[match["team1_id"]]
    loser = rows[match["team2_id"]]
    assert (winner["position"], winner["wins"], winner["set_difference"], winner["game_difference"]) == (1, 1, 1, 3)
    assert (loser["position"], loser["losses"], loser["sets_won"], loser["games_won"]) == (3, 1, 1, 14)
    assert table["completed"] is False


def test_super_tiebreak_third_set_is_recorded_as_seven_six(client):
    tournament, _, payload = build_grouped_tournament(client, 6, has_super_tiebreak=True)
    start_play(client, tournament["id"])
    match = payload["matches"][0]

    response = client.put(f"/matches/{match['id']}/result", json=sets_payload((6, 3), (3, 6), (10, 8)))
    assert response.status_code == 400

    response = client.put(f"/matches/{match['id']}/result", json=sets_payload((6, 3), (3, 6), (6, 7)))
    assert response.status_code == 200
    assert response.json()["winner_team_id"] == match["team2_id"]


def test_playoff_preview_uses_placeholders_and_plans_rounds(client):
    tournament, _, _ = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]

    response = client.post(f"/tournaments/{tournament_id}/playoffs/preview")
    assert response.status_code == 200
    preview = response.json()
    assert (preview["slots_needed"], preview["slots_available"], preview["byes"]) == (4, 4, 0)
    assert preview["placeholders_used"] is True
    assert [item["round"] for item in preview["rounds"]] == ["semifinal", "final"]
    first_round = preview["rounds"][0]["matches"]
    assert [(item["source_team1"], item["source_team2"]) for item in first_round] == [("1A", "2B"), ("1B", "2A")]
    assert all(item["team1"]["placeholder"] and item["team1"]["team_id"] is None for item in first_round)
    assert preview["rounds"][1]["matches"][0]["source_team1"] == "Winner R1-1"

    response = client.post(
        f"/tournaments/{tournament_id}/playoffs/preview",
        json={"days": [{"date": "2025-01-04", "start_time": "09:00:00", "end_time": "15:00:00"}], "court_ids": [1]},
    )
    assert response.status_code == 200
    planned = response.json()
    assert (planned["time_slots_needed"], planned["time_slots_available"]) == (3, 4)
    assert [item["start_time"] for item in planned["rounds"][0]["matches"]] == ["09:00:00", "10:30:00"]
    assert planned["rounds"][1]["matches"][0]["start_time"] == "12:00:00"

    response = client.post(
        f"/tournaments/{tournament_id}/playoffs/preview",
        json={"days": [{"date": "2025-01-04", "start_time": "09:00:00", "end_time": "12:00:00"}], "court_ids": [1]},
    )
    assert response.status_code == 422

    start_play(client, tournament_id)
    finish_group_stage(client, tournament_id)
    resolved = client.post(f"/tournaments/{tournament_id}/playoffs/preview").json()
    assert resolved["placeholders_used"] is False
    assert all(item["team1"]["team_id"] for item in resolved["rounds"][0]["matches"])


def test_generate_playoffs_with_byes_and_winner_propagation(client):
    tournament, _, _ = build_grouped_tournament(client, 7)
    tournament_id = tournament["id"]
    start_play(client, tournament_id)

    response = client.post(f"/tournaments/{tournament_id}/playoffs")
    assert response.status_code == 409

    finish_group_stage(client, tournament_id)
    response = client.post(f"/tournaments/{tournament_id}/playoffs")
    assert response.status_code == 201
    bracket = response.json()
    assert (bracket["slots_needed"], bracket["slots_available"], bracket["byes"]) == (5, 8, 3)
    assert [row["round"] for row in bracket["rows"]].count("cuartos") == 4

    rows = {(row["round"], row["bracket_pos"]): row for row in bracket["rows"]}
    byes = [row for row in bracket["rows"] if row["match"]["is_bye"]]
    assert len(byes) == 3
    for row in byes:
        assert row["match"]["status"] == "finished"
        assert row["match"]["winner_team_id"] is not None
        semifinal = rows[("semifinal", (row["bracket_pos"] + 1) // 2)]["match"]
        side = "team1_id" if row["bracket_pos"] % 2 else "team2_id"
        assert semifinal[side] == row["match"]["winner_team_id"]

        response = client.put(f"/matches/{row['match']['id']}/result", json=sets_payload((6, 0), (6, 0)))
        assert response.status_code == 409

    live = next(row for row in bracket["rows"] if row["round"] == "cuartos" and not row["match"]["is_bye"])
    assert live["bracket_pos"] == 2
    response = client.put(f"/matches/{live['match']['id']}/result", json=sets_payload((6, 3), (6, 4)))
    assert response.status_code == 200
    semifinal_id = rows[("semifinal", 1)]["match"]["id"]
    assert client.get(f"/matches/{semifinal_id}").json()["team2_id"] == live["match"]["team1_id"]

    response = client.put(f"/matches/{live['match']['id']}/result", json=sets_payload((3, 6), (4, 6)))
    assert response.status_code == 200
    assert client.get(f"/matches/{semifinal_id}").json()["team2_id"] == live["match"]["team2_id"]

    response = client.put(f"/matches/{semifinal_id}/result", json=sets_payload((6, 1), (6, 1)))
    assert response.status_code == 200
    response = client.put(f"/matches/{live['match']['id']}/result", json=sets_payload((6, 3), (6, 4)))
    assert response.status_code == 409
    assert "already has a result" in response.json()["detail"]

    response = client.post(f"/tournaments/{tournament_id}/playoffs")
    assert response.status_code == 409

    response = client.delete(f"/tournaments/{tournament_id}/playoffs")
    assert response.status_code == 204
    assert playoff_rows(client, tournament_id)["rows"] == []
    response = client.delete(f"/tournaments/{tournament_id}/playoffs")
    assert response.status_code == 404


def test_tournament_finishes_after_the_final(client):
    tournament, _, _ = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]
    start_play(client, tournament_id)
    finish_group_stage(client, tournament_id)
    response = client.post(f"/tournaments/{tournament_id}/playoffs")
    assert response.status_code == 201

    response = client.post(f"/tournaments/{tournament_id}/finish")
    assert response.status_code == 409

    for round_name in ("semifinal", "final"):
        for row in playoff_rows(client, tournament_id)["rows"]:
            if row["round"] != round_name:
                continue
            assert row["match"]["team1_id"] and row["match"]["team2_id"]
            response = client.put(f"/matches/{row['match']['id']}/result", json=sets_payload((7, 6), (7, 5)))
            assert response.status_code == 200

    response = client.post(f"/tournaments/{tournament_id}/finish")
    assert response.status_code == 200
    assert response.json()["status"] == "finished"


def test_delete_groups_only_in_draft(client):
    tournament, teams, _ = build_grouped_tournament(client, 6)
    tournament_id = tournament["id"]

    response = client.delete(f"/tournaments/{tournament_id}/groups")
    assert response.status_code == 204
    assert client.get(f"/tournaments/{tournament_id}/groups").json() == {"groups": [], "matches": []}
    response = client.delete(f"/tournaments/{tournament_id}/groups")
    assert response.status_code == 404

    response = client.delete(f"/tournaments/{tournament_id}/teams/{teams[0]['id']}")
    assert response.status_code == 204


def test_unknown_ids_return_404(client):
    assert client.get("/tournaments/999").status_code == 404
    assert client.get("/matches/999").status_code == 404
    assert client.put("/matches/999/result", json=sets_payload((6, 0), (6, 0))).status_code == 404
    assert client.get("/tournaments/999/standings").status_code == 404


def test_storage_failure_returns_503(client):
    def broken_db():
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))
        yield

    app.dependency_overrides[get_db] = broken_db
    response = client.get("/tournaments/")
    assert response.status_code == 503
    assert "Retry" in response.json()["detail"]


def test_atomic_maps_connection_loss_to_storage_unavailable(session_factory):
    with session_factory() as db:
        with pytest.raises(StorageUnavailableError):
            with atomic(db):
                db.add(models.Tournament(name="Lost", status="draft"))
                raise OperationalError("INSERT", {}, Exception("connection reset"))

        assert db.query(models.Tournament).count() == 0


def test_interleaved_writers_are_rejected(session_factory):
    with session_factory() as setup:
        tournament = crud.create_tournament(setup, schemas.TournamentCreate(name="Shared"))

    with session_factory() as first, session_factory() as second:
        with pytest.raises(ConcurrentModificationError):
            with atomic(first):
                stale = first.get(models.Tournament, tournament.id)
                stale.name = "First writer"
                crud.update_tournament(second, tournament.id, schemas.TournamentUpdate(name="Second writer"))

    with session_factory() as check:
        assert crud.get_tournament_or_raise(check, tournament.id).name == "Second writer"


def test_read_schemas_load_from_orm_objects(session_factory):
    with session_factory() as db:
        tournament = crud.create_tournament(db, schemas.TournamentCreate(name="Club Open"))
        read = schemas.TournamentRead.model_validate(tournament)
        assert (read.id, read.name, read.status) == (tournament.id, "Club Open", "draft")
