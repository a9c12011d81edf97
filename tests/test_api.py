"""Tests for the FastAPI API endpoints."""

import pytest
from fastapi.testclient import TestClient

from quarter_engine.api.app import create_app
from quarter_engine.engine.session import GameStore
from quarter_engine.ledger.store import RoundLedger
from quarter_engine.logistics.engine import LogisticsEngine


@pytest.fixture
def client():
    """Create a test client with fresh components."""
    store = GameStore()
    ledger = RoundLedger(db_path=":memory:")
    logistics = LogisticsEngine()

    app = create_app(store=store, ledger=ledger, logistics=logistics)

    return TestClient(app)


def _create_game(client, game_id="g1", **overrides):
    body = {"team_ids": ["team-a", "team-b"], "seed": 7, "game_id": game_id}
    body.update(overrides)
    return client.post("/games", json=body)


class TestGameEndpoints:
    def test_create_game(self, client):
        response = _create_game(client)
        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "g1"
        assert data["round"] == 1
        assert data["teams"] == ["team-a", "team-b"]
        assert data["difficulty"] == "normal"

    def test_create_with_difficulty(self, client):
        response = _create_game(client, difficulty="hard")
        assert response.json()["difficulty"] == "hard"
        state = client.get("/games/g1").json()
        assert state["teams"]["team-a"]["cash"] == 150_000_000

    def test_duplicate_game(self, client):
        _create_game(client)
        assert _create_game(client).status_code == 400

    def test_no_teams(self, client):
        assert _create_game(client, team_ids=[]).status_code == 400

    def test_bad_config(self, client):
        assert _create_game(client, config={"score_exponent": -1}).status_code == 422

    def test_unknown_game(self, client):
        assert client.get("/games/nope").status_code == 404
        assert client.post("/games/nope/rounds", json={}).status_code == 404

    def test_get_game(self, client):
        _create_game(client)
        data = client.get("/games/g1").json()
        assert data["round"] == 1
        assert not data["finished"]
        assert set(data["teams"]) == {"team-a", "team-b"}
        assert data["market"]["round_number"] == 1
        assert data["rankings"] == []


class TestRoundEndpoints:
    def test_play_round(self, client):
        _create_game(client)
        response = client.post("/games/g1/rounds", json={
            "decisions": {
                "team-a": {
                    "hr": {"hires": {"worker": 2}},
                    "marketing": {"advertising": {"General": 3000000}},
                },
            },
        })
        assert response.status_code == 200
        data = response.json()
        assert data["round_number"] == 1
        assert len(data["results"]) == 2
        assert data["ledger_signature"]
        assert client.get("/games/g1").json()["round"] == 2

    def test_rankings(self, client):
        _create_game(client)
        client.post("/games/g1/rounds", json={})
        rankings = client.get("/games/g1/rankings").json()
        assert [r["overall_rank"] for r in rankings] == [1, 2]

    def test_finished_game(self, client):
        _create_game(client, max_rounds=1)
        assert client.post("/games/g1/rounds", json={}).status_code == 200
        assert client.post("/games/g1/rounds", json={}).status_code == 400

    def test_ledger(self, client):
        _create_game(client)
        client.post("/games/g1/rounds", json={})
        client.post("/games/g1/rounds", json={})
        data = client.get("/games/g1/ledger").json()
        assert [r["round_number"] for r in data["records"]] == [1, 2]
        assert data["integrity_valid"] is True


class TestEventEndpoints:
    def test_inject_event(self, client):
        _create_game(client)
        response = client.post("/games/g1/events", json={"type": "recession"})
        assert response.status_code == 200
        assert response.json() == {"status": "queued", "round": 1}
        data = client.post("/games/g1/rounds", json={}).json()
        assert "recession" in [e["event_id"] for e in data["event_state"]["active"]]

    def test_inject_unknown_event(self, client):
        _create_game(client)
        response = client.post("/games/g1/events", json={"type": "meteor"})
        assert response.status_code == 400


class TestAchievementEndpoints:
    def test_catalog(self, client):
        data = client.get("/achievements").json()
        assert data["version"] == "1.3.0"
        ids = {a["id"] for a in data["achievements"]}
        assert "first_profit" in ids
        assert "skeleton_crew" not in ids
        assert all("points" in a for a in data["achievements"])

    def test_team_achievements(self, client):
        _create_game(client)
        client.post("/games/g1/rounds", json={"decisions": {"team-a": {"tools_used": ["route_comparison"]}}})
        data = client.get("/games/g1/teams/team-a/achievements").json()
        assert "route_scholar" in [a["achievement_id"] for a in data["awarded"]]
        assert data["score"] == sum(a["points"] for a in data["awarded"])

    def test_unknown_team(self, client):
        _create_game(client)
        assert client.get("/games/g1/teams/team-z/achievements").status_code == 404


class TestLogisticsEndpoints:
    def test_calculate(self, client):
        response = client.post("/logistics/calculate", json={
            "origin": "North America", "destination": "Asia", "method": "sea",
            "weight_tons": 1, "volume_m3": 1,
        })
        assert response.status_code == 200
        assert response.json()["cost"]["total"] == 5254

    def test_calculate_no_route(self, client):
        response = client.post("/logistics/calculate", json={
            "origin": "Asia", "destination": "Asia", "weight_tons": 1, "volume_m3": 1,
        })
        assert response.status_code == 404

    def test_calculate_method_unavailable(self, client):
        response = client.post("/logistics/calculate", json={
            "origin": "North America", "destination": "Europe", "method": "land",
            "weight_tons": 1, "volume_m3": 1,
        })
        assert response.status_code == 400

    def test_compare(self, client):
        response = client.post("/logistics/compare", json={
            "origin": "North America", "destination": "Asia", "weight_tons": 1, "volume_m3": 1,
        })
        options = response.json()
        assert [o["method"] for o in options] == ["rail", "sea", "air"]

    def test_recommendations(self, client):
        response = client.post("/logistics/recommendations", json={
            "origin": "North America", "destination": "Asia", "weight_tons": 0.05, "volume_m3": 0.1,
            "budget": 1000, "max_days": 2,
        })
        data = response.json()
        assert data["tier"] == "budget_only"
        assert data["warnings"][0] == "No shipping methods meet both budget and time constraints"

    def test_track(self, client):
        response = client.post("/logistics/track", json={
            "shipment": {
                "id": "s1", "origin": "Asia", "destination": "North America", "method": "sea",
                "weight_tons": 1, "volume_m3": 1, "cost": 5454, "total_days": 30,
                "placed_round": 2, "arrival_round": 4,
            },
            "current_round": 3,
        })
        assert response.json()["stage"] == "in_transit"
