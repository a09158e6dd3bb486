"""
End-to-end tests through the HTTP routers
"""
import pytest

from conftest import API_KEY

ADMIN = {"X-Api-Key": API_KEY}
CHEST = {"latitude": 40.7829, "longitude": -73.9654}
# Roughly 40m north of the chest
NEARBY = {"latitude": 40.78326, "longitude": -73.9654}


def player(user_id, device_id=None):
    headers = {"X-User-Id": user_id}
    if device_id:
        headers["X-Device-Id"] = device_id
    return headers


@pytest.fixture
def live_game(client):
    response = client.post("/admin/games", headers=ADMIN, json={
        "kind": "location",
        "name": "Central Park Chest",
        "city": "New York",
        "prize_amount": 100,
        "winner_slots": 2,
        "accuracy_radius": 10,
        **CHEST
    })
    assert response.status_code == 201
    game = response.json()
    assert client.post(f"/admin/games/{game['id']}/launch", headers=ADMIN).status_code == 200
    return game


def test_root(client):
    assert client.get("/").json()["service"] == "Treasure Hunt"


def test_admin_requires_api_key(client):
    response = client.post("/admin/games", json={"kind": "location", "name": "x", **CHEST})
    assert response.status_code == 401


def test_create_validates_payload(client):
    bad_latitude = client.post("/admin/games", headers=ADMIN, json={
        "kind": "location", "name": "Nowhere", "latitude": 123, "longitude": 0
    })
    assert bad_latitude.status_code == 422

    bad_distribution = client.post("/admin/games", headers=ADMIN, json={
        "kind": "virtual", "name": "Taps", "winner_slots": 2,
        "prize_distribution": {"1": 100, "2": 50, "3": 25}
    })
    assert bad_distribution.status_code == 422

    unknown_kind = client.post("/admin/games", headers=ADMIN, json={"kind": "trivia", "name": "Q"})
    assert unknown_kind.status_code == 422


def test_create_returns_target_to_admin_only(client, live_game):
    assert live_game["latitude"] == CHEST["latitude"]
    assert live_game["status"] == "pending"

    public = client.get(f"/games/{live_game['id']}").json()
    assert public["status"] == "live"
    assert "latitude" not in public

    admin_view = client.get(f"/admin/games/{live_game['id']}", headers=ADMIN).json()
    assert admin_view["latitude"] == CHEST["latitude"]


def test_proximity(client, live_game):
    response = client.get(f"/games/{live_game['id']}/proximity", params=NEARBY)
    body = response.json()

    assert response.status_code == 200
    assert 35 < body["distance_meters"] < 45
    assert 0 < body["proximity_percent"] < 100
    assert body["in_range"] is False
    assert "latitude" not in body


def test_claim_flow(client, live_game):
    url = f"/games/{live_game['id']}/claim"

    far = client.post(url, headers=player("bob", "phone-b"), json=NEARBY).json()
    assert far["outcome"] == "OUT_OF_RANGE"
    assert far["success"] is False

    won = client.post(url, headers=player("alice", "phone-a"), json=CHEST).json()
    assert won["outcome"] == "WON"
    assert won["position"] == 1
    assert won["prize_amount"] == 100

    again = client.post(url, headers=player("alice", "phone-a"), json=CHEST).json()
    assert again["outcome"] == "ALREADY_WON"

    same_phone = client.post(url, headers=player("carol", "phone-a"), json=CHEST).json()
    assert same_phone["outcome"] == "INELIGIBLE"
    assert same_phone["reason"] == "device_already_won_today"

    second = client.post(url, headers=player("dave", "phone-d"), json=CHEST).json()
    assert second["outcome"] == "WON"
    assert second["position"] == 2

    full = client.post(url, headers=player("erin", "phone-e"), json=CHEST).json()
    assert full["outcome"] == "SLOTS_FULL"

    game = client.get(f"/games/{live_game['id']}").json()
    assert game["status"] == "completed"
    assert [w["user_id"] for w in game["winners"]] == ["alice", "dave"]

    eligibility = client.get("/users/me/eligibility", headers=player("alice")).json()
    assert eligibility["eligible"] is False
    assert eligibility["reason"] == "user_already_won_today"

    other_category = client.get(
        "/users/me/eligibility", params={"category": "battle_royale"}, headers=player("alice")
    ).json()
    assert other_category["eligible"] is True

    stats = client.get("/users/me/stats", headers=player("alice")).json()
    assert stats["total_wins"] == 1
    assert stats["balance"] == 100


def test_claim_requires_user(client, live_game):
    response = client.post(f"/games/{live_game['id']}/claim", json=CHEST)
    assert response.status_code == 401


def test_claim_unknown_game(client):
    response = client.post("/games/does-not-exist/claim", headers=player("alice"), json=CHEST)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "GAME_NOT_FOUND"


def test_claim_before_launch(client):
    game = client.post("/admin/games", headers=ADMIN, json={
        "kind": "location", "name": "Soon", **CHEST
    }).json()
    body = client.post(f"/games/{game['id']}/claim", headers=player("alice"), json=CHEST).json()
    assert body["outcome"] == "GAME_NOT_LIVE"


def test_invalid_transition_is_conflict(client, live_game):
    url = f"/admin/games/{live_game['id']}/status"
    assert client.post(url, headers=ADMIN, json={"status": "completed"}).status_code == 200

    response = client.post(url, headers=ADMIN, json={"status": "live"})
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "INVALID_GAME_STATE"


def test_battle_royale_flow(client):
    game = client.post("/admin/games", headers=ADMIN, json={
        "kind": "virtual",
        "name": "Tap Frenzy",
        "virtual_type": "tap_count",
        "prize_amount": 500,
        "winner_slots": 2,
        "prize_distribution": {"1": 100, "2": 60}
    }).json()
    assert game["score_order"] == "asc"
    client.post(f"/admin/games/{game['id']}/launch", headers=ADMIN)

    scores_url = f"/games/{game['id']}/scores"
    client.post(scores_url, headers=player("ann", "p1"), json={"score": 42})
    client.post(scores_url, headers=player("ben", "p2"), json={"score": 35})
    client.post(scores_url, headers=player("cat", "p3"), json={"score": 50})
    retry = client.post(scores_url, headers=player("cat", "p3"), json={"score": 30}).json()
    assert retry["improved"] is True
    assert retry["rank"] == 1

    board = client.get(f"/games/{game['id']}/leaderboard").json()
    assert [e["user_id"] for e in board["entries"]] == ["cat", "ben", "ann"]

    # Closing by status would skip the payout
    closed = client.post(f"/admin/games/{game['id']}/status", headers=ADMIN, json={"status": "completed"})
    assert closed.status_code == 409

    result = client.post(f"/admin/games/{game['id']}/declare-winners", headers=ADMIN).json()
    assert [(w["user_id"], w["prize_amount"]) for w in result["winners"]] == [
        ("cat", 500), ("ben", 300)
    ]

    again = client.post(f"/admin/games/{game['id']}/declare-winners", headers=ADMIN)
    assert again.status_code == 409

    late = client.post(scores_url, headers=player("dan"), json={"score": 1})
    assert late.status_code == 409
