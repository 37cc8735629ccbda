from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cez.config import Settings
from cez.engine.board import STARTPOS_FEN
from cez.protocol.http.app import create_app


def _client() -> TestClient:
    return TestClient(create_app(Settings()))


def _new_game(client: TestClient) -> str:
    return client.post("/api/games").json()["game_id"]


def test_create_game_and_get_state() -> None:
    client = _client()
    r = client.post("/api/games")
    assert r.status_code == 200
    body = r.json()
    game_id = body["game_id"]
    assert body["fen"] == STARTPOS_FEN

    r2 = client.get(f"/api/games/{game_id}/state")
    assert r2.status_code == 200
    state = r2.json()
    assert state["game_id"] == game_id
    assert len(state["legal_moves"]) == 20
    assert state["status"] == "none"
    assert state["winner"] == "none"
    assert state["side_to_move"] == "w"
    assert state["cells"][0][4] == "k"
    assert state["cells"][4][4] == ""


def test_get_state_unknown_id_404() -> None:
    r = _client().get("/api/games/does-not-exist/state")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "not_found"


def test_set_position_validation_and_success() -> None:
    client = _client()
    game_id = _new_game(client)

    r_bad = client.post(f"/api/games/{game_id}/position", json={"fen": "8/8 w - - 0 1"})
    assert r_bad.status_code == 400
    assert r_bad.json()["error"]["code"] == "invalid_position"
    # Live game untouched
    assert client.get(f"/api/games/{game_id}/state").json()["fen"] == STARTPOS_FEN

    fen = "r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1"
    r_ok = client.post(f"/api/games/{game_id}/position", json={"fen": fen})
    assert r_ok.status_code == 200
    assert r_ok.json()["fen"] == fen
    assert "e1g1" in r_ok.json()["legal_moves"]


@pytest.mark.parametrize(
    "fen",
    [
        "4k3/8/8/8/8/8/3PK3/8 w - e3 0 1",
        "k7/8/8/8/8/8/8/Q6K w - - 0 1",
    ],
)
def test_inconsistent_position_rejected_with_400(fen: str) -> None:
    client = _client()
    game_id = _new_game(client)
    r = client.post(f"/api/games/{game_id}/position", json={"fen": fen})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_position"
    assert client.get(f"/api/games/{game_id}/state").json()["fen"] == STARTPOS_FEN


def test_move_endpoint_applies_and_rejects() -> None:
    client = _client()
    game_id = _new_game(client)

    r = client.post(f"/api/games/{game_id}/move", json={"move": "e2e4"})
    assert r.status_code == 200
    state = r.json()
    assert " b " in state["fen"]
    assert state["last_move"] == "e2e4"
    assert state["history_notation"] == ["e2>4"]
    assert state["status"] == "in_progress"

    r_bad = client.post(f"/api/games/{game_id}/move", json={"move": "e2e4"})
    assert r_bad.status_code == 400
    assert r_bad.json()["error"]["code"] == "illegal_move"

    r_garbage = client.post(f"/api/games/{game_id}/move", json={"move": "zz"})
    assert r_garbage.status_code == 400
    assert r_garbage.json()["error"]["code"] == "bad_request"


def test_fools_mate_then_restart() -> None:
    client = _client()
    game_id = _new_game(client)
    for uci in ("f2f3", "e7e5", "g2g4", "d8h4"):
        state = client.post(f"/api/games/{game_id}/move", json={"move": uci}).json()
    assert state["is_game_over"] is True
    assert state["checkmate"] is True
    assert state["winner"] == "black"
    assert state["legal_moves"] == []

    r_after = client.post(f"/api/games/{game_id}/move", json={"move": "a2a3"})
    assert r_after.status_code == 409
    assert r_after.json()["error"]["code"] == "game_over"

    r_restart = client.post(f"/api/games/{game_id}/restart")
    assert r_restart.status_code == 200
    restarted = r_restart.json()
    assert restarted["fen"] == STARTPOS_FEN
    assert restarted["move_history"] == []
    assert restarted["is_game_over"] is False


def test_legal_moves_for_square() -> None:
    client = _client()
    game_id = _new_game(client)
    r = client.get(f"/api/games/{game_id}/legal-moves", params={"square": "g1"})
    assert r.status_code == 200
    moves = {m["uci"]: m for m in r.json()}
    assert set(moves) == {"g1f3", "g1h3"}
    assert moves["g1f3"]["notation"] == "<invalid>"

    pawn = client.get(f"/api/games/{game_id}/legal-moves", params={"square": "a2"}).json()
    assert {m["notation"] for m in pawn} == {"a2>3", "a2>4"}

    empty = client.get(f"/api/games/{game_id}/legal-moves", params={"square": "e4"}).json()
    assert empty == []

    r_bad = client.get(f"/api/games/{game_id}/legal-moves", params={"square": "z9"})
    assert r_bad.status_code == 400


def test_history_rows() -> None:
    client = _client()
    game_id = _new_game(client)
    for uci in ("a2a4", "h7h5", "a1a3"):
        client.post(f"/api/games/{game_id}/move", json={"move": uci})
    rows = client.get(f"/api/games/{game_id}/history").json()
    assert rows == [
        {"number": 1, "white": "a2>4", "black": "h7>5"},
        {"number": 2, "white": "a1>3", "black": None},
    ]


def test_perft_endpoint() -> None:
    client = _client()
    r = client.post("/api/perft", json={"fen": STARTPOS_FEN, "depth": 2})
    assert r.status_code == 200
    assert r.json() == {"nodes": 400}

    r_bad = client.post("/api/perft", json={"fen": "nope", "depth": 1})
    assert r_bad.status_code == 400
