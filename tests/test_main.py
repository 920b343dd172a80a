"""Test module for the tangram placement HTTP API."""

from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from tangram_engine.main import app, sessions

client = TestClient(app)

TARGETS: List[Dict[str, Any]] = [
    {"id": "sq", "piece_type": "square", "pose": {"x": 0.0, "y": 0.0, "rotation": 0.0}},
    {
        "id": "st",
        "piece_type": "small_triangle_1",
        "transform": {"a": 1.0, "b": 0.0, "c": 0.0, "d": 1.0, "tx": 100.0, "ty": 0.0},
    },
]


@pytest.fixture(autouse=True)
def clear_sessions() -> None:
    """Start every test without sessions."""
    sessions.clear()


def _create(**extra: Any) -> str:
    response = client.post("/api/v1/sessions", json={"targets": TARGETS, **extra})
    assert response.status_code == 200
    return response.json()["session_id"]


def test_health_check() -> None:
    """Test the health check endpoint."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_list_pieces() -> None:
    """The piece catalog is listed in display order."""
    response = client.get("/api/v1/pieces")

    assert response.status_code == 200
    pieces = response.json()
    assert [p["piece_type"] for p in pieces][:2] == ["large_triangle_1", "large_triangle_2"]
    square = next(p for p in pieces if p["piece_type"] == "square")
    assert square["display_name"] == "Square"
    assert square["symmetry_order"] == 4
    assert square["centroid"] == [0.5, 0.5]
    assert len(square["vertices"]) == 4


def test_create_session() -> None:
    """Creating a session reports the effective modes and tolerances."""
    response = client.post("/api/v1/sessions", json={"targets": TARGETS, "difficulty": "hard"})

    assert response.status_code == 200
    body = response.json()
    assert body["session_id"] in sessions
    assert body["input_mode"] == "direct"
    assert body["validation_mode"] == "absolute"
    assert body["position_tolerance"] == 28.0


def test_create_session_rejects_degenerate_transform() -> None:
    """A zero-scale target transform is unprocessable."""
    targets = [
        {
            "id": "sq",
            "piece_type": "square",
            "transform": {"a": 0.0, "b": 0.0, "c": 0.0, "d": 0.0, "tx": 1.0, "ty": 1.0},
        }
    ]

    response = client.post("/api/v1/sessions", json={"targets": targets})

    assert response.status_code == 422
    assert "degenerate" in response.json()["detail"]


@pytest.mark.parametrize(
    "payload",
    [
        {"targets": []},
        {"targets": [{"id": "sq", "piece_type": "square"}]},
        {"targets": [{"id": "sq", "piece_type": "hexagon", "pose": {"x": 0, "y": 0}}]},
        {"targets": TARGETS, "difficulty": "impossible"},
        {"targets": [TARGETS[0], TARGETS[0]]},
    ],
)
def test_create_session_rejects_invalid_puzzles(payload: Dict[str, Any]) -> None:
    """Malformed puzzles are refused with 422."""
    response = client.post("/api/v1/sessions", json=payload)

    assert response.status_code == 422
    assert sessions == {}


def test_observations_complete_puzzle() -> None:
    """Placing both pieces by touch completes the puzzle."""
    session_id = _create()
    observations = [
        {"id": "a", "piece_type": "square", "pose": {"x": 1.0, "y": 1.0, "rotation": 1.5708}},
        {"id": "b", "piece_type": "small_triangle_2", "pose": {"x": 100.0, "y": 0.0}},
    ]

    response = client.post(f"/api/v1/sessions/{session_id}/observations", json={"observations": observations})

    assert response.status_code == 200
    body = response.json()
    assert body["completion"]["status"] == "complete"
    assert body["completion"]["events"] == ["started", "completed"]
    assert {v["target_id"] for v in body["verdicts"] if v["is_match"]} == {"sq", "st"}
    assert body["bindings"] == {"a": "sq", "b": "st"}
    assert set(body["contacts"]) == {"a", "b"}


def test_observation_failure_reason() -> None:
    """A misplaced piece reports why it failed."""
    session_id = _create()
    observations = [{"id": "a", "piece_type": "square", "pose": {"x": 60.0, "y": 0.0}}]

    response = client.post(f"/api/v1/sessions/{session_id}/observations", json={"observations": observations})

    (verdict,) = response.json()["verdicts"]
    assert not verdict["is_match"]
    assert verdict["failure"] == "wrong_position"
    assert response.json()["completion"]["status"] == "not_started"


def test_vision_frames_anchor_and_complete() -> None:
    """Vision frames settle, establish an anchor and complete the puzzle."""
    session_id = _create(input_mode="vision")
    frame = {
        "objects": [
            {"name": "piece-a", "class_id": 1, "pose": {"rotation_degrees": 0.0, "translation": [10.0, 6.0]}},
            {"name": "piece-b", "class_id": 5, "pose": {"rotation_degrees": 0.0, "translation": [12.0, 6.0]}},
        ]
    }

    results = []
    for sequence in range(3):
        response = client.post(f"/api/v1/sessions/{session_id}/frames", json={**frame, "sequence": sequence})
        assert response.status_code == 200
        results.append(response.json())

    assert results[0]["completion"]["awaiting_anchor"]
    assert results[1]["verdicts"] == []
    assert results[2]["anchor"]["anchor_piece_id"] == "piece-a"
    assert results[2]["completion"]["status"] == "complete"

    anchor = client.get(f"/api/v1/sessions/{session_id}/anchor")
    assert anchor.json() == {"anchor_piece_id": "piece-a", "missing_ticks": 0}


def test_unknown_session() -> None:
    """Requests for missing sessions return 404."""
    assert client.post("/api/v1/sessions/nope/observations", json={"observations": []}).status_code == 404
    assert client.post("/api/v1/sessions/nope/frames", json={"objects": []}).status_code == 404
    assert client.get("/api/v1/sessions/nope/anchor").status_code == 404
    assert client.delete("/api/v1/sessions/nope").status_code == 404


def test_delete_session() -> None:
    """Deleted sessions are gone."""
    session_id = _create()

    response = client.delete(f"/api/v1/sessions/{session_id}")

    assert response.status_code == 200
    assert client.get(f"/api/v1/sessions/{session_id}/anchor").status_code == 404


def test_pose_rotation_documented_counter_clockwise() -> None:
    """The published schema describes stored rotations as counter-clockwise."""
    schema = client.get("/openapi.json").json()

    description = schema["components"]["schemas"]["PoseModel"]["properties"]["rotation"]["description"]
    assert "counter-clockwise" in description
    assert "clockwise-positive" not in description
