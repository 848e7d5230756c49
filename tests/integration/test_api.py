"""HTTP API tests over the SQL store (and the in-memory store for failure paths)."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from mathtutor.errors import ConflictError


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_version(self, client: AsyncClient):
        data = (await client.get("/version")).json()
        assert data["version"] == "0.1.0"

    @pytest.mark.asyncio
    async def test_ready_with_database(self, client: AsyncClient, session_factory, monkeypatch):
        monkeypatch.setattr("mathtutor.health.router.get_session_factory", lambda: session_factory)
        data = (await client.get("/ready")).json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": "ok", "redis": "disabled"}

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client: AsyncClient):
        response = await client.get("/health", headers={"X-Request-Id": "abc-123"})
        assert response.headers["X-Request-Id"] == "abc-123"


class TestXPEndpoints:
    @pytest.mark.asyncio
    async def test_new_user_defaults(self, client: AsyncClient):
        data = (await client.get("/api/v1/xp", params={"user_id": "new"})).json()
        assert data["total_xp"] == 0
        assert data["level"] == 1
        assert data["xp_to_next_level"] == 100
        assert data["rank_title"] == "Novice"
        assert data["recent_gains"] == []

    @pytest.mark.asyncio
    async def test_login_bonus_once_per_day(self, client: AsyncClient):
        first = (await client.post("/api/v1/xp/login-bonus", json={"user_id": "u1", "is_first_login": True})).json()
        second = (await client.post("/api/v1/xp/login-bonus", json={"user_id": "u1"})).json()

        assert first["xp_gained"] == 60
        assert first["already_claimed"] is False
        assert second["xp_gained"] == 0
        assert second["already_claimed"] is True
        assert second["total_xp"] == 60

    @pytest.mark.asyncio
    async def test_levels_table(self, client: AsyncClient):
        data = (await client.get("/api/v1/levels", params={"up_to": 3})).json()
        assert [lvl["cumulative"] for lvl in data["levels"]] == [0, 100, 350]


class TestProblemCompleted:
    @pytest.mark.asyncio
    async def test_awards_xp_and_starts_streak(self, client: AsyncClient):
        response = await client.post("/api/v1/problems/completed", json={
            "user_id": "u1",
            "problem_type": "algebra",
            "difficulty": "high",
            "hints_used": 0,
        })
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["xp_gained"] == 15
        assert data["current_streak"] == 1

        xp = (await client.get("/api/v1/xp", params={"user_id": "u1"})).json()
        assert xp["total_xp"] == 15
        assert xp["recent_gains"][0]["reason"] == "Solved algebra problem"

        streak = (await client.get("/api/v1/streak", params={"user_id": "u1"})).json()
        assert streak["current_streak"] == 1
        assert streak["longest_streak"] == 1

    @pytest.mark.asyncio
    async def test_retry_with_completion_id(self, client: AsyncClient):
        body = {"user_id": "u1", "problem_type": "algebra", "completion_id": "attempt-42"}
        await client.post("/api/v1/problems/completed", json=body)
        await client.post("/api/v1/problems/completed", json=body)

        xp = (await client.get("/api/v1/xp", params={"user_id": "u1"})).json()
        assert xp["total_xp"] == 10

        board = (await client.get("/api/v1/leaderboard", params={"user_id": "u1"})).json()
        assert board["entries"][0]["problems_solved"] == 1

    @pytest.mark.asyncio
    async def test_null_profile_string_is_account_scope(self, client: AsyncClient):
        await client.post("/api/v1/problems/completed", json={
            "user_id": "u1", "profile_id": "null", "problem_type": "geometry",
        })
        xp = (await client.get("/api/v1/xp", params={"user_id": "u1", "profile_id": "null"})).json()
        assert xp["total_xp"] == 10
        assert xp["profile_id"] is None

    @pytest.mark.asyncio
    async def test_sub_profile_is_separate(self, client: AsyncClient):
        await client.post("/api/v1/problems/completed", json={
            "user_id": "u1", "profile_id": "kid", "problem_type": "geometry",
        })
        account = (await client.get("/api/v1/xp", params={"user_id": "u1"})).json()
        kid = (await client.get("/api/v1/xp", params={"user_id": "u1", "profile_id": "kid"})).json()
        assert account["total_xp"] == 0
        assert kid["total_xp"] == 10

    @pytest.mark.asyncio
    async def test_negative_hints_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/problems/completed", json={
            "user_id": "u1", "problem_type": "algebra", "hints_used": -1,
        })
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_partial_failure_reported(self, memory_client: AsyncClient, memory_store):
        memory_store.failing.add("put_xp")
        response = await memory_client.post("/api/v1/problems/completed", json={
            "user_id": "u1", "problem_type": "algebra",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["xp_awarded"] is False
        assert data["history_recorded"] is True
        assert data["streak_updated"] is True
        assert "xp" in data["errors"]


class TestLeaderboard:
    @pytest.mark.asyncio
    async def test_ranks_and_user_entry(self, client: AsyncClient):
        for user_id, difficulty in (("a", "advanced"), ("b", "high"), ("c", "elementary")):
            await client.post("/api/v1/problems/completed", json={
                "user_id": user_id, "problem_type": "algebra", "difficulty": difficulty,
            })

        data = (await client.get("/api/v1/leaderboard", params={"user_id": "c", "limit": 2})).json()
        assert [e["user_id"] for e in data["entries"]] == ["a", "b"]
        assert [e["rank"] for e in data["entries"]] == [1, 2]
        assert data["entries"][0]["problems_solved"] == 1
        assert data["entries"][0]["display_name"] == "Anonymous"
        assert data["entries"][0]["rank_badge"] == "I"
        assert data["entries"][0]["rank_color"] == "#94a3b8"
        assert data["user_rank"] == 3
        assert data["user_entry"]["user_id"] == "c"
        assert data["user_entry"]["is_current_user"] is True
        assert data["total_players"] == 3

    @pytest.mark.asyncio
    async def test_empty_board(self, client: AsyncClient):
        data = (await client.get("/api/v1/leaderboard")).json()
        assert data["entries"] == []
        assert data["user_rank"] is None


class TestPractice:
    @pytest.mark.asyncio
    async def test_session_for_new_user(self, client: AsyncClient):
        data = (await client.get("/api/v1/practice/session", params={
            "user_id": "u1", "type": "challenge", "count": 3,
        })).json()
        assert len(data["problems"]) == 3
        assert all(p["difficulty"] == "advanced" for p in data["problems"])
        assert data["estimated_duration_minutes"] == 9
        assert data["total_estimated_xp"] == 60

    @pytest.mark.asyncio
    async def test_unknown_session_type_is_bad_request(self, client: AsyncClient):
        response = await client.get("/api/v1/practice/session", params={"user_id": "u1", "type": "nope"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_analysis_after_history(self, client: AsyncClient):
        for _ in range(2):
            await client.post("/api/v1/problems/completed", json={
                "user_id": "u1", "problem_type": "fractions", "hints_used": 5, "attempts": 6,
            })
        data = (await client.get("/api/v1/practice/analysis", params={"user_id": "u1"})).json()
        assert [s["subject"] for s in data["weak_areas"]] == ["fractions"]
        assert data["suggested_focus"].startswith("fractions - needs improvement")


class TestNudges:
    @pytest.mark.asyncio
    async def test_generate_dedup_and_dismiss(self, client: AsyncClient):
        await client.post("/api/v1/problems/completed", json={"user_id": "u1", "problem_type": "algebra"})

        first = (await client.get("/api/v1/nudges", params={"user_id": "u1"})).json()["nudges"]
        second = (await client.get("/api/v1/nudges", params={"user_id": "u1"})).json()["nudges"]
        assert first
        assert len(first) <= 3
        assert [n["id"] for n in first] == [n["id"] for n in second]

        target = first[0]["id"]
        response = await client.post(f"/api/v1/nudges/{target}/dismiss", json={"user_id": "u1"})
        assert response.json() == {"dismissed": True}
        again = await client.post(f"/api/v1/nudges/{target}/dismiss", json={"user_id": "u1"})
        assert again.json() == {"dismissed": False}

        active = (await client.get("/api/v1/nudges/active", params={"user_id": "u1"})).json()["nudges"]
        assert target not in [n["id"] for n in active]


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_nudges_survive_streak_outage(self, memory_client: AsyncClient, memory_store):
        memory_store.failing.add("get_streak")
        response = await memory_client.get("/api/v1/nudges", params={"user_id": "u1"})
        assert response.status_code == 200
        assert len(response.json()["nudges"]) <= 3

    @pytest.mark.asyncio
    async def test_store_unavailable_is_503(self, memory_client: AsyncClient, memory_store):
        memory_store.failing.add("get_xp")
        response = await memory_client.get("/api/v1/xp", params={"user_id": "u1"})
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert response.json()["retryable"] is True

    @pytest.mark.asyncio
    async def test_conflict_is_409(self, memory_client: AsyncClient, memory_store, monkeypatch):
        async def always_stale(record, expected_version):
            raise ConflictError("stale")

        monkeypatch.setattr(memory_store, "put_xp", always_stale)
        response = await memory_client.post("/api/v1/xp/login-bonus", json={"user_id": "u1"})
        assert response.status_code == 409
