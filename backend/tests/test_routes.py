"""
Streak Engine — HTTP Route Tests
==================================

What:  The job trigger, the streak read routes and the health check.
How:   httpx AsyncClient over ASGITransport with the store swapped for
       mock_store; no database involved.

What we test:
    ✅ Job trigger returns 200 on success and 500 with the report on failures
    ✅ Trigger token enforced when configured
    ✅ Read routes return 404 for unknown ids
    ✅ Health reports 503 when the store is unreachable
"""

from datetime import date

import pytest

from streak_engine.config import settings
from streak_engine.exceptions import DatabaseError
from streak_engine.schemas.streak import CircleRecord, ProfileRecord, StreakState


class TestJobTrigger:

    @pytest.mark.asyncio
    async def test_successful_run_returns_report(self, test_client, mock_store):
        mock_store.list_profiles.return_value = [ProfileRecord(user_id="u1", timezone="UTC")]
        mock_store.active_users_between.return_value = {"u1"}
        mock_store.get_streak.return_value = None

        response = await test_client.post(
            "/jobs/update-streaks", json={"now": "2024-01-12T07:00:00Z"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["processed_users"] == 1
        assert body["updated_users"] == 1
        assert body["failures"] == []
        assert body["run_at"].startswith("2024-01-12T07:00:00")
        mock_store.insert_streak.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_body_is_optional(self, test_client, mock_store):
        response = await test_client.post("/jobs/update-streaks")

        assert response.status_code == 200
        assert response.json()["processed_users"] == 0

    @pytest.mark.asyncio
    async def test_partial_failure_returns_500_with_report(self, test_client, mock_store):
        mock_store.list_circles.side_effect = DatabaseError(message="circles unavailable")

        response = await test_client.post("/jobs/update-streaks")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["failures"] == [
            {"entity_type": "phase", "entity_id": "circles", "cause": "circles unavailable"}
        ]

    @pytest.mark.asyncio
    async def test_token_required_when_configured(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "job_trigger_token", "s3cret")

        missing = await test_client.post("/jobs/update-streaks")
        wrong = await test_client.post(
            "/jobs/update-streaks", headers={"Authorization": "Bearer nope"}
        )
        right = await test_client.post(
            "/jobs/update-streaks", headers={"Authorization": "Bearer s3cret"}
        )

        assert missing.status_code == 401
        assert missing.headers["www-authenticate"] == "Bearer"
        assert missing.json()["error"] == "unauthorized"
        assert wrong.status_code == 401
        assert right.status_code == 200

    @pytest.mark.asyncio
    async def test_token_comparison_handles_any_input(self, test_client, monkeypatch):
        monkeypatch.setattr(settings, "job_trigger_token", "s3cret")

        non_ascii = await test_client.post(
            "/jobs/update-streaks", headers={"Authorization": "Bearer s3cr\u00e9t".encode("utf-8")}
        )
        lowercase_scheme = await test_client.post(
            "/jobs/update-streaks", headers={"Authorization": "bearer s3cret"}
        )
        prefix_only = await test_client.post(
            "/jobs/update-streaks", headers={"Authorization": "Bearer s3cre"}
        )

        assert non_ascii.status_code == 401
        assert lowercase_scheme.status_code == 200
        assert prefix_only.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_now_is_rejected(self, test_client):
        response = await test_client.post("/jobs/update-streaks", json={"now": "yesterday"})
        assert response.status_code == 422


class TestStreakReads:

    @pytest.mark.asyncio
    async def test_get_user_streak(self, test_client, mock_store):
        mock_store.get_streak.return_value = StreakState(
            user_id="u1", current_len=7, best_len=9, freeze_tokens=1,
            last_completed_local_date=date(2024, 1, 11),
        )

        response = await test_client.get("/api/streaks/u1")

        assert response.status_code == 200
        assert response.json() == {
            "user_id": "u1",
            "current_len": 7,
            "best_len": 9,
            "freeze_tokens": 1,
            "last_completed_local_date": "2024-01-11",
        }

    @pytest.mark.asyncio
    async def test_unknown_user_is_404(self, test_client, mock_store):
        mock_store.get_streak.return_value = None

        response = await test_client.get("/api/streaks/ghost")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"
        assert "ghost" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_get_circle_streak(self, test_client, mock_store):
        mock_store.get_circle.return_value = CircleRecord(
            id="c1", member_count=10, current_streak=3, best_streak=5,
            last_streak_date=date(2024, 1, 11),
        )

        response = await test_client.get("/api/circles/c1/streak")

        assert response.status_code == 200
        assert response.json() == {
            "circle_id": "c1",
            "current_streak": 3,
            "best_streak": 5,
            "last_streak_date": "2024-01-11",
        }

    @pytest.mark.asyncio
    async def test_unknown_circle_is_404(self, test_client, mock_store):
        mock_store.get_circle.return_value = None
        response = await test_client.get("/api/circles/nope/streak")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_store_error_is_generic_500(self, test_client, mock_store):
        mock_store.get_streak.side_effect = DatabaseError(
            message="Store operation 'get_streak' failed", context={"error_type": "OperationalError"}
        )

        response = await test_client.get("/api/streaks/u1")

        assert response.status_code == 500
        assert response.json()["error"] == "server_error"
        assert "OperationalError" not in response.text


class TestHealth:

    @pytest.mark.asyncio
    async def test_healthy(self, test_client, mock_store):
        mock_store.ping.return_value = True

        response = await test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"] == "connected"
        assert response.headers.get("x-request-id")

    @pytest.mark.asyncio
    async def test_unhealthy_when_store_unreachable(self, test_client, mock_store):
        mock_store.ping.side_effect = DatabaseError()

        response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "unhealthy"
