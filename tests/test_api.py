"""Tests for the HTTP API."""

from datetime import UTC, datetime, timedelta

import pytest
from litestar.testing import AsyncTestClient

from napcoach.app import create_app
from napcoach.core.timeutil import FixedClock
from napcoach.models.blob import StoredBlob
from napcoach.services.delivery import SchedulerDelivery
from napcoach.services.storage import CURRENT_SCHEMA_VERSION, BlobKey

BASE = "/api/v1/profiles/baby-1"


@pytest.fixture
def api_clock() -> FixedClock:
    """Clock at 06:00 UTC a month ahead, so pending reminders never fire during a test."""
    now = (datetime.now(UTC) + timedelta(days=30)).replace(
        hour=6, minute=0, second=0, microsecond=0
    )
    return FixedClock(now, "UTC")


@pytest.fixture
async def client(async_engine, api_clock):
    app = create_app(
        engine=async_engine,
        clock=api_clock,
        delivery=SchedulerDelivery(enabled=True),
    )
    async with AsyncTestClient(app=app) as client:
        yield client


async def seed(client: AsyncTestClient, clock: FixedClock, days: int = 3) -> None:
    """Profile of a 200 day old plus a few regular days of sleep."""
    birth = (clock.today() - timedelta(days=200)).isoformat()
    response = await client.put(f"{BASE}/profile", json={"name": "Robin", "birth_date": birth})
    assert response.status_code == 200

    midnight = clock.now().replace(hour=0)
    for offset in range(days, 0, -1):
        day = midnight - timedelta(days=offset)
        for hour, minutes in ((9, 60), (13, 75), (19, 600)):
            start = day + timedelta(hours=hour)
            response = await client.post(
                f"{BASE}/sessions",
                json={
                    "start": start.isoformat(),
                    "end": (start + timedelta(minutes=minutes)).isoformat(),
                },
            )
            assert response.status_code == 201


class TestHealth:
    """Tests for the health endpoint."""

    async def test_health(self, client) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["timezone"] == "UTC"
        assert body["reminders"] == {"enabled": True, "running": True}


class TestProfile:
    """Tests for profile endpoints."""

    async def test_unknown_profile(self, client) -> None:
        response = await client.get(f"{BASE}/profile")
        assert response.status_code == 404
        assert response.json()["extra"] == {"storage_reset": False}

    async def test_invalid_profile_id(self, client) -> None:
        response = await client.get("/api/v1/profiles/bad.id/sessions")
        assert response.status_code == 400

    async def test_put_profile(self, client, api_clock) -> None:
        birth = (api_clock.today() - timedelta(days=200)).isoformat()
        response = await client.put(f"{BASE}/profile", json={"name": "Robin", "birth_date": birth})
        assert response.status_code == 200
        body = response.json()
        assert body["age_range"] == "4-6 months"
        assert 6 < body["age_months"] < 7

        response = await client.get(f"{BASE}/profile")
        assert response.json()["birth_date"] == birth

    async def test_future_birth_date(self, client, api_clock) -> None:
        birth = (api_clock.today() + timedelta(days=1)).isoformat()
        response = await client.put(f"{BASE}/profile", json={"name": "Robin", "birth_date": birth})
        assert response.status_code == 400


class TestStorage:
    """Tests for storage info, profile deletion and corruption reporting."""

    async def test_storage_info(self, client, api_clock) -> None:
        await seed(client, api_clock, days=1)
        response = await client.get(f"{BASE}/storage")
        assert response.status_code == 200
        assert response.json() == {
            "schema_version": CURRENT_SCHEMA_VERSION,
            "has_sessions": True,
            "has_learner_state": True,
            "has_notification_history": False,
            "has_profile": True,
        }

    async def test_delete_profile(self, client, api_clock) -> None:
        await seed(client, api_clock)
        synced = (await client.post(f"{BASE}/notifications/sync")).json()

        response = await client.delete(BASE)
        assert response.status_code == 200
        assert response.json() == {"profile_id": "baby-1", "canceled": synced["blocks"]}

        pending = (await client.get(f"{BASE}/notifications/scheduled")).json()["reminders"]
        assert pending == []
        assert (await client.get(f"{BASE}/profile")).status_code == 404
        info = (await client.get(f"{BASE}/storage")).json()
        assert info["schema_version"] is None
        assert not any(v for k, v in info.items() if k.startswith("has_"))

    async def test_corrupted_profile_reports_reset(self, client, async_session) -> None:
        async_session.add(
            StoredBlob(
                profile_id="baby-1",
                key=BlobKey.PROFILE.value,
                schema_version=1,
                payload="{not json",
            )
        )
        await async_session.commit()

        response = await client.get(f"{BASE}/profile")
        assert response.status_code == 404
        assert response.json()["extra"] == {"storage_reset": True}

        # The corrupted document is gone for good
        response = await client.get(f"{BASE}/profile")
        assert response.json()["extra"] == {"storage_reset": False}
        info = (await client.get(f"{BASE}/storage")).json()
        assert info["has_profile"] is False


class TestSessions:
    """Tests for the session log endpoints."""

    async def test_create_and_list(self, client, api_clock) -> None:
        await seed(client, api_clock)
        response = await client.get(f"{BASE}/sessions")
        assert response.status_code == 200
        assert len(response.json()["sessions"]) == 9

        yesterday = (api_clock.today() - timedelta(days=1)).isoformat()
        response = await client.get(f"{BASE}/sessions", params={"day": yesterday})
        assert len(response.json()["sessions"]) == 3

    async def test_create_updates_learner(self, client, api_clock) -> None:
        await seed(client, api_clock)
        response = await client.get(f"{BASE}/learner")
        body = response.json()
        assert body["learner_state"]["confidence"] > 0.2
        assert body["wake_window_min"] == body["learner_state"]["ewma_wake_window_min"]

    async def test_inverted_range_rejected(self, client, api_clock) -> None:
        await seed(client, api_clock, days=0)
        start = api_clock.now()
        response = await client.post(
            f"{BASE}/sessions",
            json={"start": start.isoformat(), "end": (start - timedelta(hours=1)).isoformat()},
        )
        assert response.status_code == 400

    async def test_edit_and_delete(self, client, api_clock) -> None:
        await seed(client, api_clock, days=1)
        sessions = (await client.get(f"{BASE}/sessions")).json()["sessions"]
        target = sessions[0]["id"]

        response = await client.patch(f"{BASE}/sessions/{target}", json={"notes": "fussy"})
        assert response.status_code == 200
        assert response.json()["session"]["notes"] == "fussy"

        response = await client.delete(f"{BASE}/sessions/{target}")
        assert response.status_code == 200
        assert response.json()["session"]["deleted"] is True

        active = (await client.get(f"{BASE}/sessions")).json()["sessions"]
        everything = (
            await client.get(f"{BASE}/sessions", params={"include_deleted": "true"})
        ).json()["sessions"]
        assert len(active) == 2
        assert len(everything) == 3

    async def test_unknown_session(self, client, api_clock) -> None:
        await seed(client, api_clock, days=0)
        response = await client.delete(f"{BASE}/sessions/session_missing")
        assert response.status_code == 404


class TestPlanning:
    """Tests for schedule and coach endpoints."""

    async def test_schedule(self, client, api_clock) -> None:
        await seed(client, api_clock)
        response = await client.get(f"{BASE}/schedule")
        assert response.status_code == 200
        body = response.json()
        assert body["today"]
        assert body["tomorrow"]
        assert body["storage_reset"] is False
        kinds = {b["kind"] for b in body["tomorrow"]}
        assert kinds == {"nap", "bedtime", "windDown"}

    async def test_what_if_clamped(self, client, api_clock) -> None:
        await seed(client, api_clock)
        response = await client.get(f"{BASE}/schedule/what-if", params={"delta": 100})
        assert response.status_code == 200
        blocks = response.json()["today"]
        assert all(b["rationale"].startswith("What-if scenario: +30min") for b in blocks)

    async def test_coach_tips(self, client, api_clock) -> None:
        await seed(client, api_clock)
        response = await client.get(f"{BASE}/coach/tips")
        assert response.status_code == 200
        assert isinstance(response.json()["tips"], list)

    async def test_coach_tips_bad_day(self, client, api_clock) -> None:
        await seed(client, api_clock, days=0)
        response = await client.get(f"{BASE}/coach/tips", params={"day": "someday"})
        assert response.status_code == 400


class TestNotifications:
    """Tests for reminder endpoints."""

    async def test_sync_and_cancel(self, client, api_clock) -> None:
        await seed(client, api_clock)
        response = await client.post(f"{BASE}/notifications/sync")
        assert response.status_code == 200
        body = response.json()
        assert body["blocks"] > 0
        assert len(body["scheduled"]) == body["blocks"]

        pending = (await client.get(f"{BASE}/notifications/scheduled")).json()["reminders"]
        assert {r["notification_id"] for r in pending} == set(body["scheduled"].values())

        upcoming = await client.get(
            f"{BASE}/notifications/history", params={"status": "scheduled"}
        )
        assert len(upcoming.json()["items"]) == body["blocks"]

        response = await client.post(f"{BASE}/notifications/cancel-all")
        assert response.json()["canceled"] == body["blocks"]
        pending = (await client.get(f"{BASE}/notifications/scheduled")).json()["reminders"]
        assert pending == []

        canceled = await client.get(f"{BASE}/notifications/history", params={"status": "canceled"})
        assert len(canceled.json()["items"]) == body["blocks"]

    async def test_resync_replaces_reminders(self, client, api_clock) -> None:
        await seed(client, api_clock)
        first = (await client.post(f"{BASE}/notifications/sync")).json()
        second = (await client.post(f"{BASE}/notifications/sync")).json()
        pending = (await client.get(f"{BASE}/notifications/scheduled")).json()["reminders"]
        assert len(pending) == second["blocks"]
        assert set(first["scheduled"].values()).isdisjoint(second["scheduled"].values())

    async def test_sync_unknown_profile(self, client) -> None:
        response = await client.post(f"{BASE}/notifications/sync")
        assert response.status_code == 404
