#!/usr/bin/env python3
"""End-to-end smoke run against a live napcoach server.

Creates a profile, logs a few days of sessions, and walks the learner,
schedule, coach and reminder endpoints.

Usage:
    # Set environment variables:
    export PROFILE_ID="smoke-test"
    export BASE_URL="http://localhost:8000"

    # Run:
    uv run python scripts/smoke_e2e.py
"""

import asyncio
import os
import sys
from datetime import UTC, datetime, timedelta

import httpx

# Configuration from environment
PROFILE_ID = os.environ.get("PROFILE_ID", "smoke-test")
BASE_URL = os.environ.get("BASE_URL", "http://localhost:8000")
API_BASE = f"{BASE_URL}/api/v1/profiles/{PROFILE_ID}"


async def check_health(client: httpx.AsyncClient) -> bool:
    """Health endpoint responds."""
    r = await client.get(f"{BASE_URL}/health")
    if r.status_code != 200 or r.json().get("status") != "ok":
        print(f"  FAIL: Health check returned {r.status_code}")
        return False
    print(f"  OK: Server healthy, version {r.json().get('version')}")
    return True


async def check_profile(client: httpx.AsyncClient) -> bool:
    """Profile can be created."""
    birth = (datetime.now(UTC) - timedelta(days=200)).date().isoformat()
    r = await client.put(f"{API_BASE}/profile", json={"name": "Smoke", "birth_date": birth})
    if r.status_code != 200:
        print(f"  FAIL: profile returned {r.status_code}")
        return False
    print(f"  OK: profile - {r.json().get('age_range')}")
    return True


async def check_sessions(client: httpx.AsyncClient) -> bool:
    """A few days of naps and nights can be logged; inverted ranges are rejected."""
    today = datetime.now(UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    for day in range(3, 0, -1):
        base = today - timedelta(days=day)
        for start_h, minutes in ((9, 60), (13, 75), (19, 600)):
            start = base + timedelta(hours=start_h)
            body = {
                "start": start.isoformat(),
                "end": (start + timedelta(minutes=minutes)).isoformat(),
            }
            r = await client.post(f"{API_BASE}/sessions", json=body)
            if r.status_code != 201:
                print(f"  FAIL: create session returned {r.status_code}")
                return False

    r = await client.post(
        f"{API_BASE}/sessions",
        json={"start": today.isoformat(), "end": (today - timedelta(hours=1)).isoformat()},
    )
    if r.status_code != 400:
        print(f"  FAIL: inverted range should return 400, got {r.status_code}")
        return False

    r = await client.get(f"{API_BASE}/sessions")
    print(f"  OK: sessions - {len(r.json()['sessions'])} logged")
    return True


async def check_planning(client: httpx.AsyncClient) -> bool:
    """Learner, schedule, what-if and coach endpoints respond."""
    for name, path in (
        ("learner", "/learner"),
        ("schedule", "/schedule"),
        ("what-if", "/schedule/what-if?delta=15"),
        ("coach", "/coach/tips"),
    ):
        r = await client.get(f"{API_BASE}{path}")
        if r.status_code != 200:
            print(f"  FAIL: {name} returned {r.status_code}")
            return False
        print(f"  OK: {name}")
    return True


async def check_notifications(client: httpx.AsyncClient) -> bool:
    """Reminders can be synced and canceled."""
    r = await client.post(f"{API_BASE}/notifications/sync")
    if r.status_code != 200:
        print(f"  FAIL: sync returned {r.status_code}")
        return False
    print(f"  OK: sync - {len(r.json()['scheduled'])} reminders scheduled")

    r = await client.post(f"{API_BASE}/notifications/cancel-all")
    if r.status_code != 200:
        print(f"  FAIL: cancel-all returned {r.status_code}")
        return False
    print(f"  OK: cancel-all - {r.json()['canceled']} canceled")
    return True


async def main() -> int:
    """Run all checks."""
    print("=" * 60)
    print("napcoach - End-to-End Smoke Run")
    print("=" * 60)
    print(f"Base URL: {BASE_URL}")
    print(f"Profile ID: {PROFILE_ID}")
    print("=" * 60)

    checks = [
        ("Health Check", check_health),
        ("Profile", check_profile),
        ("Sessions", check_sessions),
        ("Planning", check_planning),
        ("Notifications", check_notifications),
    ]

    passed = 0
    failed = 0

    async with httpx.AsyncClient() as client:
        for name, check in checks:
            print(f"\n[{name}]")
            try:
                if await check(client):
                    passed += 1
                else:
                    failed += 1
            except httpx.HTTPError as e:
                print(f"  ERROR: {e}")
                failed += 1

    print("\n" + "=" * 60)
    print(f"Results: {passed} passed, {failed} failed")
    print("=" * 60)

    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
