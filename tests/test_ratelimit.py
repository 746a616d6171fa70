from datetime import datetime, timedelta, timezone

import pytest

from sharedrop.core.errors import NoApiAccess, RateLimited
from sharedrop.plans import limits_for
from sharedrop.ratelimit import REQUEST_WINDOW, advance_window, consume_api_call

from tests.helpers import make_user, run_db

NOW = datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


def test_advance_window():
    assert advance_window(7, None, NOW, REQUEST_WINDOW) == (0, NOW)
    start = NOW - timedelta(minutes=30)
    assert advance_window(7, start, NOW, REQUEST_WINDOW) == (7, start)
    # exactly one window later still counts as the same window
    assert advance_window(7, NOW - REQUEST_WINDOW, NOW, REQUEST_WINDOW) == (7, NOW - REQUEST_WINDOW)
    assert advance_window(7, NOW - REQUEST_WINDOW - timedelta(seconds=1), NOW, REQUEST_WINDOW) == (0, NOW)


def test_no_api_access_touches_nothing():
    async def scenario(session):
        user = await make_user(session, "free@example.com", plan="free", api_requests_count=3)
        with pytest.raises(NoApiAccess):
            await consume_api_call(session, user, limits_for("free"), now=NOW)
        await session.refresh(user)
        return user

    user = run_db(scenario)
    assert user.api_requests_count == 3
    assert user.api_requests_window_start is None


def test_request_budget_exhausted():
    async def scenario(session):
        user = await make_user(
            session,
            "plus@example.com",
            plan="plus",
            api_requests_count=1000,
            api_requests_window_start=NOW - timedelta(minutes=10),
        )
        with pytest.raises(RateLimited) as exc:
            await consume_api_call(session, user, limits_for("plus"), now=NOW)
        await session.refresh(user)
        return exc.value, user

    err, user = run_db(scenario)
    assert err.status_code == 429
    assert err.limit == 1000
    assert user.api_requests_count == 1000


def test_window_resets_after_an_hour():
    async def scenario(session):
        user = await make_user(
            session,
            "plus@example.com",
            plan="plus",
            api_requests_count=1000,
            api_requests_window_start=NOW - timedelta(hours=2),
        )
        return await consume_api_call(session, user, limits_for("plus"), now=NOW)

    user = run_db(scenario)
    assert user.api_requests_count == 1
    assert user.api_requests_window_start == NOW


def test_upload_budget_and_single_write():
    async def scenario(session):
        user = await make_user(
            session,
            "plus@example.com",
            plan="plus",
            api_requests_count=5,
            api_requests_window_start=NOW - timedelta(minutes=5),
            api_uploads_count=100,
            api_uploads_window_start=NOW - timedelta(hours=3),
        )
        limits = limits_for("plus")
        with pytest.raises(RateLimited) as exc:
            await consume_api_call(session, user, limits, upload=True, now=NOW)
        await session.refresh(user)
        before = user.api_requests_count
        # plain requests still go through and advance both pairs together
        user = await consume_api_call(session, user, limits, now=NOW)
        return exc.value, before, user

    err, before, user = run_db(scenario)
    assert err.limit == 100
    assert before == 5
    assert user.api_requests_count == 6
    assert user.api_uploads_count == 100


def test_window_starts_come_back_as_utc():
    async def scenario(session):
        return await make_user(
            session,
            "tz@example.com",
            plan="plus",
            api_requests_window_start=datetime(2026, 3, 1, 10, 0, 0, tzinfo=timezone(timedelta(hours=1))),
            api_uploads_window_start=datetime(2026, 3, 1, 9, 0, 0),
        )

    user = run_db(scenario)
    assert user.api_requests_window_start == NOW
    assert user.api_requests_window_start.utcoffset() == timedelta(0)
    assert user.api_uploads_window_start == NOW
    assert user.created_at.tzinfo is not None
