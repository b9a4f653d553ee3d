from datetime import datetime, timedelta

import pytest

from app.core.exceptions import BusyError
from app.models.user import User
from app.services import busy_lock

pytestmark = pytest.mark.asyncio


async def test_second_acquire_fails_until_release(make_user):
    user = await make_user()
    assert await busy_lock.acquire(user.id) is not None
    assert await busy_lock.acquire(user.id) is None
    await busy_lock.release(user.id)
    assert await busy_lock.acquire(user.id) is not None


async def test_stale_lease_is_taken_over(make_user):
    user = await make_user(
        analyzing_status=True,
        analyzing_started_at=datetime.utcnow() - timedelta(seconds=3600),
    )
    assert await busy_lock.acquire(user.id, max_hold_seconds=600) is not None
    refreshed = await User.get(user.id)
    assert refreshed.analyzing_status is True
    assert refreshed.analyzing_started_at > datetime.utcnow() - timedelta(seconds=60)


async def test_fresh_lease_is_respected(make_user):
    user = await make_user(analyzing_status=True, analyzing_started_at=datetime.utcnow())
    assert await busy_lock.acquire(user.id, max_hold_seconds=600) is None


async def test_hold_releases_on_error(make_user):
    user = await make_user()
    with pytest.raises(RuntimeError):
        async with busy_lock.hold(user.id):
            raise RuntimeError("boom")
    refreshed = await User.get(user.id)
    assert refreshed.analyzing_status is False
    assert refreshed.analyzing_started_at is None


async def test_hold_raises_busy_when_taken(make_user):
    user = await make_user()
    async with busy_lock.hold(user.id):
        with pytest.raises(BusyError):
            async with busy_lock.hold(user.id):
                pass
    assert (await User.get(user.id)).analyzing_status is False


async def test_overrun_holder_leaves_new_lease_alone(make_user):
    overran = datetime(2026, 1, 1, 9, 0, 0, 123000)
    user = await make_user(analyzing_status=True, analyzing_started_at=overran)
    current = await busy_lock.acquire(user.id, max_hold_seconds=600)
    assert current is not None

    assert await busy_lock.release(user.id, overran) is False
    refreshed = await User.get(user.id)
    assert refreshed.analyzing_status is True
    assert refreshed.analyzing_started_at == current

    assert await busy_lock.release(user.id, current) is True
    assert (await User.get(user.id)).analyzing_status is False


async def test_operator_release_is_unconditional(make_user):
    user = await make_user(analyzing_status=True, analyzing_started_at=datetime.utcnow())
    assert await busy_lock.release(user.id) is True
    assert (await User.get(user.id)).analyzing_status is False
