import asyncio
from datetime import datetime

import pytest

from src.server.auth.cleanup import AccountCleanupJob, seconds_until


class _FakeService:
    def __init__(self, deleted=2, purged=3, error=None):
        self.deleted = deleted
        self.purged = purged
        self.error = error
        self.calls = 0

    async def cleanup_inactive_accounts(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.deleted

    async def purge_expired_sessions(self):
        return self.purged


@pytest.mark.parametrize(
    "now, expected",
    [
        (datetime(2025, 1, 1, 2, 30), 1800),
        (datetime(2025, 1, 1, 3, 0), 24 * 3600),
        (datetime(2025, 1, 1, 4, 0), 23 * 3600),
    ],
)
def test_seconds_until_next_run(now, expected):
    assert seconds_until(3, now) == expected


def test_rejects_invalid_hour():
    with pytest.raises(ValueError):
        AccountCleanupJob(_FakeService(), hour_of_day=24)


@pytest.mark.asyncio
async def test_run_now_returns_deleted_accounts():
    service = _FakeService(deleted=4)
    job = AccountCleanupJob(service)
    assert await job.run_now() == 4
    assert service.calls == 1


@pytest.mark.asyncio
async def test_run_now_logs_and_swallows_errors(caplog):
    job = AccountCleanupJob(_FakeService(error=RuntimeError("disk gone")))
    assert await job.run_now() == 0
    assert "Error during account cleanup" in caplog.text


@pytest.mark.asyncio
async def test_start_runs_immediately_and_stop_cancels():
    service = _FakeService()
    job = AccountCleanupJob(service, hour_of_day=3)
    assert job.is_active is False

    job.start()
    assert job.is_active is True
    job.start()  # second start is ignored

    for _ in range(10):
        if service.calls:
            break
        await asyncio.sleep(0)
    assert service.calls == 1

    await job.stop()
    assert job.is_active is False
    await job.stop()
