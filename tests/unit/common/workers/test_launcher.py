"""
Unit tests for WorkerLauncher.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from common.workers.launcher import (
    EXIT_FAILED,
    EXIT_INTERRUPTED,
    EXIT_OK,
    WorkerLauncher,
)


def make_job(start_side_effect=None):
    job = MagicMock()
    job.start = AsyncMock(side_effect=start_side_effect)
    job.stop = AsyncMock()
    return job


@pytest.mark.asyncio
class TestRunJob:
    async def test_clean_run(self):
        job = make_job()

        assert await WorkerLauncher().run_job(job, "Billing Sweep") == EXIT_OK
        job.stop.assert_awaited_once()

    async def test_failure_still_stops(self):
        job = make_job(RuntimeError("database unavailable"))

        assert await WorkerLauncher().run_job(job, "Billing Sweep") == EXIT_FAILED
        job.stop.assert_awaited_once()

    async def test_interrupted(self):
        job = make_job(asyncio.CancelledError())

        assert await WorkerLauncher().run_job(job, "Billing Sweep") == EXIT_INTERRUPTED
        job.stop.assert_awaited_once()

    async def test_cleanup_error_does_not_change_outcome(self):
        job = make_job()
        job.stop.side_effect = ConnectionError("broker gone")

        assert await WorkerLauncher().run_job(job, "Billing Sweep") == EXIT_OK


class TestRun:
    def test_failed_job_exits_non_zero(self, monkeypatch):
        monkeypatch.setattr(WorkerLauncher, "configure_logging", staticmethod(lambda level: None))
        launcher = WorkerLauncher()

        with pytest.raises(SystemExit) as exc_info:
            launcher.run(lambda: make_job(RuntimeError("boom")), "Billing Sweep")

        assert exc_info.value.code == EXIT_FAILED

    def test_factory_receives_cli_kwargs(self, monkeypatch):
        monkeypatch.setattr(WorkerLauncher, "configure_logging", staticmethod(lambda level: None))
        factory = MagicMock(return_value=make_job())

        WorkerLauncher().run_with_cli(
            factory,
            "Billing Sweep",
            cli_setup_func=lambda: (None, (), {"skip_renewals": True}),
        )

        factory.assert_called_once_with(skip_renewals=True)
