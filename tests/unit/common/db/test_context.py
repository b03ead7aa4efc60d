import asyncio

import pytest

from common.db.context import (
    _force_readonly,
    get_current_session,
    in_transaction,
    is_readonly_forced,
    readonly,
    reset_current_session,
    set_current_session,
)


class TestContextVariables:
    def test_default_state(self):
        assert is_readonly_forced() is False
        assert get_current_session(readonly=False) is None
        assert get_current_session(readonly=True) is None
        assert in_transaction() is False

    def test_write_and_read_slots_are_separate(self):
        write_session, read_session = object(), object()
        write_token = set_current_session(write_session, readonly=False)
        read_token = set_current_session(read_session, readonly=True)
        try:
            assert get_current_session(readonly=False) is write_session
            assert get_current_session(readonly=True) is read_session
        finally:
            reset_current_session(read_token, readonly=True)
            reset_current_session(write_token, readonly=False)

        assert get_current_session(readonly=False) is None
        assert get_current_session(readonly=True) is None

    def test_forced_readonly_reads_the_read_slot(self):
        write_session = object()
        token = set_current_session(write_session, readonly=False)
        force_token = _force_readonly.set(True)
        try:
            # Under @readonly a write lookup must not hand out the writer
            assert get_current_session(readonly=False) is None
        finally:
            _force_readonly.reset(force_token)
            reset_current_session(token, readonly=False)


class TestContextIsolation:
    async def test_concurrent_tasks_have_isolated_sessions(self, test_db):
        results = {}

        async def task_with_session(task_id: str, delay: float):
            token = set_current_session(test_db, readonly=False)
            await asyncio.sleep(delay)
            results[task_id] = get_current_session(readonly=False) is test_db
            reset_current_session(token, readonly=False)

        await asyncio.gather(
            task_with_session("task1", 0.01),
            task_with_session("task2", 0.005),
        )

        assert results == {"task1": True, "task2": True}
        assert get_current_session(readonly=False) is None

    async def test_readonly_flag_isolated_between_tasks(self):
        results = {}

        async def check_readonly(task_id: str, set_readonly: bool):
            token = _force_readonly.set(True) if set_readonly else None
            await asyncio.sleep(0.01)
            results[task_id] = is_readonly_forced()
            if token is not None:
                _force_readonly.reset(token)

        await asyncio.gather(
            check_readonly("readonly_task", True),
            check_readonly("normal_task", False),
        )

        assert results == {"readonly_task": True, "normal_task": False}


class TestReadonlyDecorator:
    async def test_sets_flag_only_during_call(self):
        @readonly
        async def report():
            return is_readonly_forced()

        assert await report() is True
        assert is_readonly_forced() is False

    async def test_resets_flag_on_exception(self):
        @readonly
        async def failing_report():
            raise ValueError("test error")

        with pytest.raises(ValueError):
            await failing_report()

        assert is_readonly_forced() is False

    async def test_preserves_arguments(self):
        @readonly
        async def report(period: str, limit: int = 10):
            return period, limit, is_readonly_forced()

        assert await report("2024-01", limit=5) == ("2024-01", 5, True)
