import threading

import pytest

from macroflow.core import thread_pool


@pytest.fixture(autouse=True)
def _reset_pools():
    thread_pool.shutdown_pools()
    yield
    thread_pool.shutdown_pools()


@pytest.mark.asyncio
async def test_run_in_io_uses_io_threads():
    name = await thread_pool.run_in_io(lambda: threading.current_thread().name)
    assert name.startswith("adb-io")


@pytest.mark.asyncio
async def test_run_in_compute_passes_args():
    result = await thread_pool.run_in_compute(lambda a, b: a * b, 6, 7)
    assert result == 42


def test_io_pool_size_from_settings(monkeypatch):
    from macroflow.core.config import settings

    monkeypatch.setattr(settings, "io_thread_pool_size", 2)
    pool = thread_pool.get_io_pool()
    assert pool._max_workers == 2
    assert thread_pool.get_io_pool() is pool
