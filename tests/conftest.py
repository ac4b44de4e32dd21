from collections.abc import Callable, Generator
from typing import Any

import pytest

from tests.utils.store import FakeAdapter, FakeClock
from txpool.core.config import PoolConfig
from txpool.core.errors import ShutdownTimedOut
from txpool.core.pool import Pool


@pytest.fixture
def adapter() -> FakeAdapter:
    return FakeAdapter()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_pool(adapter: FakeAdapter) -> Generator[Callable[..., Pool], None, None]:
    """Build pools on the fake adapter; every pool is shut down after the test."""
    pools: list[Pool] = []

    def _make(**kwargs: Any) -> Pool:
        clock = kwargs.pop("clock", None)
        sleep = kwargs.pop("sleep", None)
        target = kwargs.pop("adapter", adapter)
        kwargs.setdefault("acquire_timeout", 1.0)
        kwargs.setdefault("drain_timeout", 0.0)
        extra: dict[str, Any] = {}
        if clock is not None:
            extra["clock"] = clock
        if sleep is not None:
            extra["sleep"] = sleep
        pool = Pool(target, PoolConfig(**kwargs), **extra)
        pools.append(pool)
        return pool

    yield _make
    for pool in pools:
        try:
            pool.shutdown(drain_timeout=0)
        except ShutdownTimedOut:
            pass
