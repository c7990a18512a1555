"""
Pytest configuration and shared fixtures.
"""

import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest

from sheetrelay.config import Settings
from sheetrelay.logger import get_logger, reset_logger
from sheetrelay.pipeline import PipelineContext
from sheetrelay.ratelimit import RateLimiter
from sheetrelay.retry import RetryExecutor
from sheetrelay.sheets import SheetsApiError
from sheetrelay.status import DEFAULT_LOG_RANGE, StatusLog

CONFIG_ID = "control-sheet"
CONFIG_RANGE = "'COSTDATA_DB'!C2:F"


class FakeSheetsClient:
    """In-memory RemoteTableClient that records every call."""

    def __init__(self):
        self.ranges: Dict[Tuple[str, str], List[List[Any]]] = {}
        self.calls: List[Tuple[str, str, str, Optional[List[List[Any]]]]] = []
        self._failures: Dict[Tuple[str, str, Optional[str]], list] = {}
        self._lock = threading.Lock()

    def set_range(self, table_id: str, range_: str, rows: List[List[Any]]):
        self.ranges[(table_id, range_)] = [list(r) for r in rows]

    def fail(self, op: str, table_id: str, range_: Optional[str] = None,
             times: Optional[int] = None, error: Optional[Exception] = None):
        """Make `op` on table_id (and optionally range_) raise. times=None fails forever."""
        self._failures[(op, table_id, range_)] = [times, error or SheetsApiError(503, "Backend Error")]

    def _maybe_fail(self, op: str, table_id: str, range_: str):
        for key in ((op, table_id, range_), (op, table_id, None)):
            entry = self._failures.get(key)
            if entry is None:
                continue
            remaining, error = entry
            if remaining is None:
                raise error
            if remaining > 0:
                entry[0] = remaining - 1
                raise error

    def _record(self, op, table_id, range_, rows=None):
        with self._lock:
            self.calls.append((op, table_id, range_, None if rows is None else [list(r) for r in rows]))

    def get(self, table_id, range_):
        self._record("get", table_id, range_)
        self._maybe_fail("get", table_id, range_)
        return [list(r) for r in self.ranges.get((table_id, range_), [])]

    def update(self, table_id, range_, rows):
        self._record("update", table_id, range_, rows)
        self._maybe_fail("update", table_id, range_)
        with self._lock:
            self.ranges[(table_id, range_)] = [list(r) for r in rows]

    def append(self, table_id, range_, rows):
        self._record("append", table_id, range_, rows)
        self._maybe_fail("append", table_id, range_)
        with self._lock:
            self.ranges.setdefault((table_id, range_), []).extend(list(r) for r in rows)

    def clear(self, table_id, range_):
        self._record("clear", table_id, range_)
        self._maybe_fail("clear", table_id, range_)
        with self._lock:
            self.ranges[(table_id, range_)] = []

    def calls_for(self, op: Optional[str] = None, table_id: Optional[str] = None,
                  range_: Optional[str] = None):
        return [
            c for c in self.calls
            if (op is None or c[0] == op)
            and (table_id is None or c[1] == table_id)
            and (range_ is None or c[2] == range_)
        ]

    def status_rows(self, table_id: str, log_range: str = DEFAULT_LOG_RANGE):
        return self.ranges.get((table_id, log_range), [])


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds


class CountingRateLimiter(RateLimiter):
    def __init__(self):
        super().__init__(delay=0)
        self.throttle_calls = 0

    def throttle(self) -> float:
        self.throttle_calls += 1
        return super().throttle()


@pytest.fixture(autouse=True)
def quiet_logger(tmp_path):
    """Global logger writing only to a temporary directory."""
    reset_logger()
    logger = get_logger(log_dir=tmp_path / "logs", enable_console=False)
    yield logger
    reset_logger()


@pytest.fixture
def logger(quiet_logger):
    return quiet_logger


@pytest.fixture
def client() -> FakeSheetsClient:
    return FakeSheetsClient()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def executor(logger) -> RetryExecutor:
    return RetryExecutor(RateLimiter(0), max_attempts=3, sleep=lambda s: None, logger=logger)


@pytest.fixture
def status_log(client, executor, logger) -> StatusLog:
    return StatusLog(client, executor, logger=logger)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        config_table_id=CONFIG_ID,
        config_range=CONFIG_RANGE,
        rate_limit_delay=0,
        chunk_pause=0,
        backoff_base=0.5,
        backoff_max=4.0,
    )


@pytest.fixture
def make_context(client, logger, clock):
    def _make(settings: Settings) -> PipelineContext:
        return PipelineContext.build(client, settings, logger=logger, sleep=clock.sleep, clock=clock)
    return _make
