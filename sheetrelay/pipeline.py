"""
Run orchestration: configuration -> fetch -> clean -> write -> report.

A run moves through RunState values in order and ends in DONE or FAILED.
Job-level fetch failures are counted and the run carries on; a failure to
read configuration or to write a destination ends the run in FAILED, after
one best-effort "FINAL ERROR" status row to the last known destination.

All per-run state (rate limiter, counters, logger) lives in a
PipelineContext, so independent runs can share a process.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from .cleaning import clean_rows, filter_since
from .config import LAST_ROW, Settings
from .fetch import FAILED, BatchFetcher, FetchResult, JobOutcome
from .logger import StructuredLogger, get_logger
from .ratelimit import RateLimiter
from .retry import RetryExecutor, retry_everything
from .schema import Destination, Job, parse_jobs
from .sheets import RemoteTableClient, is_retryable_error
from .status import StatusLog
from .writer import ChunkedWriter


class RunState(str, Enum):
    INIT = "init"
    CONFIGURING = "configuring"
    FETCHING = "fetching"
    CLEANING = "cleaning"
    WRITING = "writing"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunStatistics:
    processed_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    invalid_config_rows: int = 0
    total_rows: int = 0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    def start(self) -> None:
        """Begin a new run; counters from any earlier run are cleared."""
        self.processed_count = 0
        self.skipped_count = 0
        self.error_count = 0
        self.invalid_config_rows = 0
        self.total_rows = 0
        self.started_at = self.clock()
        self.finished_at = None

    def finish(self) -> None:
        self.finished_at = self.clock()

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else self.clock()
        return end - self.started_at

    @property
    def rate(self) -> float:
        """Processed jobs per second."""
        elapsed = self.elapsed
        return self.processed_count / elapsed if elapsed > 0 else 0.0

    def record_batch(self, outcomes: List[JobOutcome]) -> None:
        for outcome in outcomes:
            if outcome.status == FAILED:
                self.error_count += 1
            elif outcome.rows:
                self.processed_count += 1
            else:
                self.skipped_count += 1

    def as_dict(self) -> dict:
        return {
            "processed_sheets": self.processed_count,
            "skipped_sheets": self.skipped_count,
            "errors": self.error_count,
            "invalid_config_rows": self.invalid_config_rows,
            "total_rows": self.total_rows,
            "total_time": f"{self.elapsed:.2f}s",
            "average_rate": f"{self.rate:.2f} sheets/sec",
        }


@dataclass
class PipelineContext:
    client: RemoteTableClient
    settings: Settings
    logger: StructuredLogger
    rate_limiter: RateLimiter
    executor: RetryExecutor
    stats: RunStatistics = field(default_factory=RunStatistics)
    sleep: Callable[[float], None] = time.sleep

    @classmethod
    def build(
        cls,
        client: RemoteTableClient,
        settings: Settings,
        logger: Optional[StructuredLogger] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> "PipelineContext":
        """Wire a fresh rate limiter, retry executor and statistics for one run."""
        logger = logger or get_logger()
        rate_limiter = RateLimiter(settings.rate_limit_delay, clock=clock, sleep=sleep)
        executor = RetryExecutor(
            rate_limiter,
            max_attempts=settings.max_attempts,
            base_delay=settings.backoff_base,
            max_delay=settings.backoff_max,
            retry_on=retry_everything if settings.retry_all_errors else is_retryable_error,
            sleep=sleep,
            logger=logger,
        )
        return cls(
            client=client,
            settings=settings,
            logger=logger,
            rate_limiter=rate_limiter,
            executor=executor,
            stats=RunStatistics(clock=clock),
            sleep=sleep,
        )


@dataclass
class RunResult:
    stats: RunStatistics
    state: RunState = RunState.INIT
    transitions: List[RunState] = field(default_factory=lambda: [RunState.INIT])
    jobs: List[Job] = field(default_factory=list)
    destinations_written: List[Destination] = field(default_factory=list)
    rows_written: int = 0
    failed_in: Optional[RunState] = None


class PipelineFailure(Exception):
    """A fatal error ended the run; the cause is chained as __cause__."""

    def __init__(self, message: str, state: RunState, result: RunResult):
        super().__init__(message)
        self.state = state
        self.result = result


class Orchestrator:
    def __init__(self, context: PipelineContext, dry_run: bool = False):
        self.context = context
        self.settings = context.settings
        self.logger = context.logger
        self.dry_run = dry_run
        self.status_log = StatusLog(
            context.client, context.executor, context.settings.log_range, logger=context.logger
        )
        self.fetcher = BatchFetcher(
            context.client,
            context.executor,
            self.status_log,
            pad_width=context.settings.pad_width,
            logger=context.logger,
        )
        self.writer = ChunkedWriter(
            context.client,
            context.executor,
            chunk_size=context.settings.chunk_size,
            chunk_pause=context.settings.chunk_pause,
            sleep=context.sleep,
            logger=context.logger,
        )
        self._last_destination: Optional[Destination] = None

    def run(self) -> RunResult:
        """
        Execute one full transfer.

        Returns:
            RunResult in state DONE

        Raises:
            PipelineFailure: Configuration read or a destination write failed
        """
        stats = self.context.stats
        stats.start()
        result = RunResult(stats=stats)
        self._last_destination = None

        try:
            self._enter(result, RunState.CONFIGURING)
            jobs = self.read_jobs()
            result.jobs = jobs
            if not jobs:
                self.logger.warning("No configuration data found")
                self._enter(result, RunState.DONE)
                return result
            self._last_destination = jobs[-1].destination

            self._enter(result, RunState.FETCHING)
            fetched = self.fetcher.run_batches(
                jobs, self.settings.batch_size, on_batch=self._after_batch
            )

            self._enter(result, RunState.CLEANING)
            plan = self.plan_writes(jobs, fetched)
            stats.total_rows = sum(len(rows) for _, rows in plan)
            self.logger.info(f"Final dataset contains {stats.total_rows} rows")

            self._enter(result, RunState.WRITING)
            self.write_all(plan, result)

            self._enter(result, RunState.REPORTING)
            if not self.dry_run:
                for table_id in _unique(d.table_id for d in result.destinations_written):
                    self.status_log.done(table_id)

            self._enter(result, RunState.DONE)
            self.logger.info("Process completed successfully")
            return result

        except Exception as e:
            failed_in = result.state
            result.failed_in = failed_in
            self._enter(result, RunState.FAILED)
            self.logger.record_failure(type(e).__name__)
            self.logger.error("Process failed", state=failed_in.value, error=str(e))
            self._report_final_error(e)
            raise PipelineFailure(f"Run failed while {failed_in.value}: {e}", failed_in, result) from e

        finally:
            stats.finish()
            self.logger.info("Final Statistics", **stats.as_dict())

    def read_jobs(self) -> List[Job]:
        """Read the configuration range and parse it into jobs."""
        self.logger.info("Fetching configuration data...")
        rows = self.context.executor.execute(
            lambda: self.context.client.get(self.settings.config_table_id, self.settings.config_range),
            description="get configuration",
        )
        jobs, rejected = parse_jobs(rows)
        for row_number, errors in rejected:
            self.logger.warning(
                "Skipping invalid configuration row",
                row=row_number,
                errors=errors,
            )
        self.context.stats.invalid_config_rows = len(rejected)
        self.logger.info(f"Found {len(jobs)} sheets to process")
        return jobs

    def plan_writes(self, jobs: List[Job], fetched: FetchResult) -> List[Tuple[Destination, List[List[Any]]]]:
        """
        Decide which cleaned rows go to which destination.

        With the last_row policy everything goes to the destination of the
        final configuration row. Otherwise each destination gets the rows of
        its own jobs; a destination whose jobs all failed is left untouched.
        """
        if self.settings.destination_policy == LAST_ROW:
            return [(jobs[-1].destination, self.transform(fetched.rows))]

        plan = []
        for destination in _unique(job.destination for job in jobs):
            outcomes = [o for o in fetched.outcomes if o.job.destination == destination]
            if all(o.status == FAILED for o in outcomes):
                self.logger.warning(
                    "Every job for destination failed, leaving it untouched",
                    spreadsheet_id=destination.table_id,
                    range=destination.range,
                )
                continue
            plan.append((destination, self.transform(fetched.rows_for(destination))))
        return plan

    def transform(self, rows: List[List[Any]]) -> List[List[Any]]:
        """Apply the optional date filter, then clean."""
        if self.settings.filter_since is not None and self.settings.filter_date_column is not None:
            rows = filter_since(rows, self.settings.filter_date_column, self.settings.filter_since)
        return clean_rows(rows)

    def write_all(self, plan: List[Tuple[Destination, List[List[Any]]]], result: RunResult) -> None:
        for destination, rows in plan:
            self._last_destination = destination
            if self.dry_run:
                self.logger.info(
                    f"[dry-run] Would write {len(rows)} rows",
                    spreadsheet_id=destination.table_id,
                    range=destination.range,
                )
                continue
            self.logger.info("Updating destination sheet...", spreadsheet_id=destination.table_id)
            report = self.writer.write(destination.table_id, destination.range, rows)
            result.destinations_written.append(destination)
            result.rows_written += report.rows_written

    def _after_batch(self, batch_index: int, outcomes: List[JobOutcome]) -> None:
        stats = self.context.stats
        stats.record_batch(outcomes)
        self.logger.info(
            f"Progress: {stats.processed_count} processed, {stats.error_count} errors, "
            f"{stats.elapsed:.1f}s elapsed, {stats.rate:.2f} sheets/sec"
        )

    def _report_final_error(self, error: BaseException) -> None:
        if self._last_destination is None:
            self.logger.warning("No destination known, final error not recorded in a sheet")
            return
        if self.dry_run:
            return
        self.status_log.final_error(self._last_destination.table_id, error)

    def _enter(self, result: RunResult, state: RunState) -> None:
        self.logger.debug(f"State {result.state.value} -> {state.value}")
        result.state = state
        result.transitions.append(state)


def _unique(items) -> list:
    seen = set()
    ordered = []
    for item in items:
        if item not in seen:
            seen.add(item)
            ordered.append(item)
    return ordered
