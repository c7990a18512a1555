"""
Batched, concurrent fetching of configured source ranges.

Jobs are split into consecutive batches. All jobs of a batch run at once on
a thread pool and the batch is joined before the next one starts, so at most
`batch_size` fetches are ever in flight. A failing job is recorded and
reported to its own destination log; it never stops its siblings.

Rows are aggregated by batch, then by the job's position in configuration,
regardless of the order in which the fetches completed.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from .cleaning import pad_rows
from .logger import StructuredLogger, get_logger
from .retry import RemoteOperationFailure, RetryExecutor
from .schema import Destination, Job
from .sheets import RemoteTableClient
from .status import StatusLog

FETCHED = "fetched"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class JobOutcome:
    job: Job
    status: str
    rows: List[List[Any]] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class FetchResult:
    outcomes: List[JobOutcome] = field(default_factory=list)

    @property
    def rows(self) -> List[List[Any]]:
        return [row for outcome in self.outcomes for row in outcome.rows]

    @property
    def errors(self) -> int:
        return sum(1 for o in self.outcomes if o.status == FAILED)

    @property
    def processed(self) -> int:
        return sum(1 for o in self.outcomes if o.status == FETCHED)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if o.status == SKIPPED)

    def rows_for(self, destination: Destination) -> List[List[Any]]:
        return [
            row
            for outcome in self.outcomes
            if outcome.job.destination == destination
            for row in outcome.rows
        ]


def plan_batches(jobs: Sequence[Job], batch_size: int) -> List[List[Job]]:
    """Split jobs into consecutive groups of at most `batch_size`."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [list(jobs[i:i + batch_size]) for i in range(0, len(jobs), batch_size)]


class BatchFetcher:
    def __init__(
        self,
        client: RemoteTableClient,
        executor: RetryExecutor,
        status_log: StatusLog,
        pad_width: Optional[int] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Args:
            client: Remote table client
            executor: Retry executor wrapping every get
            status_log: Where failed jobs report their error
            pad_width: Pad ragged source rows to this width before tagging
            logger: Logger (default: global logger)
        """
        self.client = client
        self.executor = executor
        self.status_log = status_log
        self.pad_width = pad_width
        self.logger = logger or get_logger()

    def fetch_job(self, job: Job) -> JobOutcome:
        """Fetch one source range and tag every row with the source URL."""
        try:
            rows = self.executor.execute(
                lambda: self.client.get(job.source_id, job.source_range),
                description=f"get {job.source_id} {job.source_range}",
            )
        except RemoteOperationFailure as e:
            return self._fail(job, str(e.cause))

        if not rows:
            self.logger.info(
                f"Skipped empty sheet: {job.source_id}, range: {job.source_range}"
            )
            return JobOutcome(job, SKIPPED)

        if self.pad_width:
            rows = pad_rows(rows, self.pad_width)
        tag = job.source_url
        tagged = [list(row) + [tag] for row in rows]
        self.logger.info(f"Processed {len(tagged)} rows from sheet {job.source_id}")
        return JobOutcome(job, FETCHED, tagged)

    def _fail(self, job: Job, message: str) -> JobOutcome:
        self.logger.record_failure("JobFailure")
        self.logger.error(
            f"Error processing sheet {job.source_id}",
            range=job.source_range,
            error=message,
        )
        self.status_log.record(job.dest_id, message)
        return JobOutcome(job, FAILED, error=message)

    def run_batch(self, batch: Sequence[Job], batch_index: int = 0) -> List[JobOutcome]:
        """Fetch every job of a batch concurrently and wait for all of them."""
        self.logger.info(f"Processing batch {batch_index + 1} with {len(batch)} items")
        if not batch:
            return []

        with ThreadPoolExecutor(
            max_workers=len(batch), thread_name_prefix=f"batch-{batch_index + 1}"
        ) as pool:
            futures = [(job, pool.submit(self.fetch_job, job)) for job in batch]

            # Collected in submission order, so completion order never leaks
            # into the aggregate.
            outcomes = []
            for job, future in futures:
                try:
                    outcomes.append(future.result())
                except Exception as e:
                    outcomes.append(self._fail(job, f"{type(e).__name__}: {e}"))

        return outcomes

    def run_batches(
        self,
        jobs: Sequence[Job],
        batch_size: int,
        on_batch: Optional[Callable[[int, List[JobOutcome]], None]] = None,
    ) -> FetchResult:
        """
        Process all jobs batch by batch.

        Args:
            jobs: Jobs in configuration order
            batch_size: Maximum number of concurrent fetches
            on_batch: Optional callback(batch_index, outcomes) after each batch settles

        Returns:
            FetchResult holding every job outcome in configuration order
        """
        result = FetchResult()
        for batch_index, batch in enumerate(plan_batches(jobs, batch_size)):
            outcomes = self.run_batch(batch, batch_index)
            result.outcomes.extend(outcomes)
            if on_batch:
                on_batch(batch_index, outcomes)
        return result
