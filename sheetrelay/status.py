"""
Status rows appended to a destination spreadsheet's log range.

These writes are a side channel: a failure to record a status row is logged
and reported through the return value, never raised.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

from .logger import StructuredLogger, get_logger
from .retry import RemoteOperationFailure, RetryExecutor
from .sheets import RemoteTableClient

DEFAULT_LOG_RANGE = "'S_LOG'!A2:B"
DONE_MESSAGE = "Done"
FINAL_ERROR_PREFIX = "FINAL ERROR: "


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StatusLog:
    """Append [timestamp, message] rows to a spreadsheet's log range."""

    def __init__(
        self,
        client: RemoteTableClient,
        executor: RetryExecutor,
        log_range: str = DEFAULT_LOG_RANGE,
        clock: Callable[[], datetime] = _utc_now,
        logger: Optional[StructuredLogger] = None,
    ):
        self.client = client
        self.executor = executor
        self.log_range = log_range
        self._clock = clock
        self.logger = logger or get_logger()

    def record(self, table_id: str, message: str) -> bool:
        """
        Append one status row to `table_id`.

        Returns:
            True if the row was written, False if the write failed
        """
        row = [self._clock().strftime("%Y-%m-%d %H:%M:%S"), message]
        try:
            self.executor.execute(
                lambda: self.client.append(table_id, self.log_range, [row]),
                description=f"status log append to {table_id}",
            )
            return True
        except RemoteOperationFailure as e:
            self.logger.record_failure("StatusLogFailure")
            self.logger.error(
                "Failed to log to sheet",
                spreadsheet_id=table_id,
                status_message=message,
                error=str(e.cause),
            )
            return False

    def done(self, table_id: str) -> bool:
        return self.record(table_id, DONE_MESSAGE)

    def final_error(self, table_id: str, error: BaseException) -> bool:
        return self.record(table_id, f"{FINAL_ERROR_PREFIX}{error}")
