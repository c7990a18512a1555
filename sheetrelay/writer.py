"""
Destination writes: clear once, then write in bounded chunks.

The first chunk overwrites from the start of the range, later chunks are
appended after it. If a chunk exhausts its retries the error propagates and
the destination keeps only the chunks written before it.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from .logger import StructuredLogger, get_logger
from .retry import RetryExecutor
from .sheets import RemoteTableClient


@dataclass
class WriteReport:
    chunks_written: int = 0
    rows_written: int = 0


def chunk_rows(rows: Sequence[Any], chunk_size: int) -> List[List[Any]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return [list(rows[i:i + chunk_size]) for i in range(0, len(rows), chunk_size)]


class ChunkedWriter:
    def __init__(
        self,
        client: RemoteTableClient,
        executor: RetryExecutor,
        chunk_size: int = 3000,
        chunk_pause: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Args:
            client: Remote table client
            executor: Retry executor wrapping every remote call
            chunk_size: Maximum rows per write request
            chunk_pause: Seconds to wait between chunk writes
            sleep: Function used for the pause
            logger: Logger (default: global logger)
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        self.client = client
        self.executor = executor
        self.chunk_size = chunk_size
        self.chunk_pause = chunk_pause
        self._sleep = sleep
        self.logger = logger or get_logger()

    def write(self, dest_id: str, dest_range: str, rows: Sequence[List[Any]]) -> WriteReport:
        """Replace the contents of a destination range with `rows`."""
        if len(rows) <= self.chunk_size:
            return self.write_single(dest_id, dest_range, rows)
        return self.write_chunks(dest_id, dest_range, rows)

    def write_single(self, dest_id: str, dest_range: str, rows: Sequence[List[Any]]) -> WriteReport:
        """Clear the range, then write all rows in one update."""
        self._clear(dest_id, dest_range)
        values = list(rows)
        self.executor.execute(
            lambda: self.client.update(dest_id, dest_range, values),
            description=f"update {dest_id} {dest_range}",
        )
        self.logger.info(f"Wrote {len(values)} rows to {dest_id}", range=dest_range)
        return WriteReport(chunks_written=1, rows_written=len(values))

    def write_chunks(self, dest_id: str, dest_range: str, rows: Sequence[List[Any]]) -> WriteReport:
        """Clear the range once, then update with the first chunk and append the rest."""
        chunks = chunk_rows(rows, self.chunk_size)
        total = len(chunks)
        self.logger.info(
            "Processing large dataset in chunks",
            total_rows=len(rows),
            chunk_size=self.chunk_size,
            chunks=total,
        )

        self._clear(dest_id, dest_range)

        report = WriteReport()
        for number, chunk in enumerate(chunks, start=1):
            self.logger.info(f"Uploading chunk {number}/{total} ({len(chunk)} rows)")
            if number == 1:
                operation = lambda chunk=chunk: self.client.update(dest_id, dest_range, chunk)
                verb = "update"
            else:
                operation = lambda chunk=chunk: self.client.append(dest_id, dest_range, chunk)
                verb = "append"
            try:
                self.executor.execute(operation, description=f"{verb} chunk {number}/{total} to {dest_id}")
            except Exception as e:
                self.logger.error(
                    f"Chunk {number} failed",
                    error=str(e),
                    chunks_written=report.chunks_written,
                    rows_written=report.rows_written,
                )
                raise

            report.chunks_written += 1
            report.rows_written += len(chunk)
            if number < total and self.chunk_pause > 0:
                self._sleep(self.chunk_pause)

        return report

    def _clear(self, dest_id: str, dest_range: str) -> None:
        self.executor.execute(
            lambda: self.client.clear(dest_id, dest_range),
            description=f"clear {dest_id} {dest_range}",
        )
