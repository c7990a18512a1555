from dataclasses import dataclass
from typing import Any, List, Sequence, Tuple

from .sheets import spreadsheet_url

CONFIG_COLUMNS = ["source_id", "source_range", "dest_id", "dest_range"]


@dataclass(frozen=True)
class Destination:
    table_id: str
    range: str


@dataclass(frozen=True)
class Job:
    """One source-range to destination-range transfer, read from configuration."""

    source_id: str
    source_range: str
    dest_id: str
    dest_range: str
    index: int = 0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.source_id, self.source_range)

    @property
    def destination(self) -> Destination:
        return Destination(self.dest_id, self.dest_range)

    @property
    def source_url(self) -> str:
        return spreadsheet_url(self.source_id)


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_config_row(row: Sequence[Any]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Columns past the first four are ignored.
    """
    errors: List[str] = []
    for i, name in enumerate(CONFIG_COLUMNS):
        if i >= len(row):
            errors.append(f"Missing column: {name}")
        elif not _is_non_empty_str(row[i]):
            errors.append(f"Column '{name}' must be a non-empty string")
    return errors


def parse_jobs(rows: Sequence[Sequence[Any]]) -> Tuple[List[Job], List[Tuple[int, List[str]]]]:
    """
    Turn configuration rows into Jobs.

    Returns:
        (jobs, rejected) where rejected holds (row_number, errors) for rows
        that failed validation. Row numbers are 0-based offsets into `rows`.
    """
    jobs: List[Job] = []
    rejected: List[Tuple[int, List[str]]] = []
    for n, row in enumerate(rows):
        if not any(_is_non_empty_str(c) for c in row[:4]):
            continue  # blank line in the config sheet
        errors = validate_config_row(row)
        if errors:
            rejected.append((n, errors))
            continue
        source_id, source_range, dest_id, dest_range = (str(c).strip() for c in row[:4])
        jobs.append(Job(source_id, source_range, dest_id, dest_range, index=len(jobs)))
    return jobs, rejected
