"""Row normalization applied to the aggregated dataset before it is written."""

from datetime import date, datetime
from typing import Any, List, Optional, Sequence

EMPTY_SENTINEL = 0

# Slash dates are read month-first; day-first only when that fails.
DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d", "%d-%m-%Y"]


def is_empty_cell(cell: Any) -> bool:
    return cell is None or cell == ""


def clean_rows(rows: Sequence[Sequence[Any]]) -> List[List[Any]]:
    """
    Drop rows with no non-empty cell and fill the remaining empty cells with 0.

    Whitespace is data: a cell holding " " is kept as-is.
    """
    cleaned = []
    for row in rows:
        if all(is_empty_cell(cell) for cell in row):
            continue
        cleaned.append([EMPTY_SENTINEL if is_empty_cell(cell) else cell for cell in row])
    return cleaned


def pad_rows(rows: Sequence[Sequence[Any]], width: int) -> List[List[Any]]:
    """Right-pad short rows with empty cells so every row has at least `width` cells.

    The Sheets API trims trailing empty cells, so rows come back ragged.
    """
    return [list(row) + [""] * (width - len(row)) for row in rows]


def parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        pass
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def filter_since(rows: Sequence[Sequence[Any]], column: int, since: date) -> List[List[Any]]:
    """Keep rows whose `column` holds a date on or after `since`.

    Rows where the cell is missing or not a recognizable date are dropped.
    """
    kept = []
    for row in rows:
        value = parse_date(row[column]) if column < len(row) else None
        if value is not None and value >= since:
            kept.append(list(row))
    return kept
