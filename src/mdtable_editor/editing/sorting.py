"""Sorting engine for the table model.

Column types are inferred from a sample of non-empty cells (number, then
date, else string).  ``<br>`` markers count as whitespace when inferring and
comparing; cell contents are never rewritten.  Values that cannot be read as
the column's type sort after readable ones regardless of direction.  Every
sort is stable, so sorting twice by the same key changes nothing.
"""

import functools
import logging
import random
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone

from mdtable_editor.tables.errors import TableValidationError
from mdtable_editor.tables.patterns import DATE_FORMATS, DIGIT_RUN_RE, LINE_BREAK_RE, NUMBER_RE, TYPE_SAMPLE_SIZE
from mdtable_editor.tables.schema import ColumnStatistics, SortIndicator, SortKey, SortState

logger = logging.getLogger(__name__)

_DIRECTIONS = ("asc", "desc")
_DATA_TYPES = ("auto", "number", "date", "string")


# ─── Value Readers ────────────────────────────────────────────────────────────


def comparable_text(value: str) -> str:
    """Cell text with line-break markers collapsed to spaces, trimmed."""
    return LINE_BREAK_RE.sub(" ", value).strip()


def parse_number(text: str) -> float | None:
    text = comparable_text(text)
    if not text or not NUMBER_RE.match(text):
        return None
    try:
        return float(text.replace(",", ""))
    except ValueError:
        return None


def parse_date(text: str) -> datetime | None:
    """Read ISO-8601 or a handful of common date spellings; aware values are shifted to naive UTC."""
    text = comparable_text(text)
    if not text or parse_number(text) is not None:
        return None
    parsed = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is not None and parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def natural_key(text: str) -> tuple:
    """Split text into digit and non-digit runs; digit runs compare as integers."""
    parts = []
    for chunk in DIGIT_RUN_RE.split(comparable_text(text)):
        if not chunk:
            continue
        parts.append((0, int(chunk), "") if chunk.isdigit() else (1, 0, chunk))
    return tuple(parts)


def infer_column_type(values: Iterable[str]) -> str:
    """Return ``number``, ``date`` or ``string`` for a column's values."""
    sample: list[str] = []
    for value in values:
        if comparable_text(value):
            sample.append(value)
            if len(sample) >= TYPE_SAMPLE_SIZE:
                break
    if not sample:
        return "string"
    if all(parse_number(v) is not None for v in sample):
        return "number"
    if all(parse_date(v) is not None for v in sample):
        return "date"
    return "string"


def _value_reader(data_type: str, case_sensitive: bool) -> Callable[[str], object]:
    """Return a function mapping a cell to its sort value, or None when unreadable."""
    if data_type == "number":
        return parse_number
    if data_type == "date":
        return parse_date
    if case_sensitive:
        return lambda v: comparable_text(v) or None
    return lambda v: comparable_text(v).casefold() or None


def _compare(a, b) -> int:
    return (a > b) - (a < b)


def _compare_values(values_a: Sequence, values_b: Sequence, signs: Sequence[int]) -> int:
    """Compare pre-read sort values key by key; None (unreadable) goes last."""
    for a, b, sign in zip(values_a, values_b, signs):
        if a is None and b is None:
            continue
        if a is None:
            return 1
        if b is None:
            return -1
        result = _compare(a, b)
        if result:
            return sign * result
    return 0


# ─── Model Mixin ──────────────────────────────────────────────────────────────


class SortingMixin:
    """Sort operations for TableModel.

    Expects ``_rows``, ``_headers``, ``_sort_state``, ``_check_col()`` and
    ``_commit()`` from the host class.
    """

    def _check_direction(self, direction: str) -> None:
        if direction not in _DIRECTIONS:
            raise TableValidationError(f"Invalid sort direction: {direction!r} (expected 'asc' or 'desc')")

    def _resolve_type(self, col: int, data_type: str | None) -> str:
        if data_type in (None, "auto"):
            return infer_column_type(row[col] for row in self._rows)
        if data_type not in _DATA_TYPES:
            raise TableValidationError(f"Invalid data type: {data_type!r}")
        return data_type

    def _sort_rows(self, readers: Sequence[tuple[int, Callable[[str], object], int]]) -> None:
        """Stable sort by (column, reader, sign) keys, reading each cell once."""
        signs = [sign for _, _, sign in readers]
        decorated = [([reader(row[col]) for col, reader, _ in readers], row) for row in self._rows]
        decorated.sort(key=functools.cmp_to_key(lambda a, b: _compare_values(a[0], b[0], signs)))
        self._rows = [row for _, row in decorated]

    def _record_sort(self, keys: list[SortKey]) -> None:
        primary = keys[0]
        self._sort_state = SortState(
            column_index=primary.column_index,
            direction=primary.direction,
            data_type=primary.data_type,
            keys=keys,
            view_only=True,
        )

    def sort_by_column(self, col: int, direction: str) -> None:
        """Sort rows by one column, inferring its data type."""
        self.sort_by_column_advanced(col, direction)

    def sort_by_column_advanced(self, col: int, direction: str, data_type: str | None = None, case_sensitive: bool = True) -> None:
        self._check_col(col)
        self._check_direction(direction)
        resolved = self._resolve_type(col, data_type)
        sign = 1 if direction == "asc" else -1
        self._sort_rows([(col, _value_reader(resolved, case_sensitive), sign)])
        self._record_sort([SortKey(column_index=col, direction=direction, data_type=resolved)])
        logger.debug("Sorted %d rows by column %d (%s, %s)", len(self._rows), col, direction, resolved)
        self._commit()

    def sort_by_multiple_columns(self, keys: Sequence[SortKey | dict | tuple]) -> None:
        """Stable multi-key sort; the first key is primary.

        Keys may be SortKey records, ``{"columnIndex": 0, "direction": "asc"}``
        dicts, or ``(column, direction)`` tuples.
        """
        if not keys:
            raise TableValidationError("At least one sort key is required")
        sort_keys: list[SortKey] = []
        readers = []
        for key in keys:
            if isinstance(key, tuple):
                col, direction = key
                data_type = None
            elif isinstance(key, dict):
                col = key.get("column_index", key.get("columnIndex"))
                direction = key.get("direction", "asc")
                data_type = key.get("data_type", key.get("dataType"))
            else:
                col, direction, data_type = key.column_index, key.direction, key.data_type
            self._check_col(col)
            self._check_direction(direction)
            resolved = self._resolve_type(col, data_type)
            sort_keys.append(SortKey(column_index=col, direction=direction, data_type=resolved))
            readers.append((col, _value_reader(resolved, True), 1 if direction == "asc" else -1))

        self._sort_rows(readers)
        self._record_sort(sort_keys)
        self._commit()

    def sort_natural(self, col: int, direction: str) -> None:
        """Sort so that ``Item2`` comes before ``Item10``."""
        self._check_col(col)
        self._check_direction(direction)
        sign = 1 if direction == "asc" else -1
        self._sort_rows([(col, lambda v: natural_key(v) or None, sign)])
        self._record_sort([SortKey(column_index=col, direction=direction, data_type="string")])
        self._commit()

    def sort_by_custom_function(self, compare: Callable[[list[str], list[str]], int]) -> None:
        """Sort rows with a caller-supplied cmp function; sort tracking is cleared."""
        self._rows = sorted(self._rows, key=functools.cmp_to_key(compare))
        self._sort_state = SortState()
        self._commit()

    def shuffle_rows(self, rng: random.Random | None = None) -> None:
        (rng or random).shuffle(self._rows)
        self._sort_state = SortState()
        self._commit()

    def reverse_rows(self) -> None:
        """Reverse row order without touching the recorded sort state."""
        self._rows.reverse()
        self._commit()

    # ── Sort state ───────────────────────────────────────────────────────

    def get_sort_state(self) -> SortState:
        return self._sort_state.model_copy(deep=True)

    def is_sorted(self) -> bool:
        return self._sort_state.direction != "none"

    def clear_sort_state(self) -> None:
        """Forget the sort state; the current row order is kept."""
        self._sort_state = SortState()

    def mark_sort_committed(self) -> None:
        """Record that the sorted order has been written to the document."""
        self._sort_state = self._sort_state.model_copy(update={"view_only": False})

    def get_sort_indicators(self) -> list[SortIndicator]:
        """One indicator per column showing its direction in the current sort, if any."""
        directions = {key.column_index: key.direction for key in self._sort_state.keys}
        primary = self._sort_state.keys[0].column_index if self._sort_state.keys else -1
        return [SortIndicator(column_index=col, direction=directions.get(col), is_primary=col == primary) for col in range(len(self._headers))]

    def get_sorted_column_stats(self, col: int) -> ColumnStatistics:
        """Type, distinct count, blanks and min/max of one column."""
        self._check_col(col)
        values = [row[col] for row in self._rows]
        non_empty = [v for v in values if comparable_text(v)]
        data_type = infer_column_type(values)
        reader = _value_reader(data_type, True)
        readable = [(reader(v), v) for v in non_empty]
        ordered = sorted((pair for pair in readable if pair[0] is not None), key=lambda pair: pair[0])
        return ColumnStatistics(
            data_type=data_type,
            unique_values=len(set(non_empty)),
            null_values=len(values) - len(non_empty),
            min_value=ordered[0][1] if ordered else None,
            max_value=ordered[-1][1] if ordered else None,
            sample_values=non_empty[:5],
        )
