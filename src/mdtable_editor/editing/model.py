"""Editable in-memory table built from a parsed TableDescriptor.

Every mutation bounds-checks its arguments before touching any state, so a
failed call never leaves a half-applied change.  After a successful mutation
the metadata is refreshed (timestamp, counts, validation) and change
listeners receive a fresh snapshot.

Cells are kept in storage form: line breaks inside a cell are the ``<br>``
marker.  Values written through the model have real newlines encoded and
edge whitespace trimmed, so every state the model can reach renders to a
table that parses back to the same cells.
"""

import logging
import re
import uuid
from collections.abc import Callable, Iterable, Sequence

from mdtable_editor.editing.dragdrop import DragDropMixin
from mdtable_editor.editing.sorting import SortingMixin
from mdtable_editor.tables.errors import PositionError, TableValidationError
from mdtable_editor.tables.formatting import normalize_cell, render_table_markdown
from mdtable_editor.tables.locator import validate_table_shape
from mdtable_editor.tables.schema import (
    CellPosition,
    CellUpdate,
    ColumnView,
    DragDropState,
    SortState,
    TableData,
    TableDescriptor,
    TableMetadata,
    TableStatistics,
    ValidationResult,
    utc_now,
)

logger = logging.getLogger(__name__)

ALIGNMENTS = ("left", "center", "right")

ChangeListener = Callable[[TableData], None]


def generate_table_id() -> str:
    return f"table_{uuid.uuid4().hex}"


def _check_text(value, what: str) -> str:
    if not isinstance(value, str):
        raise TableValidationError(f"{what} must be a string, got {type(value).__name__}")
    return normalize_cell(value)


class TableModel(SortingMixin, DragDropMixin):
    """Mutable table with CRUD, sorting and drag-and-drop reordering."""

    def __init__(self, table: TableDescriptor, source_uri: str = "", table_index: int = 0):
        self.id = generate_table_id()
        self._headers: list[str] = list(table.headers)
        self._rows: list[list[str]] = [list(row) for row in table.rows]
        self._alignment: list[str] = list(table.alignment)
        self._metadata = TableMetadata(
            source_uri=source_uri,
            start_line=table.start_line,
            end_line=table.end_line,
            table_index=table_index,
        )
        self._listeners: list[ChangeListener] = []
        self._sort_state = SortState()
        self._drag_state = DragDropState()
        self._drag_listeners = []
        self._refresh_metadata()

    def __repr__(self) -> str:
        return f"TableModel(id={self.id!r}, columns={len(self._headers)}, rows={len(self._rows)})"

    # ─── Snapshots ────────────────────────────────────────────────────────────

    @property
    def headers(self) -> list[str]:
        return list(self._headers)

    @property
    def rows(self) -> list[list[str]]:
        return [list(row) for row in self._rows]

    @property
    def alignment(self) -> list[str]:
        return list(self._alignment)

    @property
    def metadata(self) -> TableMetadata:
        return self._metadata.model_copy(deep=True)

    @property
    def column_count(self) -> int:
        return len(self._headers)

    @property
    def row_count(self) -> int:
        return len(self._rows)

    def get_table_data(self) -> TableData:
        """Independent copy of the current table state."""
        return TableData.model_construct(
            id=self.id,
            headers=self.headers,
            rows=self.rows,
            alignment=self.alignment,
            metadata=self.metadata,
        )

    def validate(self) -> ValidationResult:
        return validate_table_shape(self._headers, self._rows, self._alignment)

    def serialize_to_markdown(self) -> str:
        return render_table_markdown(self._headers, self._rows, self._alignment)

    def set_location(self, start_line: int, end_line: int, table_index: int | None = None) -> None:
        """Record where the table now sits in its document (no listener call)."""
        update = {"start_line": start_line, "end_line": end_line}
        if table_index is not None:
            update["table_index"] = table_index
        self._metadata = self._metadata.model_copy(update=update)

    # ─── Listeners / bookkeeping ──────────────────────────────────────────────

    def add_change_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_change_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _refresh_metadata(self) -> None:
        result = self.validate()
        self._metadata = self._metadata.model_copy(
            update={
                "last_modified": utc_now(),
                "column_count": len(self._headers),
                "row_count": len(self._rows),
                "is_valid": result.is_valid,
                "validation_issues": result.issues,
            }
        )
        if not result.is_valid:
            logger.warning("Table %s failed validation: %s", self.id, "; ".join(result.issues))

    def _commit(self, clear_sort: bool = False) -> None:
        """Finish a successful mutation: refresh metadata and notify listeners."""
        self._cancel_stale_drag()
        if clear_sort:
            self._sort_state = SortState()
        self._refresh_metadata()
        if not self._listeners:
            return
        snapshot = self.get_table_data()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Change listener failed for table %s", self.id)

    def _check_row(self, index, allow_end: bool = False) -> None:
        limit = len(self._rows) + (1 if allow_end else 0)
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < limit:
            raise PositionError(f"Invalid row index: {index} (valid range: 0-{limit - 1})")

    def _check_col(self, index, allow_end: bool = False) -> None:
        limit = len(self._headers) + (1 if allow_end else 0)
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < limit:
            raise PositionError(f"Invalid column index: {index} (valid range: 0-{limit - 1})")

    # ─── Cells ────────────────────────────────────────────────────────────────

    def get_cell(self, row: int, col: int) -> str:
        self._check_row(row)
        self._check_col(col)
        return self._rows[row][col]

    def update_cell(self, row: int, col: int, value: str) -> None:
        self._check_row(row)
        self._check_col(col)
        value = _check_text(value, "Cell value")
        self._rows[row][col] = value
        self._commit()

    def update_header(self, col: int, value: str) -> None:
        self._check_col(col)
        self._headers[col] = _check_text(value, "Header")
        self._commit()

    def batch_update_cells(self, updates: Iterable[CellUpdate | dict | tuple]) -> None:
        """Apply several cell updates; all are validated before any is applied."""
        checked: list[tuple[int, int, str]] = []
        for update in updates:
            if isinstance(update, tuple):
                row, col, value = update
            elif isinstance(update, dict):
                row, col, value = update.get("row"), update.get("col"), update.get("value")
            else:
                row, col, value = update.row, update.col, update.value
            self._check_row(row)
            self._check_col(col)
            checked.append((row, col, _check_text(value, "Cell value")))
        if not checked:
            return
        for row, col, value in checked:
            self._rows[row][col] = value
        self._commit()

    def clear_all_cells(self) -> None:
        self._rows = [[""] * len(self._headers) for _ in self._rows]
        self._commit()

    # ─── Rows ─────────────────────────────────────────────────────────────────

    def get_row(self, index: int) -> list[str]:
        self._check_row(index)
        return list(self._rows[index])

    def add_row(self, index: int | None = None) -> int:
        """Insert an empty row (appended by default); returns its index."""
        if index is None:
            index = len(self._rows)
        self._check_row(index, allow_end=True)
        self._rows.insert(index, [""] * len(self._headers))
        self._commit()
        return index

    def insert_rows(self, index: int, count: int) -> None:
        self._check_row(index, allow_end=True)
        if not isinstance(count, int) or count <= 0:
            raise TableValidationError(f"Row count must be a positive integer, got {count}")
        self._rows[index:index] = [[""] * len(self._headers) for _ in range(count)]
        self._commit()

    def delete_row(self, index: int) -> None:
        self._check_row(index)
        del self._rows[index]
        self._commit()

    def delete_rows(self, indices: Sequence[int]) -> None:
        """Delete several rows; the table may end up with no data rows."""
        if not indices:
            raise TableValidationError("No row indices given")
        for index in indices:
            self._check_row(index)
        for index in sorted(set(indices), reverse=True):
            del self._rows[index]
        self._commit()

    def update_row(self, index: int, values: Sequence[str]) -> None:
        self._check_row(index)
        if len(values) != len(self._headers):
            raise TableValidationError(f"Row must have {len(self._headers)} values, got {len(values)}")
        self._rows[index] = [_check_text(v, "Cell value") for v in values]
        self._commit()

    def clear_row(self, index: int) -> None:
        self._check_row(index)
        self._rows[index] = [""] * len(self._headers)
        self._commit()

    def duplicate_row(self, index: int, insert_index: int | None = None) -> int:
        """Copy a row, inserting it right after the original by default; returns the copy's index."""
        self._check_row(index)
        if insert_index is None:
            insert_index = index + 1
        self._check_row(insert_index, allow_end=True)
        self._rows.insert(insert_index, list(self._rows[index]))
        self._commit()
        return insert_index

    def move_row(self, from_index: int, to_index: int) -> None:
        """Move a row so that it ends up at ``to_index``."""
        self._check_row(from_index)
        self._check_row(to_index)
        if from_index == to_index:
            return
        row = self._rows.pop(from_index)
        self._rows.insert(to_index, row)
        self._commit(clear_sort=True)

    # ─── Columns ──────────────────────────────────────────────────────────────

    def get_column(self, index: int) -> ColumnView:
        self._check_col(index)
        return ColumnView(header=self._headers[index], values=[row[index] for row in self._rows], alignment=self._alignment[index])

    def add_column(self, index: int | None = None, header: str | None = None) -> int:
        """Insert an empty, left-aligned column (appended by default); returns its index."""
        if index is None:
            index = len(self._headers)
        self._check_col(index, allow_end=True)
        header = f"Column {index + 1}" if header is None else _check_text(header, "Header")
        self._headers.insert(index, header)
        self._alignment.insert(index, "left")
        for row in self._rows:
            row.insert(index, "")
        self._commit(clear_sort=True)
        return index

    def insert_columns(self, index: int, count: int, headers: Sequence[str] | None = None) -> None:
        self._check_col(index, allow_end=True)
        if not isinstance(count, int) or count <= 0:
            raise TableValidationError(f"Column count must be a positive integer, got {count}")
        headers = list(headers or [])
        new_headers = [_check_text(headers[i], "Header") if i < len(headers) else f"Column {index + i + 1}" for i in range(count)]
        self._headers[index:index] = new_headers
        self._alignment[index:index] = ["left"] * count
        for row in self._rows:
            row[index:index] = [""] * count
        self._commit(clear_sort=True)

    def delete_column(self, index: int) -> None:
        self._check_col(index)
        if len(self._headers) <= 1:
            raise TableValidationError("Cannot delete the last column")
        del self._headers[index]
        del self._alignment[index]
        for row in self._rows:
            del row[index]
        self._commit(clear_sort=True)

    def delete_columns(self, indices: Sequence[int]) -> None:
        if not indices:
            raise TableValidationError("No column indices given")
        for index in indices:
            self._check_col(index)
        unique = sorted(set(indices), reverse=True)
        if len(unique) >= len(self._headers):
            raise TableValidationError("Cannot delete all columns")
        for index in unique:
            del self._headers[index]
            del self._alignment[index]
            for row in self._rows:
                del row[index]
        self._commit(clear_sort=True)

    def update_column(self, index: int, values: Sequence[str], header: str | None = None) -> None:
        self._check_col(index)
        if len(values) != len(self._rows):
            raise TableValidationError(f"Column must have {len(self._rows)} values, got {len(values)}")
        values = [_check_text(v, "Cell value") for v in values]
        if header is not None:
            self._headers[index] = _check_text(header, "Header")
        for row, value in zip(self._rows, values):
            row[index] = value
        self._commit()

    def update_alignment(self, index: int, alignment: str) -> None:
        self._check_col(index)
        if alignment not in ALIGNMENTS:
            raise TableValidationError(f"Invalid alignment: {alignment!r} (expected one of {', '.join(ALIGNMENTS)})")
        self._alignment[index] = alignment
        self._commit()

    def clear_column(self, index: int) -> None:
        self._check_col(index)
        for row in self._rows:
            row[index] = ""
        self._commit()

    def duplicate_column(self, index: int, insert_index: int | None = None) -> int:
        """Copy a column (header gets a `` Copy`` suffix); returns the copy's index."""
        self._check_col(index)
        if insert_index is None:
            insert_index = index + 1
        self._check_col(insert_index, allow_end=True)
        self._headers.insert(insert_index, f"{self._headers[index]} Copy")
        self._alignment.insert(insert_index, self._alignment[index])
        for row in self._rows:
            row.insert(insert_index, row[index])
        self._commit(clear_sort=True)
        return insert_index

    def move_column(self, from_index: int, to_index: int) -> None:
        """Move a column (header, alignment and cells) so that it ends up at ``to_index``."""
        self._check_col(from_index)
        self._check_col(to_index)
        if from_index == to_index:
            return
        self._headers.insert(to_index, self._headers.pop(from_index))
        self._alignment.insert(to_index, self._alignment.pop(from_index))
        for row in self._rows:
            row.insert(to_index, row.pop(from_index))
        self._commit(clear_sort=True)

    # ─── Whole-table operations ───────────────────────────────────────────────

    def replace_contents(self, headers: Sequence[str], rows: Sequence[Sequence[str]], alignment: Sequence[str] | None = None) -> None:
        """Swap in new headers/rows (e.g. from a CSV import); alignment defaults to left."""
        if not headers:
            raise TableValidationError("A table needs at least one column")
        alignment = list(alignment) if alignment is not None else ["left"] * len(headers)
        if len(alignment) != len(headers) or any(a not in ALIGNMENTS for a in alignment):
            raise TableValidationError("Alignment must give left, center or right for every column")
        for i, row in enumerate(rows):
            if len(row) != len(headers):
                raise TableValidationError(f"Row {i + 1} has {len(row)} columns, expected {len(headers)}")
        self._headers = [_check_text(h, "Header") for h in headers]
        self._rows = [[_check_text(v, "Cell value") for v in row] for row in rows]
        self._alignment = alignment
        self._commit(clear_sort=True)

    def restore(self, snapshot: TableData) -> None:
        """Put back the headers, rows and alignment from an earlier snapshot."""
        self._headers = list(snapshot.headers)
        self._rows = [list(row) for row in snapshot.rows]
        self._alignment = list(snapshot.alignment)
        self._commit(clear_sort=True)

    def find_and_replace(
        self,
        pattern: str,
        replacement: str,
        use_regex: bool = False,
        case_sensitive: bool = False,
        whole_word: bool = False,
        include_headers: bool = False,
    ) -> int:
        """Replace matches in every cell (optionally headers too); returns the number of replacements."""
        if not isinstance(pattern, str) or not pattern:
            raise TableValidationError("Search pattern must be a non-empty string")
        if not isinstance(replacement, str):
            raise TableValidationError("Replacement must be a string")
        source = pattern if use_regex else re.escape(pattern)
        if whole_word:
            source = rf"\b(?:{source})\b"
        try:
            regex = re.compile(source, 0 if case_sensitive else re.IGNORECASE)
        except re.error as exc:
            raise TableValidationError(f"Invalid regular expression: {exc}") from exc

        def substitute(text: str) -> tuple[str, int]:
            if use_regex:
                new_text, n = regex.subn(replacement, text)
            else:
                new_text, n = regex.subn(lambda _match: replacement, text)
            return normalize_cell(new_text), n

        total = 0
        new_rows = []
        new_headers = list(self._headers)
        try:
            for row in self._rows:
                new_row = []
                for cell in row:
                    new_cell, n = substitute(cell)
                    new_row.append(new_cell)
                    total += n
                new_rows.append(new_row)
            if include_headers:
                for i, header in enumerate(self._headers):
                    new_headers[i], n = substitute(header)
                    total += n
        except re.error as exc:
            raise TableValidationError(f"Invalid replacement: {exc}") from exc

        if total:
            self._rows = new_rows
            self._headers = new_headers
            self._commit()
        logger.debug("find_and_replace(%r) replaced %d occurrences in table %s", pattern, total, self.id)
        return total

    # ─── Queries ──────────────────────────────────────────────────────────────

    def is_empty(self) -> bool:
        """True when there are no data rows or every cell is blank."""
        return all(not cell.strip() for row in self._rows for cell in row)

    def has_empty_cells(self) -> bool:
        return any(not cell.strip() for row in self._rows for cell in row)

    def get_empty_cells(self) -> list[CellPosition]:
        return [CellPosition(row=r, col=c) for r, row in enumerate(self._rows) for c, cell in enumerate(row) if not cell.strip()]

    def get_statistics(self) -> TableStatistics:
        total_cells = len(self._headers) * len(self._rows)
        empty_cells = sum(1 for row in self._rows for cell in row if not cell.strip())
        column_widths = [max([len(header)] + [len(row[i]) for row in self._rows if i < len(row)]) for i, header in enumerate(self._headers)]
        average_row_length = sum(len(cell) for row in self._rows for cell in row) / max(len(self._rows), 1)
        return TableStatistics(
            total_cells=total_cells,
            empty_cells=empty_cells,
            fill_rate=(total_cells - empty_cells) / total_cells if total_cells else 0.0,
            column_widths=column_widths,
            average_row_length=average_row_length,
        )

    def clone(self) -> "TableModel":
        """Independent deep copy with a new id and no listeners."""
        descriptor = TableDescriptor(
            start_line=self._metadata.start_line,
            end_line=self._metadata.end_line,
            headers=self._headers,
            rows=self._rows,
            alignment=self._alignment,
        )
        copy = TableModel(descriptor, source_uri=self._metadata.source_uri, table_index=self._metadata.table_index)
        copy._sort_state = self._sort_state.model_copy(deep=True)  # pylint: disable=protected-access
        return copy
