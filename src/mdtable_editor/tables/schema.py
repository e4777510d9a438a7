"""Pydantic records shared by the locator, the table model, and the transport.

Attributes are snake_case in Python and camelCase on the wire: every record
uses a ``to_camel`` alias generator, so snapshots are sent with
``model_dump(by_alias=True, mode="json")``.
"""

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Alignment = Literal["left", "center", "right"]
SortDirection = Literal["asc", "desc"]
DataType = Literal["auto", "number", "date", "string"]
DragType = Literal["row", "column"]


class WireModel(BaseModel):
    """Base for records that travel to the editing surface."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """Dump with camelCase keys and JSON-safe values."""
        return self.model_dump(by_alias=True, mode="json")


# ─── Parsed Tables ────────────────────────────────────────────────────────────


class TableDescriptor(WireModel):
    """One table as found in a document.

    ``start_line`` and ``end_line`` are 0-based and inclusive.  Row and
    alignment lengths are taken as parsed; mismatches are reported by
    ``validate_table_descriptor``, never repaired here.
    """

    model_config = ConfigDict(frozen=True)

    start_line: int
    end_line: int
    headers: list[str]
    rows: list[list[str]]
    alignment: list[Alignment]


class TableBoundary(WireModel):
    """Line range of a table plus the exact source text it covers."""

    start_line: int
    end_line: int
    raw: str


class ValidationResult(WireModel):
    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ─── Model Snapshots ──────────────────────────────────────────────────────────


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TableMetadata(WireModel):
    source_uri: str = ""
    start_line: int = 0
    end_line: int = 0
    table_index: int = 0
    last_modified: datetime = Field(default_factory=utc_now)
    column_count: int = 0
    row_count: int = 0
    is_valid: bool = True
    validation_issues: list[str] = Field(default_factory=list)


class TableData(WireModel):
    """Immutable-by-convention snapshot of a table model."""

    id: str
    headers: list[str]
    rows: list[list[str]]
    alignment: list[Alignment]
    metadata: TableMetadata


class TableStatistics(WireModel):
    total_cells: int
    empty_cells: int
    fill_rate: float
    column_widths: list[int]
    average_row_length: float


class ColumnStatistics(WireModel):
    """Summary of one column as the sorting engine sees it."""

    data_type: DataType
    unique_values: int
    null_values: int
    min_value: str | None = None
    max_value: str | None = None
    sample_values: list[str] = Field(default_factory=list)


class ColumnView(WireModel):
    header: str
    values: list[str]
    alignment: Alignment


class CellPosition(WireModel):
    row: int
    col: int


class CellUpdate(WireModel):
    row: int
    col: int
    value: str


# ─── Sort / Drag State ────────────────────────────────────────────────────────


class SortKey(WireModel):
    column_index: int
    direction: SortDirection = "asc"
    data_type: DataType | None = None


class SortState(WireModel):
    """Which column(s) the rows were last ordered by.

    ``view_only`` stays True until the sorted order has been written back to
    the source document.
    """

    column_index: int = -1
    direction: Literal["asc", "desc", "none"] = "none"
    data_type: DataType | None = None
    keys: list[SortKey] = Field(default_factory=list)
    view_only: bool = False


class SortIndicator(WireModel):
    column_index: int
    direction: SortDirection | None = None
    is_primary: bool = False


class DragDropState(WireModel):
    is_dragging: bool = False
    drag_type: DragType | None = None
    drag_index: int = -1
    drop_zones: list[int] = Field(default_factory=list)
    preview_data: TableData | None = None


# ─── Synchronization / Transport ──────────────────────────────────────────────


class LinePatch(WireModel):
    """Replace the inclusive line range ``start_line..end_line`` with ``new_content``."""

    start_line: int
    end_line: int
    new_content: str


class ConnectionHealth(WireModel):
    is_healthy: bool = True
    last_activity: float = 0.0
