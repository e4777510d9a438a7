"""Wire messages exchanged with editing surfaces.

Inbound messages are ``{"command": ..., "data": {...}}`` objects validated
against a closed, command-tagged union of Pydantic models: an unknown
command, a missing field, a wrongly typed value or a negative index is
rejected with a ProtocolError naming the offending field.  Outbound
messages are Pydantic records dumped with camelCase keys.

A request may carry a ``requestId`` (or ``id``).  The session acknowledges
it with an ``ack`` and echoes it on every reply to that request, so a
surface on a lossy channel can tell which of its requests went through.
"""

import logging
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import AfterValidator, AliasChoices, BaseModel, ConfigDict, Field, StrictBool, StrictStr, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from mdtable_editor.tables.errors import ProtocolError
from mdtable_editor.tables.schema import TableData, WireModel

logger = logging.getLogger(__name__)


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty")
    return value


Index = Annotated[int, Field(ge=0, strict=True)]
NonBlankStr = Annotated[StrictStr, AfterValidator(_not_blank)]


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class _TablePayload(_Payload):
    table_index: Index | None = None


# ─── Inbound payloads ─────────────────────────────────────────────────────────


class RequestTableDataPayload(_TablePayload):
    force_refresh: StrictBool = False


class UpdateCellPayload(_TablePayload):
    row: Index
    col: Index
    value: StrictStr


class CellUpdatePayload(_Payload):
    row: Index
    col: Index
    value: StrictStr


class BulkUpdateCellsPayload(_TablePayload):
    updates: list[CellUpdatePayload] = Field(min_length=1)


class UpdateHeaderPayload(_TablePayload):
    col: Index
    value: StrictStr


class AddRowPayload(_TablePayload):
    index: Index | None = None


class IndexPayload(_TablePayload):
    index: Index


class IndicesPayload(_TablePayload):
    indices: list[Index] = Field(min_length=1)


class AddColumnPayload(_TablePayload):
    index: Index | None = None
    header: StrictStr | None = None


class SortPayload(_TablePayload):
    column: Index
    direction: Literal["asc", "desc"]


class MovePayload(_TablePayload):
    from_index: Index
    to_index: Index


class ExportCSVPayload(_TablePayload):
    csv_content: NonBlankStr
    filename: NonBlankStr | None = None
    encoding: NonBlankStr | None = None


class SwitchTablePayload(_Payload):
    index: Index


# ─── Inbound messages ─────────────────────────────────────────────────────────


class _Inbound(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    # Correlation id chosen by the surface; echoed on every reply to the request
    request_id: StrictStr | None = Field(default=None, validation_alias=AliasChoices("requestId", "id", "request_id"))


class RequestTableDataMessage(_Inbound):
    command: Literal["requestTableData"]
    data: RequestTableDataPayload = Field(default_factory=RequestTableDataPayload)


class UpdateCellMessage(_Inbound):
    command: Literal["updateCell"]
    data: UpdateCellPayload


class BulkUpdateCellsMessage(_Inbound):
    command: Literal["bulkUpdateCells"]
    data: BulkUpdateCellsPayload


class UpdateHeaderMessage(_Inbound):
    command: Literal["updateHeader"]
    data: UpdateHeaderPayload


class AddRowMessage(_Inbound):
    command: Literal["addRow"]
    data: AddRowPayload = Field(default_factory=AddRowPayload)


class DeleteRowMessage(_Inbound):
    command: Literal["deleteRow"]
    data: IndexPayload


class DeleteRowsMessage(_Inbound):
    command: Literal["deleteRows"]
    data: IndicesPayload


class AddColumnMessage(_Inbound):
    command: Literal["addColumn"]
    data: AddColumnPayload = Field(default_factory=AddColumnPayload)


class DeleteColumnMessage(_Inbound):
    command: Literal["deleteColumn"]
    data: IndexPayload


class DeleteColumnsMessage(_Inbound):
    command: Literal["deleteColumns"]
    data: IndicesPayload


class SortMessage(_Inbound):
    command: Literal["sort"]
    data: SortPayload


class MoveRowMessage(_Inbound):
    command: Literal["moveRow"]
    data: MovePayload


class MoveColumnMessage(_Inbound):
    command: Literal["moveColumn"]
    data: MovePayload


class ExportCSVMessage(_Inbound):
    command: Literal["exportCSV"]
    data: ExportCSVPayload


class ImportCSVMessage(_Inbound):
    command: Literal["importCSV"]
    data: _TablePayload = Field(default_factory=_TablePayload)


class SwitchTableMessage(_Inbound):
    command: Literal["switchTable"]
    data: SwitchTablePayload


class PongMessage(_Inbound):
    command: Literal["pong"]
    timestamp: float
    response_time: float


InboundMessage = Annotated[
    Union[
        RequestTableDataMessage,
        UpdateCellMessage,
        BulkUpdateCellsMessage,
        UpdateHeaderMessage,
        AddRowMessage,
        DeleteRowMessage,
        DeleteRowsMessage,
        AddColumnMessage,
        DeleteColumnMessage,
        DeleteColumnsMessage,
        SortMessage,
        MoveRowMessage,
        MoveColumnMessage,
        ExportCSVMessage,
        ImportCSVMessage,
        SwitchTableMessage,
        PongMessage,
    ],
    Field(discriminator="command"),
]

INBOUND_MESSAGE_TYPES: tuple[type[BaseModel], ...] = get_args(get_args(InboundMessage)[0])

COMMANDS: frozenset[str] = frozenset(get_args(cls.model_fields["command"].annotation)[0] for cls in INBOUND_MESSAGE_TYPES)

_inbound_adapter = TypeAdapter(InboundMessage)


def validate_message(raw: Any) -> BaseModel:
    """Validate a decoded inbound message and return its typed model.

    Raises ProtocolError with ``field`` set to the dotted path of the first
    offending field (``command`` for structural problems).
    """
    if not isinstance(raw, dict):
        raise ProtocolError("Invalid message format: expected a JSON object", field="message")
    command = raw.get("command")
    if not isinstance(command, str) or not command:
        raise ProtocolError("Invalid message format: missing command", field="command")
    if command not in COMMANDS:
        raise ProtocolError(f"Unknown command: {command}", field="command", command=command)

    try:
        return _inbound_adapter.validate_python(raw)
    except ValidationError as exc:
        error = exc.errors()[0]
        # First loc entry is the union tag
        field = ".".join(str(part) for part in error["loc"][1:]) or "data"
        logger.debug("Rejected %s message: %s", command, exc)
        raise ProtocolError(f"Invalid {command} message: {field}: {error['msg']}", field=field, command=command) from exc


def raw_request_id(raw: Any) -> str | None:
    """Best-effort correlation id of a message that failed validation."""
    if not isinstance(raw, dict):
        return None
    for key in ("requestId", "id", "request_id"):
        if isinstance(raw.get(key), str):
            return raw[key]
    return None


# ─── Outbound messages ────────────────────────────────────────────────────────


class OutboundMessage(WireModel):
    command: str
    request_id: str | None = None

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class FileInfo(WireModel):
    uri: str
    file_name: str
    table_count: int


class UpdateTableDataMessage(OutboundMessage):
    command: Literal["updateTableData"] = "updateTableData"
    data: list[TableData]
    file_info: FileInfo | None = None


class AckMessage(OutboundMessage):
    """Sent as soon as a request carrying a ``requestId`` has been accepted."""

    command: Literal["ack"] = "ack"
    request_id: str


class ErrorMessage(OutboundMessage):
    command: Literal["error"] = "error"
    message: str


class SuccessMessage(OutboundMessage):
    command: Literal["success"] = "success"
    message: str
    data: dict | None = None


class StatusMessage(OutboundMessage):
    command: Literal["status"] = "status"
    status: str
    data: dict | None = None


class ValidationErrorMessage(OutboundMessage):
    command: Literal["validationError"] = "validationError"
    field: str
    message: str


class PingMessage(OutboundMessage):
    command: Literal["ping"] = "ping"
    timestamp: float


class CellUpdateErrorMessage(OutboundMessage):
    command: Literal["cellUpdateError"] = "cellUpdateError"
    row: int
    col: int
    error: str


class HeaderUpdateErrorMessage(OutboundMessage):
    command: Literal["headerUpdateError"] = "headerUpdateError"
    col: int
    error: str
