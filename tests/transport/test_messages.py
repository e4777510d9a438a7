"""Unit tests for inbound message validation and outbound message shapes."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import pytest

from mdtable_editor.tables.errors import ProtocolError
from mdtable_editor.transport.messages import (
    COMMANDS,
    AckMessage,
    AddColumnMessage,
    AddRowMessage,
    CellUpdateErrorMessage,
    ErrorMessage,
    ExportCSVMessage,
    FileInfo,
    PingMessage,
    PongMessage,
    RequestTableDataMessage,
    SortMessage,
    SuccessMessage,
    UpdateCellMessage,
    UpdateTableDataMessage,
    raw_request_id,
    validate_message,
)


def rejected(raw) -> ProtocolError:
    with pytest.raises(ProtocolError) as excinfo:
        validate_message(raw)
    return excinfo.value


# ===========================================================================
# Valid inbound messages
# ===========================================================================


class TestValidMessages:

    def test_update_cell(self):
        message = validate_message({"command": "updateCell", "data": {"row": 1, "col": 2, "value": "x"}})
        assert isinstance(message, UpdateCellMessage)
        assert (message.data.row, message.data.col, message.data.value) == (1, 2, "x")
        assert message.data.table_index is None

    def test_camel_case_fields(self):
        message = validate_message({"command": "moveRow", "data": {"fromIndex": 0, "toIndex": 2, "tableIndex": 1}})
        assert (message.data.from_index, message.data.to_index, message.data.table_index) == (0, 2, 1)

    def test_optional_data(self):
        assert isinstance(validate_message({"command": "requestTableData"}), RequestTableDataMessage)
        assert validate_message({"command": "addRow"}).data.index is None
        assert isinstance(validate_message({"command": "addColumn", "data": {"header": "New"}}), AddColumnMessage)

    def test_force_refresh(self):
        assert validate_message({"command": "requestTableData", "data": {"forceRefresh": True}}).data.force_refresh is True

    def test_add_row_with_index(self):
        message = validate_message({"command": "addRow", "data": {"index": 0}})
        assert isinstance(message, AddRowMessage)
        assert message.data.index == 0

    def test_sort(self):
        message = validate_message({"command": "sort", "data": {"column": 0, "direction": "desc"}})
        assert isinstance(message, SortMessage)
        assert message.data.direction == "desc"

    def test_export_csv(self):
        message = validate_message({"command": "exportCSV", "data": {"csvContent": "a,b\r\n", "encoding": "sjis"}})
        assert isinstance(message, ExportCSVMessage)
        assert message.data.csv_content == "a,b\r\n"
        assert message.data.filename is None

    def test_pong(self):
        message = validate_message({"command": "pong", "timestamp": 1700000000000, "responseTime": 12.5})
        assert isinstance(message, PongMessage)
        assert message.response_time == 12.5

    def test_unknown_data_fields_ignored(self):
        message = validate_message({"command": "deleteRow", "data": {"index": 1, "extra": True}})
        assert message.data.index == 1

    def test_request_id(self):
        assert validate_message({"command": "addRow", "requestId": "r1"}).request_id == "r1"
        assert validate_message({"command": "addRow", "id": "r2"}).request_id == "r2"
        assert validate_message({"command": "addRow"}).request_id is None

    def test_command_set(self):
        assert {"updateCell", "deleteColumns", "importCSV", "pong", "switchTable"} <= COMMANDS


# ===========================================================================
# Rejected inbound messages
# ===========================================================================


class TestRejectedMessages:

    def test_non_string_request_id(self):
        assert rejected({"command": "addRow", "requestId": 7}).field == "requestId"

    def test_raw_request_id(self):
        assert raw_request_id({"command": "x", "requestId": "r1"}) == "r1"
        assert raw_request_id({"command": "x", "id": "r2"}) == "r2"
        assert raw_request_id({"command": "x", "requestId": 7}) is None
        assert raw_request_id(["x"]) is None

    def test_not_an_object(self):
        assert rejected(["updateCell"]).field == "message"

    def test_missing_command(self):
        error = rejected({"data": {}})
        assert error.field == "command"
        assert str(error) == "Invalid message format: missing command"

    def test_unknown_command(self):
        error = rejected({"command": "dropTable", "data": {}})
        assert str(error) == "Unknown command: dropTable"
        assert error.command == "dropTable"

    def test_negative_index(self):
        error = rejected({"command": "updateCell", "data": {"row": -1, "col": 0, "value": "x"}})
        assert error.field == "data.row"
        assert error.command == "updateCell"

    def test_missing_field(self):
        assert rejected({"command": "updateCell", "data": {"row": 0, "value": "x"}}).field == "data.col"

    def test_missing_data(self):
        assert rejected({"command": "deleteRow"}).field == "data"

    def test_string_index_rejected(self):
        assert rejected({"command": "deleteRow", "data": {"index": "1"}}).field == "data.index"

    def test_bool_index_rejected(self):
        assert rejected({"command": "deleteColumn", "data": {"index": True}}).field == "data.index"

    def test_non_string_value_rejected(self):
        assert rejected({"command": "updateHeader", "data": {"col": 0, "value": 5}}).field == "data.value"

    def test_bad_direction(self):
        assert rejected({"command": "sort", "data": {"column": 0, "direction": "up"}}).field == "data.direction"

    def test_empty_indices(self):
        assert rejected({"command": "deleteRows", "data": {"indices": []}}).field == "data.indices"

    def test_negative_entry_in_indices(self):
        assert rejected({"command": "deleteColumns", "data": {"indices": [0, -2]}}).field == "data.indices.1"

    def test_blank_csv_content(self):
        assert rejected({"command": "exportCSV", "data": {"csvContent": "   "}}).field == "data.csvContent"

    def test_pong_without_timestamp(self):
        assert rejected({"command": "pong", "responseTime": 3}).field == "timestamp"


# ===========================================================================
# Outbound messages
# ===========================================================================


class TestOutboundMessages:

    def test_error(self):
        assert ErrorMessage(message="boom").to_wire() == {"command": "error", "message": "boom"}

    def test_success_without_data(self):
        assert SuccessMessage(message="ok").to_wire() == {"command": "success", "message": "ok"}

    def test_ack(self):
        assert AckMessage(request_id="r1").to_wire() == {"command": "ack", "requestId": "r1"}

    def test_request_id_echoed(self):
        assert SuccessMessage(message="ok", request_id="r1").to_wire() == {"command": "success", "message": "ok", "requestId": "r1"}

    def test_ping(self):
        assert PingMessage(timestamp=5.0).to_wire() == {"command": "ping", "timestamp": 5.0}

    def test_cell_update_error(self):
        assert CellUpdateErrorMessage(row=1, col=2, error="bad").to_wire() == {"command": "cellUpdateError", "row": 1, "col": 2, "error": "bad"}

    def test_update_table_data(self, sample_model):
        message = UpdateTableDataMessage(data=[sample_model.get_table_data()], file_info=FileInfo(uri="docs/a.md", file_name="a.md", table_count=1))
        wire = message.to_wire()
        assert wire["command"] == "updateTableData"
        assert wire["fileInfo"] == {"uri": "docs/a.md", "fileName": "a.md", "tableCount": 1}
        table = wire["data"][0]
        assert table["headers"] == ["Name", "Age", "City"]
        assert table["metadata"]["startLine"] == 4
        assert table["metadata"]["sourceUri"] == "docs/inventory.md"
        assert isinstance(table["metadata"]["lastModified"], str)
