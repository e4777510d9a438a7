"""Unit tests for markdown rendering, the line-break codec and CSV helpers."""

# pylint: disable=missing-class-docstring,missing-function-docstring

import pytest

from mdtable_editor.tables.csv_io import parse_csv, table_to_csv, to_rectangular
from mdtable_editor.tables.errors import TableValidationError
from mdtable_editor.tables.formatting import decode_line_breaks, encode_line_breaks, escape_cell, normalize_cell, render_separator, render_table_markdown
from mdtable_editor.tables.locator import find_tables


def reparse(markdown: str):
    tables = find_tables(markdown)
    assert len(tables) == 1
    return tables[0]


# ===========================================================================
# render_table_markdown
# ===========================================================================


class TestRenderTableMarkdown:

    def test_basic_table(self):
        result = render_table_markdown(["Name", "Age"], [["John", "25"]], ["left", "right"])
        assert result == "| Name | Age |\n| :--- | ---: |\n| John | 25 |"

    def test_no_trailing_newline(self):
        assert not render_table_markdown(["a"], [["1"]], ["left"]).endswith("\n")

    def test_separator_tokens(self):
        assert render_separator(["left", "center", "right"]) == "| :--- | :---: | ---: |"

    def test_unknown_alignment_renders_plain(self):
        assert render_separator(["", "bogus"]) == "| --- | --- |"

    def test_missing_alignment_entries_render_plain(self):
        result = render_table_markdown(["a", "b"], [], ["center"])
        assert result.split("\n")[1] == "| :---: | --- |"

    def test_header_only(self):
        assert render_table_markdown(["a"], [], ["left"]) == "| a |\n| :--- |"

    def test_empty_cells(self):
        table = reparse(render_table_markdown(["a", "b"], [["", "x"]], ["left", "left"]))
        assert table.rows == [["", "x"]]

    def test_empty_header_survives(self):
        table = reparse(render_table_markdown(["", "b"], [["1", "2"]], ["left", "left"]))
        assert table.headers == ["", "b"]

    def test_no_columns_rejected(self):
        with pytest.raises(TableValidationError):
            render_table_markdown([], [], [])

    def test_ragged_rows_rejected(self):
        with pytest.raises(TableValidationError, match="Row 1 has 1 columns, expected 2"):
            render_table_markdown(["a", "b"], [["1"]], ["left", "left"])


# ===========================================================================
# Escaping and the line-break codec
# ===========================================================================


class TestEscaping:

    def test_pipe_escaped(self):
        assert escape_cell("a|b") == "a\\|b"

    def test_newline_becomes_marker(self):
        assert escape_cell("one\ntwo") == "one<br>two"

    def test_pipe_round_trip(self):
        table = reparse(render_table_markdown(["a|b"], [["x | y"]], ["left"]))
        assert table.headers == ["a|b"]
        assert table.rows == [["x | y"]]

    def test_backslash_before_pipe_round_trip(self):
        table = reparse(render_table_markdown(["h"], [["path\\|x"]], ["left"]))
        assert table.rows == [["path\\|x"]]

    def test_newline_round_trip_in_storage_form(self):
        table = reparse(render_table_markdown(["h"], [["one\ntwo"]], ["left"]))
        assert table.rows == [["one<br>two"]]

    def test_normalize_trims_edges_after_encoding(self):
        assert normalize_cell("  a  b \n") == "a  b <br>"
        assert normalize_cell(" \t ") == ""


class TestLineBreakCodec:

    def test_encode_variants(self):
        assert encode_line_breaks("a\nb\r\nc\rd") == "a<br>b<br>c<br>d"

    def test_decode_variants(self):
        assert decode_line_breaks("a<br>b<br/>c<br />d<BR>e") == "a\nb\nc\nd\ne"

    def test_plain_text_untouched(self):
        assert decode_line_breaks("no breaks") == "no breaks"
        assert encode_line_breaks("no breaks") == "no breaks"


# ===========================================================================
# Round trip through the locator
# ===========================================================================


class TestRoundTrip:

    def test_parse_render_parse(self, sample_document):
        original = find_tables(sample_document)[0]
        again = reparse(render_table_markdown(original.headers, original.rows, original.alignment))
        assert again.headers == original.headers
        assert again.rows == original.rows
        assert again.alignment == original.alignment

    def test_render_inside_document_keeps_prose(self, sample_document):
        lines = sample_document.split("\n")
        table = find_tables(sample_document)[0]
        rendered = render_table_markdown(table.headers, table.rows, table.alignment)
        patched = "\n".join(lines[: table.start_line] + rendered.split("\n") + lines[table.end_line + 1 :])
        assert patched.startswith("# Inventory\n\nIntro paragraph.\n\n")
        assert patched.endswith("\n\nClosing text.\n")
        assert find_tables(patched)[0].rows == table.rows


# ===========================================================================
# CSV helpers
# ===========================================================================


class TestTableToCsv:

    def test_basic(self):
        assert table_to_csv(["a", "b"], [["1", "2"]]) == "a,b\r\n1,2\r\n"

    def test_line_breaks_decoded_and_quoted(self):
        assert table_to_csv(["h"], [["x<br>y"]]) == 'h\r\n"x\ny"\r\n'

    def test_commas_quoted(self):
        assert table_to_csv(["h"], [["a, b"]]) == 'h\r\n"a, b"\r\n'


class TestParseCsv:

    def test_basic(self):
        assert parse_csv("a,b\n1,2\n") == [["a", "b"], ["1", "2"]]

    def test_bom_and_crlf(self):
        assert parse_csv("\ufeffa,b\r\n1,2\r\n") == [["a", "b"], ["1", "2"]]

    def test_quoted_newline(self):
        assert parse_csv('h\n"x\ny"\n') == [["h"], ["x\ny"]]

    def test_trailing_blank_rows_dropped(self):
        assert parse_csv("a\n1\n\n\n") == [["a"], ["1"]]


class TestToRectangular:

    def test_pads_short_rows(self):
        headers, rows = to_rectangular([["a", "b", "c"], ["1"], ["1", "2"]])
        assert headers == ["a", "b", "c"]
        assert rows == [["1", "", ""], ["1", "2", ""]]

    def test_widest_row_adds_columns(self):
        headers, rows = to_rectangular([["a"], ["1", "2"]])
        assert headers == ["a", "Column 2"]
        assert rows == [["1", "2"]]

    def test_blank_headers_named(self):
        headers, _ = to_rectangular([["", " x "]])
        assert headers == ["Column 1", "x"]

    def test_empty(self):
        assert to_rectangular([]) == ([], [])
