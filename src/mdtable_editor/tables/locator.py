"""Locate pipe tables in a markdown document.

markdown-it tokenizes the document at block level with its GFM table rule
turned off, which keeps the parse cost per line instead of per cell.  Its
block map says which lines are plain paragraph text, so pipe-looking text in
fenced code, indented code or HTML blocks is never reported.  Inside those
paragraph ranges a table is a header row followed by a matching delimiter
row, and its cells are split straight from the source lines.  Each table is
returned as a TableDescriptor holding its inclusive 0-based line range and
the raw (storage form) cell text.

Only top-level tables are reported.  A table inside a blockquote or list
item carries a line prefix that a whole-line patch would destroy, so it is
left alone.  The position of a table in the returned list is its ordinal
index, the key used to find it again after the document changes.
"""

import logging

from markdown_it import MarkdownIt
from markdown_it.token import Token

from mdtable_editor.tables.errors import PositionError, TableParseError
from mdtable_editor.tables.patterns import BLOCK_START_RE, CELL_SPLIT_RE, CODE_INDENT, DELIMITER_CELL_RE, DELIMITER_ROW_RE
from mdtable_editor.tables.schema import TableBoundary, TableDescriptor, ValidationResult

logger = logging.getLogger(__name__)

# Block-level parse only.  Both the table rule and the core "inline" rule
# would create tokens for every cell.
_md_parser = MarkdownIt("commonmark").disable(["table", "inline"])

# Block tokens whose lines may hold a table (a setext heading is a paragraph
# plus its underline)
_TEXT_BLOCKS = ("paragraph_open", "heading_open")


# ─── Parsing ──────────────────────────────────────────────────────────────────


def parse_document(content: str) -> list[Token]:
    """Tokenize a markdown document at block level."""
    if not isinstance(content, str):
        raise TableParseError(f"Document content must be a string, got {type(content).__name__}")
    return _md_parser.parse(content)


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


def _split_cells(text: str) -> list[str]:
    """Split one table line into trimmed cells; ``\\|`` stays in the cell as ``|``."""
    cells = CELL_SPLIT_RE.split(text.strip())
    if cells and cells[0] == "":
        cells.pop(0)
    if cells and cells[-1] == "":
        cells.pop()
    return [cell.replace("\\|", "|").strip() for cell in cells]


def _delimiter_alignment(line: str) -> list[str] | None:
    """Return the column alignments of a delimiter row, or None if ``line`` is not one."""
    if _indent(line) >= CODE_INDENT:
        return None
    text = line.lstrip(" \t")
    if len(text) < 2 or not DELIMITER_ROW_RE.match(text):
        return None
    # A dash followed by a space opens a list item
    if text[0] == "-" and text[1] in " \t":
        return None

    alignment: list[str] = []
    parts = text.split("|")
    for i, part in enumerate(parts):
        part = part.strip()
        if not part:
            if i in (0, len(parts) - 1):
                continue
            return None
        if not DELIMITER_CELL_RE.match(part):
            return None
        if part.endswith(":"):
            alignment.append("center" if part.startswith(":") else "right")
        else:
            alignment.append("left")
    return alignment


def _header_cells(line: str, n_cols: int) -> list[str] | None:
    """Return the header cells of ``line`` if it can head a table of ``n_cols`` columns."""
    if "|" not in line or _indent(line) >= CODE_INDENT:
        return None
    cells = _split_cells(line)
    if not cells or len(cells) != n_cols:
        return None
    return cells


def _ends_body(line: str) -> bool:
    return not line.strip() or _indent(line) >= CODE_INDENT or BLOCK_START_RE.match(line) is not None


def _scan_block(lines: list[str], start: int, end: int) -> list[TableDescriptor]:
    """Find the tables within lines ``start`` to ``end`` (exclusive) of one text block."""
    tables: list[TableDescriptor] = []
    i = start
    while i + 1 < end:
        alignment = _delimiter_alignment(lines[i + 1])
        headers = _header_cells(lines[i], len(alignment)) if alignment else None
        if headers is None:
            i += 1
            continue

        n_cols = len(headers)
        rows: list[list[str]] = []
        last = i + 1
        while last + 1 < end and not _ends_body(lines[last + 1]):
            cells = _split_cells(lines[last + 1])[:n_cols]
            rows.append(cells + [""] * (n_cols - len(cells)))
            last += 1

        tables.append(TableDescriptor(start_line=i, end_line=last, headers=headers, rows=rows, alignment=alignment))
        if last + 1 < end:
            # The rest of the block opens another construct
            break
        i = last + 1
    return tables


def find_tables_in_tokens(tokens: list[Token], lines: list[str]) -> list[TableDescriptor]:
    """Collect descriptors for every top-level table, given the block tokens of ``lines``.

    Raises TableParseError when the token stream does not describe ``lines``.
    """
    tables: list[TableDescriptor] = []
    for position, token in enumerate(tokens):
        if token.type not in _TEXT_BLOCKS:
            continue
        if not token.map:
            raise TableParseError(f"Block token at position {position} has no line map")
        start, end = token.map
        if not 0 <= start < end <= len(lines):
            raise TableParseError(f"Block token at position {position} maps lines {start}-{end - 1} outside the document ({len(lines)} lines)")

        if token.level != 0:
            logger.debug("Skipping nested block on lines %d-%d", start, end - 1)
            continue
        tables.extend(_scan_block(lines, start, end))
    return tables


def find_tables(content: str) -> list[TableDescriptor]:
    """Return every top-level table in document order."""
    tokens = parse_document(content)
    tables = find_tables_in_tokens(tokens, [line.rstrip("\r") for line in content.split("\n")])
    logger.debug("Found %d tables", len(tables))
    return tables


def find_table_at_line(content: str, line: int) -> TableDescriptor | None:
    """Return the table whose line range contains ``line``, if any."""
    for table in find_tables(content):
        if table.start_line <= line <= table.end_line:
            return table
    return None


def find_table_index_at_line(content: str, line: int) -> int | None:
    """Return the ordinal of the table containing ``line``, if any."""
    for index, table in enumerate(find_tables(content)):
        if table.start_line <= line <= table.end_line:
            return index
    return None


def get_table_boundary(content: str, table: TableDescriptor | int) -> TableBoundary:
    """Return the line range and exact source text of a table.

    ``table`` is either a descriptor from this document or an ordinal index.
    """
    if isinstance(table, int):
        tables = find_tables(content)
        if not 0 <= table < len(tables):
            raise PositionError(f"Table index {table} is out of range (found {len(tables)} tables)")
        table = tables[table]

    lines = content.split("\n")
    if table.end_line >= len(lines) or table.start_line > table.end_line:
        raise PositionError(f"Table lines {table.start_line}-{table.end_line} are outside the document ({len(lines)} lines)")
    raw = "\n".join(line.rstrip("\r") for line in lines[table.start_line : table.end_line + 1])
    return TableBoundary(start_line=table.start_line, end_line=table.end_line, raw=raw)


# ─── Validation ───────────────────────────────────────────────────────────────


def validate_table_descriptor(table: TableDescriptor) -> ValidationResult:
    """Report shape problems of a parsed table without fixing them."""
    return validate_table_shape(table.headers, table.rows, table.alignment)


def validate_table_shape(headers: list[str], rows: list[list[str]], alignment: list[str]) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    n_cols = len(headers)

    if n_cols == 0:
        issues.append("Table has no headers")

    for i, row in enumerate(rows):
        if len(row) != n_cols:
            issues.append(f"Row {i + 1} has {len(row)} columns, expected {n_cols}")

    if len(alignment) != n_cols:
        issues.append(f"Alignment array length ({len(alignment)}) doesn't match column count ({n_cols})")

    for i, header in enumerate(headers):
        if not header.strip():
            warnings.append(f"Header {i + 1} is empty")

    return ValidationResult(is_valid=not issues, issues=issues, warnings=warnings)
