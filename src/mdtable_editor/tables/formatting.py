"""Render tables back to markdown pipe syntax.

The output is a canonical form: single-space cell padding, one separator
token per alignment, no trailing newline.  Cosmetic formatting of the
original table (column padding, outer pipes) is not preserved; surrounding
document text is never touched here.
"""

import logging
from collections.abc import Sequence

from mdtable_editor.tables.errors import TableValidationError
from mdtable_editor.tables.patterns import LINE_BREAK_MARKER, LINE_BREAK_RE, NEWLINE_RE, PLAIN_SEPARATOR, SEPARATOR_BY_ALIGNMENT

logger = logging.getLogger(__name__)


# ─── Line Break Codec ─────────────────────────────────────────────────────────


def encode_line_breaks(text: str) -> str:
    """Replace real newlines with the ``<br>`` storage marker."""
    return NEWLINE_RE.sub(LINE_BREAK_MARKER, text)


def decode_line_breaks(text: str) -> str:
    """Turn every ``<br>`` spelling back into a real newline."""
    return LINE_BREAK_RE.sub("\n", text)


def normalize_cell(text: str) -> str:
    """Storage form of a value written into a cell.

    Edge whitespace cannot survive between pipes, so it is dropped here
    rather than on the next parse.
    """
    return encode_line_breaks(text).strip()


def escape_cell(text: str) -> str:
    """Make a cell value safe to place between pipes on a single line."""
    return encode_line_breaks(text).replace("|", "\\|")


# ─── Rendering ────────────────────────────────────────────────────────────────


def _render_row(cells: Sequence[str]) -> str:
    return "| " + " | ".join(escape_cell(cell) for cell in cells) + " |"


def render_separator(alignment: Sequence[str]) -> str:
    """Build the ``| :--- | :---: | ---: |`` row for the given alignments."""
    return "| " + " | ".join(SEPARATOR_BY_ALIGNMENT.get(align, PLAIN_SEPARATOR) for align in alignment) + " |"


def render_table_markdown(headers: Sequence[str], rows: Sequence[Sequence[str]], alignment: Sequence[str]) -> str:
    """Convert headers, rows and alignment into a markdown pipe table.

    Raises TableValidationError when the shape cannot be expressed as a pipe
    table (no columns, ragged rows).  Missing alignment entries render as a
    plain ``---`` separator.
    """
    if not headers:
        raise TableValidationError("Cannot serialize a table with no columns")
    n_cols = len(headers)
    for i, row in enumerate(rows):
        if len(row) != n_cols:
            raise TableValidationError(f"Row {i + 1} has {len(row)} columns, expected {n_cols}")

    padded_alignment = list(alignment[:n_cols]) + [""] * (n_cols - len(alignment))
    lines = [_render_row(headers), render_separator(padded_alignment)]
    lines.extend(_render_row(row) for row in rows)
    logger.debug("Rendered table with %d columns and %d rows", n_cols, len(rows))
    return "\n".join(lines)
