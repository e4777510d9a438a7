"""CSV export and import helpers.

Export decodes ``<br>`` markers into real newlines (csv quoting keeps them
inside the cell).  Import goes the other way via the table model, which
encodes newlines when cells are written.
"""

import csv
import io
from collections.abc import Sequence

from mdtable_editor.tables.formatting import decode_line_breaks


def table_to_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    """Render headers and rows as RFC 4180 CSV text (CRLF line endings)."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow([decode_line_breaks(h) for h in headers])
    for row in rows:
        writer.writerow([decode_line_breaks(cell) for cell in row])
    return buffer.getvalue()


def parse_csv(text: str) -> list[list[str]]:
    """Parse CSV text into rows, dropping trailing blank rows."""
    text = text.lstrip("\ufeff")
    rows = list(csv.reader(io.StringIO(text, newline="")))
    while rows and all(not cell.strip() for cell in rows[-1]):
        rows.pop()
    return rows


def to_rectangular(rows: list[list[str]]) -> tuple[list[str], list[list[str]]]:
    """Split parsed CSV rows into headers and equal-width data rows.

    The first row supplies the headers; blank headers become ``Column N``.
    Short rows are padded with empty cells up to the widest row.
    """
    if not rows:
        return [], []
    width = max(len(row) for row in rows)
    padded = [row + [""] * (width - len(row)) for row in rows]
    headers = [h.strip() or f"Column {i + 1}" for i, h in enumerate(padded[0])]
    return headers, padded[1:]
