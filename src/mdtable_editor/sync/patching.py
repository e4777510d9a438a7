"""Pure text patching by inclusive 0-based line ranges.

Lines are split on LF so numbering matches the locator.  In a CRLF
document the replacement lines get their carriage returns back, keeping
the file's newline style.
"""

import logging
from collections.abc import Sequence

from mdtable_editor.tables.errors import PersistenceError
from mdtable_editor.tables.schema import LinePatch

logger = logging.getLogger(__name__)


def _check_range(start: int, end: int, line_count: int, uri: str | None) -> None:
    if start < 0 or end >= line_count or start > end:
        raise PersistenceError(
            f"Invalid line range: {start}-{end} (file has {line_count} lines, valid range: 0-{line_count - 1})",
            operation="update",
            uri=uri,
        )


def _replacement_lines(new_text: str, crlf: bool, keep_final_cr: bool) -> list[str]:
    lines = new_text.replace("\r\n", "\n").split("\n")
    if crlf:
        lines = [line + "\r" for line in lines[:-1]] + [lines[-1] + ("\r" if keep_final_cr else "")]
    return lines


def replace_line_range(content: str, start: int, end: int, new_text: str, uri: str | None = None) -> str:
    """Replace lines ``start..end`` (inclusive) with ``new_text``."""
    return apply_line_patches(content, [LinePatch(start_line=start, end_line=end, new_content=new_text)], uri=uri)


def apply_line_patches(content: str, patches: Sequence[LinePatch], uri: str | None = None) -> str:
    """Apply several line-range patches computed against the same original text.

    Every range is checked against the original line array, and overlapping
    ranges are rejected, before anything is applied.  Patches are applied
    from the bottom of the document up so earlier ranges stay valid.
    """
    lines = content.split("\n")
    crlf = "\r\n" in content
    ordered = sorted(patches, key=lambda p: p.start_line, reverse=True)
    for patch in ordered:
        _check_range(patch.start_line, patch.end_line, len(lines), uri)
    for upper, lower in zip(ordered, ordered[1:]):
        if lower.end_line >= upper.start_line:
            raise PersistenceError(
                f"Overlapping line ranges: {lower.start_line}-{lower.end_line} and {upper.start_line}-{upper.end_line}",
                operation="update",
                uri=uri,
            )

    for patch in ordered:
        replacement = _replacement_lines(patch.new_content, crlf, lines[patch.end_line].endswith("\r"))
        lines[patch.start_line : patch.end_line + 1] = replacement
        logger.debug("Patched lines %d-%d with %d lines", patch.start_line, patch.end_line, len(replacement))
    return "\n".join(lines)
