"""Compiled regex patterns and constants for table cells and sorting.

Used by locator.py (pipe table rows), formatting.py (line-break markers,
pipe escaping) and by the sorting engine (number/date inference, natural ordering).
"""

import re

# ─── Line Break Markers ───────────────────────────────────────────────────────

# Storage form of an in-cell line break
LINE_BREAK_MARKER = "<br>"

# Any spelling of the marker: <br>, <br/>, <br />, <BR>
LINE_BREAK_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)

# Real newlines (CRLF first so it is consumed as one break)
NEWLINE_RE = re.compile(r"\r\n|\r|\n")


# ─── Pipe Table Rows ──────────────────────────────────────────────────────────

# Delimiter row: only pipes, dashes, colons and spaces, starting with one of |-:
DELIMITER_ROW_RE = re.compile(r"^[-:|][-:|\s]*$")

# One delimiter cell, e.g. ":---:"
DELIMITER_CELL_RE = re.compile(r"^:?-+:?$")

# Cell boundary: a pipe not preceded by a backslash
CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")

# Lines that end a table body: thematic break, ATX heading, fence, blockquote,
# list item or the start of an HTML block
BLOCK_START_RE = re.compile(
    r"^ {0,3}(?:"
    r"(?:(?:-[ \t]*){3,}|(?:\*[ \t]*){3,}|(?:_[ \t]*){3,})$"
    r"|#{1,6}(?:[ \t]|$)"
    r"|```|~~~"
    r"|>"
    r"|(?:[-+*]|\d{1,9}[.)])(?:[ \t]|$)"
    r"|<(?:script|pre|style|textarea|!--|\?|![A-Za-z]|!\[CDATA\[)"
    r"|</?(?:address|article|aside|blockquote|body|details|dialog|div|dl|fieldset|figure|footer|form|h[1-6]"
    r"|header|hr|li|main|nav|ol|p|section|table|tbody|td|th|thead|tr|ul)(?:[\s/>]|$)"
    r")",
    re.IGNORECASE,
)

# Indentation at which a line becomes indented code
CODE_INDENT = 4


# ─── Separator Row ────────────────────────────────────────────────────────────

SEPARATOR_BY_ALIGNMENT = {
    "left": ":---",
    "center": ":---:",
    "right": "---:",
}

PLAIN_SEPARATOR = "---"


# ─── Value Inference ──────────────────────────────────────────────────────────

# Plain or thousands-grouped number, optional fraction and exponent
NUMBER_RE = re.compile(r"^[-+]?(?:\d{1,3}(?:,\d{3})+|\d+)?(?:\.\d+)?(?:[eE][-+]?\d+)?$")

# Digit runs for natural ordering ("Item10" -> "Item", "10")
DIGIT_RUN_RE = re.compile(r"(\d+)")

# strptime formats tried after ISO-8601
DATE_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d.%m.%Y",
    "%Y/%m/%d %H:%M",
    "%m/%d/%Y %H:%M",
    "%b %d, %Y",
    "%B %d, %Y",
    "%d %b %Y",
    "%d %B %Y",
)

# Non-empty values sampled when inferring a column's data type
TYPE_SAMPLE_SIZE = 100
