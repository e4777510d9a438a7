"""Exception hierarchy for the table editor.

Every error raised on purpose by this package derives from TableEditorError.
Validation and position errors also derive from ValueError / IndexError so
callers that only care about the builtin category can catch those.
"""


class TableEditorError(Exception):
    """Base class for all table editor failures."""


class TableParseError(TableEditorError):
    """Input to the parser was not a document (non-string content, corrupted token stream)."""


class TableValidationError(TableEditorError, ValueError):
    """An operation would break a table invariant or received an invalid argument."""


class PositionError(TableEditorError, IndexError):
    """A row, column, or table index is out of range for the current model."""


class PersistenceError(TableEditorError):
    """Reading, writing, or patching the source document failed.

    ``operation`` is one of ``read``, ``write``, ``update`` or ``backup``.
    """

    def __init__(self, message: str, operation: str, uri: str | None = None, original_error: BaseException | None = None):
        super().__init__(message)
        self.operation = operation
        self.uri = uri
        self.original_error = original_error


class ProtocolError(TableEditorError):
    """An inbound message failed structural, command, or payload validation."""

    def __init__(self, message: str, field: str | None = None, command: str | None = None):
        super().__init__(message)
        self.field = field
        self.command = command
