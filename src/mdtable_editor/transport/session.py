"""Per-document editing sessions.

A DocumentSession owns everything one open document needs: the table models
keyed by ordinal index, the attached surfaces, the health monitor and the
host collaborators.  Inbound messages are validated, then handled one at a
time under an asyncio.Lock (FIFO), so mutations apply in the order they
arrived.  A mutation runs as mutate -> serialize -> patch document ->
broadcast snapshots:

  * a PositionError (model out of step with the document) re-reads and
    re-parses the document, replaces the model for that ordinal and retries
    the mutation once;
  * a PersistenceError rolls the in-memory change back and reports an error.

No failure ends the session; errors are sent to the surface that asked.
When a request carries a ``requestId`` it is acknowledged on arrival, and
every message sent to that surface while the request is handled echoes the
id (including its copy of the ``updateTableData`` broadcast).
"""

import asyncio
import logging
from collections.abc import Callable
from contextvars import ContextVar
from pathlib import PurePosixPath

from pydantic import BaseModel

from mdtable_editor import config
from mdtable_editor.editing.model import TableModel
from mdtable_editor.sync.document_store import DocumentStore
from mdtable_editor.sync.synchronizer import TableSynchronizer
from mdtable_editor.tables.csv_io import parse_csv, table_to_csv, to_rectangular
from mdtable_editor.tables.errors import PersistenceError, PositionError, ProtocolError, TableValidationError
from mdtable_editor.tables.schema import TableData
from mdtable_editor.transport.channel import ConnectionHealthMonitor, MessageChannel, send_with_retry
from mdtable_editor.transport.collaborators import CodecTranscoder, FileDialogs, Transcoder, UndoHistory
from mdtable_editor.transport.messages import (
    INBOUND_MESSAGE_TYPES,
    AckMessage,
    AddColumnMessage,
    AddRowMessage,
    BulkUpdateCellsMessage,
    CellUpdateErrorMessage,
    DeleteColumnMessage,
    DeleteColumnsMessage,
    DeleteRowMessage,
    DeleteRowsMessage,
    ErrorMessage,
    ExportCSVMessage,
    FileInfo,
    HeaderUpdateErrorMessage,
    ImportCSVMessage,
    MoveColumnMessage,
    MoveRowMessage,
    OutboundMessage,
    PongMessage,
    RequestTableDataMessage,
    SortMessage,
    StatusMessage,
    SuccessMessage,
    SwitchTableMessage,
    UpdateCellMessage,
    UpdateHeaderMessage,
    UpdateTableDataMessage,
    ValidationErrorMessage,
    raw_request_id,
    validate_message,
)

logger = logging.getLogger(__name__)

# Message class -> handler method name.  Every inbound message type must be listed.
_HANDLERS: dict[type[BaseModel], str] = {
    RequestTableDataMessage: "_on_request_table_data",
    UpdateCellMessage: "_on_update_cell",
    BulkUpdateCellsMessage: "_on_bulk_update_cells",
    UpdateHeaderMessage: "_on_update_header",
    AddRowMessage: "_on_add_row",
    DeleteRowMessage: "_on_delete_row",
    DeleteRowsMessage: "_on_delete_rows",
    AddColumnMessage: "_on_add_column",
    DeleteColumnMessage: "_on_delete_column",
    DeleteColumnsMessage: "_on_delete_columns",
    SortMessage: "_on_sort",
    MoveRowMessage: "_on_move_row",
    MoveColumnMessage: "_on_move_column",
    ExportCSVMessage: "_on_export_csv",
    ImportCSVMessage: "_on_import_csv",
    SwitchTableMessage: "_on_switch_table",
    PongMessage: "_on_pong",
}

_unhandled = set(INBOUND_MESSAGE_TYPES) - set(_HANDLERS)
if _unhandled:
    raise RuntimeError(f"No session handler for: {', '.join(sorted(cls.__name__ for cls in _unhandled))}")

ErrorFactory = Callable[[Exception], OutboundMessage]

# (surface, request id) of the request being handled in the current task
_replying_to: ContextVar[tuple[str, str] | None] = ContextVar("replying_to", default=None)


class DocumentSession:
    """Editing state and message handling for one source document."""

    def __init__(
        self,
        uri: str,
        store: DocumentStore,
        history: UndoHistory | None = None,
        file_dialogs: FileDialogs | None = None,
        transcoder: Transcoder | None = None,
        monitor: ConnectionHealthMonitor | None = None,
        max_retries: int = config.MAX_SEND_RETRIES,
    ):
        self.uri = uri
        self.synchronizer = TableSynchronizer(store)
        self.history = history
        self.file_dialogs = file_dialogs
        self.transcoder = transcoder or CodecTranscoder()
        self.monitor = monitor or ConnectionHealthMonitor(max_retries=max_retries)
        self.max_retries = max_retries
        self.active_table_index = 0
        self._models: dict[int, TableModel] = {}
        self._surfaces: dict[str, MessageChannel] = {}
        self._lock = asyncio.Lock()

    # ─── Models ───────────────────────────────────────────────────────────────

    async def load(self) -> list[TableModel]:
        """(Re)build every table model from the current document text."""
        descriptors = await self.synchronizer.load_tables(self.uri)
        self._models = {i: TableModel(d, source_uri=self.uri, table_index=i) for i, d in enumerate(descriptors)}
        if self.active_table_index >= len(self._models):
            self.active_table_index = 0
        logger.info("Loaded %d tables from %s", len(self._models), self.uri)
        return self.models

    @property
    def models(self) -> list[TableModel]:
        return [self._models[i] for i in sorted(self._models)]

    def get_model(self, table_index: int) -> TableModel:
        """Current model for an ordinal; re-fetch after every await rather than caching it."""
        model = self._models.get(table_index)
        if model is None:
            raise PositionError(f"Table index {table_index} is out of range (found {len(self._models)} tables)")
        return model

    def snapshots(self) -> list[TableData]:
        return [model.get_table_data() for model in self.models]

    def file_info(self) -> FileInfo:
        return FileInfo(uri=self.uri, file_name=PurePosixPath(self.uri).name, table_count=len(self._models))

    def export_csv(self, table_index: int) -> str:
        model = self.get_model(table_index)
        return table_to_csv(model.headers, model.rows)

    async def _reload_model(self, table_index: int) -> TableModel:
        """Re-read the document and rebuild only the model at ``table_index``."""
        descriptors = await self.synchronizer.load_tables(self.uri)
        if not 0 <= table_index < len(descriptors):
            raise PositionError(f"Table index {table_index} is out of range (found {len(descriptors)} tables)")
        model = TableModel(descriptors[table_index], source_uri=self.uri, table_index=table_index)
        self._models[table_index] = model
        logger.info("Rebuilt table %d of %s from disk", table_index, self.uri)
        return model

    # ─── Surfaces ─────────────────────────────────────────────────────────────

    async def attach(self, instance_id: str, channel: MessageChannel) -> None:
        self._surfaces[instance_id] = channel
        self.monitor.register(instance_id, channel)
        self.monitor.start()
        logger.info("Surface %s attached to %s (%d attached)", instance_id, self.uri, len(self._surfaces))

    async def detach(self, instance_id: str) -> None:
        self._surfaces.pop(instance_id, None)
        self.monitor.unregister(instance_id)
        logger.info("Surface %s detached from %s", instance_id, self.uri)
        if not self._surfaces:
            await self.monitor.stop()

    @property
    def surface_count(self) -> int:
        return len(self._surfaces)

    async def close(self) -> None:
        """Stop timers and forget all surfaces."""
        await self.monitor.stop()
        for instance_id in list(self._surfaces):
            self.monitor.unregister(instance_id)
        self._surfaces.clear()

    async def send(self, instance_id: str, message: OutboundMessage) -> None:
        """Send to one surface; a send that still fails after retries marks it unhealthy."""
        channel = self._surfaces.get(instance_id)
        if channel is None:
            logger.debug("Dropping %s for detached surface %s", message.command, instance_id)
            return
        replying_to = _replying_to.get()
        if replying_to is not None and replying_to[0] == instance_id and message.request_id is None:
            message = message.model_copy(update={"request_id": replying_to[1]})
        try:
            await send_with_retry(channel, message, self.max_retries)
        except Exception:  # pylint: disable=broad-exception-caught
            logger.exception("Could not deliver %s to %s", message.command, instance_id)
            self.monitor.mark_unhealthy(instance_id)

    async def broadcast(self, message: OutboundMessage) -> None:
        for instance_id in list(self._surfaces):
            await self.send(instance_id, message)

    async def send_table_data(self, instance_id: str) -> None:
        await self.send(instance_id, UpdateTableDataMessage(data=self.snapshots(), file_info=self.file_info()))

    async def broadcast_table_data(self) -> None:
        await self.broadcast(UpdateTableDataMessage(data=self.snapshots(), file_info=self.file_info()))

    # ─── Inbound dispatch ─────────────────────────────────────────────────────

    async def handle_message(self, instance_id: str, raw) -> None:
        """Validate and handle one decoded inbound message from ``instance_id``."""
        try:
            message = validate_message(raw)
        except ProtocolError as exc:
            logger.warning("Invalid message from %s: %s", instance_id, exc)
            request_id = raw_request_id(raw)
            if exc.field in (None, "command", "message"):
                await self.send(instance_id, ErrorMessage(message=str(exc), request_id=request_id))
            else:
                await self.send(instance_id, ValidationErrorMessage(field=exc.field, message=str(exc), request_id=request_id))
            return

        self.monitor.mark_healthy(instance_id)
        handler = getattr(self, _HANDLERS[type(message)])
        token = None
        if message.request_id is not None:
            token = _replying_to.set((instance_id, message.request_id))
            await self.send(instance_id, AckMessage(request_id=message.request_id))
        try:
            async with self._lock:
                try:
                    await handler(instance_id, message)
                except Exception:  # pylint: disable=broad-exception-caught
                    logger.exception("Unexpected error handling %s from %s", message.command, instance_id)
                    await self.send(instance_id, ErrorMessage(message=f"Failed to handle {message.command}"))
        finally:
            if token is not None:
                _replying_to.reset(token)

    def _table_index(self, requested: int | None) -> int:
        return self.active_table_index if requested is None else requested

    async def _mutate(
        self,
        instance_id: str,
        table_index: int,
        description: str,
        mutate: Callable[[TableModel], object],
        success_message: str | None = None,
        error_factory: ErrorFactory | None = None,
    ) -> TableModel | None:
        """Apply ``mutate`` to a table, write it to the document and broadcast the result.

        Returns the model on success, None when the change was rejected or
        could not be persisted (the surface has been told why).
        """
        if self.history is not None:
            try:
                await self.history.save_state(self.uri, description)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.exception("Failed to record undo state for %r", description)

        try:
            model, before = await self._apply_with_recovery(table_index, mutate)
        except (PositionError, TableValidationError, PersistenceError) as exc:
            logger.warning("%s failed on table %d of %s: %s", description, table_index, self.uri, exc)
            await self._report_failure(instance_id, description, exc, error_factory)
            return None

        markdown = model.serialize_to_markdown()
        try:
            boundary = await self.synchronizer.update_table_by_index(self.uri, table_index, markdown)
        except PersistenceError as exc:
            logger.error("Could not save %s to %s: %s", description, self.uri, exc)
            if self.get_model(table_index) is model:
                model.restore(before)
            await self._report_failure(instance_id, description, exc, error_factory)
            return None

        self._shift_locations(table_index, boundary.start_line, boundary.end_line, markdown.count("\n") + 1)
        await self.broadcast_table_data()
        if success_message:
            await self.send(instance_id, SuccessMessage(message=success_message))
        return model

    async def _apply_with_recovery(self, table_index: int, mutate: Callable[[TableModel], object]) -> tuple[TableModel, TableData]:
        model = self._models.get(table_index) or await self._reload_model(table_index)
        before = model.get_table_data()
        try:
            mutate(model)
        except PositionError as exc:
            logger.info("Position error on table %d of %s (%s); re-reading the document and retrying once", table_index, self.uri, exc)
            model = await self._reload_model(table_index)
            before = model.get_table_data()
            mutate(model)
        return model, before

    def _shift_locations(self, table_index: int, old_start: int, old_end: int, new_line_count: int) -> None:
        """Update recorded line ranges after table ``table_index`` was rewritten."""
        delta = new_line_count - (old_end - old_start + 1)
        self._models[table_index].set_location(old_start, old_start + new_line_count - 1)
        if not delta:
            return
        for index, model in self._models.items():
            if index > table_index:
                meta = model.metadata
                model.set_location(meta.start_line + delta, meta.end_line + delta)

    async def _report_failure(self, instance_id: str, description: str, exc: Exception, error_factory: ErrorFactory | None) -> None:
        await self.send(instance_id, ErrorMessage(message=f"Failed to {description}: {exc}"))
        if error_factory is not None:
            await self.send(instance_id, error_factory(exc))

    # ─── Handlers ─────────────────────────────────────────────────────────────

    async def _on_request_table_data(self, instance_id: str, message: RequestTableDataMessage) -> None:
        try:
            await self.load()
        except PersistenceError as exc:
            await self.send(instance_id, ErrorMessage(message=f"Failed to read {self.uri}: {exc}"))
            return
        if not self._models:
            await self.send(instance_id, ErrorMessage(message="No tables found in the file"))
            return
        await self.send_table_data(instance_id)
        if message.data.force_refresh:
            await self.send(instance_id, StatusMessage(status="refreshed", data={"tableCount": len(self._models)}))

    async def _on_update_cell(self, instance_id: str, message: UpdateCellMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"update cell ({d.row}, {d.col})",
            lambda model: model.update_cell(d.row, d.col, d.value),
            error_factory=lambda exc: CellUpdateErrorMessage(row=d.row, col=d.col, error=str(exc)),
        )

    async def _on_bulk_update_cells(self, instance_id: str, message: BulkUpdateCellsMessage) -> None:
        d = message.data
        updates = [(u.row, u.col, u.value) for u in d.updates]
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"update {len(updates)} cells",
            lambda model: model.batch_update_cells(updates),
            success_message=f"Updated {len(updates)} cells",
        )

    async def _on_update_header(self, instance_id: str, message: UpdateHeaderMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"update header {d.col}",
            lambda model: model.update_header(d.col, d.value),
            error_factory=lambda exc: HeaderUpdateErrorMessage(col=d.col, error=str(exc)),
        )

    async def _on_add_row(self, instance_id: str, message: AddRowMessage) -> None:
        d = message.data
        await self._mutate(instance_id, self._table_index(d.table_index), "add row", lambda model: model.add_row(d.index), success_message="Row added")

    async def _on_delete_row(self, instance_id: str, message: DeleteRowMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id, self._table_index(d.table_index), f"delete row {d.index}", lambda model: model.delete_row(d.index), success_message="Row deleted"
        )

    async def _on_delete_rows(self, instance_id: str, message: DeleteRowsMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"delete {len(d.indices)} rows",
            lambda model: model.delete_rows(d.indices),
            success_message=f"Deleted {len(set(d.indices))} rows",
        )

    async def _on_add_column(self, instance_id: str, message: AddColumnMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            "add column",
            lambda model: model.add_column(d.index, d.header),
            success_message="Column added",
        )

    async def _on_delete_column(self, instance_id: str, message: DeleteColumnMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"delete column {d.index}",
            lambda model: model.delete_column(d.index),
            success_message="Column deleted",
        )

    async def _on_delete_columns(self, instance_id: str, message: DeleteColumnsMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"delete {len(d.indices)} columns",
            lambda model: model.delete_columns(d.indices),
            success_message=f"Deleted {len(set(d.indices))} columns",
        )

    async def _on_sort(self, instance_id: str, message: SortMessage) -> None:
        d = message.data
        model = await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"sort by column {d.column} ({d.direction})",
            lambda model: model.sort_by_column(d.column, d.direction),
            success_message=f"Table sorted by column {d.column + 1} ({d.direction})",
        )
        if model is not None:
            model.mark_sort_committed()

    async def _on_move_row(self, instance_id: str, message: MoveRowMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"move row {d.from_index} to {d.to_index}",
            lambda model: model.move_row(d.from_index, d.to_index),
            success_message="Row moved",
        )

    async def _on_move_column(self, instance_id: str, message: MoveColumnMessage) -> None:
        d = message.data
        await self._mutate(
            instance_id,
            self._table_index(d.table_index),
            f"move column {d.from_index} to {d.to_index}",
            lambda model: model.move_column(d.from_index, d.to_index),
            success_message="Column moved",
        )

    async def _on_export_csv(self, instance_id: str, message: ExportCSVMessage) -> None:
        d = message.data
        if self.file_dialogs is None:
            await self.send(instance_id, ErrorMessage(message="CSV export is not available: no file dialog configured"))
            return
        default_name = d.filename or f"{PurePosixPath(self.uri).stem or 'table'}.csv"
        path = await self.file_dialogs.ask_save_path(default_name)
        if path is None:
            await self.send(instance_id, StatusMessage(status="exportCancelled"))
            return

        encoding = d.encoding or "utf8"
        try:
            payload = self.transcoder.encode(d.csv_content, encoding)
        except (LookupError, UnicodeError) as exc:
            await self.send(instance_id, ErrorMessage(message=f"Failed to encode CSV as {encoding}: {exc}"))
            return
        try:
            await asyncio.to_thread(path.write_bytes, payload)
        except OSError as exc:
            logger.exception("CSV export to %s failed", path)
            await self.send(instance_id, ErrorMessage(message=f"Failed to export CSV: {exc}"))
            return
        logger.info("Exported CSV to %s (%s, %d bytes)", path, encoding, len(payload))
        await self.send(instance_id, SuccessMessage(message=f"CSV exported successfully to {path.name} ({encoding.upper()})", data={"path": str(path)}))

    async def _on_import_csv(self, instance_id: str, message: ImportCSVMessage) -> None:
        if self.file_dialogs is None:
            await self.send(instance_id, ErrorMessage(message="CSV import is not available: no file dialog configured"))
            return
        path = await self.file_dialogs.ask_open_path()
        if path is None:
            await self.send(instance_id, StatusMessage(status="importCancelled"))
            return
        try:
            text = self.transcoder.decode(await asyncio.to_thread(path.read_bytes))
        except (OSError, UnicodeError) as exc:
            await self.send(instance_id, ErrorMessage(message=f"Failed to read CSV {path.name}: {exc}"))
            return

        headers, rows = to_rectangular(parse_csv(text))
        if not headers:
            await self.send(instance_id, ErrorMessage(message=f"CSV file {path.name} is empty"))
            return
        await self._mutate(
            instance_id,
            self._table_index(message.data.table_index),
            f"import CSV from {path.name}",
            lambda model: model.replace_contents(headers, rows),
            success_message=f"Imported {len(rows)} rows from {path.name}",
        )

    async def _on_switch_table(self, instance_id: str, message: SwitchTableMessage) -> None:
        index = message.data.index
        if index not in self._models:
            await self.send(instance_id, ErrorMessage(message=f"Table index {index} is out of range (found {len(self._models)} tables)"))
            return
        self.active_table_index = index
        await self.send(instance_id, StatusMessage(status="tableSwitched", data={"tableIndex": index}))

    async def _on_pong(self, instance_id: str, message: PongMessage) -> None:
        self.monitor.handle_pong(instance_id, message.timestamp, message.response_time)


class SessionRegistry:
    """Open document sessions keyed by URI; created and closed by the host."""

    def __init__(self, store: DocumentStore, **session_options):
        self.store = store
        self.session_options = session_options
        self._sessions: dict[str, DocumentSession] = {}
        self._open_lock = asyncio.Lock()

    async def open(self, uri: str) -> DocumentSession:
        """Return the session for ``uri``, loading the document on first use."""
        async with self._open_lock:
            session = self._sessions.get(uri)
            if session is None:
                session = DocumentSession(uri, self.store, **self.session_options)
                await session.load()
                self._sessions[uri] = session
            return session

    def get(self, uri: str) -> DocumentSession | None:
        return self._sessions.get(uri)

    async def release(self, uri: str) -> None:
        """Close the session for ``uri`` once no surface is attached."""
        session = self._sessions.get(uri)
        if session is not None and session.surface_count == 0:
            await session.close()
            del self._sessions[uri]
            logger.info("Closed session for %s", uri)

    async def close_all(self) -> None:
        for session in self._sessions.values():
            await session.close()
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)
