"""FastAPI server bridging browser editing surfaces to document sessions.

Each websocket connection is one surface instance attached to the session
for the document named by the ``uri`` query parameter.  The server sends
the current tables on connect, relays every JSON frame to the session and
detaches on disconnect; the session is closed when its last surface leaves.

Usage:
    python -m mdtable_editor.web.app
    # => Uvicorn running on http://127.0.0.1:8000
    # connect a surface to ws://127.0.0.1:8000/ws?uri=docs/README.md
"""

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse

from mdtable_editor import config
from mdtable_editor.editing.model import TableModel
from mdtable_editor.sync.document_store import DocumentStore, FileDocumentStore
from mdtable_editor.tables.csv_io import table_to_csv
from mdtable_editor.tables.errors import PersistenceError, PositionError
from mdtable_editor.tables.locator import find_tables
from mdtable_editor.transport.collaborators import ExportDirectoryDialogs, FileDialogs, UndoHistory
from mdtable_editor.transport.messages import ErrorMessage
from mdtable_editor.transport.session import SessionRegistry

logger = logging.getLogger(__name__)


class WebSocketChannel:
    """MessageChannel over a Starlette websocket."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket

    async def send(self, message: dict) -> None:
        await self.websocket.send_json(message)


async def _load_models(registry: SessionRegistry, uri: str) -> list[TableModel]:
    """Models from the open session for ``uri``, or freshly parsed from the document."""
    session = registry.get(uri)
    if session is not None:
        return session.models
    content = await registry.store.read(uri)
    descriptors = await asyncio.to_thread(find_tables, content)
    return [TableModel(d, source_uri=uri, table_index=i) for i, d in enumerate(descriptors)]


def create_app(store: DocumentStore | None = None, history: UndoHistory | None = None, file_dialogs: FileDialogs | None = None) -> FastAPI:
    """Build the app; all session state lives on ``app.state`` for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        document_store = store or FileDocumentStore(config.DOCUMENT_ROOT, create_backups=config.CREATE_BACKUPS)
        app_.state.sessions = SessionRegistry(
            document_store,
            history=history,
            file_dialogs=file_dialogs or ExportDirectoryDialogs(config.EXPORT_DIR),
        )
        logger.info("Table editor ready (document root: %s)", getattr(document_store, "root", "in-memory"))
        yield
        await app_.state.sessions.close_all()

    app_ = FastAPI(title="Markdown Table Editor", lifespan=lifespan)

    # ---------------------------------------------------------------------------
    # HTTP: read-only views
    # ---------------------------------------------------------------------------

    @app_.get("/api/tables")
    async def list_tables(request: Request, uri: str):
        """Return snapshots of every table in a document."""
        registry: SessionRegistry = request.app.state.sessions
        try:
            models = await _load_models(registry, uri)
        except PersistenceError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return JSONResponse({"uri": uri, "tables": [m.get_table_data().to_wire() for m in models]})

    @app_.get("/api/tables/{table_index}/csv")
    async def table_csv(request: Request, table_index: int, uri: str):
        """Download one table as CSV."""
        registry: SessionRegistry = request.app.state.sessions
        try:
            models = await _load_models(registry, uri)
        except PersistenceError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        if not 0 <= table_index < len(models):
            raise HTTPException(status_code=404, detail=str(PositionError(f"Table index {table_index} is out of range (found {len(models)} tables)")))
        model = models[table_index]
        return PlainTextResponse(table_to_csv(model.headers, model.rows), media_type="text/csv")

    # ---------------------------------------------------------------------------
    # Websocket: editing surfaces
    # ---------------------------------------------------------------------------

    @app_.websocket("/ws")
    async def editor_socket(websocket: WebSocket, uri: str, instance: str | None = None):
        await websocket.accept()
        registry: SessionRegistry = websocket.app.state.sessions
        instance_id = instance or uuid.uuid4().hex
        try:
            session = await registry.open(uri)
        except PersistenceError as exc:
            logger.warning("Cannot open %s for surface %s: %s", uri, instance_id, exc)
            await websocket.send_json(ErrorMessage(message=str(exc)).to_wire())
            await websocket.close(code=1011)
            return

        await session.attach(instance_id, WebSocketChannel(websocket))
        try:
            await session.send_table_data(instance_id)
            while True:
                text = await websocket.receive_text()
                try:
                    raw = json.loads(text)
                except json.JSONDecodeError:
                    await session.send(instance_id, ErrorMessage(message="Invalid message format received: not JSON"))
                    continue
                await session.handle_message(instance_id, raw)
        except WebSocketDisconnect:
            logger.info("Surface %s disconnected from %s", instance_id, uri)
        finally:
            await session.detach(instance_id)
            await registry.release(uri)

    return app_


app = create_app()


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main():
    """Start the web server via uvicorn."""
    import uvicorn  # pylint: disable=import-outside-toplevel

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
