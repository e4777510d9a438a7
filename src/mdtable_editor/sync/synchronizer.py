"""Write serialized tables back into their source documents.

The ordinal index of a table is the key that survives edits made to the
document outside the editor: ``update_table_by_index`` re-reads and
re-parses the current text and patches whatever line range that table
occupies now.  Inserting or deleting a whole table above it between load
and save still retargets the ordinal; that case is not detected.

Parsing runs in a worker thread so a large document never stalls the event
loop that serves the editing surfaces.
"""

import asyncio
import logging
from collections.abc import Sequence

from mdtable_editor.sync.document_store import DocumentStore
from mdtable_editor.tables.errors import PersistenceError
from mdtable_editor.tables.locator import find_tables
from mdtable_editor.tables.schema import LinePatch, TableBoundary, TableDescriptor

logger = logging.getLogger(__name__)


class TableSynchronizer:
    """Applies table markdown to documents held by a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def load_tables(self, uri: str) -> list[TableDescriptor]:
        """Read the document and return its tables in document order."""
        content = await self.store.read(uri)
        return await asyncio.to_thread(find_tables, content)

    async def update_table(self, uri: str, start_line: int, end_line: int, markdown: str) -> None:
        """Replace the inclusive line range with ``markdown``."""
        await self.store.patch(uri, [LinePatch(start_line=start_line, end_line=end_line, new_content=markdown)])
        logger.info("Updated lines %d-%d of %s", start_line, end_line, uri)

    async def update_tables(self, uri: str, patches: Sequence[LinePatch]) -> None:
        """Apply several line-range replacements computed against the same document text."""
        if not patches:
            return
        await self.store.patch(uri, patches)
        logger.info("Updated %d tables in %s", len(patches), uri)

    async def update_table_by_index(self, uri: str, table_index: int, markdown: str) -> TableBoundary:
        """Replace the ``table_index``-th table with ``markdown`` using freshly parsed bounds.

        Returns the replaced line range (as it was before the patch) with the new text as ``raw``.
        """
        content = await self.store.read(uri)
        tables = await asyncio.to_thread(find_tables, content)
        if not 0 <= table_index < len(tables):
            raise PersistenceError(f"Table index {table_index} is out of range (found {len(tables)} tables)", operation="update", uri=uri)

        target = tables[table_index]
        await self.store.patch(uri, [LinePatch(start_line=target.start_line, end_line=target.end_line, new_content=markdown)])
        logger.info("Updated table %d (lines %d-%d) of %s", table_index, target.start_line, target.end_line, uri)
        return TableBoundary(start_line=target.start_line, end_line=target.end_line, raw=markdown)
