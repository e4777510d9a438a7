"""Async access to source documents.

A DocumentStore reads a whole document and applies line-range patches to
it.  FileDocumentStore works on files under a root directory (blocking I/O
runs in a worker thread); InMemoryDocumentStore keeps documents in a dict.
"""

import asyncio
import logging
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from mdtable_editor.sync.patching import apply_line_patches
from mdtable_editor.tables.errors import PersistenceError
from mdtable_editor.tables.schema import LinePatch, utc_now

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    async def read(self, uri: str) -> str: ...

    async def patch(self, uri: str, patches: Sequence[LinePatch]) -> None: ...


# ─── Files on disk ────────────────────────────────────────────────────────────


class FileDocumentStore:
    """Documents are UTF-8 files addressed relative to ``root`` (or ``file://`` URIs inside it)."""

    def __init__(self, root: Path, create_backups: bool = False):
        self.root = Path(root).resolve()
        self.create_backups = create_backups

    def resolve(self, uri: str) -> Path:
        """Map a URI to a path, refusing anything outside the root directory."""
        path_text = uri[len("file://") :] if uri.startswith("file://") else uri
        path = (self.root / path_text).resolve()
        if not path.is_relative_to(self.root):
            raise PersistenceError(f"Document {uri} is outside the document root", operation="read", uri=uri)
        return path

    @staticmethod
    def _read_text(path: Path) -> str:
        with open(path, encoding="utf-8", newline="") as f:
            return f.read()

    @staticmethod
    def _write_text(path: Path, content: str) -> None:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(content)

    def _backup(self, path: Path) -> Path | None:
        """Copy the file to ``<name>.backup-<timestamp>``; failures are logged, not raised."""
        backup_path = path.with_name(f"{path.name}.backup-{utc_now().strftime('%Y%m%dT%H%M%S%f')}")
        try:
            shutil.copy2(path, backup_path)
        except OSError:
            logger.exception("Failed to create backup of %s", path)
            return None
        logger.info("Created backup %s", backup_path)
        return backup_path

    async def read(self, uri: str) -> str:
        path = self.resolve(uri)
        try:
            return await asyncio.to_thread(self._read_text, path)
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(f"Failed to read {uri}: {exc}", operation="read", uri=uri, original_error=exc) from exc

    async def patch(self, uri: str, patches: Sequence[LinePatch]) -> None:
        content = await self.read(uri)
        new_content = apply_line_patches(content, patches, uri=uri)
        path = self.resolve(uri)
        if self.create_backups:
            await asyncio.to_thread(self._backup, path)
        try:
            await asyncio.to_thread(self._write_text, path, new_content)
        except OSError as exc:
            raise PersistenceError(f"Failed to write {uri}: {exc}", operation="write", uri=uri, original_error=exc) from exc
        logger.info("Applied %d patch(es) to %s", len(patches), uri)


# ─── In memory ────────────────────────────────────────────────────────────────


class InMemoryDocumentStore:
    """Dict-backed store; handy for embedding the core without a filesystem."""

    def __init__(self, documents: dict[str, str] | None = None):
        self.documents: dict[str, str] = dict(documents or {})

    async def read(self, uri: str) -> str:
        if uri not in self.documents:
            raise PersistenceError(f"Document not found: {uri}", operation="read", uri=uri)
        return self.documents[uri]

    async def patch(self, uri: str, patches: Sequence[LinePatch]) -> None:
        content = await self.read(uri)
        self.documents[uri] = apply_line_patches(content, patches, uri=uri)
