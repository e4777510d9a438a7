"""Interfaces of the services a document session relies on but does not own.

Undo history storage and file dialogs belong to the host; only their
protocols live here, plus small defaults the web bridge can use.
"""

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class UndoHistory(Protocol):
    async def save_state(self, uri: str, description: str) -> None:
        """Record the document state before a mutation described by ``description``."""


class FileDialogs(Protocol):
    async def ask_save_path(self, default_name: str) -> Path | None:
        """Return where to save, or None if the user cancelled."""

    async def ask_open_path(self) -> Path | None:
        """Return a file to open, or None if the user cancelled."""


class Transcoder(Protocol):
    def encode(self, text: str, encoding: str) -> bytes: ...

    def decode(self, data: bytes) -> str: ...


# ─── Defaults ─────────────────────────────────────────────────────────────────


class CodecTranscoder:
    """Encode with Python codecs; ``utf8`` and ``sjis`` are accepted as aliases."""

    ALIASES = {"utf8": "utf-8", "utf-8": "utf-8", "sjis": "shift_jis", "shift_jis": "shift_jis"}

    def encode(self, text: str, encoding: str) -> bytes:
        codec = self.ALIASES.get(encoding.lower(), encoding)
        return text.encode(codec)

    def decode(self, data: bytes) -> str:
        """UTF-8 (with or without BOM), falling back to Shift_JIS."""
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            logger.info("CSV is not valid UTF-8; decoding as Shift_JIS")
            return data.decode("shift_jis")


class ExportDirectoryDialogs:
    """Non-interactive dialogs: saves go into a fixed directory, opening is unsupported."""

    def __init__(self, export_dir: Path):
        self.export_dir = Path(export_dir)

    async def ask_save_path(self, default_name: str) -> Path | None:
        self.export_dir.mkdir(parents=True, exist_ok=True)
        return self.export_dir / Path(default_name).name

    async def ask_open_path(self) -> Path | None:
        return None
