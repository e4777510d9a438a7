"""Shared configuration for the table editor service.

Values come from the environment (optionally a ``.env`` file at the project
root) and fall back to the defaults below.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent.parent.parent.resolve()
load_dotenv(ROOT / ".env")


def _env_bool(name: str, default: bool) -> bool:
    """Read a boolean flag such as ``true``/``1``/``yes`` from the environment."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ─── Documents ────────────────────────────────────────────────────────────────

# Directory that document URIs are resolved against by the file store
DOCUMENT_ROOT = Path(os.getenv("TABLE_EDITOR_DOCUMENT_ROOT", ".")).resolve()

# Where CSV exports land when no interactive file dialog is available
EXPORT_DIR = Path(os.getenv("TABLE_EDITOR_EXPORT_DIR", str(DOCUMENT_ROOT / "exports"))).resolve()

# Write a timestamped copy of a document before patching it
CREATE_BACKUPS = _env_bool("TABLE_EDITOR_CREATE_BACKUPS", False)


# ─── Transport ────────────────────────────────────────────────────────────────

MAX_SEND_RETRIES = int(os.getenv("TABLE_EDITOR_MAX_SEND_RETRIES", "3"))

# Seconds between liveness pings to every attached surface
PING_INTERVAL_SECONDS = float(os.getenv("TABLE_EDITOR_PING_INTERVAL", "30"))

# A surface silent for longer than this is marked unhealthy
HEALTH_TIMEOUT_SECONDS = float(os.getenv("TABLE_EDITOR_HEALTH_TIMEOUT", "60"))


# ─── Web server ───────────────────────────────────────────────────────────────

HOST = os.getenv("TABLE_EDITOR_HOST", "127.0.0.1")
PORT = int(os.getenv("TABLE_EDITOR_PORT", "8000"))
