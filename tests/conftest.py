"""Shared test configuration and fixtures."""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from mdtable_editor.editing.model import TableModel
from mdtable_editor.tables.locator import find_tables

# Load .env from project root for all tests
root = Path(__file__).parent.parent.resolve()
load_dotenv(root / ".env")

# Table occupies lines 4-8
SAMPLE_DOCUMENT = """# Inventory

Intro paragraph.

| Name | Age | City |
| :--- | :---: | ---: |
| John | 25 | NYC |
| Jane | 30 | LA |
| Bob | 35 | Chicago |

Closing text.
"""


@pytest.fixture
def sample_document() -> str:
    return SAMPLE_DOCUMENT


@pytest.fixture
def sample_model() -> TableModel:
    """Model of the single table in SAMPLE_DOCUMENT."""
    return TableModel(find_tables(SAMPLE_DOCUMENT)[0], source_uri="docs/inventory.md", table_index=0)
