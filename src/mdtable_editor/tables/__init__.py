"""Markdown pipe-table location, data model, and serialization.

Submodules:
  patterns    -- compiled regex patterns and marker constants
  errors      -- exception hierarchy shared by every layer
  schema      -- Pydantic records (descriptors, snapshots, sort/drag state)
  locator     -- find tables and their line ranges in a markdown document
  formatting  -- render a table back to markdown, line-break marker codec
  csv_io      -- CSV export/import helpers
"""
