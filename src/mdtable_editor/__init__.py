"""Markdown table editor core: locate, edit, and write back pipe tables in markdown documents."""
