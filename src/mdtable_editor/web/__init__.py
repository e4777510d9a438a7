"""FastAPI websocket bridge between browser editing surfaces and document sessions."""
