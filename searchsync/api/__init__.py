"""HTTP driver for full syncs (FastAPI)."""
