"""HTTP layer for gigboard (FastAPI)."""
