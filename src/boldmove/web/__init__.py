"""BoldMove web app (FastAPI)."""
