"""HTTP API server package: FastAPI app and in-memory session store."""
