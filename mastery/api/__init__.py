"""FastAPI application for the orchestration server."""
