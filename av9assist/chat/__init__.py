"""Chat endpoint: service, in-memory history and the FastAPI app."""
