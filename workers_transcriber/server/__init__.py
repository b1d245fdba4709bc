"""HTTP job server for chunked transcription (FastAPI app + in-memory job store)."""
