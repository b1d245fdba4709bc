"""Workers AI API client package: async HTTP interface to Cloudflare Workers AI.

WHY: The orchestrator sends each audio chunk to the Workers AI Whisper
model and needs text back. This package encapsulates all HTTP
communication behind an async client class.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. WorkersAIClient
implements the orchestrator's RemoteTranscriber port. Response envelopes
are parsed into typed dataclasses defined in models.py.

RULES:
- All HTTP calls go through WorkersAIClient (no direct httpx usage elsewhere)
- Authentication is a Bearer token passed with each request
"""

from workers_transcriber.api.client import WorkersAIClient
from workers_transcriber.api.models import WhisperResult, WorkersAIResponse

__all__ = ["WorkersAIClient", "WhisperResult", "WorkersAIResponse"]
