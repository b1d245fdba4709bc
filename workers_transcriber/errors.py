"""Exception taxonomy shared by the transport and the orchestrator.

WHY: Callers need to tell a user-initiated stop apart from a real failure,
and a remote rejection apart from an empty result, without parsing
messages. Typed exceptions keep the cause and status code inspectable
while str(exc) stays a single human-readable line.

HOW: Everything derives from TranscriptionError. The HTTP adapter raises
WorkersAIError, EmptyTranscriptionError, or TranscriptionCancelled; the
orchestrator wraps non-cancellation failures of a chunked run in
ChunkTranscriptionError.

RULES:
- TranscriptionCancelled is not a failure; collaborators render it as "stopped"
- WorkersAIError always carries status_code and the service's errors array
- ChunkTranscriptionError.chunk_index is 1-based
"""

from __future__ import annotations

import json
from typing import Any, List, Optional


class TranscriptionError(Exception):
    """Base class for every error raised while transcribing."""


class TranscriptionCancelled(TranscriptionError):
    """Raised when the run's cancellation token fires.

    RULES:
    - Raised at most once per run
    - Never wrapped in ChunkTranscriptionError
    """

    def __init__(self, message: str = "Transcription cancelled.") -> None:
        super().__init__(message)


class WorkersAIError(TranscriptionError):
    """Raised when Workers AI rejects or fails a request.

    WHY: The service returns a structured ``errors`` array alongside the
    HTTP status. Callers surface it verbatim; nothing here interprets it.

    HOW: Wraps the HTTP status code and the decoded errors list. The
    message includes both so the CLI and job server can show it as-is.

    RULES:
    - status_code is the HTTP status (200 when success=false in a 2xx body)
    - errors is a list, empty when the body was not JSON
    """

    def __init__(
        self,
        status_code: int,
        errors: Optional[List[Any]] = None,
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        self.errors = list(errors or [])
        message = "Workers AI error {}".format(status_code)
        if reason:
            message += " {}".format(reason)
        if self.errors:
            message += "\nDetails: {}".format(json.dumps(self.errors, indent=2))
        super().__init__(message)


class EmptyTranscriptionError(TranscriptionError):
    """Raised when the service reports success but returns no text."""

    def __init__(
        self,
        message: str = (
            "Failed to transcribe audio. The API response was not "
            "successful or did not contain text."
        ),
    ) -> None:
        super().__init__(message)


class ChunkTranscriptionError(TranscriptionError):
    """Raised when one chunk of a multi-chunk run fails.

    WHY: A failure halfway through a long file is only actionable if the
    user knows which chunk broke. The original exception stays attached
    for programmatic handling.

    RULES:
    - chunk_index is 1-based, total_chunks is the plan length
    - cause is also set as __cause__ by the orchestrator (raise ... from)
    - status_code mirrors the cause's status_code, or None
    """

    def __init__(self, chunk_index: int, total_chunks: int, cause: BaseException) -> None:
        self.chunk_index = chunk_index
        self.total_chunks = total_chunks
        self.cause = cause
        super().__init__(
            "Chunk {} of {} failed: {}".format(chunk_index, total_chunks, cause)
        )

    @property
    def status_code(self) -> Optional[int]:
        return getattr(self.cause, "status_code", None)
