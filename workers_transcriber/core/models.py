"""Value types for one transcription run.

WHY: The planner, orchestrator, transport, and collaborators all pass the
same handful of values around: credentials, byte ranges, progress events,
and the final outcome. Defining them once keeps the contracts between
layers explicit.

HOW: Four small dataclasses and one enum:
  Credentials: Cloudflare account ID and API token
  ChunkRange: one contiguous byte slice of the input
  ProgressEvent: a message plus a 0-100 percentage
  TranscriptionResult: the single terminal outcome of a run (see Outcome)

RULES:
- All types are created per run and never shared between runs
- ChunkRange.length is > 0 except for the degenerate plan of empty input
- ProgressEvent.percentage is an int in [0, 100]
- TranscriptionResult.text is set only for COMPLETED, error only for FAILED
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional


@dataclass(frozen=True)
class Credentials:
    """Cloudflare account ID and API token for one transcription run.

    RULES:
    - Both values are opaque strings; no validation beyond non-empty
    - api_token is excluded from repr so it never lands in logs
    """

    account_id: str
    api_token: str = field(repr=False)


@dataclass(frozen=True)
class ChunkRange:
    """A contiguous byte range [offset, offset + length) of the input audio."""

    offset: int
    length: int

    @property
    def end(self) -> int:
        return self.offset + self.length

    def slice(self, data: bytes) -> bytes:
        """Return the bytes of ``data`` covered by this range."""
        return data[self.offset:self.end]


@dataclass(frozen=True)
class ProgressEvent:
    """A progress update emitted by the orchestrator."""

    message: str
    percentage: int


class Outcome(str, enum.Enum):
    """Terminal outcome of a transcription run.

    HOW: Inherits from str so values serialize cleanly to JSON.
    """

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class TranscriptionResult:
    """The one terminal outcome of a transcription run.

    WHY: Collaborators that do not want to handle exceptions (the job
    server's background runner, for one) need a value that says whether
    the run completed, was cancelled, or failed, plus the text or error.

    RULES:
    - COMPLETED: text is the trimmed transcript (may be ""), error is None
    - CANCELLED: text and error are both None
    - FAILED: text is None, error is the exception that aborted the run
    """

    outcome: Outcome
    text: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.COMPLETED

    @property
    def cancelled(self) -> bool:
        return self.outcome is Outcome.CANCELLED
