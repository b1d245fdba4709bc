"""Sequential chunked transcription with progress and cancellation.

WHY: A single Workers AI request cannot carry an arbitrarily large file.
The orchestrator turns "transcribe these bytes" into a plan of chunk
requests, sends them one at a time, and joins the texts, so callers get
one transcript regardless of input size.

HOW: TranscriptionOrchestrator is built around a RemoteTranscriber (the
port implemented by api.client.WorkersAIClient). transcribe() plans the
chunks, emits ProgressEvents through an optional callback, checks the
CancellationToken before starting and before every chunk, and passes the
token into every send() so an in-flight request can be abandoned too.
run() is the non-raising variant that returns a TranscriptionResult.

RULES:
- Chunks are sent strictly in plan order, one at a time
- Any non-cancellation failure aborts the run; no partial transcript
- Failures in a chunked run are wrapped in ChunkTranscriptionError (1-based index)
- Progress: 0 preparing, 10 single request or 5 chunking,
  5 + round((i+1)/N * 90) after chunk i, 100 on completion
- Chunk texts are joined with a single space and the result is stripped
- No progress events are emitted after cancellation is observed
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Optional, Protocol

from workers_transcriber.core.cancellation import CancellationToken
from workers_transcriber.core.models import (
    ChunkRange,
    Credentials,
    Outcome,
    ProgressEvent,
    TranscriptionResult,
)
from workers_transcriber.core.planner import plan_chunks
from workers_transcriber.errors import ChunkTranscriptionError, TranscriptionCancelled

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

_PCT_PREPARING = 0
_PCT_CHUNKING = 5
_PCT_SINGLE_REQUEST = 10
_PCT_CHUNK_SPAN = 90
_PCT_COMPLETE = 100


class RemoteTranscriber(Protocol):
    """Port for anything that can turn one chunk of audio into text.

    RULES:
    - Exactly one network request per call, no retries
    - Raises TranscriptionCancelled if the token is or becomes cancelled
    - Raises WorkersAIError on a rejected request
    - Raises EmptyTranscriptionError when the result carries no text
    """

    async def send(
        self,
        credentials: Credentials,
        model_id: str,
        chunk: bytes,
        cancel_token: CancellationToken,
    ) -> str:
        ...


def chunk_progress(completed: int, total: int) -> int:
    """Percentage reported after ``completed`` of ``total`` chunks.

    Halves round up, so 2 of 4 chunks reports 50 and 1 of 4 reports 28.
    """
    return _PCT_CHUNKING + int(math.floor(completed / total * _PCT_CHUNK_SPAN + 0.5))


class TranscriptionOrchestrator:
    """Drive one transcription run over a RemoteTranscriber.

    WHY: Keeps the chunking, ordering, progress, and cancellation rules
    in one place, independent of HTTP details, so the CLI and the job
    server behave identically and the rules can be tested with a fake
    transcriber.

    HOW: Stateless between runs. Every call to transcribe() owns its
    plan, accumulator, and progress stream; the only shared thing is the
    injected transcriber, which must itself be safe to call concurrently.

    RULES:
    - One orchestrator may serve many concurrent runs
    - model_id is sent with every request of every run
    """

    def __init__(self, transcriber: RemoteTranscriber, model_id: str) -> None:
        self._transcriber = transcriber
        self._model_id = model_id

    @property
    def model_id(self) -> str:
        return self._model_id

    async def transcribe(
        self,
        audio: bytes,
        credentials: Credentials,
        chunk_size: int,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> str:
        """Transcribe ``audio`` and return the assembled transcript.

        Args:
            audio: The full input; read-only for the duration of the call.
            credentials: Account ID and API token passed to every request.
            chunk_size: Maximum bytes per request.
            on_progress: Optional callback receiving ProgressEvents in order.
            cancel_token: Optional token; a fresh one is used if omitted.

        Returns:
            The transcript, stripped of leading/trailing whitespace.

        Raises:
            TranscriptionCancelled: The token was cancelled.
            ChunkTranscriptionError: A chunk of a multi-chunk run failed.
            WorkersAIError, EmptyTranscriptionError: The single request failed.
        """
        token = cancel_token if cancel_token is not None else CancellationToken()

        def emit(message: str, percentage: int) -> None:
            if on_progress is not None:
                on_progress(ProgressEvent(message=message, percentage=percentage))

        emit("Preparing audio...", _PCT_PREPARING)
        self._checkpoint(token)

        plan = plan_chunks(len(audio), chunk_size)

        if len(plan) == 1:
            logger.info("Transcribing %d bytes in a single request", len(audio))
            emit("Transcribing in a single request...", _PCT_SINGLE_REQUEST)
            text = await self._send(credentials, plan[0].slice(audio), token)
            emit("Transcription complete.", _PCT_COMPLETE)
            return text.strip()

        total = len(plan)
        logger.info(
            "Transcribing %d bytes in %d chunks of up to %d bytes",
            len(audio), total, chunk_size,
        )
        emit("Splitting audio into {} chunks...".format(total), _PCT_CHUNKING)

        parts = []
        for index, chunk in enumerate(plan):
            self._checkpoint(token)
            text = await self._send_chunk(credentials, audio, chunk, index, total, token)
            parts.append(text + " ")
            emit(
                "Transcribed chunk {} of {}".format(index + 1, total),
                chunk_progress(index + 1, total),
            )

        emit("Transcription complete.", _PCT_COMPLETE)
        return "".join(parts).strip()

    async def run(
        self,
        audio: bytes,
        credentials: Credentials,
        chunk_size: int,
        on_progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranscriptionResult:
        """Like transcribe(), but report the outcome instead of raising.

        RULES:
        - TranscriptionCancelled → Outcome.CANCELLED
        - Any other Exception → Outcome.FAILED with the exception attached
        - asyncio.CancelledError (a BaseException) still propagates
        """
        try:
            text = await self.transcribe(
                audio,
                credentials,
                chunk_size,
                on_progress=on_progress,
                cancel_token=cancel_token,
            )
        except TranscriptionCancelled:
            return TranscriptionResult(outcome=Outcome.CANCELLED)
        except Exception as exc:
            logger.warning("Transcription failed: %s", exc)
            return TranscriptionResult(outcome=Outcome.FAILED, error=exc)
        return TranscriptionResult(outcome=Outcome.COMPLETED, text=text)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _checkpoint(token: CancellationToken) -> None:
        if token.cancelled:
            logger.info("Transcription cancelled")
            raise TranscriptionCancelled()

    async def _send(
        self,
        credentials: Credentials,
        chunk: bytes,
        token: CancellationToken,
    ) -> str:
        return await self._transcriber.send(credentials, self._model_id, chunk, token)

    async def _send_chunk(
        self,
        credentials: Credentials,
        audio: bytes,
        chunk: ChunkRange,
        index: int,
        total: int,
        token: CancellationToken,
    ) -> str:
        logger.debug(
            "Sending chunk %d/%d (bytes %d-%d)", index + 1, total, chunk.offset, chunk.end
        )
        try:
            return await self._send(credentials, chunk.slice(audio), token)
        except TranscriptionCancelled:
            logger.info("Transcription cancelled during chunk %d/%d", index + 1, total)
            raise
        except Exception as exc:
            logger.warning("Chunk %d/%d failed: %s", index + 1, total, exc)
            raise ChunkTranscriptionError(index + 1, total, exc) from exc
