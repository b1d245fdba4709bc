"""Async HTTP client for the Cloudflare Workers AI speech-to-text endpoint.

WHY: The orchestrator needs to turn a chunk of audio bytes into text
without knowing anything about URLs, headers, or the response envelope.
This module is the RemoteTranscriber implementation that hides those
details behind a single send() method.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. WorkersAIClient is an
async context manager: enter it to open the connection pool, exit to
close it. send() POSTs the raw chunk to
/accounts/{account_id}/ai/run/{model_id} with a Bearer token, parses the
{success, result, errors} envelope, and maps every non-success shape to a
typed exception from workers_transcriber.errors.

RULES:
- Always use the async context manager (async with WorkersAIClient() as client:)
- One POST per send(), no retries
- Request body is the raw chunk with Content-Type application/octet-stream
- Non-2xx or success=false → WorkersAIError with the service's errors array
- success=true without a non-empty string result.text → EmptyTranscriptionError
- A cancelled token aborts before the request, or interrupts it in flight
- The API token is sent per request and never logged
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, List, TypeVar

import httpx

from workers_transcriber.api.models import WorkersAIResponse
from workers_transcriber.config import WORKERS_AI_BASE_URL, WORKERS_AI_TIMEOUT_S
from workers_transcriber.core.cancellation import CancellationToken
from workers_transcriber.core.models import Credentials
from workers_transcriber.errors import (
    EmptyTranscriptionError,
    TranscriptionCancelled,
    WorkersAIError,
)

logger = logging.getLogger(__name__)

_CONNECT_TIMEOUT_S = 30.0

T = TypeVar("T")


class WorkersAIClient:
    """Async client for Workers AI Whisper inference.

    WHY: Provides the one operation the orchestrator needs (send a
    chunk, get text) and handles auth, envelope parsing, error wrapping,
    and cancellation of in-flight requests.

    HOW: Wraps httpx.AsyncClient. Credentials are passed per call rather
    than fixed at construction, so one client can serve runs for
    different accounts (the job server accepts per-job credentials).

    RULES:
    - Use as: async with WorkersAIClient() as client: ...
    - base_url defaults to WORKERS_AI_BASE_URL from config
    - timeout defaults to WORKERS_AI_TIMEOUT_S (connect timeout 30s)
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or WORKERS_AI_BASE_URL).rstrip("/")
        self._timeout = timeout if timeout is not None else WORKERS_AI_TIMEOUT_S
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> WorkersAIClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout, connect=_CONNECT_TIMEOUT_S),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "WorkersAIClient must be used as an async context manager: "
                "async with WorkersAIClient() as client: ..."
            )
        return self._client

    async def send(
        self,
        credentials: Credentials,
        model_id: str,
        chunk: bytes,
        cancel_token: CancellationToken,
    ) -> str:
        """Transcribe one chunk of audio and return its text.

        WHY: This is the RemoteTranscriber contract the orchestrator
        relies on: one request, typed failures, cancellation honored.

        HOW: Checks the token, then POSTs the chunk as a separate task
        that a token callback can cancel. The response envelope is parsed
        into a WorkersAIResponse and validated.

        RULES:
        - Raises TranscriptionCancelled if the token is already cancelled
          (no request is made) or fires while the request is in flight
        - Raises WorkersAIError on non-2xx, non-JSON, or success=false bodies
        - Raises EmptyTranscriptionError when result.text is missing or empty
        - httpx transport errors propagate unchanged

        Args:
            credentials: Account ID (URL) and API token (Bearer header).
            model_id: Workers AI model, e.g. "@cf/openai/whisper-large-v3-turbo".
            chunk: Raw audio bytes for this request.
            cancel_token: Token of the run this request belongs to.

        Returns:
            The transcribed text exactly as returned by the service.
        """
        client = self._ensure_client()
        cancel_token.raise_if_cancelled()

        path = "/accounts/{}/ai/run/{}".format(credentials.account_id, model_id)
        logger.debug("POST %s (%d bytes)", path, len(chunk))

        resp = await _cancellable(
            client.post(
                path,
                content=chunk,
                headers={
                    "Authorization": "Bearer {}".format(credentials.api_token),
                    "Content-Type": "application/octet-stream",
                },
            ),
            cancel_token,
        )
        return _parse_response(resp)


# ---------------------------------------------------------------------------
# Helpers (module-private)
# ---------------------------------------------------------------------------


async def _cancellable(awaitable: Awaitable[T], token: CancellationToken) -> T:
    """Await ``awaitable`` as a task that ``token`` can cancel.

    WHY: The token may be cancelled from another thread (the job server's
    request handlers) while this coroutine waits on the network. Polling
    would add latency; a token callback cancels the task immediately.

    HOW: The callback schedules task.cancel() on this event loop with
    call_soon_threadsafe. If the task ends in CancelledError and the token
    is set, the error is translated to TranscriptionCancelled; otherwise
    the CancelledError belongs to the caller and is re-raised.
    """
    loop = asyncio.get_running_loop()
    task = asyncio.ensure_future(awaitable)

    def _on_cancel() -> None:
        if not loop.is_closed():
            loop.call_soon_threadsafe(task.cancel)

    token.add_callback(_on_cancel)
    try:
        return await task
    except asyncio.CancelledError:
        if token.cancelled:
            logger.debug("In-flight request cancelled")
            raise TranscriptionCancelled() from None
        raise
    finally:
        token.remove_callback(_on_cancel)


def _error_details(resp: httpx.Response) -> List[Any]:
    """Best-effort extraction of the ``errors`` array from an error body."""
    try:
        data = resp.json()
    except ValueError:
        return []
    if isinstance(data, dict):
        errors = data.get("errors")
        return list(errors) if isinstance(errors, list) else []
    return []


def _parse_response(resp: httpx.Response) -> str:
    """Validate a Workers AI response and return result.text."""
    if not resp.is_success:
        errors = _error_details(resp)
        logger.warning("Workers AI rejected request: %d %s", resp.status_code, errors)
        raise WorkersAIError(resp.status_code, errors, resp.reason_phrase)

    try:
        data = resp.json()
    except ValueError:
        raise WorkersAIError(resp.status_code, reason="(response is not valid JSON)")

    if not isinstance(data, dict):
        raise WorkersAIError(resp.status_code, reason="(unexpected response shape)")

    envelope = WorkersAIResponse.from_dict(data)
    if not envelope.success:
        logger.warning("Workers AI reported failure: %s", envelope.errors)
        raise WorkersAIError(resp.status_code, envelope.errors, "(success=false)")

    text = envelope.text
    if not isinstance(text, str) or not text:
        raise EmptyTranscriptionError()
    return text
