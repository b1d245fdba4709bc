"""Shared test fixtures for the workers_transcriber test suite.

WHY: The orchestrator, CLI, and job server tests all need the same fake
RemoteTranscriber and the same dummy credentials. Centralizing them here
avoids duplication and keeps the fake's behavior consistent.

HOW: FakeTranscriber implements the async send() contract from a script
of responses (strings or exceptions), records every chunk it receives,
and can cancel the run's token after a given number of calls.

RULES:
- Workers AI is never called from unit tests
- Credentials are fixed dummy values
- FakeTranscriber honors an already-cancelled token like the real client
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union

import pytest

from workers_transcriber.core.cancellation import CancellationToken
from workers_transcriber.core.models import Credentials, ProgressEvent

TEST_ACCOUNT_ID = "0123456789abcdef0123456789abcdef"
TEST_API_TOKEN = "test-token-not-real"


class FakeTranscriber:
    """Scripted stand-in for WorkersAIClient.

    Each call to send() pops the next entry from ``responses``: a string
    is returned, an exception is raised. When the script is exhausted the
    chunk index is returned as text ("chunk-1", "chunk-2", ...).
    """

    def __init__(
        self,
        responses: Optional[Sequence[Union[str, BaseException]]] = None,
        cancel_after: Optional[int] = None,
    ) -> None:
        self._responses = list(responses or [])
        self._cancel_after = cancel_after
        self.chunks: List[bytes] = []
        self.model_ids: List[str] = []

    @property
    def calls(self) -> int:
        return len(self.chunks)

    async def send(
        self,
        credentials: Credentials,
        model_id: str,
        chunk: bytes,
        cancel_token: CancellationToken,
    ) -> str:
        cancel_token.raise_if_cancelled()
        self.chunks.append(chunk)
        self.model_ids.append(model_id)

        if self._cancel_after is not None and self.calls >= self._cancel_after:
            cancel_token.cancel()

        if self._responses:
            response = self._responses.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response
        return "chunk-{}".format(self.calls)


class FakeClient:
    """Async context manager standing in for WorkersAIClient.

    Yields ``transcriber`` on entry, or raises ``error`` if one is given.
    """

    def __init__(self, transcriber=None, error: Optional[BaseException] = None) -> None:
        self._transcriber = transcriber
        self._error = error

    async def __aenter__(self):
        if self._error is not None:
            raise self._error
        return self._transcriber

    async def __aexit__(self, exc_type, exc, tb):
        return None


class ProgressRecorder:
    """Collects ProgressEvents passed to an on_progress callback."""

    def __init__(self) -> None:
        self.events: List[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def percentages(self) -> List[int]:
        return [e.percentage for e in self.events]


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(account_id=TEST_ACCOUNT_ID, api_token=TEST_API_TOKEN)


@pytest.fixture
def progress() -> ProgressRecorder:
    return ProgressRecorder()


@pytest.fixture
def cloudflare_env(monkeypatch):
    """Provide Cloudflare credentials through the environment."""
    monkeypatch.setenv("CLOUDFLARE_ACCOUNT_ID", TEST_ACCOUNT_ID)
    monkeypatch.setenv("CLOUDFLARE_API_TOKEN", TEST_API_TOKEN)


@pytest.fixture
def no_cloudflare_env(monkeypatch):
    """Make sure no Cloudflare credentials leak in from the environment."""
    monkeypatch.delenv("CLOUDFLARE_ACCOUNT_ID", raising=False)
    monkeypatch.delenv("CLOUDFLARE_API_TOKEN", raising=False)
