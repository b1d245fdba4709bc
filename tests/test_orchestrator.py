"""Unit tests for the chunked transcription orchestrator.

WHY: The orchestrator owns the rules users notice: transcript order,
progress numbers, all-or-nothing failure, and where cancellation takes
effect. These tests pin each rule down with a scripted fake transcriber.

HOW: Tests are organized by concern:
  - TestSingleRequest: inputs that fit one request
  - TestChunkedRun: ordering, joining, and progress for multi-chunk runs
  - TestProgressFormula: the chunk → percentage mapping
  - TestCancellation: cancellation before start, between chunks, in flight
  - TestFailures: wrapping and abort semantics
  - TestRunOutcome: the non-raising run() variant
  - TestConcurrentRuns: independent runs on one orchestrator

RULES:
- Async code is driven with asyncio.run() inside synchronous tests
- Workers AI is never called; FakeTranscriber stands in for it
"""

from __future__ import annotations

import asyncio

import pytest

from tests.conftest import FakeTranscriber
from workers_transcriber.core.cancellation import CancellationToken
from workers_transcriber.core.models import Outcome
from workers_transcriber.core.orchestrator import TranscriptionOrchestrator, chunk_progress
from workers_transcriber.errors import (
    ChunkTranscriptionError,
    EmptyTranscriptionError,
    TranscriptionCancelled,
    WorkersAIError,
)

MODEL = "@cf/openai/whisper-large-v3-turbo"


def _transcribe(transcriber, audio, credentials, chunk_size, progress=None, token=None):
    orchestrator = TranscriptionOrchestrator(transcriber, MODEL)
    return asyncio.run(
        orchestrator.transcribe(
            audio,
            credentials,
            chunk_size,
            on_progress=progress,
            cancel_token=token,
        )
    )


# ---------------------------------------------------------------------------
# TestSingleRequest
# ---------------------------------------------------------------------------


class TestSingleRequest:
    """Inputs no larger than the chunk size are sent in one request."""

    def test_ten_bytes_with_chunk_forty_sends_once(self, credentials):
        fake = FakeTranscriber(["hello world"])
        audio = bytes(10)
        text = _transcribe(fake, audio, credentials, 40)
        assert text == "hello world"
        assert fake.calls == 1
        assert fake.chunks == [audio]

    def test_progress_sequence(self, credentials, progress):
        fake = FakeTranscriber(["hello"])
        _transcribe(fake, bytes(10), credentials, 40, progress)
        assert progress.percentages == [0, 10, 100]

    def test_exactly_chunk_size_is_single_request(self, credentials):
        fake = FakeTranscriber(["x"])
        _transcribe(fake, bytes(40), credentials, 40)
        assert fake.calls == 1

    def test_passes_model_id(self, credentials):
        fake = FakeTranscriber(["x"])
        _transcribe(fake, bytes(5), credentials, 40)
        assert fake.model_ids == [MODEL]

    def test_result_is_trimmed(self, credentials):
        fake = FakeTranscriber(["  padded text \n"])
        assert _transcribe(fake, bytes(5), credentials, 40) == "padded text"

    def test_failure_is_not_wrapped(self, credentials):
        fake = FakeTranscriber([WorkersAIError(401, [{"code": 10000, "message": "Auth"}])])
        with pytest.raises(WorkersAIError) as exc_info:
            _transcribe(fake, bytes(5), credentials, 40)
        assert exc_info.value.status_code == 401

    def test_empty_input_is_sent_as_one_request(self, credentials):
        fake = FakeTranscriber(["ok"])
        _transcribe(fake, b"", credentials, 40)
        assert fake.chunks == [b""]


# ---------------------------------------------------------------------------
# TestChunkedRun
# ---------------------------------------------------------------------------


class TestChunkedRun:
    """Inputs larger than the chunk size are sent in order and joined."""

    def test_hundred_bytes_by_forty(self, credentials, progress):
        fake = FakeTranscriber(["a", "b", "c"])
        audio = bytes(range(100))
        text = _transcribe(fake, audio, credentials, 40, progress)

        assert text == "a b c"
        assert fake.chunks == [audio[0:40], audio[40:80], audio[80:100]]
        assert progress.events[-1].percentage == 100

    def test_progress_sequence_for_three_chunks(self, credentials, progress):
        fake = FakeTranscriber(["a", "b", "c"])
        _transcribe(fake, bytes(100), credentials, 40, progress)
        assert progress.percentages == [0, 5, 35, 65, 95, 100]

    def test_progress_messages_name_the_chunk(self, credentials, progress):
        fake = FakeTranscriber(["a", "b", "c"])
        _transcribe(fake, bytes(100), credentials, 40, progress)
        messages = [e.message for e in progress.events]
        assert "Transcribed chunk 1 of 3" in messages
        assert "Transcribed chunk 3 of 3" in messages

    def test_order_matches_plan(self, credentials):
        fake = FakeTranscriber(["first", "second", "third", "fourth"])
        text = _transcribe(fake, bytes(31), credentials, 8)
        assert text == "first second third fourth"

    def test_progress_is_non_decreasing(self, credentials, progress):
        fake = FakeTranscriber()
        _transcribe(fake, bytes(1000), credentials, 7, progress)
        assert progress.percentages == sorted(progress.percentages)
        assert progress.percentages[-1] == 100
        assert all(0 <= p <= 100 for p in progress.percentages)

    def test_every_byte_sent_once(self, credentials):
        fake = FakeTranscriber()
        audio = bytes(range(256)) * 4
        _transcribe(fake, audio, credentials, 100)
        assert b"".join(fake.chunks) == audio


# ---------------------------------------------------------------------------
# TestProgressFormula
# ---------------------------------------------------------------------------


class TestProgressFormula:
    """chunk_progress() maps completed chunks to 5 + round(k/N * 90)."""

    def test_last_chunk_reports_95(self):
        for total in (2, 3, 7, 50):
            assert chunk_progress(total, total) == 95

    def test_halves_round_up(self):
        # 1/4 * 90 = 22.5 → 23
        assert chunk_progress(1, 4) == 28
        assert chunk_progress(2, 4) == 50
        # 3/4 * 90 = 67.5 → 68
        assert chunk_progress(3, 4) == 73

    def test_thirds(self):
        assert [chunk_progress(k, 3) for k in (1, 2, 3)] == [35, 65, 95]

    def test_monotonic(self):
        for total in range(2, 60):
            values = [chunk_progress(k, total) for k in range(1, total + 1)]
            assert values == sorted(values)


# ---------------------------------------------------------------------------
# TestCancellation
# ---------------------------------------------------------------------------


class TestCancellation:
    """Cancellation is observed before start, before each chunk, and in send()."""

    def test_cancel_before_start_sends_nothing(self, credentials, progress):
        fake = FakeTranscriber()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(TranscriptionCancelled):
            _transcribe(fake, bytes(100), credentials, 40, progress, token)

        assert fake.calls == 0
        assert progress.percentages == [0]

    def test_cancel_after_chunk_k(self, credentials, progress):
        fake = FakeTranscriber(cancel_after=2)
        token = CancellationToken()

        with pytest.raises(TranscriptionCancelled):
            _transcribe(fake, bytes(100), credentials, 20, progress, token)

        assert fake.calls == 2
        assert 100 not in progress.percentages

    def test_cancel_after_last_chunk_of_single_request_still_completes(self, credentials):
        fake = FakeTranscriber(["done"], cancel_after=1)
        token = CancellationToken()
        assert _transcribe(fake, bytes(5), credentials, 40, token=token) == "done"

    def test_cancellation_from_transport_is_not_wrapped(self, credentials, progress):
        fake = FakeTranscriber(["a", TranscriptionCancelled()])
        with pytest.raises(TranscriptionCancelled):
            _transcribe(fake, bytes(100), credentials, 40, progress)
        assert fake.calls == 2
        assert progress.percentages == [0, 5, 35]

    def test_token_cancelled_from_progress_callback(self, credentials):
        fake = FakeTranscriber()
        token = CancellationToken()
        seen = []

        def on_progress(event):
            seen.append(event.percentage)
            if event.message.startswith("Transcribed chunk 1"):
                token.cancel()

        with pytest.raises(TranscriptionCancelled):
            _transcribe(fake, bytes(100), credentials, 10, on_progress, token)
        assert fake.calls == 1
        assert seen[-1] < 100


# ---------------------------------------------------------------------------
# TestFailures
# ---------------------------------------------------------------------------


class TestFailures:
    """A failed chunk aborts the run and names the chunk."""

    def test_failure_on_chunk_k_is_wrapped(self, credentials):
        error = WorkersAIError(500, [{"code": 3040, "message": "Capacity"}])
        fake = FakeTranscriber(["a", error, "c"])

        with pytest.raises(ChunkTranscriptionError) as exc_info:
            _transcribe(fake, bytes(100), credentials, 40)

        exc = exc_info.value
        assert exc.chunk_index == 2
        assert exc.total_chunks == 3
        assert exc.cause is error
        assert exc.__cause__ is error
        assert exc.status_code == 500
        assert "Chunk 2 of 3" in str(exc)
        assert fake.calls == 2

    def test_failure_on_first_chunk(self, credentials):
        fake = FakeTranscriber([EmptyTranscriptionError()])
        with pytest.raises(ChunkTranscriptionError) as exc_info:
            _transcribe(fake, bytes(100), credentials, 40)
        assert exc_info.value.chunk_index == 1
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.cause, EmptyTranscriptionError)

    def test_transport_error_is_wrapped(self, credentials):
        fake = FakeTranscriber(["a", "b", ConnectionError("reset")])
        with pytest.raises(ChunkTranscriptionError) as exc_info:
            _transcribe(fake, bytes(100), credentials, 40)
        assert exc_info.value.chunk_index == 3

    def test_no_progress_after_failure(self, credentials, progress):
        fake = FakeTranscriber(["a", WorkersAIError(502)])
        with pytest.raises(ChunkTranscriptionError):
            _transcribe(fake, bytes(100), credentials, 40, progress)
        assert progress.percentages == [0, 5, 35]


# ---------------------------------------------------------------------------
# TestRunOutcome
# ---------------------------------------------------------------------------


class TestRunOutcome:
    """run() reports exactly one terminal outcome instead of raising."""

    def _run(self, fake, credentials, audio, token=None):
        orchestrator = TranscriptionOrchestrator(fake, MODEL)
        return asyncio.run(orchestrator.run(audio, credentials, 40, cancel_token=token))

    def test_completed(self, credentials):
        result = self._run(FakeTranscriber(["a", "b", "c"]), credentials, bytes(100))
        assert result.outcome == Outcome.COMPLETED
        assert result.ok
        assert result.text == "a b c"
        assert result.error is None

    def test_cancelled(self, credentials):
        token = CancellationToken()
        token.cancel()
        result = self._run(FakeTranscriber(), credentials, bytes(100), token)
        assert result.outcome == Outcome.CANCELLED
        assert result.cancelled
        assert result.text is None
        assert result.error is None

    def test_failed(self, credentials):
        result = self._run(FakeTranscriber(["a", WorkersAIError(500)]), credentials, bytes(100))
        assert result.outcome == Outcome.FAILED
        assert result.text is None
        assert isinstance(result.error, ChunkTranscriptionError)


# ---------------------------------------------------------------------------
# TestConcurrentRuns
# ---------------------------------------------------------------------------


class _EchoTranscriber:
    """Returns each chunk decoded as text, yielding to the loop first."""

    async def send(self, credentials, model_id, chunk, cancel_token):
        await asyncio.sleep(0)
        cancel_token.raise_if_cancelled()
        return chunk.decode("ascii")


class TestConcurrentRuns:
    """Runs on the same orchestrator share no state."""

    def test_interleaved_runs_keep_their_own_order(self, credentials):
        orchestrator = TranscriptionOrchestrator(_EchoTranscriber(), MODEL)

        async def _both():
            return await asyncio.gather(
                orchestrator.transcribe(b"abcdef", credentials, 2),
                orchestrator.transcribe(b"uvwxyz", credentials, 2),
            )

        assert asyncio.run(_both()) == ["ab cd ef", "uv wx yz"]

    def test_cancelling_one_run_leaves_the_other(self, credentials):
        orchestrator = TranscriptionOrchestrator(_EchoTranscriber(), MODEL)
        token = CancellationToken()
        token.cancel()

        async def _both():
            return await asyncio.gather(
                orchestrator.run(b"abcdef", credentials, 2, cancel_token=token),
                orchestrator.run(b"uvwxyz", credentials, 2),
            )

        cancelled, completed = asyncio.run(_both())
        assert cancelled.outcome == Outcome.CANCELLED
        assert completed.text == "uv wx yz"
