"""In-memory job store with per-job cancellation, slots, and TTL cleanup.

WHY: The HTTP API needs to track transcription jobs through their
lifecycle (pending → transcribing → completed | failed | cancelled).
Jobs on large files take minutes, so the API returns a job ID immediately,
runs the orchestrator in the background, and lets clients poll progress
or cancel. An in-memory store is enough for a single-instance tool with
no persistence requirements.

HOW: Three components work together:
  JobStatus: enum of valid job states
  Job: dataclass holding the audio, config, cancellation token,
       latest progress event, and result
  JobStore: thread-safe dict-based store with create/get/list/update/
       cancel/delete, slot bookkeeping, and TTL cleanup

RULES:
- All store mutations are protected by threading.Lock for thread safety
- Each job owns its CancellationToken; nothing is shared between jobs
- A slot holds at most one active job: creating a job in a slot cancels
  the slot's previous job, and the new job waits until every earlier job
  in the slot has finished
- Terminal states (completed, failed, cancelled) set completed_at, drop
  the audio bytes and credentials, and signal the job's done event
- TTL-based expiry removes terminal jobs only
- Job IDs are UUID4 hex strings generated at creation time
- Default TTL is 1 hour (3600 seconds)
"""

from __future__ import annotations

import enum
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from workers_transcriber.core.cancellation import CancellationToken
from workers_transcriber.core.models import Credentials, ProgressEvent

logger = logging.getLogger(__name__)

# Default time-to-live for terminal jobs (seconds)
DEFAULT_TTL_SECONDS = 3600


class JobStatus(str, enum.Enum):
    """Valid states for a transcription job.

    HOW: Inherits from str so values serialize cleanly to JSON.

    RULES:
    - pending: job created, not yet started
    - transcribing: the orchestrator is running
    - completed: transcript ready
    - failed: a chunk or request failed; error is set
    - cancelled: stopped by the client or replaced in its slot
    """

    PENDING = "pending"
    TRANSCRIBING = "transcribing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)


@dataclass
class Job:
    """Metadata and state for a single transcription job.

    RULES:
    - id: UUID4 hex string, unique and immutable after creation
    - audio: uploaded bytes, released (b"") once the job is terminal
    - credentials: never serialized into API responses, dropped once terminal
    - progress: the most recent ProgressEvent, or None before the run starts
    - transcript: set only when status is COMPLETED
    - error: set only when status is FAILED
    - slot: optional slot name; see JobStore.create_job()
    - predecessor: the slot's previous job, until this job has waited for it
    """

    id: str
    status: JobStatus
    filename: str
    size_bytes: int
    created_at: float
    updated_at: float
    completed_at: Optional[float] = None
    error: Optional[str] = None
    progress: Optional[ProgressEvent] = None
    transcript: Optional[str] = None
    config: Dict[str, Any] = field(default_factory=dict)
    slot: Optional[str] = None
    audio: bytes = field(default=b"", repr=False)
    credentials: Optional[Credentials] = field(default=None, repr=False)
    cancel_token: CancellationToken = field(default_factory=CancellationToken, repr=False)
    done: threading.Event = field(default_factory=threading.Event, repr=False)
    predecessor: Optional[Job] = field(default=None, repr=False)


class JobStore:
    """Thread-safe in-memory store for transcription jobs.

    WHY: API request handlers and background runners touch job state
    concurrently from different threads. A centralized store with locking
    prevents race conditions and gives one place for slot rules.

    HOW: Jobs are stored in a plain dict keyed by job ID; slots map a
    slot name to the job most recently submitted into it. All mutations
    acquire a threading.Lock. Token cancellation happens outside the lock
    because token callbacks may touch other event loops.

    RULES:
    - get_job() returns None for missing job IDs (no exceptions)
    - update_job() applies only non-None arguments
    - cancel_job() marks a pending job cancelled right away; a running job
      becomes cancelled when its runner observes the token
    - delete_job() cancels the job before removing it
    - cleanup_expired() removes terminal jobs past their TTL
    """

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_jobs: int = 100,
    ) -> None:
        self._jobs: Dict[str, Job] = {}
        self._slots: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self._ttl_seconds = ttl_seconds
        self.max_jobs = max_jobs

    def create_job(
        self,
        filename: str,
        audio: bytes,
        credentials: Optional[Credentials] = None,
        config: Optional[Dict[str, Any]] = None,
        slot: Optional[str] = None,
    ) -> Job:
        """Create a new job in PENDING state.

        WHY: Every transcription request needs a tracked job with a unique
        ID, its own cancellation token, and the uploaded bytes.

        HOW: Generates a UUID4, builds a Job, and stores it under the
        lock. If ``slot`` names a slot with an unfinished job, that job is
        cancelled and recorded as this job's predecessor.

        RULES:
        - Raises ValueError when max_jobs is reached
        - Returns the newly created Job
        """
        with self._lock:
            if len(self._jobs) >= self.max_jobs:
                raise ValueError(
                    "Maximum number of concurrent jobs ({}) reached".format(
                        self.max_jobs
                    )
                )

            job_id = uuid.uuid4().hex
            now = time.time()

            job = Job(
                id=job_id,
                status=JobStatus.PENDING,
                filename=filename,
                size_bytes=len(audio),
                created_at=now,
                updated_at=now,
                config=config or {},
                slot=slot,
                audio=audio,
                credentials=credentials,
            )

            previous = self._slots.get(slot) if slot else None
            if previous is not None and not previous.status.is_terminal:
                job.predecessor = previous
            if slot:
                self._slots[slot] = job

            self._jobs[job_id] = job

        logger.info("Created job %s for file %s (%d bytes)", job_id, filename, len(audio))
        if job.predecessor is not None:
            logger.info(
                "Job %s replaces job %s in slot %s", job_id, job.predecessor.id, slot
            )
            self.cancel_job(job.predecessor.id)
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Retrieve a job by ID, or None if not found.

        RULES:
        - The returned Job object is the live instance (not a copy)
        """
        with self._lock:
            return self._jobs.get(job_id)

    def list_jobs(self) -> List[Job]:
        """Return all jobs ordered by creation time (oldest first)."""
        with self._lock:
            return sorted(self._jobs.values(), key=lambda j: j.created_at)

    def update_job(
        self,
        job_id: str,
        status: Optional[JobStatus] = None,
        error: Optional[str] = None,
        progress: Optional[ProgressEvent] = None,
        transcript: Optional[str] = None,
    ) -> Optional[Job]:
        """Update a job's mutable fields.

        WHY: Background runners report status, progress, errors, and the
        transcript as the job progresses.

        HOW: Acquires the lock, applies non-None updates, bumps updated_at.
        On a terminal status it finishes the job (see _finish()).

        RULES:
        - Returns the updated Job, or None if job_id not found
        - A terminal job's status is never changed again
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            if job.status.is_terminal and status is not None and status != job.status:
                logger.debug(
                    "Ignoring %s for job %s, already %s",
                    status.value, job_id, job.status.value,
                )
                return job

            now = time.time()

            if status is not None:
                job.status = status
            if error is not None:
                job.error = error
            if progress is not None:
                job.progress = progress
            if transcript is not None:
                job.transcript = transcript

            job.updated_at = now

            if job.status.is_terminal and job.completed_at is None:
                self._finish(job, now)

            return job

    def start_job(self, job_id: str) -> bool:
        """Move a job from PENDING to TRANSCRIBING.

        Returns False, leaving the job untouched, if it is missing or no
        longer pending (cancelled before its runner got to it).
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                return False
            job.status = JobStatus.TRANSCRIBING
            job.updated_at = time.time()
            return True

    def cancel_job(self, job_id: str) -> Optional[Job]:
        """Request cancellation of a job.

        WHY: Clients stop jobs they no longer need, and a new job in a
        slot stops the previous one.

        HOW: Cancels the job's token (outside the lock). A job that has
        not started yet is marked CANCELLED in the same locked section
        that checks its status, so it cannot race start_job(); a running
        job is marked by its runner once the orchestrator raises.

        RULES:
        - Returns the Job, or None if job_id not found
        - Cancelling a terminal job is a no-op
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if job.status.is_terminal:
                return job

        if job.cancel_token.cancel():
            logger.info("Cancellation requested for job %s", job_id)

        with self._lock:
            if job.status == JobStatus.PENDING:
                job.status = JobStatus.CANCELLED
                now = time.time()
                job.updated_at = now
                self._finish(job, now)
        return job

    def wait_for_predecessor(self, job_id: str, timeout: Optional[float] = None) -> bool:
        """Block until every earlier job in the job's slot has finished.

        HOW: Walks the predecessor chain. A replaced job that was itself
        still waiting keeps its own predecessor, which may still be
        running, so each link's done event is waited on in turn.

        Returns False if the wait timed out; the chain is kept so the
        wait can be repeated.
        """
        job = self.get_job(job_id)
        if job is None:
            return True

        deadline = None if timeout is None else time.monotonic() + timeout
        predecessor = job.predecessor
        while predecessor is not None:
            remaining = None
            if deadline is not None:
                remaining = max(0.0, deadline - time.monotonic())
            if not predecessor.done.wait(remaining):
                return False
            predecessor = predecessor.predecessor

        job.predecessor = None
        return True

    def delete_job(self, job_id: str) -> bool:
        """Cancel and remove a job.

        RULES:
        - Returns True if the job was found and deleted, False otherwise
        - The slot entry is cleared if it still points at this job
        - The done event is set so slot successors never wait on a ghost
        """
        job = self.cancel_job(job_id)
        if job is None:
            return False

        with self._lock:
            self._jobs.pop(job_id, None)
            if job.slot and self._slots.get(job.slot) is job:
                del self._slots[job.slot]
            job.audio = b""
            job.credentials = None

        job.done.set()
        logger.info("Deleted job %s", job_id)
        return True

    @staticmethod
    def _finish(job: Job, now: float) -> None:
        """Release a terminal job's inputs and wake anyone waiting on it.

        Must be called with the lock held.
        """
        job.completed_at = now
        job.audio = b""
        job.credentials = None
        job.done.set()

    def cleanup_expired(self) -> int:
        """Remove all terminal jobs that have exceeded their TTL.

        RULES:
        - Only terminal-state jobs are candidates
        - TTL is measured from completed_at, not created_at
        - Returns the count of removed jobs
        """
        now = time.time()
        expired_jobs: List[Job] = []

        with self._lock:
            for job_id, job in list(self._jobs.items()):
                if not job.status.is_terminal or job.completed_at is None:
                    continue
                if now - job.completed_at > self._ttl_seconds:
                    expired_jobs.append(self._jobs.pop(job_id))
                    if job.slot and self._slots.get(job.slot) is job:
                        del self._slots[job.slot]

        for job in expired_jobs:
            logger.info("Expired job %s (completed %.0fs ago)", job.id, now - job.completed_at)

        return len(expired_jobs)
