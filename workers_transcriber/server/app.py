"""FastAPI application with transcription job routes and OpenAPI docs.

WHY: Web front-ends and scripts need an HTTP API to submit audio for
chunked transcription, watch progress, cancel a run, and fetch the
transcript. FastAPI provides automatic OpenAPI documentation, request
validation, and background task support.

HOW: A single FastAPI app exposes the endpoints below, grouped by tags.
POST /transcriptions accepts a multipart upload, creates a job, and runs
the orchestrator in the background. The runner waits for any job it
replaced in its slot, then streams progress events into the job store.

RULES:
- Every endpoint has a summary and description for OpenAPI
- Error responses use the ErrorResponse schema
- Background transcription uses FastAPI BackgroundTasks
- The job store is a module-level singleton
- Upload checks: extension, chunk-size preset, max size, credentials
- Credentials come from form fields or the server's environment and are
  never echoed back
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, List, Optional

from fastapi import BackgroundTasks, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import PlainTextResponse, Response

from workers_transcriber import __version__
from workers_transcriber.config import (
    CHUNK_SIZE_PRESETS,
    DEFAULT_CHUNK_PRESET,
    SUPPORTED_AUDIO_FORMATS,
    WORKERS_AI_MODEL,
    InputTooLargeError,
    check_input_size,
    load_credentials,
)
from workers_transcriber.server.jobs import Job, JobStatus, JobStore
from workers_transcriber.server.models import (
    ChunkSizeInfo,
    ErrorResponse,
    HealthResponse,
    JobCreatedResponse,
    JobListResponse,
    JobResponse,
    ProgressInfo,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup; cancel it and all jobs on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    for job in job_store.list_jobs():
        job_store.cancel_job(job.id)


app = FastAPI(
    lifespan=lifespan,
    title="Workers AI Transcriber API",
    description=(
        "REST API for transcribing audio files of any size with Cloudflare "
        "Workers AI. Large files are split into chunks that fit a single "
        "request and transcribed sequentially. Submit a file, poll progress, "
        "cancel if needed, and download the transcript."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: Job) -> JobResponse:
    """Convert an internal Job dataclass to a JobResponse Pydantic model."""
    progress = None
    if job.progress is not None:
        progress = ProgressInfo(
            message=job.progress.message,
            percentage=job.progress.percentage,
        )
    return JobResponse(
        id=job.id,
        status=job.status.value,
        filename=job.filename,
        size_bytes=job.size_bytes,
        created_at=job.created_at,
        config=job.config,
        slot=job.slot,
        progress=progress,
        error=job.error,
    )


def _get_job_or_404(job_id: str) -> Job:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return job


def _validate_file_extension(filename: str) -> None:
    """Raise HTTPException if the file extension is not supported."""
    ext = Path(filename).suffix.lower()
    if ext not in SUPPORTED_AUDIO_FORMATS:
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(SUPPORTED_AUDIO_FORMATS))
            ),
        )


async def _run_transcription_pipeline(job_id: str, store: JobStore) -> None:
    """Run the chunked transcription for a job.

    WHY: This is the background task behind POST /transcriptions: it
    feeds the uploaded bytes to the orchestrator and records progress
    and the outcome on the job.

    HOW: Marks the job TRANSCRIBING, runs TranscriptionOrchestrator.run()
    with the job's credentials, chunk size, and cancellation token, and
    maps the TranscriptionResult onto a terminal job status.

    RULES:
    - Jobs that are no longer pending (cancelled before start) are skipped
    - Each progress event overwrites job.progress
    - Unexpected exceptions are logged and mark the job failed
    """
    from workers_transcriber.api.client import WorkersAIClient
    from workers_transcriber.core.orchestrator import TranscriptionOrchestrator

    job = store.get_job(job_id)
    if job is None or not store.start_job(job_id):
        return

    try:
        async with WorkersAIClient() as client:
            orchestrator = TranscriptionOrchestrator(client, job.config["model"])
            result = await orchestrator.run(
                job.audio,
                job.credentials,
                job.config["chunk_size_bytes"],
                on_progress=lambda event: store.update_job(job_id, progress=event),
                cancel_token=job.cancel_token,
            )

        if result.ok:
            store.update_job(job_id, status=JobStatus.COMPLETED, transcript=result.text)
        elif result.cancelled:
            logger.info("Job %s cancelled", job_id)
            store.update_job(job_id, status=JobStatus.CANCELLED)
        else:
            logger.error("Transcription failed for job %s: %s", job_id, result.error)
            store.update_job(job_id, status=JobStatus.FAILED, error=str(result.error))

    except Exception as exc:
        logger.exception("Transcription pipeline failed for job %s", job_id)
        store.update_job(job_id, status=JobStatus.FAILED, error=str(exc))


def _run_transcription_sync(job_id: str, store: JobStore) -> None:
    """Synchronous wrapper for the async transcription pipeline.

    WHY: FastAPI BackgroundTasks run synchronous callables in a worker
    thread. Waiting for a slot predecessor blocks that thread, not the
    server's event loop.
    """
    store.wait_for_predecessor(job_id)
    asyncio.run(_run_transcription_pipeline(job_id, store))


# ---------------------------------------------------------------------------
# Endpoints: Transcriptions
# ---------------------------------------------------------------------------


@app.post(
    "/transcriptions",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["transcriptions"],
    summary="Submit a transcription job",
    description=(
        "Upload an audio file with transcription options. Returns a job ID "
        "immediately; the transcription runs in the background. Poll "
        "GET /transcriptions/{id} for progress. Submitting into a slot that "
        "already has an active job cancels that job first."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file type or chunk size"},
        413: {"model": ErrorResponse, "description": "File exceeds the maximum input size"},
        422: {"model": ErrorResponse, "description": "Missing credentials"},
        429: {"model": ErrorResponse, "description": "Too many jobs"},
    },
)
async def create_transcription(
    background_tasks: BackgroundTasks,
    file: Annotated[
        UploadFile,
        File(description="Audio file to transcribe"),
    ],
    chunk_size: Annotated[
        str,
        Form(
            description=(
                "Chunk-size preset. Available: {}.".format(", ".join(CHUNK_SIZE_PRESETS))
            )
        ),
    ] = DEFAULT_CHUNK_PRESET,
    model: Annotated[
        str,
        Form(description="Workers AI model ID."),
    ] = WORKERS_AI_MODEL,
    slot: Annotated[
        Optional[str],
        Form(description="Optional slot name; at most one job per slot is active."),
    ] = None,
    account_id: Annotated[
        Optional[str],
        Form(description="Cloudflare account ID. Defaults to the server's configuration."),
    ] = None,
    api_token: Annotated[
        Optional[str],
        Form(description="Cloudflare API token. Defaults to the server's configuration."),
    ] = None,
) -> JobCreatedResponse:
    # Sanitize filename to prevent path traversal
    filename = Path(file.filename or "upload").name
    _validate_file_extension(filename)

    preset = chunk_size.strip().lower()
    if preset not in CHUNK_SIZE_PRESETS:
        raise HTTPException(
            status_code=400,
            detail="Unknown chunk size '{}'. Available: {}".format(
                chunk_size, ", ".join(CHUNK_SIZE_PRESETS)
            ),
        )

    try:
        credentials = load_credentials(account_id, api_token)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    content = await file.read()
    try:
        check_input_size(len(content))
    except InputTooLargeError as exc:
        raise HTTPException(status_code=413, detail=str(exc))

    config = {
        "chunk_size": preset,
        "chunk_size_bytes": CHUNK_SIZE_PRESETS[preset],
        "model": model,
    }

    try:
        job = job_store.create_job(
            filename=filename,
            audio=content,
            credentials=credentials,
            config=config,
            slot=slot or None,
        )
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    background_tasks.add_task(_run_transcription_sync, job.id, job_store)

    return JobCreatedResponse(
        id=job.id,
        status=job.status.value,
        filename=job.filename,
        replaced_job_id=job.predecessor.id if job.predecessor is not None else None,
    )


@app.get(
    "/transcriptions",
    response_model=JobListResponse,
    tags=["transcriptions"],
    summary="List transcription jobs",
    description="Returns every job held by the server, oldest first.",
)
async def list_transcriptions() -> JobListResponse:
    return JobListResponse(jobs=[_job_to_response(job) for job in job_store.list_jobs()])


@app.get(
    "/transcriptions/{job_id}",
    response_model=JobResponse,
    tags=["transcriptions"],
    summary="Get transcription job status",
    description=(
        "Poll this endpoint to track a job. Returns the current status, the "
        "latest progress event, and the error message if the job failed."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def get_transcription(job_id: str) -> JobResponse:
    return _job_to_response(_get_job_or_404(job_id))


@app.get(
    "/transcriptions/{job_id}/transcript",
    response_class=PlainTextResponse,
    tags=["transcriptions"],
    summary="Download the transcript",
    description="Returns the assembled transcript of a completed job as plain text.",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job not completed"},
    },
)
async def get_transcript(job_id: str) -> PlainTextResponse:
    job = _get_job_or_404(job_id)
    if job.status != JobStatus.COMPLETED:
        raise HTTPException(
            status_code=409,
            detail="Job is not completed (current status: {}).".format(job.status.value),
        )
    stem = Path(job.filename).stem
    return PlainTextResponse(
        content=job.transcript or "",
        headers={
            "Content-Disposition": 'attachment; filename="{}-transcript.txt"'.format(stem)
        },
    )


@app.post(
    "/transcriptions/{job_id}/cancel",
    response_model=JobResponse,
    status_code=202,
    tags=["transcriptions"],
    summary="Cancel a transcription job",
    description=(
        "Request cancellation. A pending job is cancelled immediately; a "
        "running job stops before its next chunk, abandoning any request in "
        "flight. No partial transcript is kept."
    ),
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
        409: {"model": ErrorResponse, "description": "Job already finished"},
    },
)
async def cancel_transcription(job_id: str) -> JobResponse:
    job = _get_job_or_404(job_id)
    if job.status.is_terminal:
        raise HTTPException(
            status_code=409,
            detail="Job already finished (current status: {}).".format(job.status.value),
        )
    job_store.cancel_job(job_id)
    return _job_to_response(job)


@app.delete(
    "/transcriptions/{job_id}",
    status_code=204,
    tags=["transcriptions"],
    summary="Delete a transcription job",
    description="Cancel the job if it is still running and remove it from the server.",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def delete_transcription(job_id: str) -> Response:
    if not job_store.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Configuration
# ---------------------------------------------------------------------------


@app.get(
    "/chunk-sizes",
    response_model=List[ChunkSizeInfo],
    tags=["config"],
    summary="List chunk-size presets",
    description="Returns the selectable chunk-size presets and marks the default.",
)
async def list_chunk_sizes() -> List[ChunkSizeInfo]:
    return [
        ChunkSizeInfo(key=key, size_bytes=size, default=(key == DEFAULT_CHUNK_PRESET))
        for key, size in CHUNK_SIZE_PRESETS.items()
    ]


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness and readiness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, model=WORKERS_AI_MODEL)


def run_api():
    """Entry point for the workers-transcriber-api console script."""
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
