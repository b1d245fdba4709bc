"""Pydantic response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for response serialization
and automatic OpenAPI documentation. Pydantic models enforce field types
at runtime and generate the JSON Schema shown in the /docs UI.

HOW: Each endpoint has its own response model. All models include Field
descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Response models never expose credentials or audio bytes
- JobStatus values come from server.jobs (single source of truth)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ProgressInfo(BaseModel):
    """Latest progress event of a running or finished job."""

    message: str = Field(description="Human-readable progress message.")
    percentage: int = Field(ge=0, le=100, description="Progress from 0 to 100.")


class JobResponse(BaseModel):
    """Transcription job status response.

    WHY: Clients poll this endpoint to track job progress. It exposes
    the current state, progress, and error information.

    RULES:
    - error is only set when status is 'failed'
    - the transcript itself is served by /transcriptions/{id}/transcript
    """

    id: str = Field(description="Unique job identifier (UUID).")
    status: str = Field(description="Current job status.")
    filename: str = Field(description="Original uploaded filename.")
    size_bytes: int = Field(description="Size of the uploaded audio in bytes.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    config: Dict[str, Any] = Field(description="Transcription configuration used for this job.")
    slot: Optional[str] = Field(
        default=None,
        description="Slot the job was submitted into, if any.",
    )
    progress: Optional[ProgressInfo] = Field(
        default=None,
        description="Latest progress event, absent until the job starts.",
    )
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "id": "550e8400e29b41d4a716446655440000",
                "status": "transcribing",
                "filename": "interview.mp3",
                "size_bytes": 73400320,
                "created_at": 1739959200.0,
                "config": {
                    "chunk_size": "20mb",
                    "chunk_size_bytes": 20971520,
                    "model": "@cf/openai/whisper-large-v3-turbo",
                },
                "slot": "default",
                "progress": {"message": "Transcribed chunk 2 of 4", "percentage": 50},
                "error": None,
            }
        ]
    }}


class JobCreatedResponse(BaseModel):
    """Response returned when a new transcription job is submitted.

    RULES:
    - status is always 'pending' on creation
    - replaced_job_id is set when the job replaced another in its slot
    """

    id: str = Field(description="Unique job identifier (UUID) for polling status.")
    status: str = Field(description="Initial job status (always 'pending').")
    filename: str = Field(description="Original uploaded filename.")
    replaced_job_id: Optional[str] = Field(
        default=None,
        description="ID of the job cancelled because it occupied the same slot.",
    )


class ChunkSizeInfo(BaseModel):
    """Description of a selectable chunk-size preset."""

    key: str = Field(description="Preset identifier used in API requests.")
    size_bytes: int = Field(description="Maximum request size in bytes.")
    default: bool = Field(description="Whether this preset is used when none is given.")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    model: str = Field(description="Default Workers AI model.")


class JobListResponse(BaseModel):
    """All jobs currently held by the server."""

    jobs: List[JobResponse] = Field(description="Jobs ordered oldest first.")
