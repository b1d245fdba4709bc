"""Configuration constants, chunk-size presets, and .env loading.

WHY: Centralizes every tunable value (endpoint, model, chunk presets,
size limits) so the CLI and the job server agree on them and they can be
changed without touching logic.

HOW: python-dotenv loads the .env file on import. Constants are module-level
values overridable via environment variables. Loader functions turn user
input (preset names, credentials, file sizes) into validated values and
raise ValueError with a clear message when something is wrong.

RULES:
- Credentials come from explicit arguments first, then the environment
- CHUNK_SIZE_PRESETS keys are lowercase; lookups are case-insensitive
- The max input size check belongs to collaborators, never to the core
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os
from typing import Optional

from dotenv import load_dotenv

from workers_transcriber.core.models import Credentials

# Load .env from the project root (where the script is run from)
load_dotenv()

_MIB = 1024 * 1024

# ---------------------------------------------------------------------------
# Workers AI endpoint
# ---------------------------------------------------------------------------

WORKERS_AI_BASE_URL = os.getenv(
    "WORKERS_AI_BASE_URL", "https://api.cloudflare.com/client/v4"
)
WORKERS_AI_MODEL = os.getenv("WORKERS_AI_MODEL", "@cf/openai/whisper-large-v3-turbo")
WORKERS_AI_TIMEOUT_S = float(os.getenv("WORKERS_AI_TIMEOUT_S", "300"))

# ---------------------------------------------------------------------------
# Chunking
# ---------------------------------------------------------------------------

CHUNK_SIZE_PRESETS: dict[str, int] = {
    "1mb": 1 * _MIB,
    "5mb": 5 * _MIB,
    "10mb": 10 * _MIB,
    "20mb": 20 * _MIB,
    "25mb": 25 * _MIB,
}
"""Selectable per-request chunk sizes (bytes). 25 MiB is the endpoint limit."""

DEFAULT_CHUNK_PRESET = os.getenv("DEFAULT_CHUNK_PRESET", "20mb").lower()

MAX_INPUT_SIZE_BYTES = int(float(os.getenv("MAX_INPUT_SIZE_MB", "200")) * _MIB)

SUPPORTED_AUDIO_FORMATS: set[str] = {
    ".aac", ".flac", ".m4a", ".mp3", ".mp4", ".mpeg",
    ".mpga", ".oga", ".ogg", ".opus", ".wav", ".webm",
}
"""Audio file extensions accepted by the collaborators (lowercase, with dot)."""


class InputTooLargeError(ValueError):
    """Raised when an input file exceeds MAX_INPUT_SIZE_BYTES."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            "File is too large ({:.2f} MB). Please upload a file smaller "
            "than {:.0f} MB.".format(size / _MIB, limit / _MIB)
        )


def resolve_chunk_size(value: Optional[str] = None) -> int:
    """Turn a preset name or a byte count into a chunk size in bytes.

    RULES:
    - None resolves DEFAULT_CHUNK_PRESET
    - Preset names are case-insensitive ("10MB" == "10mb")
    - A plain positive integer string is taken as bytes
    - Anything else raises ValueError listing the presets
    """
    key = (value or DEFAULT_CHUNK_PRESET).strip().lower()
    if key in CHUNK_SIZE_PRESETS:
        return CHUNK_SIZE_PRESETS[key]
    if key.isdigit() and int(key) > 0:
        return int(key)
    raise ValueError(
        "Unknown chunk size '{}'. Available presets: {}".format(
            value, ", ".join(CHUNK_SIZE_PRESETS)
        )
    )


def check_input_size(size: int, limit: Optional[int] = None) -> None:
    """Raise InputTooLargeError when size exceeds the configured maximum."""
    limit = MAX_INPUT_SIZE_BYTES if limit is None else limit
    if size > limit:
        raise InputTooLargeError(size, limit)


def load_credentials(
    account_id: Optional[str] = None,
    api_token: Optional[str] = None,
) -> Credentials:
    """Build Credentials from explicit values or the environment.

    WHY: The account ID and API token are needed for every request.
    Reading them from the environment (via .env) keeps them out of
    source code and shell history.

    HOW: Explicit arguments win; otherwise CLOUDFLARE_ACCOUNT_ID and
    CLOUDFLARE_API_TOKEN are read from os.environ.

    RULES:
    - Raises ValueError if either value is missing or empty
    - Never returns a default/placeholder value
    """
    account_id = (account_id or os.getenv("CLOUDFLARE_ACCOUNT_ID", "")).strip()
    api_token = (api_token or os.getenv("CLOUDFLARE_API_TOKEN", "")).strip()
    missing = []
    if not account_id:
        missing.append("CLOUDFLARE_ACCOUNT_ID")
    if not api_token:
        missing.append("CLOUDFLARE_API_TOKEN")
    if missing:
        raise ValueError(
            "Cloudflare credentials not configured. Add {} to the .env file "
            "or pass them explicitly.".format(" and ".join(missing))
        )
    return Credentials(account_id=account_id, api_token=api_token)
