"""Command-line interface for the Workers AI Transcriber.

WHY: Users need a simple way to transcribe audio files from the terminal,
including files larger than a single Workers AI request allows. The CLI
wires together file validation, credential loading, the chunked
orchestrator, and output saving behind a single command.

HOW: Uses argparse to accept an input file, chunk-size preset, model,
credentials, and output options. Runs the async pipeline via
asyncio.run(). Progress goes to stderr; the transcript goes to stdout or
to a file in --output-dir. SIGINT cancels the run's token so the
in-flight request is abandoned cleanly.

RULES:
- Positional argument: input audio file path
- Validates existence, extension, and max size before any API call
- --chunk-size accepts a preset name (1mb, 5mb, ...) or a byte count
- Credentials: --account-id/--api-token override CLOUDFLARE_* env vars
- Output naming: {stem}-transcript.txt, numeric suffix on conflict
- Status output goes to stderr (not stdout)
- Exit codes: 0 success, 1 error, 130 cancelled
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from workers_transcriber.api.client import WorkersAIClient
from workers_transcriber.config import (
    CHUNK_SIZE_PRESETS,
    DEFAULT_CHUNK_PRESET,
    SUPPORTED_AUDIO_FORMATS,
    WORKERS_AI_MODEL,
    check_input_size,
    load_credentials,
    resolve_chunk_size,
)
from workers_transcriber.core.cancellation import CancellationToken
from workers_transcriber.core.models import ProgressEvent
from workers_transcriber.core.orchestrator import TranscriptionOrchestrator
from workers_transcriber.errors import TranscriptionCancelled

logger = logging.getLogger(__name__)

_TRANSCRIPT_SUFFIX = "-transcript.txt"


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so the CLI can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _print_progress(event: ProgressEvent) -> None:
    _status("[{:>3}%] {}".format(event.percentage, event.message))


def _fail(msg: str) -> None:
    print("Error: {}".format(msg), file=sys.stderr)
    sys.exit(1)


def _resolve_output_path(stem: str, output_dir: Path) -> Path:
    """Resolve the transcript path, adding a numeric suffix on conflict.

    RULES:
    - First attempt: {stem}-transcript.txt
    - Conflict: {stem}-transcript-2.txt, -3, ... until a free name is found
    """
    base_path = output_dir / "{}{}".format(stem, _TRANSCRIPT_SUFFIX)
    if not base_path.exists():
        return base_path

    name, ext = _TRANSCRIPT_SUFFIX.rsplit(".", 1)
    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}.{}".format(stem, name, counter, ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _install_sigint_handler(token: CancellationToken) -> bool:
    """Route Ctrl-C to the run's cancellation token.

    Returns False where the event loop does not support signal handlers
    (Windows); KeyboardInterrupt then ends the run instead.
    """
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        return False
    return True


async def _run_pipeline(args: argparse.Namespace) -> None:
    """Execute the full transcription pipeline.

    WHY: This is the async core of the CLI: it validates input, loads
    credentials, and drives the orchestrator.

    HOW: Reads the file into memory, builds a WorkersAIClient and a
    TranscriptionOrchestrator, and awaits transcribe() with a progress
    printer and a SIGINT-backed cancellation token.

    RULES:
    - Validate file, extension, size, chunk size, and credentials first
    - Cancellation exits with code 130 and prints no transcript
    - Any other failure exits with code 1 and a single error line
    """
    input_path = Path(args.input_file).resolve()

    if not input_path.is_file():
        _fail("File not found: {}".format(input_path))

    ext = input_path.suffix.lower()
    if ext not in SUPPORTED_AUDIO_FORMATS:
        _fail(
            "Unsupported file type '{}'. Supported formats: {}".format(
                ext, ", ".join(sorted(SUPPORTED_AUDIO_FORMATS))
            )
        )

    output_dir: Optional[Path] = None
    if args.output_dir:
        output_dir = Path(args.output_dir).resolve()
        if not output_dir.is_dir():
            _fail("Output directory does not exist: {}".format(output_dir))

    try:
        check_input_size(input_path.stat().st_size)
        chunk_size = resolve_chunk_size(args.chunk_size)
        credentials = load_credentials(args.account_id, args.api_token)
    except ValueError as e:
        _fail(str(e))

    audio = input_path.read_bytes()
    _status("Loaded {} ({:,} bytes)".format(input_path.name, len(audio)))

    token = CancellationToken()
    handles_sigint = _install_sigint_handler(token)

    try:
        async with WorkersAIClient() as client:
            orchestrator = TranscriptionOrchestrator(client, args.model)
            transcript = await orchestrator.transcribe(
                audio,
                credentials,
                chunk_size,
                on_progress=_print_progress,
                cancel_token=token,
            )
    except (TranscriptionCancelled, KeyboardInterrupt):
        _status("\nCancelled by user.")
        sys.exit(130)
    except Exception as e:
        logger.debug("Transcription failed", exc_info=True)
        _fail(str(e))
    finally:
        if handles_sigint:
            asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)

    if output_dir is not None:
        path = _resolve_output_path(input_path.stem, output_dir)
        path.write_text(transcript + "\n", encoding="utf-8")
        _status("Saved: {}".format(path))
    else:
        print(transcript)


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    WHY: Separating parser construction from main() makes the CLI
    testable: tests can inspect the parser without running the pipeline.
    """
    parser = argparse.ArgumentParser(
        prog="workers_transcriber",
        description="Transcribe audio files of any size with Cloudflare Workers AI "
                    "by splitting them into chunks that fit a single request.",
    )

    parser.add_argument(
        "input_file",
        help="Path to the audio file to transcribe.",
    )

    parser.add_argument(
        "--chunk-size",
        default=DEFAULT_CHUNK_PRESET,
        help="Maximum bytes per request: a preset ({}) or a byte count "
             "(default: %(default)s).".format(", ".join(CHUNK_SIZE_PRESETS)),
    )

    parser.add_argument(
        "--model",
        default=WORKERS_AI_MODEL,
        help="Workers AI model ID (default: %(default)s).",
    )

    parser.add_argument(
        "--account-id",
        default=None,
        help="Cloudflare account ID (default: CLOUDFLARE_ACCOUNT_ID from .env).",
    )

    parser.add_argument(
        "--api-token",
        default=None,
        help="Cloudflare API token (default: CLOUDFLARE_API_TOKEN from .env).",
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Save the transcript as {stem}-transcript.txt in this directory "
             "instead of printing it.",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging on stderr.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        asyncio.run(_run_pipeline(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)


if __name__ == "__main__":
    main()
