"""Workers AI Transcriber: chunked speech-to-text over Cloudflare Workers AI.

WHY: The Workers AI Whisper endpoint caps the size of a single request, so
long recordings cannot be sent in one go. This package splits audio into
byte-range chunks, transcribes them one after another, and stitches the
results into a single transcript, reporting progress and honoring
cancellation along the way.

HOW: Three layers: plan (core.planner), orchestrate (core.orchestrator),
transport (api.client). The CLI and the HTTP job server are thin
collaborators that feed bytes and credentials in and consume progress
events and the final transcript.

RULES:
- The core never reads files or the environment; collaborators do
- One request per chunk, strictly sequential, no retries
- A run yields exactly one outcome: completed, cancelled, or failed
"""

__version__ = "0.1.0"
