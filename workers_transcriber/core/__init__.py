"""Chunk planning, orchestration, and cancellation: the transcription core.

WHY: The core package holds the rules that make chunked transcription
correct: how input is split, in what order chunks are sent, how progress
is reported, and where cancellation is observed. They must behave the
same for every collaborator (CLI, job server, tests).

HOW: models.py defines the value types, planner.py computes byte ranges,
cancellation.py provides the one-shot token, orchestrator.py drives a
RemoteTranscriber through the plan.

RULES:
- No file, environment, or network access here; the transport is injected
- Value types are the contract between layers; change with care
"""
