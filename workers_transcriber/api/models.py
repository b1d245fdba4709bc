"""Workers AI response dataclasses.

WHY: The Workers AI REST API wraps every result in the same JSON envelope
({success, result, errors, messages}). Typed dataclasses make the fields
the transcriber relies on explicit and keep parsing in one place.

HOW: WhisperResult and WorkersAIResponse map the envelope and are built
with from_dict factories that never raise on a JSON object: fields of the
wrong type are treated as absent.

RULES:
- result is None when the envelope has no result object
- text is None unless the result carries a string text field
- errors and messages are lists; anything else becomes []
- Extra fields (word_count, words, vtt, ...) are ignored
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


@dataclass
class WhisperResult:
    """The ``result`` object of a Whisper inference response.

    RULES:
    - text may be None or empty; the client treats both as no result
    """

    text: Optional[str]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WhisperResult:
        text = data.get("text")
        return cls(text=text if isinstance(text, str) else None)


@dataclass
class WorkersAIResponse:
    """The JSON envelope returned by POST /accounts/{id}/ai/run/{model}.

    WHY: Both HTTP-level failures and success=false bodies carry details
    in ``errors``; a typed envelope lets the client check success and
    result in one place.

    RULES:
    - success is True only for a literal JSON true
    - errors and messages default to empty lists
    """

    success: bool
    result: Optional[WhisperResult] = None
    errors: List[Any] = field(default_factory=list)
    messages: List[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WorkersAIResponse:
        result = data.get("result")
        return cls(
            success=data.get("success") is True,
            result=WhisperResult.from_dict(result) if isinstance(result, dict) else None,
            errors=_as_list(data.get("errors")),
            messages=_as_list(data.get("messages")),
        )

    @property
    def text(self) -> Optional[str]:
        return self.result.text if self.result is not None else None
