"""
diagnostics.py — Structured, inspectable warning stream.

Malformed upstream data (unknown boundary shapes, undrawable rings,
non-numeric activity deltas, undecodable push payloads) never raises.
Instead each occurrence is recorded here as a Diagnostic with a stable
`code` and a `context` dict, and mirrored to the standard logger.

Tests assert on `sink.by_code("geometry.unsupported_shape")` rather than
parsing log text.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class Diagnostic(BaseModel):
    """One non-fatal warning about data the subsystem had to discard."""

    code: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))


class DiagnosticSink:
    """
    Bounded buffer of Diagnostic records.

    The oldest entries are evicted once `max_records` is reached so a
    long-running session with a persistently broken region cannot grow
    memory without bound.
    """

    def __init__(self, max_records: int = 500) -> None:
        self._records: deque[Diagnostic] = deque(maxlen=max_records)

    def warn(self, code: str, message: str, **context: Any) -> Diagnostic:
        diagnostic = Diagnostic(code=code, message=message, context=context)
        self._records.append(diagnostic)
        logger.warning("%s: %s %s", code, message, context)
        return diagnostic

    @property
    def records(self) -> list[Diagnostic]:
        return list(self._records)

    def by_code(self, code: str) -> list[Diagnostic]:
        return [d for d in self._records if d.code == code]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)
