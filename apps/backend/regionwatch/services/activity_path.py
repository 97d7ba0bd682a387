"""
activity_path.py — Rebuild an absolute movement trail from relative deltas.

    path = [anchor]
    for each {dx, dy} in source-timestamp order:
        lat += dy
        lon += dx
        path.append((lat, lon))

Every time-window change triggers a fresh fetch; nothing is cached across
windows. Requests are tagged with a monotonically increasing sequence
number per subject, and only the newest request's response is ever
rendered, whatever order the responses arrive in.

request() returns a PathOutcome:
  stale=False, path=None   no movement data (empty/absent log, 404 "No data
                           found") or a failed fetch (`error` set)
  stale=False, path=[..]   the path; [anchor] alone if every delta was unusable
  stale=True               superseded by a newer request for the same subject;
                           carries whatever the newest request rendered so far

reconstruct() is the plain form: the path, or None for anything else.
Errors are kept per subject, like the rendered paths.
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol

from pydantic import ValidationError

from regionwatch.clients.base import ServiceError
from regionwatch.core.diagnostics import DiagnosticSink
from regionwatch.models.activity import ActivityDelta, TimeWindow
from regionwatch.models.region import GeoLocation

logger = logging.getLogger(__name__)

PathListener = Callable[[str, Optional[list[GeoLocation]]], None]


class DeltaSource(Protocol):
    async def fetch_deltas(self, subject_id: str, window: TimeWindow) -> Optional[list[Any]]: ...


@dataclass
class PathOutcome:
    sequence: int
    path: Optional[list[GeoLocation]] = None
    error: Optional[str] = None
    stale: bool = False


class ActivityPathReconstructor:
    def __init__(
        self,
        source: DeltaSource,
        *,
        diagnostics: Optional[DiagnosticSink] = None,
        on_path: Optional[PathListener] = None,
    ) -> None:
        self._source = source
        self._diagnostics = diagnostics or DiagnosticSink()
        self.on_path = on_path

        self._sequence = itertools.count(1)
        self._latest: dict[str, int] = {}
        self._paths: dict[str, Optional[list[GeoLocation]]] = {}
        self._errors: dict[str, str] = {}

    def current_path(self, subject_id: str) -> Optional[list[GeoLocation]]:
        """The path last rendered for `subject_id` (latest request only)."""
        return self._paths.get(subject_id)

    def error_for(self, subject_id: str) -> Optional[str]:
        """The failure message of the latest request for `subject_id`, if it failed."""
        return self._errors.get(subject_id)

    def clear(self, subject_id: str) -> None:
        # Bumping the sequence also orphans any request still in flight.
        self._latest[subject_id] = next(self._sequence)
        self._paths.pop(subject_id, None)
        self._errors.pop(subject_id, None)

    async def reconstruct(
        self,
        subject_id: str,
        anchor: Optional[GeoLocation],
        window: TimeWindow,
    ) -> Optional[list[GeoLocation]]:
        outcome = await self.request(subject_id, anchor, window)
        return None if outcome.stale else outcome.path

    async def request(
        self,
        subject_id: str,
        anchor: Optional[GeoLocation],
        window: TimeWindow,
    ) -> PathOutcome:
        if not subject_id or anchor is None:
            logger.error("Selected subject has no id or anchor position to plot a path from")
            return PathOutcome(sequence=0)

        seq = next(self._sequence)
        self._latest[subject_id] = seq

        try:
            records = await self._source.fetch_deltas(subject_id, window)
        except ServiceError as exc:
            if self._latest.get(subject_id) != seq:
                return self._superseded(subject_id, seq)
            self._errors[subject_id] = exc.message
            return PathOutcome(sequence=seq, error=exc.message)

        if self._latest.get(subject_id) != seq:
            return self._superseded(subject_id, seq)

        path = self._fold(subject_id, anchor, records)
        self._errors.pop(subject_id, None)
        self._paths[subject_id] = path
        if self.on_path is not None:
            self.on_path(subject_id, path)
        return PathOutcome(sequence=seq, path=path)

    def _superseded(self, subject_id: str, seq: int) -> PathOutcome:
        logger.debug("Discarding stale activity response #%d for %s", seq, subject_id)
        return PathOutcome(
            sequence=seq,
            path=self._paths.get(subject_id),
            error=self._errors.get(subject_id),
            stale=True,
        )

    def _fold(
        self,
        subject_id: str,
        anchor: GeoLocation,
        records: Optional[list[Any]],
    ) -> Optional[list[GeoLocation]]:
        if not records:
            return None

        latitude, longitude = anchor.latitude, anchor.longitude
        path = [GeoLocation(latitude=latitude, longitude=longitude)]
        for record in records:
            try:
                # strict: numeric strings and booleans are not deltas
                delta = ActivityDelta.model_validate(record, strict=True)
            except ValidationError:
                self._diagnostics.warn(
                    "activity.malformed_delta",
                    "skipped delta without numeric dx/dy",
                    subject=subject_id,
                    record=record,
                )
                continue
            longitude += delta.dx
            latitude += delta.dy
            path.append(GeoLocation(latitude=latitude, longitude=longitude))
        return path
