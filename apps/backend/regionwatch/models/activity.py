"""
activity.py — Models for delta-encoded movement trails.

The activity service returns a sparse log of relative offsets
(`dx` in longitude units, `dy` in latitude units) ordered by source
timestamp. The caller chooses a TimeWindow expressed as fractions of the
subject's full recorded history; the service maps it to timestamps.
"""

from typing import Literal

from pydantic import BaseModel, Field, model_validator


class ActivityDelta(BaseModel):
    dx: float
    dy: float


class TimeWindow(BaseModel):
    """A [min, max] slice of the recorded history, both ends in [0, 1]."""

    min: float = Field(default=0.0, ge=0.0, le=1.0)
    max: float = Field(default=1.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _ordered(self) -> "TimeWindow":
        if self.min > self.max:
            raise ValueError("min must not exceed max")
        return self

    def drag(self, name: Literal["min", "max"], value: float) -> "TimeWindow":
        """
        Move one slider handle, pushing the other along when they cross.

        Mirrors the paired range inputs in the eliminated-users panel:
        dragging min past max drags max with it, and vice versa.
        """
        value = min(max(value, 0.0), 1.0)
        if name == "min":
            return TimeWindow(min=value, max=max(self.max, value))
        return TimeWindow(min=min(self.min, value), max=value)
