# app/schemas/timeslot.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class TimeslotSchema(BaseModel):
    """
    Wire shape of a timeslot.

    `from`/`to` bound the first occurrence; `recur` is an optional RFC 5545
    RRULE, `exdates` lists the exact start instants of excluded occurrences
    and `last` caches the end of the final occurrence (server computed).
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="", description="Timeslot id (generated when empty).")
    from_: datetime = Field(
        ...,
        alias="from",
        description="Start of the (first) occurrence.",
        examples=["2024-01-02T15:00:00Z"],
    )
    to: datetime = Field(
        ...,
        description="End of the (first) occurrence; must be after `from`.",
        examples=["2024-01-02T16:00:00Z"],
    )
    recur: str | None = Field(
        default=None,
        description="Recurrence rule.",
        examples=["RRULE:FREQ=WEEKLY"],
    )
    exdates: list[datetime] = Field(
        default_factory=list,
        description="Start instants of excluded occurrences.",
    )
    last: datetime | None = Field(
        default=None,
        description="End of the final occurrence; null while the rule repeats forever.",
    )


class AvailabilityCheckRequest(BaseModel):
    timeslot: TimeslotSchema


class AvailabilityCheckResponse(BaseModel):
    available: bool = Field(
        ...,
        description="True if every occurrence of the timeslot lies within the availability.",
    )
