# app/schemas/meeting.py
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.domain.meeting import MeetingAction, MeetingStatus, utcnow
from app.schemas.timeslot import TimeslotSchema


class PersonSchema(BaseModel):
    id: str
    name: str = ""
    email: str = ""
    roles: list[str] = Field(default_factory=list)


class MatchSchema(BaseModel):
    """
    The pairing a meeting belongs to.
    """

    id: str = ""
    org: str = Field(default="default", examples=["default"])
    subjects: list[str] = Field(default_factory=list, examples=[["Algebra"]])
    people: list[PersonSchema] = Field(default_factory=list)
    creator: PersonSchema = Field(default_factory=lambda: PersonSchema(id=""))
    message: str = ""
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)


class VenueSchema(BaseModel):
    id: str = ""
    url: str = Field(default="", examples=["https://meet.jit.si/tutorbook-1234"])
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)


class MeetingSchema(BaseModel):
    """
    Wire shape of a meeting (create payload, edit payload and response).

    A meeting whose `time` has `recur` set is a series; `parentId` is set
    only on non-recurring overrides detached from such a series.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="", description="Meeting id (generated when empty).")
    status: MeetingStatus = MeetingStatus.PENDING
    creator: PersonSchema
    match: MatchSchema
    venue: VenueSchema = Field(default_factory=VenueSchema)
    time: TimeslotSchema
    notes: str = ""
    parent_id: str | None = Field(default=None, alias="parentId")
    created: datetime = Field(default_factory=utcnow)
    updated: datetime = Field(default_factory=utcnow)
    version: int = Field(
        default=0,
        description="Stored document version (server managed).",
    )


class MeetingUpdateRequest(BaseModel):
    """
    Body of PUT /meetings/{id}.
    """

    updating: MeetingSchema = Field(
        ...,
        description="The edited occurrence with its new values.",
    )
    original_start: datetime = Field(
        ...,
        description="Start of the occurrence as the series currently generates it.",
        examples=["2024-01-16T15:00:00Z"],
    )
    action: MeetingAction = Field(
        default=MeetingAction.FUTURE,
        description="Which occurrences the edit applies to: this, future or all.",
    )


class MeetingDeleteRequest(BaseModel):
    """
    Body of DELETE /meetings/{id}; both fields are optional.
    """

    deleting: MeetingSchema | None = Field(
        default=None,
        description=(
            "The occurrence being deleted (its `time.from` picks the occurrence). "
            "Defaults to the stored meeting's first occurrence."
        ),
    )
    action: MeetingAction = Field(
        default=MeetingAction.FUTURE,
        description="Which occurrences to delete: this, future or all.",
    )


class PlanResultSchema(BaseModel):
    """
    Summary of an executed edit/delete plan.
    """

    action: MeetingAction = Field(..., description="The action actually applied.")
    requested_action: MeetingAction
    created: list[MeetingSchema] = Field(default_factory=list)
    updated: list[MeetingSchema] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    search_synced: bool = False
    notified: int = 0
