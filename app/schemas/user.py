# app/schemas/user.py
from __future__ import annotations

from pydantic import BaseModel, Field

from app.schemas.timeslot import TimeslotSchema


class UserAvailabilityUpdate(BaseModel):
    """
    Body of PUT /users/{id}/availability. Replaces the stored availability.
    """

    name: str = ""
    email: str = ""
    availability: list[TimeslotSchema] = Field(default_factory=list)


class UserAvailabilityRead(BaseModel):
    id: str
    name: str
    email: str
    availability: list[TimeslotSchema]
    url_param: str = Field(
        ...,
        description="The availability as a URL query parameter value.",
    )
