# app/models/user.py
from sqlalchemy import JSON, Column, DateTime, String, func

from app.db.base import Base


class UserRecord(Base):
    """
    Minimal user profile: identity plus availability.

    `availability` holds the wire form of each timeslot and is replaced
    wholesale on profile edits.
    """

    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False, default="")
    email = Column(String(255), nullable=False, default="")
    availability = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<UserRecord id={self.id} name={self.name!r} slots={len(self.availability or [])}>"
