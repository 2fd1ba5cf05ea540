"""
Participant model.

A club member, keyed by their Strava athlete id.
"""

from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, BigInteger
from sqlalchemy.orm import relationship

from league.models.base import Base


class Participant(Base):
    """
    Club member taking part in the competition.

    Owns zero-or-one StravaToken. Activities and results survive token
    deletion (deauthorization) so past standings stay intact.
    """

    __tablename__ = "participants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    strava_athlete_id = Column(BigInteger, unique=True, nullable=False, index=True)

    # Display name snapshot from the Strava athlete block
    name = Column(String(255), nullable=False, default="")
    profile_image_url = Column(String(512), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    token = relationship(
        "StravaToken",
        back_populates="participant",
        uselist=False,
        cascade="all",
        passive_deletes=True,
    )
    activities = relationship("Activity", back_populates="participant")

    def __repr__(self):
        return f"<Participant id={self.id} athlete_id={self.strava_athlete_id}>"
