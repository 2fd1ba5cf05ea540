"""
Strava OAuth token storage.
"""

from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, ForeignKey, Text
from sqlalchemy.orm import relationship

from league.models.base import Base


class StravaToken(Base):
    """
    OAuth credentials for one participant.

    access_token/refresh_token hold ciphertext when an encryption key is
    configured (see TokenCipher). Only TokenManager mutates this row.
    """

    __tablename__ = "strava_tokens"

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(
        Integer,
        ForeignKey("participants.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )

    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(Integer, nullable=False)  # Unix timestamp, issued by Strava

    scope = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    participant = relationship("Participant", back_populates="token")

    def expires_within(self, seconds: int, now: float) -> bool:
        """True if the token expires less than `seconds` from `now`."""
        return self.expires_at < now + seconds

    def __repr__(self):
        return f"<StravaToken participant_id={self.participant_id} expires_at={self.expires_at}>"
