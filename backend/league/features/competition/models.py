"""
Competition database models.

Models:
- Season: Groups weeks for season standings
- Segment: Strava segment reference data
- Week: One competition unit (segment, laps, time window)
- Activity: Best qualifying ride per (participant, week)
- SegmentEffort: The fastest required_laps efforts of that ride
- Result: Derived rank/points, rewritten by ScoringEngine
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from league.models.base import Base


class Season(Base):
    """Competition season; standings aggregate over its weeks."""

    __tablename__ = "seasons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    start_at = Column(Integer, nullable=True)  # Unix timestamp
    end_at = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    weeks = relationship(
        "Week",
        back_populates="season",
        cascade="all",
        passive_deletes=True,
        order_by="Week.start_at",
    )

    def __repr__(self):
        return f"<Season id={self.id} name={self.name!r}>"


class Segment(Base):
    """
    Strava segment.

    Primary key is the Strava segment id. Metadata is display-only and
    refreshed from Strava on demand.
    """

    __tablename__ = "segments"

    id = Column(BigInteger, primary_key=True, autoincrement=False)
    name = Column(String(255), nullable=False, default="")

    distance = Column(Float, nullable=True)  # meters
    average_grade = Column(Float, nullable=True)  # percent
    total_elevation_gain = Column(Float, nullable=True)  # meters
    climb_category = Column(Integer, nullable=True)

    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    country = Column(String(255), nullable=True)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Segment id={self.id} name={self.name!r}>"


class Week(Base):
    """
    A competition week.

    An activity qualifies when start_at <= start_date (UTC) < end_at and it
    holds at least required_laps efforts on segment_id.
    """

    __tablename__ = "weeks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    season_id = Column(Integer, ForeignKey("seasons.id", ondelete="CASCADE"), nullable=False, index=True)
    segment_id = Column(BigInteger, ForeignKey("segments.id"), nullable=False)

    name = Column(String(255), nullable=False, default="")
    required_laps = Column(Integer, nullable=False, default=1)
    start_at = Column(Integer, nullable=False)  # Unix timestamp, inclusive
    end_at = Column(Integer, nullable=False)  # Unix timestamp, exclusive
    multiplier = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    season = relationship("Season", back_populates="weeks")
    segment = relationship("Segment")
    activities = relationship(
        "Activity",
        back_populates="week",
        cascade="all",
        passive_deletes=True,
    )
    # Deleted through Activity.result
    results = relationship("Result", viewonly=True)

    def __repr__(self):
        return f"<Week id={self.id} segment_id={self.segment_id} laps={self.required_laps}>"


class Activity(Base):
    """
    Current best qualifying Strava activity for one participant in one week.

    At most one row per (participant, week); a faster activity replaces it.
    """

    __tablename__ = "activities"
    __table_args__ = (
        UniqueConstraint("participant_id", "week_id", name="uq_activity_participant_week"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    participant_id = Column(Integer, ForeignKey("participants.id"), nullable=False, index=True)
    week_id = Column(Integer, ForeignKey("weeks.id", ondelete="CASCADE"), nullable=False, index=True)

    strava_activity_id = Column(BigInteger, nullable=False, index=True)
    start_at = Column(Integer, nullable=True)  # Unix timestamp of start_date (UTC)
    total_time_seconds = Column(Integer, nullable=False)
    device_name = Column(String(255), nullable=True)
    athlete_name = Column(String(255), nullable=True)
    validation_status = Column(String(20), nullable=False, default="valid")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    participant = relationship("Participant", back_populates="activities")
    week = relationship("Week", back_populates="activities")
    efforts = relationship(
        "SegmentEffort",
        back_populates="activity",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
        order_by="SegmentEffort.effort_index",
    )
    result = relationship(
        "Result",
        back_populates="activity",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    @property
    def pr_achieved(self) -> bool:
        return any(effort.pr_achieved for effort in self.efforts)

    def __repr__(self):
        return (
            f"<Activity participant_id={self.participant_id} week_id={self.week_id} "
            f"strava_id={self.strava_activity_id} time={self.total_time_seconds}>"
        )


class SegmentEffort(Base):
    """One counted completion of the week's segment within an Activity."""

    __tablename__ = "segment_efforts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    activity_id = Column(Integer, ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True)
    segment_id = Column(BigInteger, nullable=False)

    strava_effort_id = Column(String(32), nullable=True)
    effort_index = Column(Integer, nullable=False, default=0)  # ride order within the activity
    elapsed_seconds = Column(Integer, nullable=False)
    start_at = Column(Integer, nullable=True)
    pr_rank = Column(Integer, nullable=True)
    pr_achieved = Column(Boolean, nullable=False, default=False)

    activity = relationship("Activity", back_populates="efforts")

    def __repr__(self):
        return f"<SegmentEffort activity_id={self.activity_id} elapsed={self.elapsed_seconds}>"


class Result(Base):
    """
    Derived standing of a participant in a week.

    Written with total time when an Activity is stored; rank and points
    are rewritten for the whole week by ScoringEngine.refresh_week.
    """

    __tablename__ = "results"
    __table_args__ = (
        UniqueConstraint("week_id", "participant_id", name="uq_result_week_participant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    week_id = Column(Integer, ForeignKey("weeks.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("participants.id"), nullable=False, index=True)
    activity_id = Column(Integer, ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, unique=True)

    total_time_seconds = Column(Integer, nullable=False)
    rank = Column(Integer, nullable=True)
    points = Column(Integer, nullable=True)
    pr_bonus = Column(Boolean, nullable=False, default=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    week = relationship("Week", viewonly=True)
    activity = relationship("Activity", back_populates="result")

    def __repr__(self):
        return f"<Result week_id={self.week_id} participant_id={self.participant_id} rank={self.rank}>"
