"""
Participants module.

Usage:
    from league.features.participants import Participant, ParticipantRepository
"""

from .models import Participant
from .repository import ParticipantRepository

__all__ = [
    "Participant",
    "ParticipantRepository",
]
