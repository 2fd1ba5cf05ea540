"""
Batch fetch module.

Usage:
    from league.features.batch import BatchFetchOrchestrator

Components:
- BatchFetchOrchestrator: Per-week sweep over connected participants
- BackoffPolicy: Bounded exponential backoff for 429s
- BatchSummary / ParticipantOutcome: Sweep report
"""

from .fetch import (
    BatchFetchOrchestrator,
    BackoffPolicy,
    BatchSummary,
    ParticipantOutcome,
    FetchStatus,
)

__all__ = [
    "BatchFetchOrchestrator",
    "BackoffPolicy",
    "BatchSummary",
    "ParticipantOutcome",
    "FetchStatus",
]
