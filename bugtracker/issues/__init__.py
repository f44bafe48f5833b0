"""
Issue Tracking Core

Provides the Issue aggregate with its lifecycle state machine, issue links,
and the repositories that persist it.
"""

from .errors import (
    IssueError,
    InvalidArgument,
    InvalidTransition,
    IssueAlreadyExists,
    IssueNotFound,
    ConcurrentModification,
)
from .values import IssueNumber, ProductVersion, ParticipantID
from .models import (
    Issue,
    IssueAction,
    IssueStatus,
    Resolution,
    RelatedIssue,
    RelationshipType,
    ReciprocalLinkGuard,
    TRANSITIONS,
)
from .repository import IssueRepository, InMemoryIssueRepository
from .store import SQLiteIssueRepository
from .manager import IssueManager, build_repository

__all__ = [
    "IssueError",
    "InvalidArgument",
    "InvalidTransition",
    "IssueAlreadyExists",
    "IssueNotFound",
    "ConcurrentModification",
    "IssueNumber",
    "ProductVersion",
    "ParticipantID",
    "Issue",
    "IssueAction",
    "IssueStatus",
    "Resolution",
    "RelatedIssue",
    "RelationshipType",
    "ReciprocalLinkGuard",
    "TRANSITIONS",
    "IssueRepository",
    "InMemoryIssueRepository",
    "SQLiteIssueRepository",
    "IssueManager",
    "build_repository",
]
