"""
Issue Repository - Persistence Port

Abstract storage contract for Issue aggregates plus an in-memory
implementation used by tests and the `memory` repository setting.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List

from .errors import ConcurrentModification, IssueAlreadyExists, IssueNotFound
from .models import Issue
from .values import IssueNumber

logger = logging.getLogger(__name__)


class IssueRepository(ABC):
    """
    Stores and retrieves issues by IssueNumber.

    Create vs. update is decided by `issue.revision`: an aggregate that was
    never stored or loaded (revision 0) is a create and fails with
    IssueAlreadyExists if the number is taken. Anything else is an update,
    which fails with IssueNotFound if the identity is gone and with
    ConcurrentModification if someone else stored it first.

    On success the repository bumps `issue.revision`.
    """

    @abstractmethod
    def store(self, issue: Issue) -> None:
        """Persist the aggregate, keyed by issue.number."""

    @abstractmethod
    def load(self, number: IssueNumber) -> Issue:
        """Return the issue with this number or raise IssueNotFound."""

    @abstractmethod
    def load_all(self) -> List[Issue]:
        """Return every stored issue, in no particular order."""

    def exists(self, number: IssueNumber) -> bool:
        try:
            self.load(number)
        except IssueNotFound:
            return False
        return True


class InMemoryIssueRepository(IssueRepository):
    """
    Dict-backed repository.

    Issues are kept as serialized snapshots so every load hands out a fresh
    aggregate, the same way a database-backed repository does.
    """

    def __init__(self):
        self._snapshots: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def store(self, issue: Issue) -> None:
        key = str(issue.number)
        with self._lock:
            current = self._snapshots.get(key)

            if issue.revision == 0:
                if current is not None:
                    raise IssueAlreadyExists(issue.number)
            elif current is None:
                raise IssueNotFound(issue.number)
            elif current["revision"] != issue.revision:
                raise ConcurrentModification(issue.number, issue.revision, current["revision"])

            snapshot = issue.to_dict()
            snapshot["revision"] = issue.revision + 1
            self._snapshots[key] = snapshot
            issue.revision += 1

        logger.debug(f"Stored issue {key} at revision {issue.revision}")

    def load(self, number: IssueNumber) -> Issue:
        with self._lock:
            snapshot = self._snapshots.get(str(number))
        if snapshot is None:
            raise IssueNotFound(number)
        return Issue.from_dict(snapshot)

    def load_all(self) -> List[Issue]:
        with self._lock:
            snapshots = list(self._snapshots.values())
        return [Issue.from_dict(s) for s in snapshots]

    def exists(self, number: IssueNumber) -> bool:
        with self._lock:
            return str(number) in self._snapshots
