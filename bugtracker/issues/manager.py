"""
Issue Manager - Business Logic

Application service on top of the Issue aggregate and an IssueRepository:
reports issues, applies lifecycle changes with retry on concurrent updates,
and keeps issue links reciprocal.
"""

import logging
from collections import Counter
from datetime import datetime
from typing import List, Optional, Dict, Any, Callable

from bugtracker.config import DEFAULT_MAX_STORE_RETRIES, Settings
from bugtracker.utils.time import utcnow
from .errors import ConcurrentModification
from .models import Issue, IssueStatus, Resolution, ReciprocalLinkGuard
from .repository import IssueRepository, InMemoryIssueRepository
from .store import SQLiteIssueRepository
from .values import IssueNumber, ParticipantID, ProductVersion

logger = logging.getLogger(__name__)


def build_repository(settings: Settings) -> IssueRepository:
    """Create the repository selected by settings.repository."""
    if settings.repository == "memory":
        return InMemoryIssueRepository()
    return SQLiteIssueRepository(settings.db_path)


class IssueManager:
    """
    Manages issue lifecycle on behalf of callers.

    Responsibilities:
    - Report new issues
    - Load, mutate and store issues, retrying on concurrent modification
    - Record links on both issues (blocks / is blocked by, ...)
    - Provide issue statistics for dashboards

    Example:
        manager = IssueManager(InMemoryIssueRepository())

        issue = manager.report_issue(IssueNumber("BUG-1"), "Crash on save",
                                     ProductVersion("1.0"))
        manager.assign(issue.number, ParticipantID("alice"))
        manager.mark_fixed(issue.number, ProductVersion("1.1"))
    """

    def __init__(
        self,
        repository: Optional[IssueRepository] = None,
        max_retries: int = DEFAULT_MAX_STORE_RETRIES,
        reciprocal_link_guard: ReciprocalLinkGuard = ReciprocalLinkGuard.ASSIGNEE,
    ):
        """
        Initialize the issue manager.

        Args:
            repository: IssueRepository instance (SQLite at the default path if None)
            max_retries: Reload-and-reapply attempts after ConcurrentModification
            reciprocal_link_guard: Precondition for links recorded on the target issue
        """
        self.repository = repository or SQLiteIssueRepository()
        self.max_retries = max_retries
        self.reciprocal_link_guard = reciprocal_link_guard
        logger.info("IssueManager initialized")

    @classmethod
    def from_settings(cls, settings: Settings) -> "IssueManager":
        """Build a manager from loaded Settings."""
        return cls(
            build_repository(settings),
            max_retries=settings.max_store_retries,
            reciprocal_link_guard=ReciprocalLinkGuard(settings.reciprocal_link_guard),
        )

    def report_issue(
        self,
        number: IssueNumber,
        title: str,
        occurred_in: ProductVersion,
        created_at: Optional[datetime] = None,
        description: Optional[str] = None,
    ) -> Issue:
        """
        Create and store a new issue.

        Args:
            number: Identity of the new issue
            title: Human-readable title
            occurred_in: Version the bug was observed in
            created_at: Creation time (now if None)
            description: Optional detailed description

        Returns:
            Created Issue

        Raises:
            IssueAlreadyExists: number is already taken
        """
        issue = Issue(number, title, occurred_in, created_at or utcnow())
        if description is not None:
            issue.update_description(description)

        self.repository.store(issue)
        logger.info(f"Reported issue {number}: {title} (occurred in {occurred_in})")

        return issue

    def get_issue(self, number: IssueNumber) -> Issue:
        """Get a single issue by number (raises IssueNotFound)."""
        return self.repository.load(number)

    def list_issues(
        self,
        status: Optional[IssueStatus] = None,
        assignee: Optional[ParticipantID] = None,
    ) -> List[Issue]:
        """List issues with optional filters, most recent first."""
        issues = self.repository.load_all()

        if status:
            issues = [i for i in issues if i.status == status]
        if assignee:
            issues = [i for i in issues if i.assignee == assignee]

        return sorted(issues, key=lambda i: i.created_at, reverse=True)

    def update(self, number: IssueNumber, mutation: Callable[[Issue], None]) -> Issue:
        """
        Load an issue, apply `mutation` and store it.

        On ConcurrentModification the issue is reloaded and the mutation
        reapplied, up to max_retries times. Domain errors raised by the
        mutation propagate unchanged.

        Returns:
            The stored Issue
        """
        attempt = 0
        while True:
            issue = self.repository.load(number)
            mutation(issue)
            try:
                self.repository.store(issue)
                return issue
            except ConcurrentModification:
                attempt += 1
                if attempt > self.max_retries:
                    logger.error(f"Giving up on issue {number} after {attempt} concurrent updates")
                    raise
                logger.warning(f"Issue {number} changed concurrently, retrying ({attempt}/{self.max_retries})")

    def assign(self, number: IssueNumber, assignee: ParticipantID) -> Issue:
        issue = self.update(number, lambda i: i.assign_to(assignee))
        logger.info(f"Assigned issue {number} to {assignee}")
        return issue

    def mark_fixed(self, number: IssueNumber, version: ProductVersion) -> Issue:
        issue = self.update(number, lambda i: i.fixed_in(version))
        logger.info(f"Issue {number} fixed in {version}")
        return issue

    def mark_wont_fix(self, number: IssueNumber, reason: str) -> Issue:
        issue = self.update(number, lambda i: i.wont_fix(reason))
        logger.info(f"Issue {number} resolved as won't fix: {reason}")
        return issue

    def mark_cannot_reproduce(self, number: IssueNumber) -> Issue:
        issue = self.update(number, lambda i: i.cannot_reproduce())
        logger.info(f"Issue {number} resolved as cannot reproduce")
        return issue

    def close(self, number: IssueNumber) -> Issue:
        issue = self.update(number, lambda i: i.close())
        logger.info(f"Closed issue {number}")
        return issue

    def reopen(self, number: IssueNumber, version: ProductVersion) -> Issue:
        issue = self.update(number, lambda i: i.reopen(version))
        logger.info(f"Reopened issue {number} (occurred in {version})")
        return issue

    def rename(self, number: IssueNumber, title: str) -> Issue:
        return self.update(number, lambda i: i.rename_to(title))

    def describe(self, number: IssueNumber, description: Optional[str]) -> Issue:
        return self.update(number, lambda i: i.update_description(description))

    def mark_duplicate(self, number: IssueNumber, original: IssueNumber) -> Issue:
        """Resolve `number` as duplicate of `original` and link both ways."""
        return self._link_both(
            number, original,
            lambda i: i.duplicate_of(original),
            lambda o: o.is_duplicated_by(number, self.reciprocal_link_guard),
        )

    def mark_blocks(self, blocker: IssueNumber, blocked: IssueNumber) -> Issue:
        """Record that `blocker` blocks `blocked`, on both issues."""
        return self._link_both(
            blocker, blocked,
            lambda i: i.blocks(blocked),
            lambda o: o.is_blocked_by(blocker, self.reciprocal_link_guard),
        )

    def mark_refers(self, referee: IssueNumber, target: IssueNumber) -> Issue:
        """Record that `referee` refers to `target`, on both issues."""
        return self._link_both(
            referee, target,
            lambda i: i.refer_to(target),
            lambda o: o.is_referred_by(referee, self.reciprocal_link_guard),
        )

    def _link_both(
        self,
        source: IssueNumber,
        target: IssueNumber,
        forward: Callable[[Issue], None],
        reciprocal: Callable[[Issue], None],
    ) -> Issue:
        # Run both mutations on scratch copies first so a rejected
        # precondition on either side stores nothing.
        forward(self.repository.load(source))
        reciprocal(self.repository.load(target))

        issue = self.update(source, forward)
        self.update(target, reciprocal)
        logger.info(f"Linked issue {source} -> {target}")
        return issue

    def get_dashboard_data(self) -> Dict[str, Any]:
        """
        Get data for an issue dashboard.

        Returns:
            Dashboard data dict with:
            - stats: Counts overall, by status and by resolution
            - unassigned: Open issues nobody works on
            - recent: The ten most recently created issues
        """
        issues = self.list_issues()

        by_status = Counter(i.status.value for i in issues)
        by_resolution = Counter(i.resolution.value for i in issues if i.resolution)
        unassigned = [i for i in issues if i.status == IssueStatus.OPEN]

        return {
            "stats": {
                "total": len(issues),
                "by_status": dict(by_status),
                "by_resolution": dict(by_resolution),
                "fixed": by_resolution.get(Resolution.FIXED.value, 0),
            },
            "unassigned": [i.to_dict() for i in unassigned],
            "recent": [i.to_dict() for i in issues[:10]],
        }
