"""
Issue Data Models

Defines the Issue aggregate, its lifecycle state machine and the
relationship links between issues.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any, Set, FrozenSet, Tuple

from bugtracker.utils.time import ensure_aware
from .errors import InvalidArgument, InvalidTransition
from .values import IssueNumber, ParticipantID, ProductVersion

logger = logging.getLogger(__name__)


class IssueAction(Enum):
    """Lifecycle actions that move an issue between statuses."""
    ASSIGN = "assign"
    RESOLVE = "resolve"
    CLOSE = "close"
    REOPEN = "reopen"


class IssueStatus(Enum):
    """Issue lifecycle status."""
    OPEN = "open"
    ASSIGNED = "assigned"
    RESOLVED = "resolved"
    CLOSED = "closed"

    def apply(self, action: IssueAction) -> "IssueStatus":
        """Return the status reached by `action`, or raise InvalidTransition."""
        try:
            return TRANSITIONS[(self, action)]
        except KeyError:
            raise InvalidTransition(action, self) from None


# (current status, action) -> resulting status. Missing pairs are rejected.
TRANSITIONS: Dict[Tuple[IssueStatus, IssueAction], IssueStatus] = {
    (IssueStatus.OPEN, IssueAction.ASSIGN): IssueStatus.ASSIGNED,
    (IssueStatus.OPEN, IssueAction.RESOLVE): IssueStatus.RESOLVED,
    (IssueStatus.ASSIGNED, IssueAction.ASSIGN): IssueStatus.ASSIGNED,
    (IssueStatus.ASSIGNED, IssueAction.RESOLVE): IssueStatus.RESOLVED,
    (IssueStatus.RESOLVED, IssueAction.RESOLVE): IssueStatus.RESOLVED,
    (IssueStatus.RESOLVED, IssueAction.CLOSE): IssueStatus.CLOSED,
    (IssueStatus.RESOLVED, IssueAction.REOPEN): IssueStatus.OPEN,
    (IssueStatus.CLOSED, IssueAction.REOPEN): IssueStatus.OPEN,
}


class Resolution(Enum):
    """Why a resolved issue was resolved."""
    FIXED = "fixed"
    DUPLICATE = "duplicate"
    WONT_FIX = "wont_fix"
    CANNOT_REPRODUCE = "cannot_reproduce"


class RelationshipType(Enum):
    """Directed link kinds between two issues."""
    DUPLICATES = "duplicates"
    IS_DUPLICATED_BY = "is_duplicated_by"
    BLOCKS = "blocks"
    IS_BLOCKED_BY = "is_blocked_by"
    REFERS_TO = "refers_to"
    IS_REFERRED_BY = "is_referred_by"


class ReciprocalLinkGuard(Enum):
    """
    Precondition checked by the reciprocal link operations.

    ASSIGNEE is the historical behaviour: the issue receiving the reciprocal
    link must have an assignee. ARGUMENT checks the linking issue number
    instead.
    """
    ASSIGNEE = "assignee"
    ARGUMENT = "argument"


@dataclass(frozen=True)
class RelatedIssue:
    """
    A typed link from the owning issue to `target`.

    `target` is None only for a reciprocal link accepted under the ASSIGNEE
    guard without a source number.
    """
    target: Optional[IssueNumber]
    relationship_type: RelationshipType

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": str(self.target) if self.target is not None else None,
            "type": self.relationship_type.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RelatedIssue":
        return cls(
            target=IssueNumber(data["target"]) if data.get("target") is not None else None,
            relationship_type=RelationshipType(data["type"]),
        )


def _require(value, message: str) -> None:
    if value is None:
        raise InvalidArgument(message)


class Issue:
    """
    Aggregate root for a reported defect.

    The status only changes through the lifecycle operations below, each of
    which consults TRANSITIONS before touching any field, so a rejected call
    leaves the issue exactly as it was.

    Attributes (read-only properties):
        number: Unique identity, never reassigned
        title: Short summary (see rename_to)
        description: Optional long text (see update_description)
        status: Current IssueStatus
        resolution: Set on resolve, kept through close, cleared on reopen
        created_at: Creation timestamp (UTC)
        occurred_in: Product version the bug was observed in
        fix_version: Version the fix shipped in (FIXED path only)
        assignee: Participant working on the issue
        related_issues: Links to other issues
        wont_fix_reason: Explanation given to wont_fix

    `revision` is bookkeeping for repositories: 0 means the aggregate has
    never been stored or loaded.

    Example:
        issue = Issue(IssueNumber("BUG-1"), "Crash on save",
                      ProductVersion("1.0"), created_at)
        issue.assign_to(ParticipantID("alice"))
        issue.fixed_in(ProductVersion("1.1"))
        issue.close()
    """

    def __init__(
        self,
        number: IssueNumber,
        title: str,
        occurred_in: ProductVersion,
        created_at: datetime,
    ):
        _require(number, "Issue number cannot be null!")
        _require(occurred_in, "Product version cannot be null!")
        _require(created_at, "Creation date cannot be null!")

        self._number = number
        self._title = title
        self._description: Optional[str] = None
        self._status = IssueStatus.OPEN
        self._resolution: Optional[Resolution] = None
        self._created_at = ensure_aware(created_at)
        self._occurred_in = occurred_in
        self._fix_version: Optional[ProductVersion] = None
        self._assignee: Optional[ParticipantID] = None
        self._wont_fix_reason: Optional[str] = None
        self._related_issues: Set[RelatedIssue] = set()
        self.revision = 0

    # -- queries ---------------------------------------------------------

    @property
    def number(self) -> IssueNumber:
        return self._number

    @property
    def title(self) -> str:
        return self._title

    @property
    def description(self) -> Optional[str]:
        return self._description

    @property
    def status(self) -> IssueStatus:
        return self._status

    @property
    def resolution(self) -> Optional[Resolution]:
        return self._resolution

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def occurred_in(self) -> ProductVersion:
        return self._occurred_in

    @property
    def fix_version(self) -> Optional[ProductVersion]:
        return self._fix_version

    @property
    def assignee(self) -> Optional[ParticipantID]:
        return self._assignee

    @property
    def wont_fix_reason(self) -> Optional[str]:
        return self._wont_fix_reason

    @property
    def related_issues(self) -> FrozenSet[RelatedIssue]:
        return frozenset(self._related_issues)

    def is_duplicate_of(self, number: IssueNumber) -> bool:
        return self.has_relationship_to(number, RelationshipType.DUPLICATES)

    def has_relationship_to(self, number: IssueNumber, relationship_type: RelationshipType) -> bool:
        return RelatedIssue(number, relationship_type) in self._related_issues

    # -- attributes ------------------------------------------------------

    def rename_to(self, new_title: str) -> None:
        self._title = new_title

    def update_description(self, new_description: Optional[str]) -> None:
        self._description = new_description

    # -- lifecycle -------------------------------------------------------

    def _transition(self, action: IssueAction) -> IssueStatus:
        new_status = self._status.apply(action)
        logger.debug(f"Issue {self._number}: {action.value} {self._status.name} -> {new_status.name}")
        return new_status

    def assign_to(self, assignee: ParticipantID) -> None:
        _require(assignee, "Assignee cannot be null!")

        self._status = self._transition(IssueAction.ASSIGN)
        self._assignee = assignee

    def _resolve_as(self, resolution: Resolution) -> None:
        self._status = self._transition(IssueAction.RESOLVE)
        self._resolution = resolution
        self._wont_fix_reason = None

    def fixed_in(self, version: ProductVersion) -> None:
        _require(version, "Product version cannot be null!")

        self._resolve_as(Resolution.FIXED)
        self._fix_version = version

    def duplicate_of(self, duplicate: IssueNumber) -> None:
        _require(duplicate, "Issue number cannot be null!")

        self._resolve_as(Resolution.DUPLICATE)
        self._link(duplicate, RelationshipType.DUPLICATES)

    def wont_fix(self, reason: str) -> None:
        if not reason:
            raise InvalidArgument("Wont Fix explanation cannot be empty!")

        self._resolve_as(Resolution.WONT_FIX)
        self._wont_fix_reason = reason

    def cannot_reproduce(self) -> None:
        self._resolve_as(Resolution.CANNOT_REPRODUCE)

    def close(self) -> None:
        self._status = self._transition(IssueAction.CLOSE)

    def reopen(self, version: ProductVersion) -> None:
        _require(version, "Product Version cannot be null!")

        self._status = self._transition(IssueAction.REOPEN)
        self._occurred_in = version
        self._assignee = None
        self._resolution = None
        self._wont_fix_reason = None

    # -- relationships ---------------------------------------------------

    def _link(self, target: IssueNumber, relationship_type: RelationshipType) -> None:
        self._related_issues.add(RelatedIssue(target, relationship_type))

    def blocks(self, number: IssueNumber) -> None:
        _require(number, "Issue number cannot be null!")
        self._link(number, RelationshipType.BLOCKS)

    def refer_to(self, number: IssueNumber) -> None:
        _require(number, "Issue number cannot be null!")
        self._link(number, RelationshipType.REFERS_TO)

    # Reciprocal links are written by IssueManager while it records the
    # forward link on the other issue; callers should not use them directly.

    def _check_reciprocal(self, source: IssueNumber, guard: ReciprocalLinkGuard) -> None:
        if guard is ReciprocalLinkGuard.ASSIGNEE:
            _require(self._assignee, "Issue number cannot be null!")
        else:
            _require(source, "Issue number cannot be null!")

    def is_duplicated_by(
        self, duplicate: IssueNumber, guard: ReciprocalLinkGuard = ReciprocalLinkGuard.ASSIGNEE
    ) -> None:
        self._check_reciprocal(duplicate, guard)
        self._link(duplicate, RelationshipType.IS_DUPLICATED_BY)

    def is_referred_by(
        self, referee: IssueNumber, guard: ReciprocalLinkGuard = ReciprocalLinkGuard.ASSIGNEE
    ) -> None:
        self._check_reciprocal(referee, guard)
        self._link(referee, RelationshipType.IS_REFERRED_BY)

    def is_blocked_by(
        self, blocker: IssueNumber, guard: ReciprocalLinkGuard = ReciprocalLinkGuard.ASSIGNEE
    ) -> None:
        self._check_reciprocal(blocker, guard)
        self._link(blocker, RelationshipType.IS_BLOCKED_BY)

    # -- serialization ---------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "number": str(self._number),
            "title": self._title,
            "description": self._description,
            "status": self._status.value,
            "resolution": self._resolution.value if self._resolution else None,
            "created_at": self._created_at.isoformat(),
            "occurred_in": str(self._occurred_in),
            "fix_version": str(self._fix_version) if self._fix_version else None,
            "assignee": str(self._assignee) if self._assignee else None,
            "wont_fix_reason": self._wont_fix_reason,
            "related_issues": [
                link.to_dict()
                for link in sorted(
                    self._related_issues,
                    key=lambda r: (str(r.target), r.relationship_type.value),
                )
            ],
            "revision": self.revision,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Issue":
        """
        Rebuild a stored issue from its dictionary form.

        The stored status is restored as-is, no transitions are replayed.
        """
        issue = cls(
            number=IssueNumber(data["number"]),
            title=data.get("title", ""),
            occurred_in=ProductVersion(data["occurred_in"]),
            created_at=ensure_aware(data["created_at"]),
        )
        issue._description = data.get("description")
        issue._status = IssueStatus(data.get("status", "open"))
        issue._resolution = Resolution(data["resolution"]) if data.get("resolution") else None
        issue._fix_version = ProductVersion(data["fix_version"]) if data.get("fix_version") else None
        issue._assignee = ParticipantID(data["assignee"]) if data.get("assignee") else None
        issue._wont_fix_reason = data.get("wont_fix_reason")
        issue._related_issues = {
            RelatedIssue.from_dict(link) for link in data.get("related_issues", [])
        }
        issue.revision = data.get("revision", 0)
        return issue

    def __eq__(self, other) -> bool:
        if not isinstance(other, Issue):
            return NotImplemented
        return self._number == other._number

    def __hash__(self) -> int:
        return hash(self._number)

    def __repr__(self) -> str:
        return f"Issue(number={self._number.value!r}, status={self._status.name})"
