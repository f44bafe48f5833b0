"""
Tests for IssueManager business logic
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from bugtracker.config import Settings
from bugtracker.issues import (
    Issue, IssueManager, IssueStatus, Resolution, RelationshipType, ReciprocalLinkGuard,
    IssueNumber, ProductVersion, ParticipantID,
    InMemoryIssueRepository, SQLiteIssueRepository,
    IssueAlreadyExists, IssueNotFound, InvalidArgument, InvalidTransition,
    ConcurrentModification, build_repository,
)


CREATED_AT = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)

BUG_1 = IssueNumber("BUG-1")
BUG_2 = IssueNumber("BUG-2")
ALICE = ParticipantID("alice")


class RacingRepository(InMemoryIssueRepository):
    """Lets a rival writer store the same issue just before each of the next `races` updates."""

    def __init__(self, races: int):
        super().__init__()
        self.races = races

    def store(self, issue: Issue) -> None:
        if self.races > 0 and issue.revision > 0:
            self.races -= 1
            rival = self.load(issue.number)
            rival.update_description("edited elsewhere")
            super().store(rival)
        super().store(issue)


@pytest.fixture
def manager():
    """Create manager with in-memory repository."""
    return IssueManager(InMemoryIssueRepository())


def report(manager, number="BUG-1", created_at=CREATED_AT):
    return manager.report_issue(
        IssueNumber(number), f"Issue {number}", ProductVersion("1.0"), created_at=created_at
    )


class TestIssueManager:
    """Tests for reporting and lifecycle changes."""

    def test_report_issue(self, manager):
        issue = manager.report_issue(
            BUG_1, "Crash on save", ProductVersion("1.0"),
            created_at=CREATED_AT, description="Steps to reproduce",
        )

        stored = manager.get_issue(BUG_1)
        assert stored.title == "Crash on save"
        assert stored.description == "Steps to reproduce"
        assert stored.status == IssueStatus.OPEN
        assert stored.created_at == CREATED_AT
        assert issue.revision == 1

    def test_report_issue_defaults_created_at(self, manager):
        before = datetime.now(timezone.utc)
        issue = manager.report_issue(BUG_1, "Crash", ProductVersion("1.0"))

        assert issue.created_at >= before
        assert issue.created_at.tzinfo is not None

    def test_report_duplicate_number(self, manager):
        report(manager)

        with pytest.raises(IssueAlreadyExists):
            report(manager)

    def test_get_unknown_issue(self, manager):
        with pytest.raises(IssueNotFound):
            manager.get_issue(IssueNumber("BUG-404"))

    def test_lifecycle(self, manager):
        report(manager)

        manager.assign(BUG_1, ALICE)
        manager.mark_fixed(BUG_1, ProductVersion("1.1"))
        manager.close(BUG_1)

        issue = manager.get_issue(BUG_1)
        assert issue.status == IssueStatus.CLOSED
        assert issue.resolution == Resolution.FIXED
        assert issue.fix_version == ProductVersion("1.1")

        reopened = manager.reopen(BUG_1, ProductVersion("1.2"))
        assert reopened.status == IssueStatus.OPEN
        assert reopened.assignee is None
        assert manager.get_issue(BUG_1).occurred_in == ProductVersion("1.2")

    def test_wont_fix_and_cannot_reproduce(self, manager):
        report(manager, "BUG-1")
        report(manager, "BUG-2")

        manager.mark_wont_fix(BUG_1, "not planned")
        manager.mark_cannot_reproduce(BUG_2)

        assert manager.get_issue(BUG_1).wont_fix_reason == "not planned"
        assert manager.get_issue(BUG_2).resolution == Resolution.CANNOT_REPRODUCE

    def test_rename_and_describe(self, manager):
        report(manager)

        manager.rename(BUG_1, "New title")
        manager.describe(BUG_1, "More detail")

        issue = manager.get_issue(BUG_1)
        assert issue.title == "New title"
        assert issue.description == "More detail"

    def test_rejected_transition_stores_nothing(self, manager):
        report(manager)

        with pytest.raises(InvalidTransition):
            manager.close(BUG_1)

        assert manager.get_issue(BUG_1).revision == 1

    def test_rejected_argument_propagates(self, manager):
        report(manager)

        with pytest.raises(InvalidArgument):
            manager.mark_wont_fix(BUG_1, "")

    def test_list_issues(self, manager):
        for i in range(3):
            report(manager, f"BUG-{i}", CREATED_AT + timedelta(hours=i))
        manager.assign(IssueNumber("BUG-0"), ALICE)

        all_issues = manager.list_issues()
        assigned = manager.list_issues(status=IssueStatus.ASSIGNED)
        alices = manager.list_issues(assignee=ALICE)

        assert [str(i.number) for i in all_issues] == ["BUG-2", "BUG-1", "BUG-0"]
        assert [str(i.number) for i in assigned] == ["BUG-0"]
        assert [str(i.number) for i in alices] == ["BUG-0"]

    def test_get_dashboard_data(self, manager):
        report(manager, "BUG-1")
        report(manager, "BUG-2")
        report(manager, "BUG-3")
        manager.assign(BUG_1, ALICE)
        manager.mark_fixed(BUG_2, ProductVersion("1.1"))

        data = manager.get_dashboard_data()

        assert data["stats"]["total"] == 3
        assert data["stats"]["by_status"] == {"assigned": 1, "resolved": 1, "open": 1}
        assert data["stats"]["by_resolution"] == {"fixed": 1}
        assert data["stats"]["fixed"] == 1
        assert [i["number"] for i in data["unassigned"]] == ["BUG-3"]
        assert len(data["recent"]) == 3


class TestConcurrentUpdates:
    """Tests for retry on ConcurrentModification."""

    def test_retry_after_concurrent_update(self):
        repository = RacingRepository(races=1)
        manager = IssueManager(repository)
        report(manager)

        issue = manager.assign(BUG_1, ALICE)

        stored = manager.get_issue(BUG_1)
        assert stored.assignee == ALICE
        assert stored.description == "edited elsewhere"
        assert issue.revision == stored.revision == 3

    def test_gives_up_after_max_retries(self):
        repository = RacingRepository(races=10)
        manager = IssueManager(repository, max_retries=2)
        report(manager)

        with pytest.raises(ConcurrentModification):
            manager.assign(BUG_1, ALICE)

        assert manager.get_issue(BUG_1).assignee is None


class TestLinking:
    """Tests for links recorded on both issues."""

    def test_mark_blocks(self, manager):
        report(manager, "BUG-1")
        report(manager, "BUG-2")
        manager.assign(BUG_2, ALICE)

        manager.mark_blocks(BUG_1, BUG_2)

        assert manager.get_issue(BUG_1).has_relationship_to(BUG_2, RelationshipType.BLOCKS)
        assert manager.get_issue(BUG_2).has_relationship_to(BUG_1, RelationshipType.IS_BLOCKED_BY)

    def test_mark_refers(self, manager):
        report(manager, "BUG-1")
        report(manager, "BUG-2")
        manager.assign(BUG_2, ALICE)

        manager.mark_refers(BUG_1, BUG_2)

        assert manager.get_issue(BUG_1).has_relationship_to(BUG_2, RelationshipType.REFERS_TO)
        assert manager.get_issue(BUG_2).has_relationship_to(BUG_1, RelationshipType.IS_REFERRED_BY)

    def test_mark_duplicate(self, manager):
        report(manager, "BUG-1")
        report(manager, "BUG-2")
        manager.assign(BUG_2, ALICE)

        issue = manager.mark_duplicate(BUG_1, BUG_2)

        assert issue.status == IssueStatus.RESOLVED
        assert issue.resolution == Resolution.DUPLICATE
        assert manager.get_issue(BUG_1).is_duplicate_of(BUG_2)
        assert manager.get_issue(BUG_2).has_relationship_to(BUG_1, RelationshipType.IS_DUPLICATED_BY)

    def test_unassigned_target_rejected_without_writes(self, manager):
        report(manager, "BUG-1")
        report(manager, "BUG-2")

        with pytest.raises(InvalidArgument):
            manager.mark_duplicate(BUG_1, BUG_2)

        source = manager.get_issue(BUG_1)
        assert source.status == IssueStatus.OPEN
        assert source.related_issues == frozenset()
        assert source.revision == 1

    def test_argument_guard_allows_unassigned_target(self):
        manager = IssueManager(InMemoryIssueRepository(), reciprocal_link_guard=ReciprocalLinkGuard.ARGUMENT)
        report(manager, "BUG-1")
        report(manager, "BUG-2")

        manager.mark_blocks(BUG_1, BUG_2)

        assert manager.get_issue(BUG_2).has_relationship_to(BUG_1, RelationshipType.IS_BLOCKED_BY)

    def test_guard_is_per_manager(self):
        strict = IssueManager.from_settings(Settings(repository="memory"))
        lenient = IssueManager.from_settings(Settings(repository="memory", reciprocal_link_guard="argument"))
        for manager in (strict, lenient):
            report(manager, "BUG-1")
            report(manager, "BUG-2")

        with pytest.raises(InvalidArgument):
            strict.mark_blocks(BUG_1, BUG_2)
        lenient.mark_blocks(BUG_1, BUG_2)

        assert strict.get_issue(BUG_2).related_issues == frozenset()
        assert lenient.get_issue(BUG_2).has_relationship_to(BUG_1, RelationshipType.IS_BLOCKED_BY)

    def test_link_to_unknown_issue(self, manager):
        report(manager, "BUG-1")

        with pytest.raises(IssueNotFound):
            manager.mark_refers(BUG_1, IssueNumber("BUG-404"))

        assert manager.get_issue(BUG_1).related_issues == frozenset()

    def test_invalid_transition_on_source_stores_nothing(self, manager):
        report(manager, "BUG-1")
        report(manager, "BUG-2")
        manager.assign(BUG_2, ALICE)
        manager.mark_cannot_reproduce(BUG_1)
        manager.close(BUG_1)

        with pytest.raises(InvalidTransition):
            manager.mark_duplicate(BUG_1, BUG_2)

        assert manager.get_issue(BUG_2).related_issues == frozenset()


class TestFromSettings:
    """Tests for building a manager from Settings."""

    def test_memory_repository(self):
        manager = IssueManager.from_settings(Settings(repository="memory"))
        assert isinstance(manager.repository, InMemoryIssueRepository)

    def test_sqlite_repository(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = os.path.join(tmp, "nested", "issues.db")

            repository = build_repository(Settings(db_path=db_path))

            assert isinstance(repository, SQLiteIssueRepository)
            assert os.path.exists(db_path)

    def test_applies_guard_and_retries(self):
        manager = IssueManager.from_settings(
            Settings(repository="memory", reciprocal_link_guard="argument", max_store_retries=7)
        )

        assert manager.reciprocal_link_guard == ReciprocalLinkGuard.ARGUMENT
        assert manager.max_retries == 7
