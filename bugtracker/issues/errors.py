"""
Issue Errors

Error taxonomy shared by the Issue aggregate and the repositories.
The aggregate raises InvalidArgument / InvalidTransition, repositories raise
IssueAlreadyExists / IssueNotFound / ConcurrentModification.
"""


class IssueError(Exception):
    """Base class for all issue tracking errors."""


class InvalidArgument(IssueError, ValueError):
    """A required argument was missing or empty."""


class InvalidTransition(IssueError):
    """A lifecycle action is not allowed from the current status."""

    def __init__(self, action, status):
        self.action = action
        self.status = status
        super().__init__(f"Cannot {action.value} already {status.name} issue!")


class IssueAlreadyExists(IssueError, ValueError):

    def __init__(self, number):
        self.number = number
        super().__init__(f"Issue with number='{number}' already exists!")


class IssueNotFound(IssueError, LookupError):

    def __init__(self, number):
        self.number = number
        super().__init__(f"Issue with number='{number}' does not exist!")


class ConcurrentModification(IssueError):
    """The stored issue changed since this copy was loaded."""

    def __init__(self, number, expected_revision: int, actual_revision: int):
        self.number = number
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"Issue with number='{number}' was modified concurrently "
            f"(expected revision {expected_revision}, found {actual_revision})"
        )
