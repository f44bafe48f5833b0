"""
Value Identifiers

Small immutable value types used as keys and attributes of an Issue.
"""

from dataclasses import dataclass

from .errors import InvalidArgument


@dataclass(frozen=True)
class _Identifier:
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value.strip():
            raise InvalidArgument(f"{type(self).__name__} cannot be empty!")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class IssueNumber(_Identifier):
    """Globally unique identifier of an issue (e.g. "BUG-42")."""


@dataclass(frozen=True)
class ProductVersion(_Identifier):
    """Released or unreleased product version string (e.g. "1.4.0")."""


@dataclass(frozen=True)
class ParticipantID(_Identifier):
    """Identifier of a person an issue can be assigned to."""
