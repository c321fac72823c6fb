"""
Exception hierarchy for Receptacle Rules.

All errors are raised while building snapshots or loading configuration.
The rule engine itself never raises over well-formed snapshots.
"""

from typing import Any, Dict, Optional


class ReceptacleError(Exception):
    """Base exception for all Receptacle errors."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class InvalidPolicyError(ReceptacleError):
    """Raised when a retention policy, rule or pattern is malformed.

    Attributes:
        field: Name of the offending field, when known.
    """

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field is not None:
            data["field"] = self.field
        return data


class SnapshotError(ReceptacleError):
    """Raised when item or entity data cannot be turned into a snapshot."""


class ConfigurationError(ReceptacleError):
    """Raised when the configuration file is missing values or unreadable."""
