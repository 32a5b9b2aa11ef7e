"""
Exception hierarchy for the campaign-keeper persistence engine.

Components raise these internally and convert them into an
OperationResult at their public boundary, so callers only ever see the
uniform success/data/error envelope.
"""

from __future__ import annotations

from typing import Any


class KeeperError(Exception):
    """Base exception for all campaign-keeper errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary of additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize the error.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class SessionError(KeeperError):
    """Session lifecycle errors (start, update, end)."""
    pass


class SessionActiveError(SessionError):
    """Raised when a session is started while another one is active."""

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(
            message
            or "A session is already active. End the current session before starting a new one.",
            details,
        )


class NoActiveSessionError(SessionError):
    """Raised when a session operation needs an active session and none exists."""

    def __init__(self, message: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message or "No active session", details)


class StateError(KeeperError):
    """Location state read/write errors."""
    pass


class InvalidLocationIdError(StateError):
    """Raised for location ids that could escape the locations directory.

    Attributes:
        location_id: The rejected identifier
    """

    def __init__(self, location_id: Any):
        super().__init__(
            f"Invalid location ID: {location_id}",
            details={"location_id": location_id},
        )
        self.location_id = location_id


class LocationNotFoundError(StateError):
    """Raised when a location's backing directory does not exist."""

    def __init__(self, location_id: str):
        super().__init__(
            f"Location directory not found: {location_id}",
            details={"location_id": location_id},
        )
        self.location_id = location_id


class CharacterFileError(KeeperError):
    """Raised when a character file cannot be read or parsed."""
    pass


class CheckpointError(KeeperError):
    """Version-control checkpoint errors."""
    pass


class GitNotInstalledError(CheckpointError):
    """The git executable could not be run."""

    def __init__(self, details: dict[str, Any] | None = None):
        super().__init__("Git not installed", details)


class NotARepositoryError(CheckpointError):
    """The working directory is not inside a git work tree."""

    def __init__(self, details: dict[str, Any] | None = None):
        super().__init__("Not a Git repository", details)


class SavePointExistsError(CheckpointError):
    """A save point with the requested tag name already exists."""

    def __init__(self, tag: str):
        super().__init__(
            f'Save point "{tag}" already exists. '
            "Use a different name or delete the existing save point first.",
            details={"tag": tag},
        )
        self.tag = tag


class SavePointNotFoundError(CheckpointError):
    """The requested save point tag does not exist."""

    def __init__(self, tag: str):
        super().__init__(f'Save point "{tag}" not found', details={"tag": tag})
        self.tag = tag


__all__ = [
    "KeeperError",
    "SessionError",
    "SessionActiveError",
    "NoActiveSessionError",
    "StateError",
    "InvalidLocationIdError",
    "LocationNotFoundError",
    "CharacterFileError",
    "CheckpointError",
    "GitNotInstalledError",
    "NotARepositoryError",
    "SavePointExistsError",
    "SavePointNotFoundError",
]
