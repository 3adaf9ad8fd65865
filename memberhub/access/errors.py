"""
Access-control errors.

A failure to answer is never the same thing as "no match": every
authority-source failure surfaces as one of these instead of quietly
turning into a lower role.
"""

from __future__ import annotations

from typing import Any


class AccessError(Exception):
    """Base exception for role resolution and sync errors."""

    def __init__(self, message: str, subject_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.subject_id = subject_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "subject_id": self.subject_id,
        }


class AuthorityUnavailable(AccessError):
    """An authority source failed or timed out. Retryable."""

    def __init__(self, source: str, subject_id: str | None = None, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Authority source '{source}' unavailable{detail}", subject_id)
        self.source = source
        self.reason = reason


class Unauthorized(AccessError):
    """An authority source explicitly denied the caller. Never retried."""

    def __init__(self, source: str, subject_id: str | None = None, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Access to authority source '{source}' denied{detail}", subject_id)
        self.source = source
        self.reason = reason


class SyncWriteFailure(AccessError):
    """The secondary role record could not be written."""

    def __init__(self, subject_id: str, reason: str = ""):
        detail = f": {reason}" if reason else ""
        super().__init__(f"Secondary role write failed for {subject_id}{detail}", subject_id)
        self.reason = reason


class IdentityChanged(AccessError):
    """A resolution finished after the identity it was started for went away."""

    def __init__(self, subject_id: str):
        super().__init__(
            f"Role resolution for {subject_id} discarded: identity changed",
            subject_id,
        )


class InvalidSyncTransition(AccessError):
    """A sync status change outside the declared state machine."""

    def __init__(self, subject_id: str, current: Any, requested: Any):
        current = getattr(current, "value", current)
        requested = getattr(requested, "value", requested)
        super().__init__(
            f"Invalid sync transition for {subject_id}: {current} -> {requested}",
            subject_id,
        )
        self.current = current
        self.requested = requested
