"""Error taxonomy shared by the executor, session, trace and storage layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class TaskhawkError(Exception):
    pass


class ValidationError(TaskhawkError):
    """Step is malformed: unknown kind or a required parameter is missing."""


class TransportError(TaskhawkError):
    """Network, HTTP or CDP failure."""

    def __init__(self, message: str, *, attempts: int = 1) -> None:
        super().__init__(message)
        self.attempts = attempts


class RequestTimeoutError(TransportError):
    """A single request exceeded its deadline. Never retried by the client itself."""


class SessionNotStartedError(TaskhawkError):
    pass


class BlobStoreError(TaskhawkError):
    """The blob store answered, but not with a usable blob."""


class StorageError(TaskhawkError):
    pass


class InvalidStateError(TaskhawkError, ValueError):
    pass


@dataclass
class ActionError(TaskhawkError):
    """Structured page-action failure."""

    kind: str
    action: str
    reason: str
    suggestion: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.reason

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "kind": self.kind,
            "action": self.action,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "details": self.details,
        }


@dataclass
class ResolutionError(ActionError):
    target: str = ""
    attempts: int = 0


__all__ = [
    "ActionError",
    "BlobStoreError",
    "InvalidStateError",
    "RequestTimeoutError",
    "ResolutionError",
    "SessionNotStartedError",
    "StorageError",
    "TaskhawkError",
    "TransportError",
    "ValidationError",
]
