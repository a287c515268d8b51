from __future__ import annotations


class StatQuestError(Exception):
    """Base class for every error the core raises on purpose."""


class ValidationError(StatQuestError):
    pass


class AlreadyCompletedError(StatQuestError):
    pass


class AuthorizationError(StatQuestError):
    pass


class NotFoundError(StatQuestError):
    pass


class ConflictError(StatQuestError):
    """The user record changed between read and write."""
