# ABOUTME: Declares the error taxonomy shared by the learner engine and its collaborators.
# ABOUTME: Only ValidationError is surfaced to callers; the others are recovered locally.


class CogniPathError(Exception):
    """Base class for every error raised by the engine packages."""


class ValidationError(CogniPathError, ValueError):
    """Malformed or unknown input, rejected before any state mutation."""


class PersistenceError(CogniPathError):
    """Snapshot read or write failure. Non-fatal for the engine."""


class UpstreamServiceError(CogniPathError):
    """Failure of the assistant's external prompt-answering service."""
