"""Error taxonomy shared by the stores, the poller and the service layer."""

from __future__ import annotations

from enum import StrEnum


class ErrorKind(StrEnum):
    CLIENT = "client"
    SERVER = "server"


class BackcastError(Exception):
    """Base class for every domain error."""

    kind: ErrorKind = ErrorKind.SERVER


class NotFoundError(BackcastError):
    kind = ErrorKind.CLIENT

    def __init__(self, resource_id: int) -> None:
        self.resource_id = resource_id
        super().__init__(f"resource {resource_id} not found")


class DuplicateResourceError(BackcastError):
    kind = ErrorKind.CLIENT

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"resource already registered: {url}")


class UnknownRevisionError(BackcastError):
    kind = ErrorKind.CLIENT

    def __init__(self, resource_id: int, fingerprint: str) -> None:
        self.resource_id = resource_id
        self.fingerprint = fingerprint
        super().__init__(f"resource {resource_id} has no revision {fingerprint}")


class RevisionMismatchError(BackcastError):
    def __init__(self, resource_id: int, expected: str, actual: str) -> None:
        self.resource_id = resource_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"resource {resource_id} reconstructed {actual}, stored fingerprint is {expected}")


class MalformedPatchError(BackcastError):
    pass


class ApplyFailureError(BackcastError):
    def __init__(self, resource_id: int, edit_id: int) -> None:
        self.resource_id = resource_id
        self.edit_id = edit_id
        super().__init__(f"edit {edit_id} of resource {resource_id} could not be applied")


class FetchError(BackcastError):
    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"fetch failed for {url}: {reason}")


class TransactionError(BackcastError):
    pass


class SchedulerStoppedError(BackcastError):
    """Raised to submitters whose refresh request was never accepted."""
