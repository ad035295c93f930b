"""
Engine error taxonomy.

Pure computation errors are raised to the caller as typed exceptions.
Storage conflicts are retried inside the store layer and only surface
once retries are exhausted.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base class for errors raised by the mastery engine."""

    #: Short message safe to show to an end user.
    user_message = "request could not be completed"


class NotFoundError(EngineError):
    """Raised when a referenced concept, course or ledger entry is absent."""

    user_message = "not found"

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidActionError(EngineError):
    """Raised for an unrecognized progress-update action. No state is mutated."""

    user_message = "progress not saved"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Invalid action: {action!r}")


class ConcurrentWriteConflict(EngineError):
    """Raised when a ledger compare-and-swap loses to a concurrent writer."""

    user_message = "progress not saved"

    def __init__(self, key: tuple, attempts: int = 1):
        self.key = key
        self.attempts = attempts
        super().__init__(f"Concurrent write conflict on {key} after {attempts} attempt(s)")


class CycleDetectedWarning(UserWarning):
    """
    A prerequisite chain revisits a concept during traversal.

    Not raised: the sequencer drops the repeat, records an instance of this
    warning on its result and logs it.
    """

    def __init__(self, concept_id: str, chain: list[str]):
        self.concept_id = concept_id
        self.chain = list(chain)
        super().__init__(
            f"Prerequisite cycle detected at {concept_id}: {' -> '.join(self.chain)}"
        )


class InvalidScoreError(EngineError, ValueError):
    """Raised when a quiz score is missing or outside its scale."""

    user_message = "progress not saved"


class CourseFileError(EngineError, ValueError):
    """Raised when a course file is missing, not JSON, or has invalid records."""

    user_message = "course file rejected"

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
