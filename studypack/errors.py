from typing import List, Optional


class StudyPackError(Exception):
    """Base class for scheduler errors"""


class NotFoundError(StudyPackError):
    """Referenced item, user or session does not exist"""

    def __init__(self, kind: str, identifier, detail: Optional[str] = None):
        self.kind = kind
        self.identifier = identifier
        message = f"{kind} not found: {identifier}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class ValidationError(StudyPackError):
    """Malformed input, rejected before any state is touched"""


class EmptyResultError(StudyPackError):
    """No content available to compose a pack.

    Soft: the orchestrator reports an empty pack as a normal outcome;
    callers opt in through DailyPackResult.raise_for_empty.
    """


class PartialBatchFailure(StudyPackError):
    """Some users failed during a multi-user batch run"""

    def __init__(self, failures: List):
        # list of schemas.BatchFailure
        self.failures = failures
        users = ", ".join(str(f.user_id) for f in failures)
        super().__init__(f"{len(failures)} user(s) failed in batch: {users}")
