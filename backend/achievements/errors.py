"""Typed errors raised by the achievement and ranking engine.

Duplicate badge awards are deliberately absent here: an insert that hits
the ``(student_id, badge_id)`` unique constraint is reported as
``AwardOutcome.ALREADY_EXISTS`` by :mod:`achievements.badges`.
"""


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "engine_error"


class ReferenceNotFound(EngineError):
    """A quiz, badge, student or institution referenced by a call is missing."""

    code = "reference_not_found"

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class AggregationFailure(EngineError):
    """Attempt history could not be folded into statistics."""

    code = "aggregation_failure"


class PersistenceFailure(EngineError):
    """A storage write failed after the bounded number of retries."""

    code = "persistence_failure"


class AttemptLimitReached(EngineError):
    """The student has used every attempt the quiz allows."""

    code = "attempt_limit_reached"

    def __init__(self, quiz_id: int, max_attempts: int):
        self.quiz_id = quiz_id
        self.max_attempts = max_attempts
        super().__init__(f"quiz {quiz_id} allows only {max_attempts} attempts")
