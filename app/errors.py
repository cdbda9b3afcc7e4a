"""
Typed failures raised by the attempt lifecycle

Every error is terminal for the call that raised it. The HTTP layer maps
them onto status codes via ``status_code``.
"""


class LMSError(Exception):
    """Base class for domain failures"""

    status_code = 400
    error = "lms_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotFound(LMSError):
    """Quiz, question or submission absent"""

    status_code = 404
    error = "not_found"


class Forbidden(LMSError):
    """Role or ownership violation"""

    status_code = 403
    error = "forbidden"


class InvalidState(LMSError):
    """Transition not allowed from the record's current state or policy"""

    status_code = 409
    error = "invalid_state"


class AlreadySubmitted(InvalidState):
    error = "already_submitted"


class AttemptLimitExceeded(LMSError):
    status_code = 409
    error = "attempt_limit_exceeded"


class QuizUnavailable(LMSError):
    """Quiz unpublished, deleted, past its deadline or empty"""

    status_code = 403
    error = "quiz_unavailable"
