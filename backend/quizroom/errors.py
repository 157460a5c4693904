"""Error taxonomy shared by the services, the HTTP layer and the client.

Every error carries the HTTP status it maps to, so blueprints can turn any
``QuizRoomError`` into a JSON response without a lookup table.
"""

from typing import Optional


class QuizRoomError(Exception):
    status_code = 400
    code = 'quiz_room_error'

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class ValidationError(QuizRoomError):
    """Quiz or question content fails the rules of its game mode."""
    status_code = 400
    code = 'validation_error'


class AuthorizationError(QuizRoomError):
    status_code = 403
    code = 'authorization_error'


class NotFoundError(QuizRoomError):
    status_code = 404
    code = 'not_found'


class PreconditionError(QuizRoomError):
    """The room is not in a state that allows the requested action."""
    status_code = 409
    code = 'precondition_failed'


class DuplicateSubmissionError(QuizRoomError):
    """A submission for the (room, question, player) triple already exists.

    Expected control flow: callers reconcile with ``existing`` instead of
    reporting a failure.
    """
    status_code = 409
    code = 'duplicate_submission'

    def __init__(self, existing, message: str = 'Already submitted for this question'):
        super().__init__(message)
        self.existing = existing


class TransientIOError(QuizRoomError):
    """Store or network failure. The next poll tick is the retry."""
    status_code = 503
    code = 'transient_io_error'


ERRORS_BY_CODE = {
    cls.code: cls for cls in (
        ValidationError,
        AuthorizationError,
        NotFoundError,
        PreconditionError,
        DuplicateSubmissionError,
        TransientIOError,
    )
}
