"""
Error taxonomy for the LMS portal.

Collaborator failures (backend rows, auth, AI) are wrapped into these types
so screens can show a readable message without knowing which client raised.
"""


class LmsError(Exception):
    """Base class for all portal errors"""

    def __init__(self, message: str = "", *, cause: Exception = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self):
        return self.message or self.__class__.__name__


class DataError(LmsError):
    """A row-access call (select/insert/update/upsert/rpc) failed"""

    def __init__(self, message: str = "", *, code: str = None, cause: Exception = None):
        super().__init__(message, cause=cause)
        self.code = code


class AuthError(LmsError):
    """Sign-in, sign-up or sign-out was rejected"""


class AttemptCreationError(LmsError):
    """An exam attempt could not be started; the taking screen must not open"""


class InvalidAnswerError(LmsError):
    """A response failed local validation and was not persisted"""

    def __init__(self, message: str = "", *, question_id=None, response=None):
        super().__init__(message)
        self.question_id = question_id
        self.response = response


class PersistenceError(LmsError):
    """An answer upsert failed; it stays queued and is retried"""

    def __init__(self, message: str = "", *, question_id=None, cause: Exception = None):
        super().__init__(message, cause=cause)
        self.question_id = question_id


class GradingDispatchError(LmsError):
    """The grading procedure could not be invoked for a submitted attempt"""

    def __init__(self, message: str = "", *, attempt_id=None, cause: Exception = None):
        super().__init__(message, cause=cause)
        self.attempt_id = attempt_id


class QuestionGenerationError(LmsError):
    """The AI question generator failed or returned an unusable payload"""
