"""
Caller-facing errors raised by the match core.

Every error carries a machine-readable ``code``, the HTTP status the API
answers with, and a ``details`` dict merged into the JSON error body.
"""


class MatchError(Exception):
    code = 'MatchError'
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {'success': False, 'error': self.message, 'code': self.code}
        body.update(self.details)
        return body


class Forbidden(MatchError):
    code = 'Forbidden'
    status_code = 403


class InvalidTransition(MatchError):
    code = 'InvalidTransition'


class PreconditionNotMet(MatchError):
    code = 'PreconditionNotMet'


class NoOpTransition(MatchError):
    code = 'NoOpTransition'


class DuplicateApplication(MatchError):
    code = 'DuplicateApplication'


class NotPending(MatchError):
    code = 'NotPending'


class RegistrationClosed(MatchError):
    code = 'RegistrationClosed'


class MatchLocked(MatchError):
    code = 'MatchLocked'


class ValidationFailed(MatchError):
    code = 'ValidationFailed'


class GameNotReady(MatchError):
    code = 'GameNotReady'


class GameLocked(MatchError):
    code = 'GameLocked'


class NotFound(MatchError):
    code = 'NotFound'
    status_code = 404


class MatchNotFound(NotFound):
    code = 'MatchNotFound'


class GameNotFound(NotFound):
    code = 'GameNotFound'


class ParticipantNotFound(NotFound):
    code = 'ParticipantNotFound'


class TeamNotFound(NotFound):
    code = 'TeamNotFound'
