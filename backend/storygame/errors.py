"""Error taxonomy for game operations.

Every error carries the HTTP status it maps to, plus optional extra fields
(e.g. whose turn it actually is) that are surfaced in the JSON body.
"""


class GameError(Exception):
    status = 400

    def __init__(self, message, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_result(self):
        result = {'error': self.message, 'status': self.status}
        result.update(self.extra)
        return result


class InvalidInput(GameError):
    status = 400


class NotFound(GameError):
    status = 404


class Forbidden(GameError):
    status = 403


class InvalidState(GameError):
    status = 400


class GameFinished(InvalidState):
    pass


class WrongMode(InvalidState):
    pass


class NotWaiting(InvalidState):
    pass


class ApprovalRequired(InvalidState):
    pass


class GameFull(InvalidState):
    pass


class NotAMember(Forbidden):
    pass


class NotYourTurn(Forbidden):
    pass


class TurnTimeout(GameError):
    status = 409


class TransactionConflict(GameError):
    status = 409
