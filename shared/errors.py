"""
Typed failures raised by the learning engine.

NotFound and InvalidState are usage errors and are never retried.
PersistenceFailure means the backing store rejected a write; the
transaction that raised it has already been rolled back.
"""


class EngineError(Exception):
    pass


class NotFound(EngineError):
    def __init__(self, kind: str, ident):
        super().__init__(f"{kind} {ident} not found")
        self.kind = kind
        self.ident = ident


class InvalidState(EngineError):
    pass


class InvalidAnswer(EngineError):
    pass


class AlreadyCompleted(EngineError):
    def __init__(self, quiz_id: int, user_id: int, attempt_id: int):
        super().__init__(f"user {user_id} already completed quiz {quiz_id}")
        self.quiz_id = quiz_id
        self.user_id = user_id
        self.attempt_id = attempt_id


class PersistenceFailure(EngineError):
    pass


class UpstreamUnavailable(EngineError):
    pass
