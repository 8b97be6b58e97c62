from fastapi import HTTPException

from .errors import (
    EngineError, NotFound, InvalidState, InvalidAnswer,
    AlreadyCompleted, PersistenceFailure, UpstreamUnavailable,
)


def to_http(e: EngineError) -> HTTPException:
    if isinstance(e, NotFound):
        return HTTPException(404, str(e))
    if isinstance(e, AlreadyCompleted):
        return HTTPException(409, {"detail": str(e), "attempt_id": e.attempt_id})
    if isinstance(e, InvalidAnswer):
        return HTTPException(422, str(e))
    if isinstance(e, InvalidState):
        return HTTPException(409, str(e))
    if isinstance(e, (PersistenceFailure, UpstreamUnavailable)):
        return HTTPException(503, str(e))
    return HTTPException(500, str(e))
