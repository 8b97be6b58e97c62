from fastapi import HTTPException, Request


def current_user_id(request: Request) -> int:
    """
    User id attached upstream: request.state.user (auth middleware) or the
    X-User-ID header the gateway forwards.
    """
    user = getattr(request.state, "user", None)
    raw = user.get("sub") if isinstance(user, dict) else None
    if not raw:
        raw = request.headers.get("x-user-id")
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Missing user identity")
