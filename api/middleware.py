"""Acting-user middleware using ContextVar.

Extracts the signed-in team user from the X-User-ID request header. The
user ID is stored in a ContextVar so that any downstream code (routers,
services, log calls) can call get_current_user_id() without explicit
parameter passing. Authentication itself happens upstream; this layer
only carries the identity through the request.
"""

from contextvars import ContextVar
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.logging import bind_user_context, clear_log_context

USER_HEADER = "X-User-ID"

# ---------------------------------------------------------------------------
# Context variable: task-safe acting user
# ---------------------------------------------------------------------------

_current_user: ContextVar[Optional[str]] = ContextVar("current_user", default=None)


def get_current_user_id() -> Optional[str]:
    """Return the acting user's ID for the current request, or None.

    Safe to call from any async context within the request lifecycle::

        actor_id = get_current_user_id()
        await service.delete_project(actor_id, project_id)
    """
    return _current_user.get()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class CurrentUserMiddleware(BaseHTTPMiddleware):
    """Read the acting user from the request header and bind it for logging."""

    async def dispatch(self, request: Request, call_next) -> Response:
        user_id = (request.headers.get(USER_HEADER) or "").strip() or None

        token = _current_user.set(user_id)
        bind_user_context(user_id)
        try:
            response = await call_next(request)
            return response
        finally:
            _current_user.reset(token)
            clear_log_context()
