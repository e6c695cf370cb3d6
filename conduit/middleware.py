import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from conduit.security import TokenError, decode_token, parse_authorization_header

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("conduit.access")

# ---------------------------------------------------------------------------
# Per-request context variable
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """
    Register a ``before_cursor_execute`` listener on *engine* that bumps
    the per-request ``query_count_var`` for every SQL statement, eager
    loads included.

    Must be called once per engine (production engine in ``database.py``,
    test engine in ``conftest.py``).
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


# ---------------------------------------------------------------------------
# Middleware (pure ASGI, so ContextVar updates stay visible)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Adds ``X-Response-Time-Ms`` and ``X-Query-Count`` headers and writes
    one access-log line per request.

    Runs the inner app in the same task, so the query counter mutated by
    the engine listener is visible once the response starts.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(query_count_var.get()).encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            if scope["path"] != "/health":
                duration_ms = (time.perf_counter() - start) * 1000
                if status_code >= 500:
                    level = logging.ERROR
                elif status_code >= 400:
                    level = logging.WARNING
                else:
                    level = logging.INFO
                access_logger.log(
                    level,
                    "%s %s %d %.1fms queries=%d",
                    scope["method"],
                    scope["path"],
                    status_code,
                    duration_ms,
                    query_count_var.get(),
                )


class TokenAuthMiddleware:
    """
    Decodes the ``Authorization: Token <jwt>`` header and stores the
    claims in the request state under ``token``.

    - no header: the request continues anonymously; routes that need a
      user reject it through the ``get_current_user`` dependency.
    - bad or expired token: GET requests continue anonymously so that
      optional-auth reads keep working, every other method gets a 401.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        state["token"] = None

        header = Headers(scope=scope).get("authorization")
        if header:
            try:
                state["token"] = decode_token(parse_authorization_header(header))
            except TokenError as exc:
                if scope["method"] != "GET":
                    logger.warning("Rejected %s %s: %s", scope["method"], scope["path"], exc)
                    response = JSONResponse(
                        {"errors": {"body": ["Invalid or expired token"]}},
                        status_code=401,
                        headers={"WWW-Authenticate": "Token"},
                    )
                    await response(scope, receive, send)
                    return
                logger.debug("Ignoring invalid token on GET %s: %s", scope["path"], exc)

        await self.app(scope, receive, send)
