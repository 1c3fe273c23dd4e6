"""
Request logging middleware with request ID tracking and context propagation.
"""
import logging
import time
import uuid
from contextvars import ContextVar

logger = logging.getLogger("app.request")

request_id_ctx: ContextVar[str] = ContextVar('request_id', default='unknown')
request_path_ctx: ContextVar[str] = ContextVar('request_path', default='unknown')

# Used when the app raised before a response started
DEFAULT_STATUS_CODE = 500
SLOW_REQUEST_MS = 10000


def _incoming_request_id(scope) -> str:
    """Reuse a proxy-supplied x-request-id when it looks sane, else mint one."""
    for name, value in scope.get("headers", []):
        if name == b"x-request-id":
            candidate = value.decode("latin-1").strip()
            if 0 < len(candidate) <= 64 and all(c.isalnum() or c == "-" for c in candidate):
                return candidate
    return str(uuid.uuid4())


class RequestLoggingMiddleware:
    """
    ASGI middleware that tags each HTTP request with an id.

    The id is stored in ``request_id_ctx`` for log helpers and echoed back in
    the ``x-request-id`` response header. Start, completion and slow requests
    are logged with method, path, status and duration.
    """

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope)
        request_id_ctx.set(request_id)
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "/")
        request_path_ctx.set(path)
        client_host = scope["client"][0] if scope.get("client") else "unknown"
        start_time = time.time()
        status_code = DEFAULT_STATUS_CODE

        logger.info(
            "Request started",
            extra={"request_id": request_id, "method": method, "path": path, "client_ip": client_host},
        )

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", DEFAULT_STATUS_CODE)
                headers = list(message.get("headers", []))
                headers.append([b"x-request-id", request_id.encode()])
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as e:
            logger.error(
                "Request failed with exception",
                extra={"request_id": request_id, "method": method, "path": path, "error": str(e)},
                exc_info=True,
            )
            raise
        finally:
            duration_ms = round((time.time() - start_time) * 1000, 2)
            log_extra = {
                "request_id": request_id,
                "method": method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
            }
            if duration_ms >= SLOW_REQUEST_MS:
                logger.warning("Slow request", extra=log_extra)
            if status_code >= 500:
                logger.error("Request completed with server error", extra=log_extra)
            elif status_code >= 400:
                logger.warning("Request completed with client error", extra=log_extra)
            else:
                logger.info("Request completed successfully", extra=log_extra)


class RequestContextFilter(logging.Filter):
    """
    Logging filter that adds ``request_id`` to every record so formatters can
    use ``%(request_id)s``.
    """

    def filter(self, record):
        record.request_id = request_id_ctx.get()
        return True
