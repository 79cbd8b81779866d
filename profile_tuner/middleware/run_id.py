"""Run ID middleware.

Generates or extracts an analysis run id per request so that the
breadcrumbs logged by the analyzers can be traced back to the request
that triggered them.
"""

import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from profile_tuner.logging_config import analysis_run_ctx, get_logger

logger = get_logger(__name__)

# Header carrying the run id in both directions
RUN_ID_HEADER = "X-Run-ID"


class RunIdMiddleware:
    """Pure ASGI middleware that assigns a run id to each request.

    If the incoming request has an X-Run-ID header, that value is used;
    otherwise a new id is generated. The id is set in the logging context
    for the duration of the request and echoed in the response headers.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        run_id = headers.get(RUN_ID_HEADER.lower().encode(), b"").decode() or uuid.uuid4().hex[:12]
        token = analysis_run_ctx.set(run_id)

        start_time = time.perf_counter()
        status_code: int | None = None
        method = scope.get("method", "")
        path = scope.get("path", "")

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status")
                response_headers = list(message.get("headers", []))
                response_headers.append((RUN_ID_HEADER.lower().encode(), run_id.encode()))
                message = {**message, "headers": response_headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
            logger.info(
                "Request completed",
                method=method,
                path=path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
        except Exception:
            logger.exception(
                "Request failed",
                method=method,
                path=path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise
        finally:
            analysis_run_ctx.reset(token)
