import re
import uuid
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from grc_api.core.logging import end_request_context, get_logger, start_request_context

logger = get_logger("api.request")

REQUEST_ID_HEADER = "X-Request-ID"
_ACCEPTED_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def resolve_request_id(incoming: str | None) -> str:
    """Reuse a caller-supplied request id when it is short and header-safe."""
    if incoming and _ACCEPTED_REQUEST_ID.match(incoming.strip()):
        return incoming.strip()
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:  # type: ignore[override]
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        token = start_request_context(request_id)
        started = perf_counter()
        response: Response | None = None
        fields = {"component": "api", "method": request.method, "path": request.url.path}

        logger.info("request.start", extra=fields)
        try:
            response = await call_next(request)
            return response
        except Exception:
            logger.exception("request.error", extra=fields)
            raise
        finally:
            logger.info(
                "request.end",
                extra={
                    **fields,
                    "status_code": response.status_code if response is not None else 500,
                    "duration_ms": int((perf_counter() - started) * 1000),
                },
            )
            if response is not None:
                response.headers[REQUEST_ID_HEADER] = request_id
            end_request_context(token)
