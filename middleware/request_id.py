"""
Request ID middleware.

Every request gets an id (the client's X-Request-ID or a fresh UUID). It is
stored on request.state, echoed in the response header and stamped on every
log record emitted while the request is handled.
"""

import contextvars
import logging
import uuid
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-ID"

_current_request_id: contextvars.ContextVar = contextvars.ContextVar("request_id", default=None)


def _install_record_factory():
    previous = logging.getLogRecordFactory()
    if getattr(previous, "_adds_request_id", False):
        return

    def record_factory(*args, **kwargs):
        record = previous(*args, **kwargs)
        record.request_id = _current_request_id.get()
        return record

    record_factory._adds_request_id = True
    logging.setLogRecordFactory(record_factory)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Adds a request id to each request.

    The id lives in a context variable, so concurrent requests (and the
    threadpool workers running sync route handlers) each log their own id.
    """

    def __init__(self, app):
        super().__init__(app)
        _install_record_factory()

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        token = _current_request_id.set(request_id)
        try:
            response: Response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            _current_request_id.reset(token)
