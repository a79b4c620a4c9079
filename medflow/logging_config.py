"""Structured logging for the scheduling core and the development API.

Log lines are JSON by default (``MEDFLOW_LOG_FORMAT=console`` switches to
structlog's dev renderer). Values bound with ``structlog.contextvars`` are
merged into every line, which is how API requests carry their request id.
"""
import logging
import sys
import uuid

import structlog

REQUEST_ID_HEADER = "X-Request-ID"


def setup_structured_logging(log_level: str = "INFO", log_format: str = "json"):
    """
    Configure structlog on top of the standard library.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: ``json`` for machine-readable lines, ``console`` for
            coloured local output
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def generate_request_id() -> str:
    """``req-`` followed by 12 hex characters."""
    return f"req-{uuid.uuid4().hex[:12]}"


class RequestIDMiddleware:
    """
    WSGI middleware giving every API request an id.

    A client-supplied ``X-Request-ID`` is reused, otherwise one is generated.
    The id is exposed as ``environ["REQUEST_ID"]``, bound into the logging
    context while the request is handled, and echoed in the response headers.
    """

    def __init__(self, app):
        self.app = app

    def __call__(self, environ, start_response):
        request_id = environ.get("HTTP_X_REQUEST_ID") or generate_request_id()
        environ["REQUEST_ID"] = request_id

        def start_response_with_id(status, headers, exc_info=None):
            headers.append((REQUEST_ID_HEADER, request_id))
            return start_response(status, headers, exc_info)

        with structlog.contextvars.bound_contextvars(request_id=request_id):
            return self.app(environ, start_response_with_id)
