"""Middleware registration."""

from fastapi import FastAPI

from lms.config import Settings
from lms.middleware.error_handler import setup_error_handlers
from lms.middleware.logging import setup_logging
from lms.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure logging, error handlers and request-scoped middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
