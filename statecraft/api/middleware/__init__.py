"""
API Middleware Module

Modules:
    - request_context: correlation ID and execution-guard scope per request
    - error_handlers: Exception handlers for domain and validation errors
"""

from .request_context import RequestContextMiddleware
from .error_handlers import register_error_handlers

__all__ = ["RequestContextMiddleware", "register_error_handlers"]
