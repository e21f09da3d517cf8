"""HTTP API: routes and business error mapping."""

from haggle.api.errors import register_error_handlers
from haggle.api.routes import router

__all__ = [
    "register_error_handlers",
    "router",
]
