"""HTTP middleware for the Tri-Stack bridge."""

from .request_id import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
]
