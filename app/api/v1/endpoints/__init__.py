"""API endpoint modules for v1."""

from app.api.v1.endpoints import notifications, push_tokens

__all__ = ["notifications", "push_tokens"]
