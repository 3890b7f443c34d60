"""Health check module."""

from microlearning.health.router import router


__all__ = ["router"]
