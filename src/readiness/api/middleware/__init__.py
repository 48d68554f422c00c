"""Readiness API middleware package."""

from readiness.api.middleware.request_id import RequestIdMiddleware

__all__ = ["RequestIdMiddleware"]
