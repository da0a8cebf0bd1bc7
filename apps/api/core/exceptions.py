"""
Custom exception classes.

Provides a consistent error structure across the store, the pipeline
stages and the ops entry points.
"""
from typing import Optional


class PipelineException(Exception):
    """Base pipeline exception with consistent structure."""

    def __init__(self, detail: str, error_code: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.error_code = error_code


class NotFoundError(PipelineException):
    """Resource not found."""

    def __init__(self, resource: str, identifier):
        super().__init__(
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )
        self.resource = resource
        self.identifier = identifier


class ValidationError(PipelineException):
    """Malformed input that an analysis cannot work with."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(detail=detail, error_code=error_code)
        self.field = field


class RouteLockTimeout(PipelineException):
    """Another worker held a canonical route lock for too long."""

    def __init__(self, route_key: str):
        super().__init__(
            detail=f"Timed out waiting for route lock: {route_key}",
            error_code="ROUTE_LOCK_TIMEOUT"
        )
        self.route_key = route_key
