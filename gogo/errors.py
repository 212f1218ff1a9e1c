"""
Error taxonomy for service operations.

Codes follow the callable-function error codes the mobile apps already
understand, so messages surface unchanged in toasts and banners.
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors that are reported back to the caller."""

    code = "internal"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class Unauthenticated(ServiceError):
    code = "unauthenticated"
    status_code = 401


class PermissionDenied(ServiceError):
    code = "permission-denied"
    status_code = 403


class NotFound(ServiceError):
    code = "not-found"
    status_code = 404


class InvalidArgument(ServiceError):
    code = "invalid-argument"
    status_code = 400


class FailedPrecondition(ServiceError):
    code = "failed-precondition"
    status_code = 409


class Aborted(ServiceError):
    """A concurrent writer got there first (e.g. another driver accepted)."""

    code = "aborted"
    status_code = 409
