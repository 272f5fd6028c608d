# app/utils/errors.py

"""
Service-level errors.

Services raise these instead of HTTPException so they can be called outside
of a request. main.py maps every AppError to a JSON body {"error": message}
with the status code declared on the class.
"""

from fastapi import status


class AppError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal server error", **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.extra)
        return body


class Unauthorized(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(AppError):
    status_code = status.HTTP_409_CONFLICT


class InsufficientBalance(AppError):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, available: int, requested: int):
        super().__init__("Insufficient points", available=available, requested=requested)
        self.available = available
        self.requested = requested


class SelfReferral(ValidationError):
    def __init__(self):
        super().__init__("Cannot refer yourself")


class AlreadyReferred(Conflict):
    def __init__(self):
        super().__init__("User already referred")
