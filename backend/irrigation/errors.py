# backend/irrigation/errors.py
from fastapi import status


class IrrigationError(Exception):
    """Base for service-level failures; status_code is the HTTP mapping."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)
        self.message = message


class Unauthorized(IrrigationError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(IrrigationError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidInput(IrrigationError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(IrrigationError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(IrrigationError):
    status_code = status.HTTP_409_CONFLICT


class Internal(IrrigationError):
    pass
