"""
Error taxonomy shared by every module.

Each error is an ``HTTPException`` so FastAPI routes and services can raise it
directly; ``main.py`` renders all of them through the same JSON envelope.
"""
from typing import Optional, Dict

from fastapi import HTTPException, status


class OrbitLendError(HTTPException):
    """Base class for application errors"""
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "InternalError"

    def __init__(self, message: str, headers: Optional[Dict[str, str]] = None):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)
        self.message = message


class ValidationError(OrbitLendError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "ValidationError"


class AuthenticationError(OrbitLendError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "AuthenticationError"

    def __init__(self, message: str = "Could not validate credentials"):
        super().__init__(message, headers={"WWW-Authenticate": "Bearer"})


class AuthorizationError(OrbitLendError):
    status_code = status.HTTP_403_FORBIDDEN
    error = "AuthorizationError"


class NotFoundError(OrbitLendError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "NotFoundError"


class ConflictError(OrbitLendError):
    status_code = status.HTTP_409_CONFLICT
    error = "ConflictError"


class ExternalServiceError(OrbitLendError):
    """A call to the minting, pinning or AI provider failed"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "ExternalServiceError"


ERROR_NAMES_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: ValidationError.error,
    status.HTTP_401_UNAUTHORIZED: AuthenticationError.error,
    status.HTTP_403_FORBIDDEN: AuthorizationError.error,
    status.HTTP_404_NOT_FOUND: NotFoundError.error,
    status.HTTP_409_CONFLICT: ConflictError.error,
}
