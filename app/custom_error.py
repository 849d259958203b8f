from fastapi import HTTPException, status
from typing import Optional


class ValidationError(HTTPException):
    def __init__(self, error_detail_message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail_message)


class AuthenticationError(HTTPException):
    def __init__(self, error_detail_message: str = "Authentication required"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=error_detail_message)


class PermissionDeniedError(HTTPException):
    def __init__(self, error_detail_message: str = "Permission denied"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=error_detail_message)


class NotFoundError(HTTPException):
    def __init__(self, resource: str, resource_id: Optional[str] = None):
        self.resource = resource
        self.resource_id = resource_id
        message = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=message)


class UserNotFoundError(NotFoundError):
    def __init__(self):
        super().__init__("User")


# the current state travels with the error so the caller can show why the action was refused
class InvalidStateTransition(HTTPException):
    def __init__(self, entity: str, current_state: str, attempted: str):
        self.entity = entity
        self.current_state = current_state
        self.attempted = attempted
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": f"Cannot {attempted} {entity} in status '{current_state}'",
                "entity": entity,
                "current_state": current_state,
                "attempted": attempted,
            },
        )


class ConflictError(HTTPException):
    def __init__(self, error_detail_message: str):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=error_detail_message)


class DuplicateBidError(HTTPException):
    def __init__(self, error_detail_message: str = "You already have a live bid on this project"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=error_detail_message)


class InvariantViolationError(HTTPException):
    def __init__(self, error_detail_message: str):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error_detail_message)


class DatabaseError(HTTPException):
    def __init__(self, error_detail_message: str):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error_detail_message)


class ServerError(HTTPException):
    def __init__(self, error_detail_message: str):
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error_detail_message)


class WebhookError(HTTPException):
    def __init__(self, error_detail_message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=error_detail_message)


# errors a service re-raises untouched; anything else gets wrapped into ServerError
DOMAIN_ERRORS = (
    ValidationError,
    AuthenticationError,
    PermissionDeniedError,
    NotFoundError,
    InvalidStateTransition,
    ConflictError,
    DuplicateBidError,
    InvariantViolationError,
    DatabaseError,
)
