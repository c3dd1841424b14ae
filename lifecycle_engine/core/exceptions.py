"""Custom application exceptions."""

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class InvalidStatusTransition(AppException):
    """Requested status change is not an edge of the status graph."""

    def __init__(self, detail: str = "This status change is not allowed for the current reservation status") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class StaleReservationError(AppException):
    """Reservation changed between validation and application."""

    def __init__(self, detail: str = "The reservation was modified by another operation") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
