# backend/tutordesk/core/exceptions.py
"""
Domain exceptions for tutordesk.

Services raise these; routes turn them into HTTP responses through
`to_http_exception`, whose detail envelope is {message, code, details}.
RepositoryException stays below the service layer.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base for errors a service reports to its caller."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to an HTTPException carrying the standard detail envelope."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when business validation fails."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """The request collides with stored state (HTTP 409)."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """An operation failed for reasons the caller cannot fix (HTTP 500)."""


# Specific business exceptions


class BookingConflictException(ConflictException):
    """Raised when a requested slot overlaps a busy interval."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot conflicts with an existing booking",
            code="BOOKING_CONFLICT",
            details=details or {},
        )


class InvoiceAlreadyExistsException(ConflictException):
    """Raised when a family/month billing period already has a payment record."""

    def __init__(self, parent_id: str, month: str):
        super().__init__(
            message="A payment record already exists for this family and month",
            code="INVOICE_ALREADY_EXISTS",
            details={"parent_id": parent_id, "month": month},
        )


class NothingToInvoiceException(BusinessRuleException):
    """Raised when a family has no billable lessons for the requested month."""

    def __init__(self, message: str, *, parent_id: str, month: str):
        super().__init__(
            message=message,
            code="NOTHING_TO_INVOICE",
            details={"parent_id": parent_id, "month": month},
        )


class LessonAlreadyInvoicedException(ConflictException):
    """Raised when a lesson is already linked to a payment."""

    def __init__(self, message: Optional[str] = None, *, lesson_ids: Optional[list] = None):
        super().__init__(
            message=message or "Lesson has already been invoiced",
            code="LESSON_ALREADY_INVOICED",
            details={"lesson_ids": list(lesson_ids or [])},
        )


class BillingIntegrityException(ServiceException):
    """Raised when an invoice write left the store in an unknown state."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code="BILLING_INTEGRITY", details=details or {})


class RepositoryException(Exception):
    """
    A data access failure.

    ``constraint`` names the violated constraint (or carries the driver
    message on SQLite) so services can map uniqueness races to conflicts.
    """

    def __init__(self, message: str, *, constraint: Optional[str] = None) -> None:
        self.constraint = constraint
        super().__init__(message)
