"""Custom exceptions following RFC 9457 Problem Details for HTTP APIs."""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROBLEM_BASE_URI = "https://umrah-core.local/problems"


class ProblemDetailsException(HTTPException):
    """
    Base exception class following RFC 9457 Problem Details for HTTP APIs.

    Every business rejection carries a stable ``code`` and a ``retryable``
    flag so callers can tell "sold out" apart from "already verified" or a
    transient write conflict.

    https://tools.ietf.org/rfc/rfc9457.txt
    """

    def __init__(
        self,
        status_code: int,
        title: str,
        detail: Optional[str] = None,
        type_uri: Optional[str] = None,
        instance: Optional[str] = None,
        code: Optional[str] = None,
        retryable: bool = False,
        extensions: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Initialize Problem Details exception.

        Args:
            status_code: HTTP status code
            title: Short, human-readable summary of the problem type
            detail: Human-readable explanation specific to this occurrence
            type_uri: URI reference that identifies the problem type
            instance: URI reference that identifies the specific occurrence
            code: Application-specific error code
            retryable: Whether the caller may retry the same request
            extensions: Additional problem-specific information
            headers: HTTP headers to include in response
        """
        self.status_code = status_code
        self.title = title
        self.detail = detail
        self.type_uri = type_uri or f"about:blank#{status_code}"
        self.instance = instance
        self.code = code
        self.retryable = retryable
        self.extensions = extensions or {}

        self.problem_details = {
            "type": self.type_uri,
            "title": self.title,
            "status": self.status_code,
            "retryable": self.retryable,
        }

        if self.detail:
            self.problem_details["detail"] = self.detail

        if self.instance:
            self.problem_details["instance"] = self.instance

        if self.code:
            self.problem_details["code"] = self.code

        self.problem_details.update(self.extensions)

        super().__init__(
            status_code=status_code,
            detail=self.problem_details,
            headers=headers
        )


class ValidationError(ProblemDetailsException):
    """Exception for request validation errors."""

    def __init__(
        self,
        detail: str = "The request data failed validation",
        errors: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if errors:
            extensions["errors"] = errors

        super().__init__(
            status_code=400,
            title="Validation Error",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/validation-error",
            instance=instance,
            code="VALIDATION_ERROR",
            extensions=extensions,
        )


class AuthenticationError(ProblemDetailsException):
    """Exception for authentication errors."""

    def __init__(
        self,
        detail: str = "Authentication credentials are required",
        instance: Optional[str] = None,
    ):
        super().__init__(
            status_code=401,
            title="Authentication Required",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/authentication-required",
            instance=instance,
            code="AUTHENTICATION_REQUIRED",
            headers={"WWW-Authenticate": "Bearer"},
        )


class NotFoundError(ProblemDetailsException):
    """Exception for resource not found errors."""

    def __init__(
        self,
        resource_type: str = "resource",
        resource_id: Optional[str] = None,
        detail: Optional[str] = None,
        instance: Optional[str] = None,
    ):
        if not detail:
            detail = f"The requested {resource_type}"
            if resource_id:
                detail += f" with ID '{resource_id}'"
            detail += " could not be found"

        extensions = {
            "resource_type": resource_type,
        }
        if resource_id:
            extensions["resource_id"] = resource_id

        super().__init__(
            status_code=404,
            title="Resource Not Found",
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/resource-not-found",
            instance=instance,
            code="NOT_FOUND",
            extensions=extensions,
        )


class ConflictError(ProblemDetailsException):
    """Exception for resource conflict errors."""

    def __init__(
        self,
        detail: str = "The request conflicts with the current state of the resource",
        title: str = "Resource Conflict",
        code: str = "CONFLICT",
        slug: str = "resource-conflict",
        retryable: bool = False,
        conflicting_resource: Optional[Dict[str, Any]] = None,
        instance: Optional[str] = None,
    ):
        extensions = {}
        if conflicting_resource:
            extensions["conflicting_resource"] = conflicting_resource

        super().__init__(
            status_code=409,
            title=title,
            detail=detail,
            type_uri=f"{PROBLEM_BASE_URI}/{slug}",
            instance=instance,
            code=code,
            retryable=retryable,
            extensions=extensions,
        )


# Business logic exceptions

class CapacityExceededError(ConflictError):
    """Exception when a departure has fewer free seats than requested."""

    def __init__(self, departure_id: str, requested_pax: int, quota: int, booked_count: int):
        super().__init__(
            detail=(
                f"Departure {departure_id} has insufficient capacity. "
                f"Requested: {requested_pax}, Available: {max(0, quota - booked_count)}"
            ),
            title="Capacity Exceeded",
            code="CAPACITY_EXCEEDED",
            slug="capacity-exceeded",
            conflicting_resource={
                "departure_id": departure_id,
                "requested_pax": requested_pax,
                "quota": quota,
                "booked_count": booked_count,
            },
        )


class DepartureClosedError(ConflictError):
    """Exception when a departure no longer accepts reservations."""

    def __init__(self, departure_id: str, status: str):
        super().__init__(
            detail=f"Departure {departure_id} is not open for booking (status: {status})",
            title="Departure Closed",
            code="DEPARTURE_CLOSED",
            slug="departure-closed",
            conflicting_resource={"departure_id": departure_id, "status": status},
        )


class InvalidStateTransitionError(ConflictError):
    """Exception when an entity cannot move from its current state."""

    def __init__(
        self,
        entity: str,
        entity_id: str,
        current_state: str,
        attempted: str,
        detail: Optional[str] = None,
        title: str = "Invalid State Transition",
        code: str = "INVALID_STATE_TRANSITION",
        slug: str = "invalid-state-transition",
    ):
        super().__init__(
            detail=detail or f"Cannot {attempted} {entity} {entity_id} in state '{current_state}'",
            title=title,
            code=code,
            slug=slug,
            conflicting_resource={
                "entity": entity,
                "entity_id": entity_id,
                "current_state": current_state,
                "attempted": attempted,
            },
        )


class PaymentAlreadyResolvedError(InvalidStateTransitionError):
    """Exception when a payment has already been verified or rejected."""

    def __init__(self, payment_id: str, current_state: str):
        super().__init__(
            entity="payment",
            entity_id=payment_id,
            current_state=current_state,
            attempted="verify",
            detail=f"Payment {payment_id} was already resolved as '{current_state}'",
            title="Payment Already Resolved",
            code="PAYMENT_ALREADY_RESOLVED",
            slug="payment-already-resolved",
        )


class GenderMismatchError(ConflictError):
    """Exception when passengers of different genders would share a room."""

    def __init__(self, detail: str, conflicting_resource: Optional[Dict[str, Any]] = None):
        super().__init__(
            detail=detail,
            title="Gender Mismatch",
            code="GENDER_MISMATCH",
            slug="gender-mismatch",
            conflicting_resource=conflicting_resource,
        )


class AlreadyPairedError(ConflictError):
    """Exception when a passenger already has a roommate."""

    def __init__(self, passenger_ids: list[str]):
        super().__init__(
            detail=f"Passenger(s) {', '.join(passenger_ids)} already have a roommate",
            title="Already Paired",
            code="ALREADY_PAIRED",
            slug="already-paired",
            conflicting_resource={"passenger_ids": passenger_ids},
        )


class RoomFullError(ConflictError):
    """Exception when a room has no free bed left."""

    def __init__(self, room_id: str, capacity: int):
        super().__init__(
            detail=f"Room {room_id} is full ({capacity}/{capacity})",
            title="Room Full",
            code="ROOM_FULL",
            slug="room-full",
            conflicting_resource={"room_id": room_id, "capacity": capacity},
        )


class DepartureMismatchError(ConflictError):
    """Exception when a passenger or customer does not belong to the departure."""

    def __init__(self, detail: str, conflicting_resource: Optional[Dict[str, Any]] = None):
        super().__init__(
            detail=detail,
            title="Departure Mismatch",
            code="DEPARTURE_MISMATCH",
            slug="departure-mismatch",
            conflicting_resource=conflicting_resource,
        )


class PersistenceConflictError(ConflictError):
    """Exception when a concurrent write invalidated this operation."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            detail=f"{entity.capitalize()} {entity_id} was modified concurrently, retry the request",
            title="Persistence Conflict",
            code="PERSISTENCE_CONFLICT",
            slug="persistence-conflict",
            retryable=True,
            conflicting_resource={"entity": entity, "entity_id": entity_id},
        )


class PersistenceTimeoutError(ProblemDetailsException):
    """Exception when the database did not answer within the configured timeout."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            status_code=503,
            title="Persistence Timeout",
            detail=f"Operation '{operation}' did not complete within {timeout_seconds}s",
            type_uri=f"{PROBLEM_BASE_URI}/persistence-timeout",
            code="PERSISTENCE_TIMEOUT",
            retryable=True,
            extensions={"operation": operation, "timeout_seconds": timeout_seconds},
            headers={"Retry-After": "1"},
        )


async def problem_details_handler(request: Request, exc: ProblemDetailsException) -> JSONResponse:
    """
    Exception handler for Problem Details exceptions.

    Args:
        request: FastAPI request object
        exc: Problem Details exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    content = dict(exc.problem_details)
    content.setdefault("instance", str(request.url.path))
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=exc.headers,
        media_type="application/problem+json",
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI request validation failures as Problem Details with violations."""
    violations = [
        {
            "path": ".".join(str(part) for part in error.get("loc", ())),
            "message": error.get("msg", "invalid value"),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content={
            "type": f"{PROBLEM_BASE_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "The request data failed validation",
            "instance": str(request.url.path),
            "code": "VALIDATION_ERROR",
            "retryable": False,
            "violations": violations,
        },
        media_type="application/problem+json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Generic exception handler that converts unhandled exceptions to Problem Details format.

    Args:
        request: FastAPI request object
        exc: Unhandled exception

    Returns:
        JSONResponse: Problem Details formatted response
    """
    error_id = str(uuid.uuid4())

    logger.error(
        "Unhandled exception",
        extra={"error_id": error_id, "path": request.url.path, "error": str(exc)},
        exc_info=exc,
    )

    problem_details = {
        "type": f"{PROBLEM_BASE_URI}/internal-server-error",
        "title": "Internal Server Error",
        "status": 500,
        "detail": "An unexpected error occurred while processing the request",
        "instance": str(request.url.path),
        "retryable": False,
        "error_id": error_id,
        "timestamp": datetime.utcnow().isoformat() + "Z",
    }

    return JSONResponse(
        status_code=500,
        content=problem_details,
        media_type="application/problem+json",
    )
