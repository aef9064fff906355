# carnet/core/exceptions.py
"""Custom exceptions for the carnet lifecycle."""
from fastapi import HTTPException
from typing import Any, Dict, Optional


class CarnetException(HTTPException):
    """Base exception for carnet application.

    Every lifecycle rejection is recoverable by the caller: it carries an HTTP
    status and a structured ``detail`` with a stable ``error`` code.
    """
    code = "error"
    status = 400

    def __init__(
        self,
        message: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
        code: Optional[str] = None,
        **context
    ):
        self.code = code or self.code
        self.message = message or self.code.replace("_", " ")
        self.context = context
        detail = {"error": self.code, "message": self.message}
        if context:
            detail.update(context)
        super().__init__(status_code=self.status, detail=detail, headers=headers)


class NotFound(CarnetException):
    """Assignment, student or signature is absent."""
    code = "not_found"
    status = 404


class NotAuthorized(CarnetException):
    """Actor is outside the scope of the assignment."""
    code = "not_authorized"
    status = 403


class MissingActor(CarnetException):
    """Request carries no acting user."""
    code = "missing_actor"
    status = 401


class NotCompleted(CarnetException):
    """Teacher completion does not cover the requested signature type."""
    code = "not_completed"
    status = 400


class AlreadySigned(CarnetException):
    code = "already_signed"
    status = 409


class AlreadyPromoted(CarnetException):
    code = "already_promoted"
    status = 409


class NotSignedByReviewer(CarnetException):
    """Promotion attempted without an end-of-year signature by the actor."""
    code = "not_signed_by_you"
    status = 403


class Semester2Required(CarnetException):
    code = "semester_2_required"
    status = 400


class CannotDetermineNextLevel(CarnetException):
    code = "cannot_determine_next_level"
    status = 400


class NoNextSchoolYear(CarnetException):
    code = "no_next_school_year"
    status = 400


class IdempotencyKeyConflict(CarnetException):
    """Idempotency key already used to promote another student."""
    code = "idempotency_key_conflict"
    status = 409
