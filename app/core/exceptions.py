"""Error taxonomy for the registration lifecycle.

All errors are ``HTTPException`` subclasses so routes can let them propagate
and FastAPI renders them with the right status code. Services raise them
before any write whenever a rule is violated.
"""
from typing import Optional

from fastapi import HTTPException


class ProgramsError(HTTPException):
    """Base class for lifecycle errors."""

    status_code_default = 500

    def __init__(self, detail: str, status_code: Optional[int] = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=detail)

    @property
    def message(self) -> str:
        return str(self.detail)


class PolicyViolation(ProgramsError):
    """A business rule rejected the operation (deadline passed, waitlist full, ...)."""

    status_code_default = 400


class DuplicateRegistration(PolicyViolation):
    """The player already holds an active registration for the program."""

    status_code_default = 409

    def __init__(self, detail: str = "Player is already registered for this program"):
        super().__init__(detail)


class NotFound(ProgramsError):
    """A registration, program or waitlist entry does not exist."""

    status_code_default = 404


class PersistenceError(ProgramsError):
    """The backing store failed; ``detail`` keeps the store's original message."""

    status_code_default = 500

    def __init__(self, detail: str, code: Optional[str] = None):
        self.code = code
        super().__init__(detail)


class UniqueViolation(PersistenceError):
    """Insert collided with a unique constraint (Postgres 23505)."""

    POSTGRES_CODE = "23505"

    def __init__(self, detail: str):
        super().__init__(detail, code=self.POSTGRES_CODE)
