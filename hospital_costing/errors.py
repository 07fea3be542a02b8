# hospital_costing/errors.py
from enum import Enum


class ErrorType(str, Enum):
    '''
    Structured classification of the failures this package raises.

    NOT_FOUND: snapshot / variant / entity id does not exist.
    CONFLICT: duplicate month on create, duplicate procedure id, or the
        persisted document changed underneath a mutation.
    VALIDATION_FAILED: bad payload shape or an illegal status transition.
    PERSISTENCE_CORRUPTED: the persisted document could not be read
        (raised only when strict persistence is on).
    '''
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    PERSISTENCE_CORRUPTED = "PERSISTENCE_CORRUPTED"


class CostingError(ValueError):
    error_type: ErrorType = ErrorType.VALIDATION_FAILED


class NotFoundError(CostingError):
    error_type = ErrorType.NOT_FOUND


class ConflictError(CostingError):
    error_type = ErrorType.CONFLICT


class StaleDocumentError(ConflictError):
    """The document revision moved between load and write."""


class ValidationFailedError(CostingError):
    error_type = ErrorType.VALIDATION_FAILED


class InvalidTransitionError(ValidationFailedError):
    pass


class PersistenceCorruptedError(CostingError):
    error_type = ErrorType.PERSISTENCE_CORRUPTED
