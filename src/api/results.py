from fastapi import HTTPException

from src.services.results import INTERNAL_ERROR, NOT_FOUND, OperationResult


def unwrap(result: OperationResult):
    """Return the value of a successful result or raise the matching HTTP error"""
    if result.is_success:
        return result.value

    detail = [error.model_dump() for error in result.errors]
    if result.has_error(INTERNAL_ERROR):
        raise HTTPException(status_code=500, detail=detail)
    if result.has_error(NOT_FOUND):
        raise HTTPException(status_code=404, detail=detail)
    # VALIDATION_ERROR and INSUFFICIENT_STOCK
    raise HTTPException(status_code=400, detail=detail)
