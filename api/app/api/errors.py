from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, status

from app.services.errors import (
    WorkflowConflictError,
    WorkflowDependencyError,
    WorkflowError,
    WorkflowNotFoundError,
    WorkflowPermissionError,
    WorkflowValidationError,
)

WORKFLOW_ERROR_STATUS: tuple[tuple[type[WorkflowError], int], ...] = (
    (WorkflowValidationError, status.HTTP_422_UNPROCESSABLE_CONTENT),
    (WorkflowPermissionError, status.HTTP_403_FORBIDDEN),
    (WorkflowNotFoundError, status.HTTP_404_NOT_FOUND),
    (WorkflowConflictError, status.HTTP_409_CONFLICT),
    (WorkflowDependencyError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def status_code_for(exc: WorkflowError) -> int:
    for error_type, status_code in WORKFLOW_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@contextmanager
def http_errors() -> Iterator[None]:
    try:
        yield
    except WorkflowError as exc:
        raise HTTPException(status_code=status_code_for(exc), detail=str(exc)) from exc
