from collections.abc import Iterator
from contextlib import contextmanager

from app.core.auth import Actor
from app.core.authorization import roles_for_action
from app.services.blobs import BlobStoreError
from app.services.errors import (
    WorkflowConflictError,
    WorkflowDependencyError,
    WorkflowPermissionError,
    WorkflowValidationError,
)
from app.services.store import (
    RepositoryConflictError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)


def require_action(actor: Actor, action: str) -> None:
    allowed = roles_for_action(action)
    if not actor.has_any_role(allowed):
        raise WorkflowPermissionError(
            f"action {action} requires one of roles: {sorted(role.value for role in allowed)}"
        )


@contextmanager
def translate_store_errors() -> Iterator[None]:
    """Re-raise data store and blob store failures as workflow errors."""
    try:
        yield
    except RepositoryConflictError as exc:
        raise WorkflowConflictError(str(exc)) from exc
    except RepositoryValidationError as exc:
        raise WorkflowValidationError(str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise WorkflowDependencyError(str(exc)) from exc
    except BlobStoreError as exc:
        raise WorkflowDependencyError(str(exc)) from exc
