class WorkflowError(Exception):
    """Base workflow error."""


class WorkflowValidationError(WorkflowError):
    """Raised when a precondition, required field or transition target is invalid."""


class WorkflowPermissionError(WorkflowError, PermissionError):
    """Raised when the actor's roles do not authorize the requested action."""


class WorkflowConflictError(WorkflowError):
    """Raised when a write-once field is already set or a unique key already exists."""


class WorkflowNotFoundError(WorkflowError):
    """Raised when a referenced entity does not exist."""


class WorkflowDependencyError(WorkflowError):
    """Raised when the data store, blob store or identity provider call fails."""
