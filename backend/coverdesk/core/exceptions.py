class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

class ValidationFailedError(AppError):
    """Raised when submitted input is rejected before any state mutation.

    ``errors`` is a list of ``{"field": ..., "reason": ...}`` entries.
    """
    def __init__(self, errors: list[dict[str, str]], message: str = "Validation failed"):
        self.errors = list(errors)
        super().__init__(message, status_code=422, details={"errors": self.errors})

class ResourceNotFoundError(AppError):
    """Raised when a requested resource is not found."""
    def __init__(self, resource_type: str, resource_id: str):
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} with id {resource_id} not found", status_code=404)

class ConflictingAssignmentError(AppError):
    """Raised when a commit would double-book a teacher or a request.

    The candidate pool has changed; callers must classify the slot again.
    """
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=409, details=details)

class ConfigurationError(AppError):
    """Raised when system configuration is invalid."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)
