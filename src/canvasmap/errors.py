"""Exception hierarchy for canvasmap.

Validation errors are surfaced to the caller and never retried.
Persistence errors carry a stage prefix ("Failed to deactivate previous
versions: ...") and wrap the backend failure as ``__cause__``.
"""


class CanvasMapError(Exception):
    """Base exception for all canvasmap errors."""
    pass


class MappingValidationError(CanvasMapError):
    """Raised when an operation is rejected before touching persistence."""
    pass


class AuthenticationRequiredError(MappingValidationError):
    """Raised when a store operation is attempted without a user."""
    pass


class NameConflictError(MappingValidationError):
    """Raised when a mapping name is already used by another mapping group."""
    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f'A mapping with the name "{name}" already exists. Please choose a different name.'
        )


class MappingNotFoundError(MappingValidationError):
    """Raised when a mapping record cannot be found for the user."""
    def __init__(self, mapping_id: str, detail: str = "Mapping not found"):
        self.mapping_id = mapping_id
        super().__init__(f"Failed to find mapping {mapping_id}: {detail}")


class PersistenceError(CanvasMapError):
    """Raised when the persistence collaborator fails during a store operation."""
    def __init__(self, stage: str, detail: str):
        self.stage = stage
        self.detail = detail
        super().__init__(f"Failed to {stage}: {detail}")


class OracleResponseError(CanvasMapError):
    """Raised when the AI oracle returns something that is not a JSON mapping array."""
    def __init__(self, message: str, raw: str = ""):
        self.raw = raw
        super().__init__(message)


class ImportSequenceError(CanvasMapError):
    """Raised when edges are requested before imported nodes were rendered."""
    pass
