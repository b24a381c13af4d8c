"""
Error taxonomy for the Roof Finder services.

Services raise these internally and turn them into a ``ServiceResult`` at
their public boundary, so callers get ``{success, data, error}`` instead of an
exception for every anticipated failure.
"""


class RoofFinderError(Exception):
    """Base exception for Roof Finder"""
    code = "RoofFinderError"

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(RoofFinderError):
    """Input rejected before any state changed"""
    code = "ValidationError"

    def __init__(self, message: str = "Validation failed", field: str = None):
        if field:
            message = f"Validation failed for field '{field}': {message}"
        self.field = field
        super().__init__(message)


class LeadReferenceError(RoofFinderError):
    """Lead or image not found"""
    code = "ReferenceError"

    def __init__(self, resource: str = "Resource", resource_id: str = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(message)


class ConflictError(RoofFinderError):
    """The requested link already exists"""
    code = "ConflictError"


class TransportError(RoofFinderError):
    """Network or storage failure"""
    code = "TransportError"

    def __init__(self, message: str = "Transport failure", data: dict = None):
        # Partial-failure context, e.g. the id of an entity created before the failure
        self.data = data
        super().__init__(message)


class DecodeError(RoofFinderError):
    """Stored geometry could not be parsed"""
    code = "DecodeError"

    def __init__(self, message: str = "Unparseable geometry", raw=None):
        self.raw = raw
        super().__init__(message)


# HTTP status for each error code, used by the routes
HTTP_STATUS_BY_CODE = {
    ValidationError.code: 422,
    LeadReferenceError.code: 404,
    ConflictError.code: 409,
    TransportError.code: 502,
    DecodeError.code: 422,
}
