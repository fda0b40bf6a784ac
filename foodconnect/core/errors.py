# foodconnect/core/errors.py
class CoreError(Exception):
    """Base for errors raised by the matching core.

    Every subclass maps to one HTTP status so routers never translate by hand.
    """
    status_code = 400
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class ValidationError(CoreError):
    kind = "validation_error"

class NotFound(CoreError):
    status_code = 404
    kind = "not_found"

class Forbidden(CoreError):
    status_code = 403
    kind = "forbidden"

class InvalidState(CoreError):
    kind = "invalid_state"

class DuplicateRequest(InvalidState):
    kind = "duplicate_request"
