class CallbackError(Exception):
    """Base class for every reason a callback is rejected.

    ``public_message`` is the only text that is ever sent back to the caller;
    the exception message itself may carry details for logs and order notes.
    """

    kind = "callback_error"
    public_message = "Callback rejected"


class MalformedRequest(CallbackError):
    kind = "malformed_request"
    public_message = "No valid callback data received"


class AuthenticationFailed(CallbackError):
    kind = "authentication_failed"
    public_message = "Invalid callback signature"


class UnknownOrder(CallbackError):
    kind = "unknown_order"
    public_message = "Unknown order"


class UnrecognizedStatus(CallbackError):
    kind = "unrecognized_status"
    public_message = "Unhandled hutko order status"


class DependencyFailure(CallbackError):
    kind = "dependency_failure"
    public_message = "Callback processing failed"


class HutkoAPIError(Exception):
    """Raised when the hutko API refuses a request or cannot be reached."""

    def __init__(self, message: str, code=None):
        super().__init__(message)
        self.code = code
