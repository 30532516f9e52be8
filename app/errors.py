"""Domain errors raised by the services and rendered at the request boundary."""


class AppError(Exception):
    """Base error: carries the HTTP status and a message that is safe to show the client."""

    status_code = 500
    public_message = "Server error."
    expose = True

    def __init__(self, message: str | None = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(AppError):
    status_code = 422
    public_message = "Invalid request."

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class AuthError(AppError):
    status_code = 401
    public_message = "You must be logged in."

    INVALID_CREDENTIALS = "invalid_credentials"
    UNVERIFIED = "unverified"
    NO_SESSION = "no_session"

    def __init__(self, message: str | None = None, reason: str = NO_SESSION):
        super().__init__(message)
        self.reason = reason


class TokenError(AppError):
    status_code = 400
    public_message = "Verification token is invalid. Please register again."


class VerificationExpiredError(TokenError):
    public_message = "Verification code has expired. Please register again."


class CodeMismatchError(AppError):
    status_code = 400
    public_message = "Invalid verification code."


class NotFoundError(AppError):
    status_code = 404
    public_message = "Item not found."


class ConflictError(AppError):
    status_code = 409
    public_message = "Item already in watchlist."


# Internal failures: detail goes to the log, the client only sees public_message.


class DeliveryError(AppError):
    public_message = "An error occurred while sending the verification email."
    expose = False


class StoreError(AppError):
    expose = False


class ProviderError(AppError):
    expose = False
