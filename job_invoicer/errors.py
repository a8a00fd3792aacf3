class SigningError(Exception):
    """Base class for errors surfaced to API callers as ``{"error": message}``."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(SigningError):
    status_code = 404


class ValidationFailed(SigningError):
    status_code = 400


class Expired(SigningError):
    status_code = 400

    def __init__(self, message: str = "Signing link has expired"):
        super().__init__(message)


class Conflict(SigningError):
    status_code = 409


class AlreadySigned(Conflict):
    def __init__(self, message: str = "Document already signed"):
        super().__init__(message)


class OutOfOrder(Conflict):
    def __init__(self, message: str = "Earlier signers must sign first"):
        super().__init__(message)


class RenderError(SigningError):
    status_code = 500


class StorageError(SigningError):
    status_code = 500


class DeliveryFailed(SigningError):
    status_code = 500
