"""
Error taxonomy for the storefront API

Every class maps to an HTTP status and the message placed in the
`{"success": false, "error": ...}` envelope.
"""
from typing import Optional


class ApiError(Exception):
    status_code = 500
    message = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class InvalidInput(ApiError):
    status_code = 400
    message = "Invalid request"


class UnsupportedFileType(InvalidInput):
    message = "Only images are allowed"


class DuplicateEmail(ApiError):
    status_code = 400
    message = "Email already exists"


class InvalidCredentials(ApiError):
    status_code = 400
    message = "Invalid credentials"


class InvalidEmail(InvalidCredentials):
    message = "Invalid Email"


class InvalidPassword(InvalidCredentials):
    message = "Invalid Password"


class NotFound(ApiError):
    status_code = 404
    message = "Product not found"


class Unauthorized(ApiError):
    status_code = 401
    message = "Invalid token"


class PersistenceFailure(ApiError):
    pass
