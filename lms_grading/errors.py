"""Application error taxonomy.

Every error carries the HTTP status it maps to; ``status`` is ``"fail"`` for
client errors and ``"error"`` for server-side ones.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def status(self) -> str:
        return "fail" if str(self.status_code).startswith("4") else "error"


class ValidationError(AppError):
    """Rejected input: out-of-range score, bad weights, missing field."""

    status_code = 400


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class ConfigurationMissing(AppError):
    """Course has no grade rules and the fallback weighting is disabled."""

    status_code = 409


class TransactionFailure(AppError):
    status_code = 500
