# domain/errors.py


class BillingError(Exception):
    """Base class for every failure raised by the billing core."""


class ValidationError(BillingError, ValueError):
    """
    Missing or malformed input. Raised before anything touches the workbook.
    """

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class StoreIOError(BillingError, OSError):
    """The workbook could not be read, written or parsed."""


class NotFoundError(StoreIOError):
    """A sheet or one of its expected columns is missing from an existing workbook."""
