class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class NotFoundError(AppError):
    pass


class MedicineNotFoundError(NotFoundError):
    pass


class InsufficientStockError(AppError):
    pass


class InsufficientPaymentError(AppError):
    pass


class AlreadyVoidedError(AppError):
    pass


class InvalidStateError(AppError):
    pass


class AuthorizationError(AppError):
    pass
