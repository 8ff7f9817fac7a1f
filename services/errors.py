# services/errors.py


class ExchangeError(Exception):
    """Base class for every error the exchange reports to its callers."""


class ValidationError(ExchangeError):
    """Malformed direction, quantity, price or currency."""


class NotFoundError(ExchangeError):
    pass


class PermissionDeniedError(ExchangeError):
    pass


class NoLiquidityError(ExchangeError):
    """No eligible resting order could be matched."""


class AlreadyRegisteredError(ExchangeError):
    pass


class RateUnavailableError(ExchangeError):
    """The external BTC/USD quote could not be fetched."""


class InternalFailure(ExchangeError):
    """Storage or unexpected fault; the enclosing transaction was rolled back."""


class ConcurrentUpdateError(ExchangeError):
    """A concurrent transaction changed the same rows first; nothing was applied."""
