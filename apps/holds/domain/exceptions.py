"""
Hold order errors

All of these are recoverable at the caller: a failed attempt never leaves
the order in an intermediate state. ConcurrentModificationError is the one
that signals a storage-level consistency problem and is logged for
operators before it propagates.
"""

from shared.domain.exceptions import CurrencyMismatchError, DomainError

__all__ = [
    'AlreadyTerminalError',
    'BookingApiError',
    'ConcurrentModificationError',
    'CurrencyMismatchError',
    'HoldExpiredError',
    'HoldOrderNotFound',
    'InvalidOfferError',
    'InvalidPassengerDataError',
    'PaymentDeclinedError',
    'QuoteExpiredError',
    'UnknownSliceError',
]


class InvalidOfferError(DomainError):
    """The offer can no longer be held"""

    code = 'invalid_offer'


class InvalidPassengerDataError(DomainError):
    """Passenger details are incomplete"""

    code = 'invalid_passenger_data'

    def __init__(self, index: int = None, field: str = None, message: str = ''):
        if not message and index is not None:
            message = f"Passenger {index + 1} is missing required field '{field}'"
        super().__init__(message, index=index, field=field)
        self.index = index
        self.field = field


class HoldExpiredError(DomainError):
    """The payment deadline for this hold has passed"""

    code = 'hold_expired'


class PaymentDeclinedError(DomainError):
    """The payment was declined; the hold is still active"""

    code = 'payment_declined'


class QuoteExpiredError(DomainError):
    """The quote is past its validity window; request a new one"""

    code = 'quote_expired'


class AlreadyTerminalError(DomainError):
    """The hold has already been paid, cancelled or expired"""

    code = 'already_terminal'

    def __init__(self, message: str = '', state=None):
        super().__init__(message, state=getattr(state, 'value', state))
        self.state = state


class HoldOrderNotFound(DomainError):
    """No hold order with this id"""

    code = 'not_found'


class BookingApiError(DomainError):
    """The booking provider could not be reached or returned an unexpected error"""

    code = 'booking_api_error'


class ConcurrentModificationError(DomainError):
    """Another writer changed this hold order first"""

    code = 'concurrent_modification'


class UnknownSliceError(DomainError):
    """The order has no slice with this id"""

    code = 'unknown_slice'
