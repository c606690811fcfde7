"""
Shared domain errors

Every business rule violation raised from a domain layer derives from
``DomainError`` so that the HTTP edge can translate it in one place.
"""


class DomainError(Exception):
    """Base class for recoverable business rule violations"""

    code = 'domain_error'

    def __init__(self, message: str = '', **context):
        super().__init__(message or self.__class__.__doc__)
        self.context = context


class CurrencyMismatchError(DomainError):
    """Amounts in different currencies cannot be combined"""

    code = 'currency_mismatch'

    def __init__(self, left: str, right: str):
        super().__init__(
            f"Cannot combine amounts in {left} and {right}",
            left=left,
            right=right,
        )
        self.left = left
        self.right = right
