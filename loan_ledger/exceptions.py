"""Error taxonomy for the loan ledger."""


class LedgerError(ValueError):
    """Base exception for all ledger errors."""


class InvalidLoanParameters(LedgerError):
    """Raised when loan creation inputs are invalid."""


class InvalidAmount(LedgerError):
    """Raised when a payment amount is not a positive number."""


class InvalidPaymentType(LedgerError):
    """Raised when a payment type is not EMI or LUMP_SUM."""


class InvalidLoanState(LedgerError):
    """Raised when a stored loan violates the engine invariants."""


class LoanNotFound(LedgerError, LookupError):
    """Raised when a loan id does not exist."""


class NoLoansForCustomer(LedgerError, LookupError):
    """Raised when a customer owns no loans."""


class CustomerNotFound(LedgerError, LookupError):
    """Raised when a customer id does not exist."""


class CustomerValidationError(LedgerError):
    """Raised when customer onboarding inputs are invalid."""


class CustomerAlreadyExists(LedgerError):
    """Raised when onboarding a customer id that is already taken."""
