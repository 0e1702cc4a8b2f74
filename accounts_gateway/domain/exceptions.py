"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    code = "domain_error"
    message = "Operation could not be completed"
    retryable = False

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.message
        super().__init__(self.detail)


class InvalidAmount(DomainException):
    """Amount is not a positive value with at most two decimal places"""

    code = "invalid_amount"
    message = "Amount must be a positive value with at most two decimal places"


class InvalidCount(DomainException):
    """Installment count is below one"""

    code = "invalid_count"
    message = "Installment count must be at least 1"


class InvalidTarget(DomainException):
    """Payment target does not match the account creation type"""

    code = "invalid_target"
    message = "Payment target is not valid for this account"


class InvalidDueDate(DomainException):
    """New due date would break the schedule ordering"""

    code = "invalid_due_date"
    message = "Due date must stay between the neighbouring installments"


class AmountExceedsBalance(DomainException):
    """Payment is larger than the remaining balance"""

    code = "amount_exceeds_balance"
    message = "Amount exceeds the remaining balance"

    def __init__(self, remaining, amount):
        self.remaining = remaining
        self.amount = amount
        super().__init__(f"Amount {amount} exceeds the remaining balance of {remaining}")


class AlreadySettled(DomainException):
    """Target is already fully paid"""

    code = "already_settled"
    message = "This obligation is already fully paid"


class InstallmentLocked(DomainException):
    """Target already received a payment and can no longer be edited"""

    code = "installment_locked"
    message = "Editing is locked once a payment has been registered"


class DuplicateDocument(DomainException):
    """Document number is already in use"""

    code = "duplicate_document"
    message = "Document number already exists"


class AccountNotFound(DomainException):
    """No account with the given document number"""

    code = "account_not_found"
    message = "Account not found"


class InstallmentNotFound(DomainException):
    """Account has no installment with the given sequence number"""

    code = "installment_not_found"
    message = "Installment not found"


class ConcurrentModification(DomainException):
    """Account changed between read and write"""

    code = "concurrent_modification"
    message = "The account was modified by another operation, reload and retry"
    retryable = True


class LedgerPostFailed(DomainException):
    """Cash register movement could not be confirmed"""

    code = "ledger_post_failed"
    message = "Could not register the movement in the cash register, try again"
    retryable = True

    def __init__(self, detail: str | None = None, ambiguous: bool = False):
        self.ambiguous = ambiguous
        super().__init__(detail)


class NoOpenRegister(DomainException):
    """No cash register is open"""

    code = "no_open_register"
    message = "No cash register is open, open the cash register before registering payments"
    retryable = True


class RegisterAlreadyOpen(DomainException):
    """A cash register is already open"""

    code = "register_already_open"
    message = "A cash register is already open, close it before opening a new one"


class PayloadTooLarge(DomainException):
    """Receipt image exceeds the size cap"""

    code = "payload_too_large"
    message = "Receipt image exceeds the maximum allowed size"


class UnsupportedFormat(DomainException):
    """Receipt is not a JPEG, PNG, GIF or WebP image"""

    code = "unsupported_format"
    message = "Receipt must be a JPEG, PNG, GIF or WebP image"


class LedgerUnavailable(DomainException):
    """Cash register service rejected or could not take the movement"""

    code = "ledger_unavailable"
    message = "Cash register service unavailable"
    retryable = True


class LedgerTimeout(DomainException):
    """Cash register call timed out, outcome unknown"""

    code = "ledger_timeout"
    message = "Cash register did not answer in time"
    retryable = True
