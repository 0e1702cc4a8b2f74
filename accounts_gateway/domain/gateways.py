"""Contracts of the collaborators the payment engine depends on"""

from typing import List, Optional, Protocol

from accounts_gateway.domain.models import Account, AccountKind, MovementRequest


class CashLedgerGateway(Protocol):
    """The currently open cash register"""

    async def post_movement(self, movement: MovementRequest) -> str:
        """
        Append a movement and return its id.

        Re-posting an idempotency key that was already accepted returns the
        original id without appending again.

        Raises:
            NoOpenRegister: No register is open
            LedgerUnavailable: Register could not take the movement
            LedgerTimeout: No answer in time, outcome unknown
        """
        ...


class ReceiptStore(Protocol):
    def store(self, image_bytes: bytes, max_size_bytes: int) -> str:
        """
        Keep a compressed receipt image and return an opaque reference.

        Raises:
            PayloadTooLarge: Image exceeds max_size_bytes
            UnsupportedFormat: Not a JPEG, PNG, GIF or WebP image
        """
        ...


class AccountStore(Protocol):
    def add(self, account: Account) -> Account: ...

    def load(self, document_number: str) -> Account: ...

    def save(self, account: Account, expected_version: int) -> Account:
        """Compare-and-swap write; ConcurrentModification on version mismatch"""
        ...

    def bump_version(self, document_number: str, expected_version: int) -> bool:
        """Retire a version whose payment movement was reversed"""
        ...

    def document_numbers(self, prefix: str) -> List[str]:
        """Existing document numbers in the series starting with prefix"""
        ...

    def list_accounts(
        self,
        kind: Optional[AccountKind] = None,
        category: Optional[str] = None,
        limit: int = 200,
    ) -> List[Account]: ...
