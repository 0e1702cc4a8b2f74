"""Payment registration against accounts, mirrored in the open cash register"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import AsyncIterator, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from accounts_gateway.config import settings
from accounts_gateway.domain.exceptions import (
    ConcurrentModification,
    DomainException,
    LedgerPostFailed,
    LedgerTimeout,
    LedgerUnavailable,
)
from accounts_gateway.domain.gateways import AccountStore, CashLedgerGateway
from accounts_gateway.domain.models import (
    InstallmentRef,
    MovementDirection,
    MovementReference,
    MovementRequest,
    PaymentMethod,
    PaymentResult,
    PaymentTarget,
)
from accounts_gateway.domain.payments import apply_payment, resolve_target
from accounts_gateway.infrastructure.database.repositories import AccountRepository
from accounts_gateway.infrastructure.observability.logging import log_ledger_failure, log_payment_recorded
from accounts_gateway.infrastructure.observability.metrics import (
    ledger_compensation_counter,
    payment_duration_histogram,
    record_payment,
)
from accounts_gateway.utils.idempotency import compensation_key, payment_idempotency_key
from accounts_gateway.utils.money import Amount

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentLocks:
    """
    In-process lock per document number; one per application.

    A lock lives only while some payment holds or waits on it.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, document_number: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(document_number, asyncio.Lock())
        self._users[document_number] = self._users.get(document_number, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[document_number] -= 1
            if not self._users[document_number]:
                del self._users[document_number]
                del self._locks[document_number]


class PaymentRecorder:
    """
    Sole writer of payment state.

    A payment is a small saga across two stores:
    1. load the account, validate and apply the payment to a copy
    2. post the cash register movement under an idempotency key
    3. compare-and-swap save the copy once the movement is confirmed
    4. ledger failure: drop the copy, nothing was written
    5. ledger timeout: re-post under the same key (no double posting)
    If step 3 fails, the movement is reversed and the account version is
    retired, so a retry builds a new key instead of reusing the reversed one.
    """

    def __init__(
        self,
        db: Session,
        ledger: CashLedgerGateway,
        locks: Optional[DocumentLocks] = None,
        request_id: str = "unknown",
        clock: Callable[[], datetime] = _utcnow,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        bucket_seconds: int | None = None,
    ):
        self.db = db
        self.accounts: AccountStore = AccountRepository(db)
        self.ledger = ledger
        self.locks = locks or DocumentLocks()
        self.request_id = request_id
        self.clock = clock
        self.timeout = timeout or settings.ledger_timeout_seconds
        self.max_retries = max_retries or settings.ledger_max_retries
        self.backoff_base = settings.ledger_backoff_base if backoff_base is None else backoff_base
        self.bucket_seconds = bucket_seconds or settings.idempotency_bucket_seconds

    async def record_payment(
        self,
        document_number: str,
        target: PaymentTarget,
        amount: Amount,
        method: PaymentMethod,
        notes: Optional[str] = None,
        receipt_ref: Optional[str] = None,
        paid_on: Optional[datetime] = None,
    ) -> PaymentResult:
        """
        Register a payment on a single account or one installment.

        Raises:
            AccountNotFound / InstallmentNotFound / InvalidTarget
            InvalidAmount, AlreadySettled, AmountExceedsBalance: nothing changed
            NoOpenRegister, LedgerPostFailed: nothing changed, safe to retry
            ConcurrentModification: account changed meanwhile, reload and retry
        """
        start_time = time.time()
        async with self.locks.hold(document_number):
            account = self.accounts.load(document_number)
            kind = account.kind.value

            try:
                now = self.clock()
                updated, entry = apply_payment(
                    account,
                    target,
                    amount,
                    method,
                    paid_on=paid_on or now,
                    notes=notes,
                    receipt_ref=receipt_ref,
                )
            except DomainException as e:
                record_payment(kind, e.code)
                raise

            sequence_number = target.sequence_number if isinstance(target, InstallmentRef) else None
            movement = MovementRequest(
                direction=account.direction,
                amount=entry.amount,
                origin=account.origin,
                reference=MovementReference(document_number, sequence_number),
                idempotency_key=payment_idempotency_key(
                    account.origin,
                    document_number,
                    sequence_number,
                    account.version,
                    entry.amount,
                    now,
                    self.bucket_seconds,
                ),
                method=method.value,
                description=f"Payment: {account.description} - {document_number}",
            )

            try:
                movement_id = await self._post(movement)
            except DomainException as e:
                record_payment(kind, e.code)
                log_ledger_failure(
                    self.request_id,
                    document_number,
                    movement.idempotency_key,
                    reason=e.code,
                    ambiguous=getattr(e, "ambiguous", False),
                )
                raise

            entry.movement_id = movement_id
            try:
                saved = self.accounts.save(updated, expected_version=account.version)
                self.db.commit()
            except (ConcurrentModification, SQLAlchemyError) as e:
                self.db.rollback()
                record_payment(kind, ConcurrentModification.code)
                await self._compensate(movement)
                self._retire_version(document_number, account.version)
                if isinstance(e, ConcurrentModification):
                    raise
                raise ConcurrentModification(f"Account {document_number} could not be saved: {e}") from e

        installment = resolve_target(saved, target)
        duration = time.time() - start_time
        payment_duration_histogram.observe(duration)
        record_payment(kind, "recorded")
        log_payment_recorded(
            self.request_id,
            document_number,
            sequence_number,
            entry.amount,
            movement_id,
            status=(installment or saved).status.value,
            duration_ms=duration * 1000,
        )

        return PaymentResult(
            account=saved,
            installment=installment,
            movement_id=movement_id,
            idempotency_key=movement.idempotency_key,
        )

    async def _post(self, movement: MovementRequest) -> str:
        """
        Post with a bounded wait, re-posting the same key after timeouts.

        Raises:
            NoOpenRegister: Propagated unchanged
            LedgerPostFailed: Register refused, or still no answer after all
                retries (ambiguous=True)
        """
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(self.ledger.post_movement(movement), timeout=self.timeout)
            except (asyncio.TimeoutError, LedgerTimeout) as e:
                attempt += 1
                if attempt >= self.max_retries:
                    raise LedgerPostFailed(
                        f"Cash register did not confirm movement {movement.idempotency_key} after {attempt} attempts",
                        ambiguous=True,
                    ) from e
                await asyncio.sleep(self.backoff_base * (2 ** (attempt - 1)))
            except LedgerUnavailable as e:
                raise LedgerPostFailed(e.detail) from e

    def _retire_version(self, document_number: str, version: int) -> None:
        """Move the account past `version`; a no-op when another writer already did"""
        try:
            self.accounts.bump_version(document_number, version)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                "Could not retire account version after reversal, retries may reuse a reversed key",
                extra={
                    "request_id": self.request_id,
                    "document_number": document_number,
                    "version": version,
                    "error": str(e),
                },
            )

    async def _compensate(self, movement: MovementRequest) -> None:
        """Post the opposite movement so the register matches the unchanged account"""
        reversal = replace(
            movement,
            direction=(
                MovementDirection.INFLOW
                if movement.direction == MovementDirection.OUTFLOW
                else MovementDirection.OUTFLOW
            ),
            idempotency_key=compensation_key(movement.idempotency_key),
            description=f"Reversal: {movement.description}",
        )
        try:
            await self._post(reversal)
            ledger_compensation_counter.inc()
        except DomainException as e:
            logger.error(
                "Compensating movement failed, cash register needs manual review",
                extra={
                    "request_id": self.request_id,
                    "idempotency_key": reversal.idempotency_key,
                    "reason": e.code,
                },
            )
