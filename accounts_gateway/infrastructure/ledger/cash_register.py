"""Cash register (caixa) backed by the service database"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from accounts_gateway.domain.exceptions import InvalidAmount, LedgerUnavailable, NoOpenRegister, RegisterAlreadyOpen
from accounts_gateway.domain.installments import next_document_number
from accounts_gateway.domain.models import CashRegister, MovementRequest, RegisterStatus
from accounts_gateway.infrastructure.database.repositories import CashRegisterRepository, register_from_row
from accounts_gateway.infrastructure.observability.metrics import ledger_latency_histogram, ledger_failure_counter
from accounts_gateway.utils.money import to_cents, to_money

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseCashLedger:
    """
    Single open cash register with serialized movement appends.

    Every append runs in its own session and commits on its own, so the
    register is a separate store from the accounts even when both live in
    the same database.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        lock: Optional[asyncio.Lock] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.lock = lock or asyncio.Lock()
        self.clock = clock

    async def post_movement(self, movement: MovementRequest) -> str:
        """
        Append a movement to the open register.

        A key that was already accepted returns the original movement id,
        even if the register has been closed since.

        Raises:
            NoOpenRegister: No register is open
            LedgerUnavailable: Database error while appending
        """
        async with self.lock:
            with ledger_latency_histogram.time():
                # Worker thread keeps the event loop free, so callers can time out
                try:
                    return await asyncio.to_thread(self._append, movement)
                except IntegrityError:
                    # Another process, or an abandoned attempt, appended the same key first
                    return await asyncio.to_thread(self._existing_movement_id, movement.idempotency_key)
                except SQLAlchemyError as e:
                    ledger_failure_counter.labels(reason="database").inc()
                    raise LedgerUnavailable(f"Cash register storage error: {e}") from e

    def _append(self, movement: MovementRequest) -> str:
        with self.session_factory() as db:
            repo = CashRegisterRepository(db)
            existing = repo.get_movement_by_key(movement.idempotency_key)
            if existing is not None:
                logger.info(
                    "Duplicate movement ignored",
                    extra={"idempotency_key": movement.idempotency_key, "movement_id": str(existing.id)},
                )
                return str(existing.id)

            register = repo.get_open_register()
            if register is None:
                ledger_failure_counter.labels(reason="no_open_register").inc()
                raise NoOpenRegister()

            try:
                row = repo.add_movement(register, movement, created_at=self.clock())
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                raise
            return str(row.id)

    def _existing_movement_id(self, idempotency_key: str) -> str:
        with self.session_factory() as db:
            existing = CashRegisterRepository(db).get_movement_by_key(idempotency_key)
            if existing is None:
                raise LedgerUnavailable(f"Movement {idempotency_key} conflicted but was not found")
            return str(existing.id)

    async def open_register(self, opening_balance: Decimal) -> CashRegister:
        """
        Open a new register coded CAIXA{YYYYMMDD}-{nnn}.

        Raises:
            InvalidAmount: Negative opening balance
            RegisterAlreadyOpen: Another register is still open
        """
        balance = to_money(opening_balance)
        if balance < 0:
            raise InvalidAmount("Opening balance cannot be negative")

        async with self.lock:
            with self.session_factory() as db:
                repo = CashRegisterRepository(db)
                if repo.get_open_register() is not None:
                    raise RegisterAlreadyOpen()

                now = self.clock()
                prefix = f"CAIXA{now:%Y%m%d}-"
                code = next_document_number(prefix, repo.register_codes(prefix))
                row = repo.create_register(code, to_cents(balance), opened_at=now)
                db.commit()
                logger.info("Cash register opened", extra={"register_code": code})
                return register_from_row(row)

    async def close_register(self) -> CashRegister:
        """Close the open register; NoOpenRegister when none is open"""
        async with self.lock:
            with self.session_factory() as db:
                repo = CashRegisterRepository(db)
                row = repo.get_open_register()
                if row is None:
                    raise NoOpenRegister("There is no open cash register to close")
                row.status = RegisterStatus.CLOSED.value
                row.closed_at = self.clock()
                db.commit()
                register = register_from_row(row)
                logger.info(
                    "Cash register closed",
                    extra={"register_code": register.code, "performance": str(register.performance)},
                )
                return register

    def current_register(self) -> Optional[CashRegister]:
        with self.session_factory() as db:
            row = CashRegisterRepository(db).get_open_register()
            return register_from_row(row) if row is not None else None
