"""Unit tests for payment recording against the cash register"""

import asyncio
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from accounts_gateway.domain.exceptions import (
    AlreadySettled,
    AmountExceedsBalance,
    ConcurrentModification,
    InvalidAmount,
    LedgerPostFailed,
    LedgerUnavailable,
    NoOpenRegister,
)
from accounts_gateway.domain.models import (
    AccountKind,
    AccountLevel,
    CreationType,
    InstallmentRef,
    InstallmentStatus,
    MovementDirection,
    PaymentMethod,
    PaymentResult,
)
from accounts_gateway.infrastructure.database.repositories import AccountRepository
from accounts_gateway.services.accounts import AccountService
from accounts_gateway.services.payment_recorder import DocumentLocks, PaymentRecorder
from accounts_gateway.utils.idempotency import compensation_key

NOW = datetime(2024, 3, 10, 14, 30, tzinfo=timezone.utc)


@pytest.fixture
def payable_plan(account_service: AccountService):
    """Payable of 900.00 in 3 installments of 300.00"""
    return account_service.create_account(
        kind=AccountKind.PAYABLE,
        creation_type=CreationType.INSTALLMENT_PLAN,
        description="Supplier invoice",
        category="supplies",
        total_value=Decimal("900.00"),
        start_date=date(2024, 3, 5),
        count=3,
    )


@pytest.fixture
def recorder(db: Session, fake_ledger) -> PaymentRecorder:
    return PaymentRecorder(db, fake_ledger, clock=lambda: NOW, timeout=0.05, max_retries=3, backoff_base=0)


async def test_full_installment_payment_posts_one_outflow(recorder, fake_ledger, payable_plan, account_service):
    result = await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    assert result.installment.status == InstallmentStatus.PAID
    assert len(fake_ledger.calls) == 1
    movement = fake_ledger.calls[0]
    assert movement.direction == MovementDirection.OUTFLOW
    assert movement.amount == Decimal("300.00")
    assert movement.origin == "accounts-payable"
    assert movement.reference.document_number == "CPP-001"
    assert movement.reference.sequence_number == 1
    assert result.movement_id == fake_ledger.movements[movement.idempotency_key]

    stored = account_service.get_account("CPP-001")
    assert stored.installment(1).status == InstallmentStatus.PAID
    assert stored.installment(1).history[0].movement_id == result.movement_id
    assert stored.status == InstallmentStatus.PARTIALLY_PAID
    assert stored.version == 2


async def test_two_partial_payments(recorder, fake_ledger, payable_plan, account_service):
    first = await recorder.record_payment("CPP-001", InstallmentRef(2), Decimal("150.00"), PaymentMethod.CASH)
    assert first.installment.status == InstallmentStatus.PARTIALLY_PAID

    second = await recorder.record_payment("CPP-001", InstallmentRef(2), Decimal("150.00"), PaymentMethod.CASH)
    assert second.installment.status == InstallmentStatus.PAID

    # Equal amounts in the same time bucket still get distinct keys
    assert [m.amount for m in fake_ledger.calls] == [Decimal("150.00"), Decimal("150.00")]
    assert len(fake_ledger.movements) == 2
    assert len(account_service.get_account("CPP-001").installment(2).history) == 2


async def test_paid_installment_rejects_further_payment(recorder, fake_ledger, payable_plan, account_service):
    await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    with pytest.raises(AlreadySettled):
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("0.01"), PaymentMethod.PIX)

    assert len(fake_ledger.calls) == 1


async def test_overpayment_rejected_state_unchanged(recorder, fake_ledger, payable_plan, account_service):
    await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("200.00"), PaymentMethod.PIX)

    with pytest.raises(AmountExceedsBalance):
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("150.00"), PaymentMethod.PIX)

    stored = account_service.get_account("CPP-001")
    assert stored.installment(1).amount_paid == Decimal("200.00")
    assert stored.installment(1).status == InstallmentStatus.PARTIALLY_PAID
    assert len(fake_ledger.calls) == 1


async def test_invalid_amount_never_reaches_ledger(recorder, fake_ledger, payable_plan):
    with pytest.raises(InvalidAmount):
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("-1.00"), PaymentMethod.PIX)

    assert fake_ledger.calls == []


async def test_ledger_failure_leaves_account_unchanged(recorder, fake_ledger, payable_plan, account_service):
    fake_ledger.failures.append(LedgerUnavailable("register offline"))

    with pytest.raises(LedgerPostFailed) as exc_info:
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    assert exc_info.value.ambiguous is False
    assert exc_info.value.retryable is True
    stored = account_service.get_account("CPP-001")
    assert stored.installment(1).payment is None
    assert stored.installment(1).status == InstallmentStatus.PENDING
    assert stored.version == 1


async def test_no_open_register(recorder, fake_ledger, payable_plan, account_service):
    fake_ledger.register_open = False

    with pytest.raises(NoOpenRegister):
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    assert account_service.get_account("CPP-001").installment(1).payment is None


async def test_timeout_retried_with_same_key(recorder, fake_ledger, payable_plan):
    """A timed out post that did land is not doubled by the retry"""
    fake_ledger.delays.append(1.0)

    result = await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    assert len(fake_ledger.calls) == 2
    assert fake_ledger.calls[0].idempotency_key == fake_ledger.calls[1].idempotency_key
    assert len(fake_ledger.movements) == 1
    assert result.movement_id == fake_ledger.movements[result.idempotency_key]


async def test_timeout_retries_exhausted_is_ambiguous(recorder, fake_ledger, payable_plan, account_service):
    fake_ledger.delays.extend([1.0, 1.0, 1.0])

    with pytest.raises(LedgerPostFailed) as exc_info:
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    assert exc_info.value.ambiguous is True
    assert len(fake_ledger.calls) == 3
    assert account_service.get_account("CPP-001").installment(1).payment is None


async def test_concurrent_change_compensates_movement(db, fake_ledger, payable_plan, account_service):
    """Losing the version race reverses the movement that was just posted"""

    class RacingLedger:
        async def post_movement(self, movement):
            if not fake_ledger.calls:
                # Another writer commits while the movement is in flight
                with Session(bind=db.get_bind()) as other:
                    AccountService(other).update_details("CPP-001", notes="edited elsewhere")
            return await fake_ledger.post_movement(movement)

    recorder = PaymentRecorder(db, RacingLedger(), clock=lambda: NOW, timeout=1, backoff_base=0)

    with pytest.raises(ConcurrentModification):
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    payment, reversal = fake_ledger.calls
    assert payment.direction == MovementDirection.OUTFLOW
    assert reversal.direction == MovementDirection.INFLOW
    assert reversal.amount == payment.amount
    assert reversal.idempotency_key == f"{payment.idempotency_key}:compensation"

    stored = account_service.get_account("CPP-001")
    assert stored.installment(1).payment is None
    assert stored.notes == "edited elsewhere"


async def test_receivable_single_posts_inflow(db, fake_ledger, single_payable, account_service):
    receivable = account_service.create_account(
        kind=AccountKind.RECEIVABLE,
        creation_type=CreationType.SINGLE,
        description="Website project",
        category="services",
        total_value=Decimal("1500.00"),
        start_date=date(2024, 3, 20),
    )
    recorder = PaymentRecorder(db, fake_ledger, clock=lambda: NOW)

    result = await recorder.record_payment(
        receivable.document_number,
        AccountLevel(),
        Decimal("1500.00"),
        PaymentMethod.TRANSFER,
        receipt_ref="data:image/png;base64,iVBORw0KGgo=",
    )

    assert receivable.document_number == "CR001"
    assert result.installment is None
    assert result.account.status == InstallmentStatus.PAID
    assert result.account.payment.receipt_ref == "data:image/png;base64,iVBORw0KGgo="
    assert fake_ledger.calls[0].direction == MovementDirection.INFLOW
    assert result.idempotency_key.startswith("accounts-receivable:CR001:0:v1:1500.00:")


async def test_database_register_records_movement(db, cash_register, payable_plan):
    await cash_register.open_register(Decimal("1000.00"))
    recorder = PaymentRecorder(db, cash_register, clock=lambda: NOW)

    result = await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.CASH)

    register = cash_register.current_register()
    assert [m.movement_id for m in register.movements] == [result.movement_id]
    assert register.outflow == Decimal("300.00")
    assert register.expected_balance == Decimal("700.00")


async def test_failed_save_retry_posts_fresh_movement(
    recorder, fake_ledger, payable_plan, account_service, monkeypatch
):
    """A reversed movement is never handed back to the retry that follows it"""
    original_save = AccountRepository.save
    failures = [OperationalError("UPDATE accounts", {}, Exception("database is locked"))]

    def flaky_save(self, account, expected_version):
        if failures:
            raise failures.pop()
        return original_save(self, account, expected_version)

    monkeypatch.setattr(AccountRepository, "save", flaky_save)

    with pytest.raises(ConcurrentModification):
        await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)
    assert account_service.get_account("CPP-001").installment(1).payment is None

    result = await recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("300.00"), PaymentMethod.PIX)

    payment, reversal, retry = fake_ledger.calls
    assert reversal.idempotency_key == compensation_key(payment.idempotency_key)
    assert retry.idempotency_key != payment.idempotency_key
    assert len(set(fake_ledger.movements.values())) == 3
    assert result.movement_id == fake_ledger.movements[retry.idempotency_key]

    net_outflow = sum(
        m.amount if m.direction == MovementDirection.OUTFLOW else -m.amount for m in fake_ledger.calls
    )
    assert net_outflow == Decimal("300.00")
    stored = account_service.get_account("CPP-001")
    assert stored.installment(1).status == InstallmentStatus.PAID
    assert stored.version == 3


async def test_concurrent_payments_on_one_installment_are_serialized(
    recorder, fake_ledger, payable_plan, account_service
):
    fake_ledger.delays.append(0.02)

    results = await asyncio.gather(
        recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("200.00"), PaymentMethod.PIX),
        recorder.record_payment("CPP-001", InstallmentRef(1), Decimal("200.00"), PaymentMethod.CASH),
        return_exceptions=True,
    )

    assert len([r for r in results if isinstance(r, PaymentResult)]) == 1
    assert len([r for r in results if isinstance(r, AmountExceedsBalance)]) == 1
    assert len(fake_ledger.calls) == 1
    assert account_service.get_account("CPP-001").installment(1).amount_paid == Decimal("200.00")
    assert len(recorder.locks) == 0


async def test_document_locks_dropped_when_idle():
    locks = DocumentLocks()
    order = []

    async def pay(name):
        async with locks.hold("CPP-001"):
            assert len(locks) == 1
            order.append(name)
            await asyncio.sleep(0.01)

    await asyncio.gather(pay("first"), pay("second"))

    assert order == ["first", "second"]
    assert len(locks) == 0
