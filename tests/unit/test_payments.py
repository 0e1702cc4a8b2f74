"""Unit tests for the payment state machine"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from accounts_gateway.domain.exceptions import (
    AlreadySettled,
    AmountExceedsBalance,
    InstallmentLocked,
    InstallmentNotFound,
    InvalidAmount,
    InvalidDueDate,
    InvalidTarget,
)
from accounts_gateway.domain.installments import build_account
from accounts_gateway.domain.models import (
    AccountKind,
    AccountLevel,
    CreationType,
    InstallmentRef,
    InstallmentStatus,
    PaymentMethod,
)
from accounts_gateway.domain.payments import apply_payment, remaining_balance, reschedule

PAID_ON = datetime(2024, 2, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def plan():
    """Payable of 900.00 in 3 installments of 300.00"""
    return build_account(
        document_number="CPP-001",
        kind=AccountKind.PAYABLE,
        creation_type=CreationType.INSTALLMENT_PLAN,
        description="Supplier invoice",
        category="supplies",
        total_value=Decimal("900.00"),
        start_date=date(2024, 2, 10),
        count=3,
    )


@pytest.fixture
def single():
    return build_account(
        document_number="CR001",
        kind=AccountKind.RECEIVABLE,
        creation_type=CreationType.SINGLE,
        description="Website project",
        category="services",
        total_value=Decimal("1500.00"),
        start_date=date(2024, 2, 20),
    )


def pay(account, target, amount, **kwargs):
    return apply_payment(account, target, Decimal(amount), PaymentMethod.PIX, paid_on=PAID_ON, **kwargs)


def test_full_payment_marks_installment_paid(plan):
    updated, entry = pay(plan, InstallmentRef(1), "300.00")

    inst = updated.installment(1)
    assert inst.status == InstallmentStatus.PAID
    assert inst.amount_paid == Decimal("300.00")
    assert inst.history == [entry]
    assert updated.status == InstallmentStatus.PARTIALLY_PAID


def test_partial_payments_accumulate(plan):
    updated, _ = pay(plan, InstallmentRef(2), "150.00")
    assert updated.installment(2).status == InstallmentStatus.PARTIALLY_PAID

    updated, _ = pay(updated, InstallmentRef(2), "150.00")
    inst = updated.installment(2)
    assert inst.status == InstallmentStatus.PAID
    assert inst.amount_paid == Decimal("300.00")
    assert [e.amount for e in inst.history] == [Decimal("150.00"), Decimal("150.00")]


def test_apply_payment_leaves_original_untouched(plan):
    updated, _ = pay(plan, InstallmentRef(1), "100.00")

    assert plan.installment(1).payment is None
    assert plan.installment(1).history == []
    assert updated is not plan


def test_account_paid_when_every_installment_paid(plan):
    account = plan
    for seq in (1, 2, 3):
        account, _ = pay(account, InstallmentRef(seq), "300.00")

    assert account.status == InstallmentStatus.PAID
    assert account.remaining == Decimal("0.00")
    assert account.next_due_date() is None


def test_single_account_payment(single):
    updated, _ = pay(single, AccountLevel(), "500.00", notes="First half")

    assert updated.status == InstallmentStatus.PARTIALLY_PAID
    assert updated.payment.amount_paid == Decimal("500.00")
    assert updated.payment.notes == "First half"
    assert remaining_balance(updated, AccountLevel()) == Decimal("1000.00")


def test_already_settled_checked_before_balance(plan):
    """Paid installment -> AlreadySettled even for the smallest amount"""
    paid, _ = pay(plan, InstallmentRef(1), "300.00")

    with pytest.raises(AlreadySettled):
        pay(paid, InstallmentRef(1), "0.01")


def test_overpayment_rejected_not_clamped(plan):
    partially, _ = pay(plan, InstallmentRef(1), "200.00")

    with pytest.raises(AmountExceedsBalance) as exc_info:
        pay(partially, InstallmentRef(1), "150.00")

    assert exc_info.value.remaining == Decimal("100.00")
    assert partially.installment(1).amount_paid == Decimal("200.00")


@pytest.mark.parametrize("amount", ["0", "-5.00", "10.005"])
def test_invalid_amount(plan, amount):
    with pytest.raises(InvalidAmount):
        pay(plan, InstallmentRef(1), amount)


def test_target_must_match_creation_type(plan, single):
    with pytest.raises(InvalidTarget):
        pay(plan, AccountLevel(), "10.00")
    with pytest.raises(InvalidTarget):
        pay(single, InstallmentRef(1), "10.00")


def test_unknown_installment(plan):
    with pytest.raises(InstallmentNotFound):
        pay(plan, InstallmentRef(9), "10.00")


def test_later_payment_keeps_earlier_receipt(plan):
    first, _ = pay(plan, InstallmentRef(1), "100.00", receipt_ref="data:image/png;base64,AAAA")
    second, _ = pay(first, InstallmentRef(1), "100.00")

    assert second.installment(1).payment.receipt_ref == "data:image/png;base64,AAAA"
    assert second.installment(1).history[1].receipt_ref is None


def test_overdue_is_derived_not_stored(plan):
    inst = plan.installment(1)

    assert inst.effective_status(today=date(2024, 2, 11)) == InstallmentStatus.OVERDUE
    assert inst.effective_status(today=date(2024, 2, 10)) == InstallmentStatus.PENDING
    assert inst.status == InstallmentStatus.PENDING


def test_reschedule_pending_installment(plan):
    updated = reschedule(plan, 2, date(2024, 3, 20))

    assert updated.installment(2).due_date == date(2024, 3, 20)
    assert plan.installment(2).due_date == date(2024, 3, 10)


def test_reschedule_first_installment_moves_start_date(plan):
    updated = reschedule(plan, 1, date(2024, 2, 5))

    assert updated.start_date == date(2024, 2, 5)


def test_reschedule_must_keep_order(plan):
    with pytest.raises(InvalidDueDate):
        reschedule(plan, 2, date(2024, 2, 10))
    with pytest.raises(InvalidDueDate):
        reschedule(plan, 2, date(2024, 4, 10))


def test_reschedule_locked_after_payment(plan, single):
    partially, _ = pay(plan, InstallmentRef(1), "50.00")
    with pytest.raises(InstallmentLocked):
        reschedule(partially, 1, date(2024, 2, 15))

    paid, _ = pay(single, AccountLevel(), "1500.00")
    with pytest.raises(InstallmentLocked):
        reschedule(paid, None, date(2024, 3, 1))


def test_reschedule_single_account(single):
    updated = reschedule(single, None, date(2024, 3, 1))

    assert updated.start_date == date(2024, 3, 1)
