"""Payment state machine - balance checks and status transitions"""

import copy
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Tuple

from accounts_gateway.domain.exceptions import (
    AlreadySettled,
    AmountExceedsBalance,
    InstallmentLocked,
    InvalidAmount,
    InvalidDueDate,
    InvalidTarget,
)
from accounts_gateway.domain.models import (
    Account,
    AccountLevel,
    Installment,
    InstallmentRef,
    InstallmentStatus,
    PaymentEntry,
    PaymentMethod,
    PaymentRecord,
    PaymentTarget,
)
from accounts_gateway.utils.money import Amount, ZERO, to_money


def resolve_target(account: Account, target: PaymentTarget) -> Optional[Installment]:
    """
    Installment addressed by the target, or None for account-level payments.

    Raises:
        InvalidTarget: Account-level payment on a plan/replication, or an
            installment reference on a single account
        InstallmentNotFound: Sequence number does not exist
    """
    if isinstance(target, AccountLevel):
        if not account.is_single:
            raise InvalidTarget(
                f"Account {account.document_number} is a {account.creation_type.value}, pay one of its installments"
            )
        return None
    if isinstance(target, InstallmentRef):
        if account.is_single:
            raise InvalidTarget(f"Account {account.document_number} has no installments")
        return account.installment(target.sequence_number)
    raise InvalidTarget(f"Unknown payment target: {target!r}")


def remaining_balance(account: Account, target: PaymentTarget) -> Decimal:
    installment = resolve_target(account, target)
    if installment is None:
        return account.remaining
    return installment.remaining


def next_status(amount_paid: Decimal, value: Decimal) -> InstallmentStatus:
    if amount_paid <= 0:
        return InstallmentStatus.PENDING
    if amount_paid < value:
        return InstallmentStatus.PARTIALLY_PAID
    return InstallmentStatus.PAID


def aggregate_status(account: Account) -> InstallmentStatus:
    """Account status derived from its installments"""
    if account.is_single:
        return account.status
    if account.installments and all(i.status == InstallmentStatus.PAID for i in account.installments):
        return InstallmentStatus.PAID
    if any(i.amount_paid > 0 for i in account.installments):
        return InstallmentStatus.PARTIALLY_PAID
    return InstallmentStatus.PENDING


def validate_payment(account: Account, target: PaymentTarget, amount: Amount) -> Decimal:
    """
    Check a payment before anything is mutated.

    Order:
    1. amount is a positive two-place decimal -> InvalidAmount
    2. target not already paid                -> AlreadySettled
    3. amount <= remaining balance            -> AmountExceedsBalance
       (hard rejection, never clamped)

    Returns:
        The normalized amount
    """
    value = to_money(amount)
    if value <= 0:
        raise InvalidAmount(f"Payment amount must be positive, got {value}")

    installment = resolve_target(account, target)
    if installment is None:
        status, remaining = account.status, account.remaining
        label = account.document_number
    else:
        status, remaining = installment.status, installment.remaining
        label = f"{account.document_number} installment {installment.sequence_number}"

    if status == InstallmentStatus.PAID:
        raise AlreadySettled(f"{label} is already fully paid")
    if value > remaining:
        raise AmountExceedsBalance(remaining=remaining, amount=value)
    return value


def _merge(
    current: Optional[PaymentRecord],
    amount: Decimal,
    method: PaymentMethod,
    paid_on: datetime,
    notes: Optional[str],
    receipt_ref: Optional[str],
) -> PaymentRecord:
    previous = current.amount_paid if current else ZERO
    return PaymentRecord(
        amount_paid=previous + amount,
        paid_on=paid_on,
        method=method,
        notes=notes,
        receipt_ref=receipt_ref or (current.receipt_ref if current else None),
    )


def apply_payment(
    account: Account,
    target: PaymentTarget,
    amount: Amount,
    method: PaymentMethod,
    paid_on: datetime,
    notes: Optional[str] = None,
    receipt_ref: Optional[str] = None,
) -> Tuple[Account, PaymentEntry]:
    """
    Apply a validated payment to a copy of the account.

    The original account is left untouched so the caller can discard the copy
    if the cash register movement fails.

    Returns:
        (updated copy, history entry appended to the target)
    """
    value = validate_payment(account, target, amount)
    updated = copy.deepcopy(account)
    entry = PaymentEntry(
        amount=value,
        paid_on=paid_on,
        method=method,
        notes=notes,
        receipt_ref=receipt_ref,
    )

    installment = resolve_target(updated, target)
    if installment is None:
        updated.payment = _merge(updated.payment, value, method, paid_on, notes, receipt_ref)
        updated.status = next_status(updated.payment.amount_paid, updated.total_value)
        updated.history.append(entry)
    else:
        installment.payment = _merge(installment.payment, value, method, paid_on, notes, receipt_ref)
        installment.status = next_status(installment.payment.amount_paid, installment.value)
        installment.history.append(entry)
        updated.status = aggregate_status(updated)

    return updated, entry


def reschedule(account: Account, sequence_number: Optional[int], new_due_date: date) -> Account:
    """
    Move the due date of a pending installment (or pending single account).

    Raises:
        InstallmentLocked: Target already received a payment
        InvalidDueDate: New date is not strictly between the neighbouring
            installments' due dates
    """
    updated = copy.deepcopy(account)

    if sequence_number is None:
        if not updated.is_single:
            raise InvalidTarget("Pick an installment to reschedule")
        if updated.status != InstallmentStatus.PENDING:
            raise InstallmentLocked(f"{updated.document_number} already has a payment registered")
        updated.start_date = new_due_date
        return updated

    installment = resolve_target(updated, InstallmentRef(sequence_number))
    if installment.status != InstallmentStatus.PENDING:
        raise InstallmentLocked(
            f"{updated.document_number} installment {sequence_number} already has a payment registered"
        )

    index = updated.installments.index(installment)
    previous = updated.installments[index - 1] if index > 0 else None
    following = updated.installments[index + 1] if index + 1 < len(updated.installments) else None
    if previous is not None and new_due_date <= previous.due_date:
        raise InvalidDueDate(f"Due date must be after {previous.due_date.isoformat()}")
    if following is not None and new_due_date >= following.due_date:
        raise InvalidDueDate(f"Due date must be before {following.due_date.isoformat()}")

    installment.due_date = new_due_date
    if sequence_number == 1:
        updated.start_date = new_due_date
    return updated
