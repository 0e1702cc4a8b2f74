"""Installment and replication schedule generation for payable/receivable accounts"""

import re
from datetime import date
from decimal import ROUND_DOWN
from typing import List, Optional

from accounts_gateway.domain.exceptions import InvalidAmount, InvalidCount
from accounts_gateway.domain.models import (
    Account,
    AccountKind,
    CreationType,
    Installment,
    ScheduleMode,
)
from accounts_gateway.utils.date_utils import add_months
from accounts_gateway.utils.money import CENT, ZERO, Amount, to_money

SCHEDULE_MODES = {
    CreationType.INSTALLMENT_PLAN: ScheduleMode.DIVIDE,
    CreationType.REPLICATION: ScheduleMode.REPEAT,
}


def generate_schedule(
    total_value: Amount,
    start_date: date,
    count: int,
    mode: ScheduleMode = ScheduleMode.DIVIDE,
) -> List[Installment]:
    """
    Generate monthly installments starting at start_date.

    Requirements:
    - DIVIDE: total split evenly, rounded down to the cent
    - DIVIDE: last installment absorbs rounding remainder so the sum is exact
    - REPEAT: every installment charges the full total (replication)
    - Due dates one calendar month apart, day clamped to month end

    Args:
        total_value: Amount to split (DIVIDE) or repeat (REPEAT)
        start_date: Due date of the first installment
        count: Number of installments
        mode: DIVIDE for installment plans, REPEAT for replications

    Returns:
        Installments ordered by sequence number

    Raises:
        InvalidAmount: total_value is not positive, or too small to give every
            installment at least one cent
        InvalidCount: count is below 1

    Example:
        1000.00 / 3 -> [333.33, 333.33, 333.34]
        base = 333.33, remainder = 1000.00 - 3 * 333.33 = 0.01
    """
    total = to_money(total_value)
    if total <= 0:
        raise InvalidAmount(f"Total value must be positive, got {total}")
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise InvalidCount(f"Installment count must be at least 1, got {count!r}")

    if mode == ScheduleMode.DIVIDE:
        base_value = (total / count).quantize(CENT, rounding=ROUND_DOWN)
        if base_value <= 0:
            raise InvalidAmount(f"{total} cannot be split into {count} installments of at least 0.01")
        remainder = total - base_value * count
    else:
        base_value = total
        remainder = ZERO

    installments = []
    for i in range(count):
        value = base_value + (remainder if i == count - 1 else ZERO)
        installments.append(
            Installment(
                sequence_number=i + 1,
                value=value,
                due_date=add_months(start_date, i),
            )
        )

    return installments


def build_account(
    document_number: str,
    kind: AccountKind,
    creation_type: CreationType,
    description: str,
    category: str,
    total_value: Amount,
    start_date: date,
    count: Optional[int] = None,
    counterparty_code: Optional[str] = None,
    notes: Optional[str] = None,
    issued_on: Optional[date] = None,
) -> Account:
    """Create an account together with its full schedule"""
    total = to_money(total_value)
    if total <= 0:
        raise InvalidAmount(f"Total value must be positive, got {total}")

    if creation_type == CreationType.SINGLE:
        if count not in (None, 1):
            raise InvalidCount("A single account has no installments")
        installments: List[Installment] = []
    else:
        if count is None:
            raise InvalidCount("Installment count is required for plans and replications")
        installments = generate_schedule(total, start_date, count, SCHEDULE_MODES[creation_type])

    return Account(
        document_number=document_number,
        kind=kind,
        creation_type=creation_type,
        description=description,
        category=category,
        total_value=total,
        start_date=start_date,
        installments=installments,
        counterparty_code=counterparty_code,
        notes=notes,
        issued_on=issued_on or date.today(),
    )


def document_prefix(kind: AccountKind, creation_type: CreationType) -> str:
    """CP / CR for single accounts, CPP- / CRP- for plans and replications"""
    base = "CP" if kind == AccountKind.PAYABLE else "CR"
    return base if creation_type == CreationType.SINGLE else f"{base}P-"


def next_document_number(prefix: str, existing: List[str]) -> str:
    """
    Next sequential document number for a prefix.

    Numbers are zero-padded to three digits: CP001, CP002, ... CP999, CP1000.
    Entries that do not follow the prefix+digits pattern are ignored.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    numbers = [int(m.group(1)) for m in (pattern.match(n) for n in existing) if m]
    return f"{prefix}{max(numbers, default=0) + 1:03d}"
