"""Open, paid and overdue totals across accounts"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from accounts_gateway.domain.models import Account, AccountsSummary, InstallmentStatus
from accounts_gateway.utils.date_utils import is_past_due
from accounts_gateway.utils.money import ZERO


def _targets(account: Account) -> List[Tuple[Decimal, Decimal, date, InstallmentStatus]]:
    """(value, amount_paid, due_date, status) for each payable unit of the account"""
    if account.is_single:
        return [(account.total_value, account.amount_paid, account.start_date, account.status)]
    return [(i.value, i.amount_paid, i.due_date, i.status) for i in account.installments]


def summarize(accounts: Iterable[Account], today: date | None = None) -> AccountsSummary:
    """
    Aggregate totals for a dashboard.

    - total_pending: remaining balance of everything not yet paid
    - total_paid: money already received/paid
    - total_overdue: remaining balance of targets past their due date
    - by_category: full obligation per category, largest first
    """
    today = today or date.today()
    pending = paid = overdue = ZERO
    categories: Dict[str, Decimal] = {}

    for account in accounts:
        for value, amount_paid, due_date, status in _targets(account):
            paid += amount_paid
            if status == InstallmentStatus.PAID:
                continue
            remaining = value - amount_paid
            pending += remaining
            if is_past_due(due_date, today):
                overdue += remaining
        categories[account.category] = categories.get(account.category, ZERO) + account.amount_due

    by_category = dict(sorted(categories.items(), key=lambda item: item[1], reverse=True))
    return AccountsSummary(
        total_pending=pending,
        total_paid=paid,
        total_overdue=overdue,
        by_category=by_category,
    )
