"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Union

from accounts_gateway.domain.exceptions import InstallmentNotFound
from accounts_gateway.utils.date_utils import is_past_due
from accounts_gateway.utils.money import ZERO


class AccountKind(str, Enum):
    PAYABLE = "payable"
    RECEIVABLE = "receivable"


class CreationType(str, Enum):
    SINGLE = "single"
    INSTALLMENT_PLAN = "installment_plan"
    REPLICATION = "replication"


class ScheduleMode(str, Enum):
    DIVIDE = "divide"  # total split across installments
    REPEAT = "repeat"  # total charged again every month


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    OVERDUE = "overdue"  # derived on read, never stored


class PaymentMethod(str, Enum):
    PIX = "pix"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    CASH = "cash"
    BOLETO = "boleto"
    TRANSFER = "transfer"
    OTHER = "other"


class MovementDirection(str, Enum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class RegisterStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class PaymentRecord:
    """Cumulative payment state of an installment (or single account)"""

    amount_paid: Decimal
    paid_on: datetime
    method: PaymentMethod
    notes: Optional[str] = None
    receipt_ref: Optional[str] = None


@dataclass
class PaymentEntry:
    """One accepted payment, kept in order for the payment history"""

    amount: Decimal
    paid_on: datetime
    method: PaymentMethod
    notes: Optional[str] = None
    receipt_ref: Optional[str] = None
    movement_id: Optional[str] = None


def _effective(status: InstallmentStatus, due_date: date, today: date | None) -> InstallmentStatus:
    if status != InstallmentStatus.PAID and is_past_due(due_date, today):
        return InstallmentStatus.OVERDUE
    return status


@dataclass
class Installment:
    """One scheduled sub-obligation of an installment plan or replication"""

    sequence_number: int
    value: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.PENDING
    payment: Optional[PaymentRecord] = None
    history: List[PaymentEntry] = field(default_factory=list)

    @property
    def amount_paid(self) -> Decimal:
        return self.payment.amount_paid if self.payment else ZERO

    @property
    def remaining(self) -> Decimal:
        return self.value - self.amount_paid

    def effective_status(self, today: date | None = None) -> InstallmentStatus:
        """Stored status, or OVERDUE when past due and not fully paid"""
        return _effective(self.status, self.due_date, today)


@dataclass
class Account:
    """
    One accounts-payable or accounts-receivable obligation.

    Single accounts carry their own due date (start_date), payment record and
    history; plans and replications delegate those to their installments and
    keep `status` as the aggregate of installment statuses.
    """

    document_number: str
    kind: AccountKind
    creation_type: CreationType
    description: str
    category: str
    total_value: Decimal
    start_date: date
    installments: List[Installment] = field(default_factory=list)
    counterparty_code: Optional[str] = None
    notes: Optional[str] = None
    issued_on: date = field(default_factory=date.today)
    status: InstallmentStatus = InstallmentStatus.PENDING
    payment: Optional[PaymentRecord] = None
    history: List[PaymentEntry] = field(default_factory=list)
    version: int = 1

    @property
    def is_single(self) -> bool:
        return self.creation_type == CreationType.SINGLE

    @property
    def origin(self) -> str:
        return "accounts-payable" if self.kind == AccountKind.PAYABLE else "accounts-receivable"

    @property
    def direction(self) -> MovementDirection:
        # Money leaves the register to pay suppliers, enters it from clients
        return MovementDirection.OUTFLOW if self.kind == AccountKind.PAYABLE else MovementDirection.INFLOW

    @property
    def amount_due(self) -> Decimal:
        """Total obligation: the single charge or the sum of all installments"""
        if self.is_single:
            return self.total_value
        return sum((i.value for i in self.installments), ZERO)

    @property
    def amount_paid(self) -> Decimal:
        if self.is_single:
            return self.payment.amount_paid if self.payment else ZERO
        return sum((i.amount_paid for i in self.installments), ZERO)

    @property
    def remaining(self) -> Decimal:
        return self.amount_due - self.amount_paid

    @property
    def is_settled(self) -> bool:
        return self.status == InstallmentStatus.PAID

    def installment(self, sequence_number: int) -> Installment:
        for inst in self.installments:
            if inst.sequence_number == sequence_number:
                return inst
        raise InstallmentNotFound(f"Account {self.document_number} has no installment {sequence_number}")

    def next_due_date(self) -> Optional[date]:
        """Earliest due date still open, None once settled"""
        if self.is_single:
            return None if self.is_settled else self.start_date
        open_dates = [i.due_date for i in self.installments if i.status != InstallmentStatus.PAID]
        return min(open_dates) if open_dates else None

    def effective_status(self, today: date | None = None) -> InstallmentStatus:
        due = self.next_due_date()
        if due is None:
            return self.status
        return _effective(self.status, due, today)


@dataclass(frozen=True)
class AccountLevel:
    """Payment applied to a single account as a whole"""


@dataclass(frozen=True)
class InstallmentRef:
    """Payment applied to one installment"""

    sequence_number: int


PaymentTarget = Union[AccountLevel, InstallmentRef]


@dataclass(frozen=True)
class MovementReference:
    document_number: str
    sequence_number: Optional[int] = None


@dataclass(frozen=True)
class MovementRequest:
    """Cash register movement requested for an accepted payment"""

    direction: MovementDirection
    amount: Decimal
    origin: str
    reference: MovementReference
    idempotency_key: str
    method: Optional[str] = None
    description: Optional[str] = None


@dataclass
class CashMovement:
    movement_id: str
    direction: MovementDirection
    amount: Decimal
    origin: str
    idempotency_key: str
    created_at: datetime
    document_number: Optional[str] = None
    sequence_number: Optional[int] = None
    method: Optional[str] = None
    description: Optional[str] = None


@dataclass
class CashRegister:
    """The cash register (caixa) and its movements"""

    code: str
    status: RegisterStatus
    opened_at: datetime
    opening_balance: Decimal
    movements: List[CashMovement] = field(default_factory=list)
    closed_at: Optional[datetime] = None

    @property
    def inflow(self) -> Decimal:
        return sum((m.amount for m in self.movements if m.direction == MovementDirection.INFLOW), ZERO)

    @property
    def outflow(self) -> Decimal:
        return sum((m.amount for m in self.movements if m.direction == MovementDirection.OUTFLOW), ZERO)

    @property
    def performance(self) -> Decimal:
        return self.inflow - self.outflow

    @property
    def expected_balance(self) -> Decimal:
        return self.opening_balance + self.performance


@dataclass
class PaymentResult:
    """Outcome of an accepted payment"""

    account: Account
    installment: Optional[Installment]
    movement_id: str
    idempotency_key: str


@dataclass
class AccountsSummary:
    """Totals across a set of accounts"""

    total_pending: Decimal
    total_paid: Decimal
    total_overdue: Decimal
    by_category: Dict[str, Decimal]
