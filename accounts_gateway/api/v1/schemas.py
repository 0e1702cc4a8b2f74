"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from accounts_gateway.domain.models import (
    Account,
    AccountKind,
    CashMovement,
    CashRegister,
    CreationType,
    Installment,
    PaymentEntry,
    PaymentMethod,
    PaymentRecord,
    ScheduleMode,
)


class SchedulePreviewRequest(BaseModel):
    """Request body for POST /v1/schedules/preview"""

    total_value: Decimal = Field(..., gt=0, decimal_places=2, description="Total to divide or value to repeat")
    start_date: date
    count: int = Field(..., ge=1, description="Number of installments")
    mode: ScheduleMode = ScheduleMode.DIVIDE


class ScheduleItem(BaseModel):
    sequence_number: int
    value: Decimal
    due_date: date


class SchedulePreviewResponse(BaseModel):
    total: Decimal
    installments: List[ScheduleItem]


class AccountCreateRequest(BaseModel):
    """Request body for POST /v1/accounts"""

    kind: AccountKind
    creation_type: CreationType = CreationType.SINGLE
    description: str = Field(..., min_length=1, max_length=200)
    category: str = Field(..., min_length=1)
    total_value: Decimal = Field(..., gt=0, decimal_places=2)
    start_date: date = Field(..., description="Due date of the account or of its first installment")
    count: Optional[int] = Field(None, ge=1, description="Installments or replicas")
    document_number: Optional[str] = Field(None, max_length=40)
    counterparty_code: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)
    issued_on: Optional[date] = None

    @model_validator(mode="after")
    def check_count(self) -> "AccountCreateRequest":
        if self.creation_type != CreationType.SINGLE and self.count is None:
            raise ValueError("count is required for installment plans and replications")
        return self


class AccountUpdateRequest(BaseModel):
    """Request body for PATCH /v1/accounts/{document_number}"""

    description: Optional[str] = Field(None, min_length=1, max_length=200)
    category: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = Field(None, max_length=500)
    counterparty_code: Optional[str] = None
    due_date: Optional[date] = Field(None, description="New due date, single accounts only")


class InstallmentUpdateRequest(BaseModel):
    """Request body for PATCH /v1/accounts/{document_number}/installments/{sequence_number}"""

    due_date: date


class PaymentRequest(BaseModel):
    """Request body for POST /v1/accounts/{document_number}/payments"""

    amount: Decimal = Field(..., description="Amount paid now")
    method: PaymentMethod
    sequence_number: Optional[int] = Field(None, ge=1, description="Installment to pay; omit for single accounts")
    notes: Optional[str] = Field(None, max_length=500)
    paid_on: Optional[datetime] = None
    receipt: Optional[str] = Field(None, description="Receipt image as data URI or base64")
    receipt_ref: Optional[str] = Field(None, description="Reference returned by POST /v1/receipts")


class ReceiptUploadRequest(BaseModel):
    image: str = Field(..., min_length=1, description="Compressed image as data URI or base64")


class ReceiptUploadResponse(BaseModel):
    receipt_ref: str
    size_bytes: int


class PaymentSchema(BaseModel):
    amount_paid: Decimal
    paid_on: datetime
    method: PaymentMethod
    notes: Optional[str] = None
    receipt_ref: Optional[str] = None

    @classmethod
    def from_domain(cls, payment: Optional[PaymentRecord]) -> Optional["PaymentSchema"]:
        if payment is None:
            return None
        return cls(
            amount_paid=payment.amount_paid,
            paid_on=payment.paid_on,
            method=payment.method,
            notes=payment.notes,
            receipt_ref=payment.receipt_ref,
        )


class PaymentEntrySchema(BaseModel):
    amount: Decimal
    paid_on: datetime
    method: PaymentMethod
    notes: Optional[str] = None
    movement_id: Optional[str] = None
    has_receipt: bool = False

    @classmethod
    def from_domain(cls, entry: PaymentEntry) -> "PaymentEntrySchema":
        return cls(
            amount=entry.amount,
            paid_on=entry.paid_on,
            method=entry.method,
            notes=entry.notes,
            movement_id=entry.movement_id,
            has_receipt=entry.receipt_ref is not None,
        )


class InstallmentSchema(BaseModel):
    """Single installment of an account"""

    sequence_number: int
    value: Decimal
    due_date: date
    status: str
    amount_paid: Decimal
    remaining: Decimal
    payment: Optional[PaymentSchema] = None
    history: List[PaymentEntrySchema] = []

    @classmethod
    def from_domain(cls, inst: Installment, today: Optional[date] = None) -> "InstallmentSchema":
        return cls(
            sequence_number=inst.sequence_number,
            value=inst.value,
            due_date=inst.due_date,
            status=inst.effective_status(today).value,
            amount_paid=inst.amount_paid,
            remaining=inst.remaining,
            payment=PaymentSchema.from_domain(inst.payment),
            history=[PaymentEntrySchema.from_domain(e) for e in inst.history],
        )


class AccountResponse(BaseModel):
    """Account with its installments"""

    document_number: str
    kind: AccountKind
    creation_type: CreationType
    description: str
    category: str
    counterparty_code: Optional[str] = None
    notes: Optional[str] = None
    total_value: Decimal
    start_date: date
    issued_on: date
    status: str
    amount_due: Decimal
    amount_paid: Decimal
    remaining: Decimal
    version: int
    payment: Optional[PaymentSchema] = None
    history: List[PaymentEntrySchema] = []
    installments: List[InstallmentSchema] = []

    @classmethod
    def from_domain(cls, account: Account, today: Optional[date] = None) -> "AccountResponse":
        return cls(
            document_number=account.document_number,
            kind=account.kind,
            creation_type=account.creation_type,
            description=account.description,
            category=account.category,
            counterparty_code=account.counterparty_code,
            notes=account.notes,
            total_value=account.total_value,
            start_date=account.start_date,
            issued_on=account.issued_on,
            status=account.effective_status(today).value,
            amount_due=account.amount_due,
            amount_paid=account.amount_paid,
            remaining=account.remaining,
            version=account.version,
            payment=PaymentSchema.from_domain(account.payment),
            history=[PaymentEntrySchema.from_domain(e) for e in account.history],
            installments=[InstallmentSchema.from_domain(i, today) for i in account.installments],
        )


class AccountListResponse(BaseModel):
    accounts: List[AccountResponse]


class PaymentResponse(BaseModel):
    """Response for POST /v1/accounts/{document_number}/payments"""

    movement_id: str
    idempotency_key: str
    account: AccountResponse
    installment: Optional[InstallmentSchema] = None
    receipt_attached: bool


class SummaryResponse(BaseModel):
    """Response for GET /v1/accounts/summary"""

    total_pending: Decimal
    total_paid: Decimal
    total_overdue: Decimal
    by_category: Dict[str, Decimal]


class OpenRegisterRequest(BaseModel):
    opening_balance: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)


class CashMovementSchema(BaseModel):
    movement_id: str
    direction: str
    amount: Decimal
    origin: str
    document_number: Optional[str] = None
    sequence_number: Optional[int] = None
    method: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, m: CashMovement) -> "CashMovementSchema":
        return cls(
            movement_id=m.movement_id,
            direction=m.direction.value,
            amount=m.amount,
            origin=m.origin,
            document_number=m.document_number,
            sequence_number=m.sequence_number,
            method=m.method,
            description=m.description,
            created_at=m.created_at,
        )


class CashRegisterResponse(BaseModel):
    code: str
    status: str
    opened_at: datetime
    closed_at: Optional[datetime] = None
    opening_balance: Decimal
    inflow: Decimal
    outflow: Decimal
    performance: Decimal
    expected_balance: Decimal
    movements: List[CashMovementSchema]

    @classmethod
    def from_domain(cls, register: CashRegister) -> "CashRegisterResponse":
        return cls(
            code=register.code,
            status=register.status.value,
            opened_at=register.opened_at,
            closed_at=register.closed_at,
            opening_balance=register.opening_balance,
            inflow=register.inflow,
            outflow=register.outflow,
            performance=register.performance,
            expected_balance=register.expected_balance,
            movements=[CashMovementSchema.from_domain(m) for m in register.movements],
        )


class ErrorResponse(BaseModel):
    error: str
    detail: str
    retryable: bool
