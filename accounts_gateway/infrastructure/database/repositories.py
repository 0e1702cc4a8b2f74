"""Data access layer for accounts and the cash register"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from accounts_gateway.domain.exceptions import AccountNotFound, ConcurrentModification, DuplicateDocument
from accounts_gateway.domain.models import (
    Account,
    AccountKind,
    CashMovement,
    CashRegister,
    CreationType,
    Installment,
    InstallmentStatus,
    MovementDirection,
    MovementRequest,
    PaymentEntry,
    PaymentMethod,
    PaymentRecord,
    RegisterStatus,
)
from accounts_gateway.infrastructure.database.models import (
    AccountRow,
    CashMovementRow,
    CashRegisterRow,
    InstallmentRow,
)
from accounts_gateway.utils.money import from_cents, to_cents


def _payment_columns(payment: Optional[PaymentRecord]) -> Dict[str, Any]:
    if payment is None:
        return {
            "amount_paid_cents": None,
            "paid_at": None,
            "payment_method": None,
            "payment_notes": None,
            "receipt_ref": None,
        }
    return {
        "amount_paid_cents": to_cents(payment.amount_paid),
        "paid_at": payment.paid_on,
        "payment_method": payment.method.value,
        "payment_notes": payment.notes,
        "receipt_ref": payment.receipt_ref,
    }


def _payment_from_row(row) -> Optional[PaymentRecord]:
    if row.amount_paid_cents is None:
        return None
    return PaymentRecord(
        amount_paid=from_cents(row.amount_paid_cents),
        paid_on=row.paid_at,
        method=PaymentMethod(row.payment_method),
        notes=row.payment_notes,
        receipt_ref=row.receipt_ref,
    )


def _history_to_json(entries: List[PaymentEntry]) -> List[Dict[str, Any]]:
    return [
        {
            "amount_cents": to_cents(e.amount),
            "paid_on": e.paid_on.isoformat(),
            "method": e.method.value,
            "notes": e.notes,
            "receipt_ref": e.receipt_ref,
            "movement_id": e.movement_id,
        }
        for e in entries
    ]


def _history_from_json(items: Optional[List[Dict[str, Any]]]) -> List[PaymentEntry]:
    return [
        PaymentEntry(
            amount=from_cents(item["amount_cents"]),
            paid_on=datetime.fromisoformat(item["paid_on"]),
            method=PaymentMethod(item["method"]),
            notes=item.get("notes"),
            receipt_ref=item.get("receipt_ref"),
            movement_id=item.get("movement_id"),
        )
        for item in items or []
    ]


def _account_columns(account: Account) -> Dict[str, Any]:
    """Mutable account columns; identity, kind, type and totals never change"""
    return {
        "description": account.description,
        "category": account.category,
        "counterparty_code": account.counterparty_code,
        "notes": account.notes,
        "start_date": account.start_date,
        "status": account.status.value,
        "payment_history": _history_to_json(account.history),
        **_payment_columns(account.payment),
    }


def _write_installment(row: InstallmentRow, installment: Installment) -> None:
    row.due_date = installment.due_date
    row.status = installment.status.value
    row.payment_history = _history_to_json(installment.history)
    for column, value in _payment_columns(installment.payment).items():
        setattr(row, column, value)


def _account_from_row(row: AccountRow) -> Account:
    return Account(
        document_number=row.document_number,
        kind=AccountKind(row.kind),
        creation_type=CreationType(row.creation_type),
        description=row.description,
        category=row.category,
        total_value=from_cents(row.total_cents),
        start_date=row.start_date,
        installments=[
            Installment(
                sequence_number=inst.sequence_number,
                value=from_cents(inst.value_cents),
                due_date=inst.due_date,
                status=InstallmentStatus(inst.status),
                payment=_payment_from_row(inst),
                history=_history_from_json(inst.payment_history),
            )
            for inst in row.installments
        ],
        counterparty_code=row.counterparty_code,
        notes=row.notes,
        issued_on=row.issued_on,
        status=InstallmentStatus(row.status),
        payment=_payment_from_row(row),
        history=_history_from_json(row.payment_history),
        version=row.version,
    )


class AccountRepository:
    """Repository for payable/receivable accounts"""

    def __init__(self, db: Session):
        self.db = db

    def _get_row(self, document_number: str) -> AccountRow:
        row = self.db.query(AccountRow).filter(AccountRow.document_number == document_number).first()
        if row is None:
            raise AccountNotFound(f"Account {document_number} not found")
        return row

    def exists(self, document_number: str) -> bool:
        return (
            self.db.query(AccountRow.id).filter(AccountRow.document_number == document_number).first()
            is not None
        )

    def add(self, account: Account) -> Account:
        """Persist a new account with its whole schedule"""
        if self.exists(account.document_number):
            raise DuplicateDocument(f"Document number {account.document_number} already exists")

        row = AccountRow(
            document_number=account.document_number,
            kind=account.kind.value,
            creation_type=account.creation_type.value,
            total_cents=to_cents(account.total_value),
            issued_on=account.issued_on,
            version=account.version,
            **_account_columns(account),
        )
        for inst in account.installments:
            inst_row = InstallmentRow(sequence_number=inst.sequence_number, value_cents=to_cents(inst.value))
            _write_installment(inst_row, inst)
            row.installments.append(inst_row)

        self.db.add(row)
        self.db.flush()  # Surface unique violations before commit
        return account

    def load(self, document_number: str) -> Account:
        """Fetch account with installments"""
        return _account_from_row(self._get_row(document_number))

    def save(self, account: Account, expected_version: int) -> Account:
        """
        Compare-and-swap write of the mutable account state.

        The version bump is a conditional UPDATE, so two writers that loaded
        the same version cannot both succeed.

        Raises:
            ConcurrentModification: Stored version differs from expected_version
        """
        result = self.db.execute(
            update(AccountRow)
            .where(
                AccountRow.document_number == account.document_number,
                AccountRow.version == expected_version,
            )
            .values(version=expected_version + 1, **_account_columns(account))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModification(
                f"Account {account.document_number} changed since version {expected_version}"
            )

        # Identity map still holds the pre-update row
        self.db.expire_all()
        row = self._get_row(account.document_number)
        rows_by_seq = {r.sequence_number: r for r in row.installments}
        for inst in account.installments:
            _write_installment(rows_by_seq[inst.sequence_number], inst)
        self.db.flush()

        account.version = expected_version + 1
        return account

    def bump_version(self, document_number: str, expected_version: int) -> bool:
        """Advance the version alone; False when it already moved past expected_version"""
        result = self.db.execute(
            update(AccountRow)
            .where(
                AccountRow.document_number == document_number,
                AccountRow.version == expected_version,
            )
            .values(version=expected_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def list_accounts(
        self,
        kind: Optional[AccountKind] = None,
        category: Optional[str] = None,
        limit: int = 200,
    ) -> List[Account]:
        """Accounts ordered by due date, latest first"""
        query = self.db.query(AccountRow)
        if kind is not None:
            query = query.filter(AccountRow.kind == kind.value)
        if category is not None:
            query = query.filter(AccountRow.category == category)
        rows = query.order_by(AccountRow.start_date.desc()).limit(limit).all()
        return [_account_from_row(r) for r in rows]

    def document_numbers(self, prefix: str) -> List[str]:
        """Existing document numbers starting with prefix"""
        rows = (
            self.db.query(AccountRow.document_number)
            .filter(AccountRow.document_number.like(f"{prefix}%"))
            .all()
        )
        return [r[0] for r in rows]


def _movement_from_row(row: CashMovementRow) -> CashMovement:
    return CashMovement(
        movement_id=str(row.id),
        direction=MovementDirection(row.direction),
        amount=from_cents(row.amount_cents),
        origin=row.origin,
        idempotency_key=row.idempotency_key,
        created_at=row.created_at,
        document_number=row.document_number,
        sequence_number=row.sequence_number,
        method=row.method,
        description=row.description,
    )


def register_from_row(row: CashRegisterRow) -> CashRegister:
    return CashRegister(
        code=row.code,
        status=RegisterStatus(row.status),
        opened_at=row.opened_at,
        opening_balance=from_cents(row.opening_balance_cents),
        movements=[_movement_from_row(m) for m in row.movements],
        closed_at=row.closed_at,
    )


class CashRegisterRepository:
    """Repository for cash registers and their movements"""

    def __init__(self, db: Session):
        self.db = db

    def get_open_register(self) -> Optional[CashRegisterRow]:
        return (
            self.db.query(CashRegisterRow)
            .filter(CashRegisterRow.status == RegisterStatus.OPEN.value)
            .order_by(CashRegisterRow.opened_at.desc())
            .first()
        )

    def register_codes(self, prefix: str) -> List[str]:
        rows = self.db.query(CashRegisterRow.code).filter(CashRegisterRow.code.like(f"{prefix}%")).all()
        return [r[0] for r in rows]

    def create_register(self, code: str, opening_balance_cents: int, opened_at: datetime) -> CashRegisterRow:
        row = CashRegisterRow(
            code=code,
            status=RegisterStatus.OPEN.value,
            opening_balance_cents=opening_balance_cents,
            opened_at=opened_at,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def get_movement_by_key(self, idempotency_key: str) -> Optional[CashMovementRow]:
        return (
            self.db.query(CashMovementRow)
            .filter(CashMovementRow.idempotency_key == idempotency_key)
            .first()
        )

    def add_movement(
        self,
        register: CashRegisterRow,
        movement: MovementRequest,
        created_at: datetime,
    ) -> CashMovementRow:
        row = CashMovementRow(
            register_id=register.id,
            direction=movement.direction.value,
            amount_cents=to_cents(movement.amount),
            origin=movement.origin,
            document_number=movement.reference.document_number,
            sequence_number=movement.reference.sequence_number,
            idempotency_key=movement.idempotency_key,
            method=movement.method,
            description=movement.description,
            created_at=created_at,
        )
        self.db.add(row)
        self.db.flush()
        return row
