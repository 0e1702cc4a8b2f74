"""SQLAlchemy ORM models for accounts, installments and the cash register"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class AccountRow(Base):
    """Payable or receivable account (conta)"""

    __tablename__ = "account"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_number = Column(String(40), nullable=False, unique=True, index=True)
    kind = Column(Text, nullable=False, index=True)  # payable | receivable
    creation_type = Column(Text, nullable=False)  # single | installment_plan | replication
    description = Column(Text, nullable=False)
    category = Column(Text, nullable=False, index=True)
    counterparty_code = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    total_cents = Column(BigInteger, nullable=False)
    start_date = Column(Date, nullable=False, index=True)
    issued_on = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="pending")

    # Payment of single accounts; plans keep theirs per installment
    amount_paid_cents = Column(BigInteger, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(Text, nullable=True)
    payment_notes = Column(Text, nullable=True)
    receipt_ref = Column(Text, nullable=True)
    payment_history = Column(JSON, nullable=False, default=list)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    installments = relationship(
        "InstallmentRow",
        back_populates="account",
        cascade="all, delete-orphan",
        order_by="InstallmentRow.sequence_number",
    )


class InstallmentRow(Base):
    """Installment (parcela) or replica of an account"""

    __tablename__ = "account_installment"
    __table_args__ = (UniqueConstraint("account_id", "sequence_number", name="uq_account_installment_seq"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account_id = Column(UUID(as_uuid=True), ForeignKey("account.id", ondelete="CASCADE"), nullable=False)
    sequence_number = Column(Integer, nullable=False)
    value_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    status = Column(Text, nullable=False, default="pending")
    amount_paid_cents = Column(BigInteger, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(Text, nullable=True)
    payment_notes = Column(Text, nullable=True)
    receipt_ref = Column(Text, nullable=True)
    payment_history = Column(JSON, nullable=False, default=list)

    account = relationship("AccountRow", back_populates="installments")


class CashRegisterRow(Base):
    """Cash register session (caixa), at most one open at a time"""

    __tablename__ = "cash_register"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(40), nullable=False, unique=True)
    status = Column(Text, nullable=False, default="open", index=True)
    opening_balance_cents = Column(BigInteger, nullable=False, default=0)
    opened_at = Column(DateTime(timezone=True), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    movements = relationship(
        "CashMovementRow",
        back_populates="register",
        cascade="all, delete-orphan",
        order_by="CashMovementRow.created_at",
    )


class CashMovementRow(Base):
    """Inflow or outflow posted to a cash register"""

    __tablename__ = "cash_movement"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    register_id = Column(UUID(as_uuid=True), ForeignKey("cash_register.id", ondelete="CASCADE"), nullable=False)
    direction = Column(Text, nullable=False)  # inflow | outflow
    amount_cents = Column(BigInteger, nullable=False)
    origin = Column(Text, nullable=False)
    document_number = Column(Text, nullable=True, index=True)
    sequence_number = Column(Integer, nullable=True)
    idempotency_key = Column(String(255), nullable=False, unique=True)
    method = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    register = relationship("CashRegisterRow", back_populates="movements")
