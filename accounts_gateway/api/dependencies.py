"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session, sessionmaker

from accounts_gateway.config import settings
from accounts_gateway.domain.gateways import CashLedgerGateway, ReceiptStore
from accounts_gateway.infrastructure.clients.ledger import HttpCashLedgerClient
from accounts_gateway.infrastructure.database.session import get_db, get_session_factory
from accounts_gateway.infrastructure.ledger.cash_register import DatabaseCashLedger
from accounts_gateway.infrastructure.storage.receipts import DataUriReceiptStore
from accounts_gateway.services.accounts import AccountService
from accounts_gateway.services.payment_recorder import PaymentRecorder


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_register(
    request: Request,
    session_factory: sessionmaker = Depends(get_session_factory),
) -> DatabaseCashLedger:
    """Cash register kept in the service database, serialized by the app-wide lock"""
    return DatabaseCashLedger(session_factory, lock=request.app.state.register_lock)


def get_cash_ledger(
    register: DatabaseCashLedger = Depends(get_register),
) -> CashLedgerGateway:
    """Provide the configured cash register backend"""
    if settings.cash_ledger_backend == "http":
        return HttpCashLedgerClient()
    return register


def get_receipt_store() -> ReceiptStore:
    return DataUriReceiptStore()


def get_account_service(db: Session = Depends(get_db)) -> AccountService:
    return AccountService(db)


def get_payment_recorder(
    request: Request,
    db: Session = Depends(get_db),
    ledger: CashLedgerGateway = Depends(get_cash_ledger),
) -> PaymentRecorder:
    return PaymentRecorder(
        db,
        ledger,
        locks=request.app.state.document_locks,
        request_id=get_request_id(request),
    )
