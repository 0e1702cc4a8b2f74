"""Account creation and edits outside the payment flow"""

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from accounts_gateway.domain.exceptions import DuplicateDocument
from accounts_gateway.domain.installments import build_account, document_prefix, next_document_number
from accounts_gateway.domain.models import Account, AccountKind, AccountsSummary, CreationType
from accounts_gateway.domain.payments import reschedule
from accounts_gateway.domain.summary import summarize
from accounts_gateway.infrastructure.database.repositories import AccountRepository
from accounts_gateway.infrastructure.observability.metrics import accounts_created_counter
from accounts_gateway.utils.money import Amount

logger = logging.getLogger(__name__)


class AccountService:
    """Creates accounts with their schedule and applies non-payment edits"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AccountRepository(db)

    def create_account(
        self,
        kind: AccountKind,
        creation_type: CreationType,
        description: str,
        category: str,
        total_value: Amount,
        start_date: date,
        count: Optional[int] = None,
        document_number: Optional[str] = None,
        counterparty_code: Optional[str] = None,
        notes: Optional[str] = None,
        issued_on: Optional[date] = None,
    ) -> Account:
        """
        Create an account and its whole schedule in one transaction.

        Without a document number the next one in the CP001 / CPP-001 /
        CR001 / CRP-001 series is assigned.

        Raises:
            InvalidAmount / InvalidCount: Schedule cannot be generated
            DuplicateDocument: Document number already taken
        """
        if not document_number:
            prefix = document_prefix(kind, creation_type)
            document_number = next_document_number(prefix, self.repo.document_numbers(prefix))

        account = build_account(
            document_number=document_number,
            kind=kind,
            creation_type=creation_type,
            description=description,
            category=category,
            total_value=total_value,
            start_date=start_date,
            count=count,
            counterparty_code=counterparty_code,
            notes=notes,
            issued_on=issued_on,
        )

        try:
            self.repo.add(account)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateDocument(f"Document number {document_number} already exists") from e
        except DuplicateDocument:
            self.db.rollback()
            raise

        accounts_created_counter.labels(kind=kind.value, creation_type=creation_type.value).inc()
        logger.info(
            "Account created",
            extra={
                "document_number": account.document_number,
                "kind": kind.value,
                "creation_type": creation_type.value,
                "installments": len(account.installments),
            },
        )
        return account

    def get_account(self, document_number: str) -> Account:
        return self.repo.load(document_number)

    def list_accounts(self, kind: Optional[AccountKind] = None, category: Optional[str] = None) -> List[Account]:
        return self.repo.list_accounts(kind=kind, category=category)

    def update_details(
        self,
        document_number: str,
        description: Optional[str] = None,
        category: Optional[str] = None,
        notes: Optional[str] = None,
        counterparty_code: Optional[str] = None,
        due_date: Optional[date] = None,
    ) -> Account:
        """
        Descriptive fields stay editable for the whole account lifetime.

        A due_date reschedules a single account; all edits are saved together
        or not at all.

        Raises:
            InstallmentLocked / InvalidTarget: due_date given but cannot move
        """
        account = self.repo.load(document_number)
        expected_version = account.version
        if due_date is not None:
            account = reschedule(account, None, due_date)
        if description is not None:
            account.description = description
        if category is not None:
            account.category = category
        if notes is not None:
            account.notes = notes
        if counterparty_code is not None:
            account.counterparty_code = counterparty_code
        return self._save(account, expected_version)

    def reschedule(self, document_number: str, sequence_number: Optional[int], new_due_date: date) -> Account:
        """
        Move a pending due date.

        Raises:
            InstallmentLocked: Target already has a payment
            InvalidDueDate: Date would break installment ordering
        """
        account = self.repo.load(document_number)
        updated = reschedule(account, sequence_number, new_due_date)
        return self._save(updated, account.version)

    def summary(self, kind: Optional[AccountKind] = None, today: Optional[date] = None) -> AccountsSummary:
        return summarize(self.repo.list_accounts(kind=kind, limit=10_000), today)

    def _save(self, account: Account, expected_version: int) -> Account:
        try:
            saved = self.repo.save(account, expected_version)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return saved
