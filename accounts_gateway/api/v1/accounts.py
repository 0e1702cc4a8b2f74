"""Account endpoints - schedule preview, creation, listing and edits"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends

from accounts_gateway.api.dependencies import get_account_service
from accounts_gateway.api.v1.schemas import (
    AccountCreateRequest,
    AccountListResponse,
    AccountResponse,
    AccountUpdateRequest,
    InstallmentUpdateRequest,
    ScheduleItem,
    SchedulePreviewRequest,
    SchedulePreviewResponse,
    SummaryResponse,
)
from accounts_gateway.domain.installments import generate_schedule
from accounts_gateway.domain.models import AccountKind
from accounts_gateway.services.accounts import AccountService

router = APIRouter()


@router.post("/schedules/preview", response_model=SchedulePreviewResponse)
def preview_schedule(request_body: SchedulePreviewRequest):
    """
    Preview the installments an account would get, without persisting.

    Returns:
        Installment values and monthly due dates; values sum to the total
        in divide mode
    """
    installments = generate_schedule(
        request_body.total_value,
        request_body.start_date,
        request_body.count,
        request_body.mode,
    )
    return SchedulePreviewResponse(
        total=sum((i.value for i in installments), Decimal("0.00")),
        installments=[
            ScheduleItem(sequence_number=i.sequence_number, value=i.value, due_date=i.due_date)
            for i in installments
        ],
    )


@router.post("/accounts", response_model=AccountResponse, status_code=201)
def create_account(
    request_body: AccountCreateRequest,
    service: AccountService = Depends(get_account_service),
):
    """Create a single account, installment plan or replication"""
    account = service.create_account(
        kind=request_body.kind,
        creation_type=request_body.creation_type,
        description=request_body.description,
        category=request_body.category,
        total_value=request_body.total_value,
        start_date=request_body.start_date,
        count=request_body.count,
        document_number=request_body.document_number,
        counterparty_code=request_body.counterparty_code,
        notes=request_body.notes,
        issued_on=request_body.issued_on,
    )
    return AccountResponse.from_domain(account)


@router.get("/accounts", response_model=AccountListResponse)
def list_accounts(
    kind: Optional[AccountKind] = None,
    category: Optional[str] = None,
    service: AccountService = Depends(get_account_service),
):
    accounts = service.list_accounts(kind=kind, category=category)
    return AccountListResponse(accounts=[AccountResponse.from_domain(a) for a in accounts])


@router.get("/accounts/summary", response_model=SummaryResponse)
def get_summary(
    kind: Optional[AccountKind] = None,
    service: AccountService = Depends(get_account_service),
):
    """Pending, paid and overdue totals plus obligation per category"""
    summary = service.summary(kind=kind)
    return SummaryResponse(
        total_pending=summary.total_pending,
        total_paid=summary.total_paid,
        total_overdue=summary.total_overdue,
        by_category=summary.by_category,
    )


@router.get("/accounts/{document_number}", response_model=AccountResponse)
def get_account(document_number: str, service: AccountService = Depends(get_account_service)):
    return AccountResponse.from_domain(service.get_account(document_number))


@router.patch("/accounts/{document_number}", response_model=AccountResponse)
def update_account(
    document_number: str,
    request_body: AccountUpdateRequest,
    service: AccountService = Depends(get_account_service),
):
    """
    Edit descriptive fields; a new due_date reschedules a single account.

    Values never change after creation. Due dates move only while unpaid.
    """
    account = service.update_details(
        document_number,
        description=request_body.description,
        category=request_body.category,
        notes=request_body.notes,
        counterparty_code=request_body.counterparty_code,
        due_date=request_body.due_date,
    )
    return AccountResponse.from_domain(account)


@router.patch("/accounts/{document_number}/installments/{sequence_number}", response_model=AccountResponse)
def reschedule_installment(
    document_number: str,
    sequence_number: int,
    request_body: InstallmentUpdateRequest,
    service: AccountService = Depends(get_account_service),
):
    account = service.reschedule(document_number, sequence_number, request_body.due_date)
    return AccountResponse.from_domain(account)
