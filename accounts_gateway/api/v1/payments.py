"""POST /v1/accounts/{document_number}/payments - Register a payment"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from accounts_gateway.api.dependencies import get_payment_recorder, get_receipt_store, get_request_id
from accounts_gateway.api.v1.schemas import AccountResponse, InstallmentSchema, PaymentRequest, PaymentResponse
from accounts_gateway.config import settings
from accounts_gateway.domain.exceptions import DomainException
from accounts_gateway.domain.gateways import ReceiptStore
from accounts_gateway.domain.models import AccountLevel, InstallmentRef
from accounts_gateway.infrastructure.storage.receipts import decode_receipt
from accounts_gateway.services.payment_recorder import PaymentRecorder

router = APIRouter()


def store_receipt(receipt: Optional[str], store: ReceiptStore, request_id: str) -> Optional[str]:
    """Store an inline receipt; a bad receipt only blocks the payment when receipts are required"""
    if receipt is None:
        return None
    try:
        return store.store(decode_receipt(receipt), settings.receipt_max_bytes)
    except DomainException as e:
        if settings.receipt_required:
            raise
        logging.warning(
            f"Receipt discarded: {e.detail}",
            extra={"request_id": request_id, "error": e.code},
        )
        return None


@router.post("/accounts/{document_number}/payments", response_model=PaymentResponse)
async def register_payment(
    document_number: str,
    request_body: PaymentRequest,
    request_id: str = Depends(get_request_id),
    recorder: PaymentRecorder = Depends(get_payment_recorder),
    receipt_store: ReceiptStore = Depends(get_receipt_store),
):
    """
    Register a payment on a single account or on one installment.

    Flow:
    1. Store the receipt image, if any
    2. Validate the amount against the remaining balance
    3. Post the movement to the open cash register
    4. Persist the payment once the register confirmed it
    """
    receipt_ref = store_receipt(request_body.receipt, receipt_store, request_id) or request_body.receipt_ref

    target = (
        InstallmentRef(request_body.sequence_number)
        if request_body.sequence_number is not None
        else AccountLevel()
    )
    result = await recorder.record_payment(
        document_number,
        target,
        request_body.amount,
        request_body.method,
        notes=request_body.notes,
        receipt_ref=receipt_ref,
        paid_on=request_body.paid_on,
    )

    return PaymentResponse(
        movement_id=result.movement_id,
        idempotency_key=result.idempotency_key,
        account=AccountResponse.from_domain(result.account),
        installment=InstallmentSchema.from_domain(result.installment) if result.installment else None,
        receipt_attached=receipt_ref is not None,
    )
