"""POST /v1/receipts - Validate and store a receipt image"""

from fastapi import APIRouter, Depends

from accounts_gateway.api.dependencies import get_receipt_store
from accounts_gateway.api.v1.schemas import ReceiptUploadRequest, ReceiptUploadResponse
from accounts_gateway.config import settings
from accounts_gateway.domain.gateways import ReceiptStore
from accounts_gateway.infrastructure.storage.receipts import decode_receipt

router = APIRouter()


@router.post("/receipts", response_model=ReceiptUploadResponse, status_code=201)
def upload_receipt(
    request_body: ReceiptUploadRequest,
    store: ReceiptStore = Depends(get_receipt_store),
):
    """Store a receipt ahead of the payment; pass the returned reference as receipt_ref"""
    image_bytes = decode_receipt(request_body.image)
    receipt_ref = store.store(image_bytes, settings.receipt_max_bytes)
    return ReceiptUploadResponse(receipt_ref=receipt_ref, size_bytes=len(image_bytes))
