"""Cash register (caixa) endpoints"""

from fastapi import APIRouter, Depends

from accounts_gateway.api.dependencies import get_register
from accounts_gateway.api.v1.schemas import CashRegisterResponse, OpenRegisterRequest
from accounts_gateway.domain.exceptions import NoOpenRegister
from accounts_gateway.infrastructure.ledger.cash_register import DatabaseCashLedger

router = APIRouter()


@router.post("/cash-register/open", response_model=CashRegisterResponse, status_code=201)
async def open_register(
    request_body: OpenRegisterRequest,
    register: DatabaseCashLedger = Depends(get_register),
):
    """Open the register; payments are refused while none is open"""
    return CashRegisterResponse.from_domain(await register.open_register(request_body.opening_balance))


@router.post("/cash-register/close", response_model=CashRegisterResponse)
async def close_register(register: DatabaseCashLedger = Depends(get_register)):
    """Close the open register and return its inflow, outflow and performance"""
    return CashRegisterResponse.from_domain(await register.close_register())


@router.get("/cash-register/current", response_model=CashRegisterResponse)
def current_register(register: DatabaseCashLedger = Depends(get_register)):
    current = register.current_register()
    if current is None:
        raise NoOpenRegister()
    return CashRegisterResponse.from_domain(current)
