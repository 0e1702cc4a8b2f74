"""Unit tests for the cash register HTTP client"""

import httpx
import json
import pytest
from decimal import Decimal
from unittest.mock import patch
from accounts_gateway.domain.exceptions import LedgerTimeout, LedgerUnavailable, NoOpenRegister
from accounts_gateway.domain.models import MovementDirection, MovementReference, MovementRequest
from accounts_gateway.infrastructure.clients.ledger import HttpCashLedgerClient

URL = "http://cash-register.test/cash-register/movements"

MOVEMENT = MovementRequest(
    direction=MovementDirection.OUTFLOW,
    amount=Decimal("300.00"),
    origin="accounts-payable",
    reference=MovementReference("CPP-001", 1),
    idempotency_key="accounts-payable:CPP-001:1:v1:300.00:5666666",
    method="pix",
    description="Payment: Supplier invoice - CPP-001",
)


def client_for(handler) -> HttpCashLedgerClient:
    return HttpCashLedgerClient(movements_url=URL, timeout=1.0, transport=httpx.MockTransport(handler))


@pytest.fixture(autouse=True)
def no_backoff():
    with patch("accounts_gateway.infrastructure.clients.ledger.asyncio.sleep") as sleep:
        yield sleep


async def test_post_movement_sends_idempotency_key():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"movement_id": "mv-1"})

    movement_id = await client_for(handler).post_movement(MOVEMENT)

    assert movement_id == "mv-1"
    assert seen[0].headers["Idempotency-Key"] == MOVEMENT.idempotency_key
    body = json.loads(seen[0].content)
    assert body["amount"] == "300.00"
    assert body["direction"] == "outflow"
    assert body["reference"] == {"document_number": "CPP-001", "sequence_number": 1}


async def test_no_open_register_mapped():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(409, json={"error": "no_open_register"})

    with pytest.raises(NoOpenRegister):
        await client_for(handler).post_movement(MOVEMENT)


async def test_server_errors_retried_then_unavailable(no_backoff):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(503)

    with pytest.raises(LedgerUnavailable):
        await client_for(handler).post_movement(MOVEMENT)

    assert len(attempts) == 3
    assert no_backoff.await_count == 2


async def test_server_error_then_success():
    responses = [httpx.Response(500), httpx.Response(201, json={"movement_id": "mv-2"})]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    assert await client_for(handler).post_movement(MOVEMENT) == "mv-2"


async def test_client_error_not_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(400, json={"error": "bad_request"})

    with pytest.raises(LedgerUnavailable):
        await client_for(handler).post_movement(MOVEMENT)

    assert len(attempts) == 1


async def test_timeout_surfaces_without_retry():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(LedgerTimeout):
        await client_for(handler).post_movement(MOVEMENT)

    assert len(attempts) == 1


async def test_malformed_response():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "missing-field"})

    with pytest.raises(LedgerUnavailable):
        await client_for(handler).post_movement(MOVEMENT)
