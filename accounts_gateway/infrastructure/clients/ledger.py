"""Cash register HTTP client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Dict, Any
from accounts_gateway.config import settings
from accounts_gateway.domain.exceptions import LedgerTimeout, LedgerUnavailable, NoOpenRegister
from accounts_gateway.domain.models import MovementRequest
from accounts_gateway.infrastructure.observability.metrics import ledger_latency_histogram, ledger_failure_counter


def movement_payload(movement: MovementRequest) -> Dict[str, Any]:
    return {
        "direction": movement.direction.value,
        "amount": str(movement.amount),
        "origin": movement.origin,
        "reference": {
            "document_number": movement.reference.document_number,
            "sequence_number": movement.reference.sequence_number,
        },
        "idempotency_key": movement.idempotency_key,
        "method": movement.method,
        "description": movement.description,
    }


class HttpCashLedgerClient:
    """Client for an external cash register service"""

    def __init__(
        self,
        movements_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.movements_url = movements_url or settings.cash_ledger_url
        self.timeout = timeout or settings.ledger_timeout_seconds
        self.max_retries = settings.ledger_max_retries
        self.backoff_base = settings.ledger_backoff_base
        self.transport = transport

    async def post_movement(self, movement: MovementRequest) -> str:
        """
        Post a movement to the open cash register.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base ... (base * 2^attempt)
        - Retries on 5xx errors and connection failures
        - Timeouts are not retried here: the outcome is unknown, so the caller
          decides whether to re-post under the same idempotency key

        Raises:
            NoOpenRegister: Service answered 409 no_open_register
            LedgerTimeout: No answer within the timeout
            LedgerUnavailable: 4xx rejection or retries exhausted
        """
        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with ledger_latency_histogram.time():
                        response = await client.post(
                            self.movements_url,
                            json=movement_payload(movement),
                            headers={"Idempotency-Key": movement.idempotency_key},
                        )
                    if response.status_code == 409 and response.json().get("error") == "no_open_register":
                        ledger_failure_counter.labels(reason="no_open_register").inc()
                        raise NoOpenRegister()
                    response.raise_for_status()
                    return str(response.json()["movement_id"])

                except httpx.TimeoutException as e:
                    ledger_failure_counter.labels(reason="timeout").inc()
                    raise LedgerTimeout(f"Cash register timeout after {self.timeout}s") from e

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    ledger_failure_counter.labels(reason="http").inc()

                    if isinstance(e, httpx.HTTPStatusError) and e.response.status_code < 500:
                        raise LedgerUnavailable(f"Cash register rejected movement: {e.response.status_code}") from e
                    if attempt >= self.max_retries:
                        # Final failure after all retries
                        raise LedgerUnavailable(f"Cash register unavailable after {attempt} attempts") from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

                except (KeyError, ValueError) as e:
                    raise LedgerUnavailable(f"Invalid cash register response: {e}") from e
