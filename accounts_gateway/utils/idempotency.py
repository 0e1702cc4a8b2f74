"""
Idempotency keys for cash register movements.

A key names one payment attempt against one account version. Retrying the
attempt (after a timeout or a refused post) repeats the key, so the register
never books it twice; once any change to the account is committed, or a posted
payment is reversed, the version moves on and the next payment gets a fresh
key, even for the same amount.
"""

from datetime import datetime
from decimal import Decimal


def time_bucket(moment: datetime, bucket_seconds: int) -> int:
    """Index of the fixed-width time window containing `moment`"""
    return int(moment.timestamp()) // bucket_seconds


def payment_idempotency_key(
    origin: str,
    document_number: str,
    sequence_number: int | None,
    version: int,
    amount: Decimal,
    moment: datetime,
    bucket_seconds: int,
) -> str:
    """
    Build the key for a payment movement.

    Format: origin:document_number:sequence_number:v{version}:amount:bucket
    (sequence_number is 0 for account-level payments)

    Example:
        >>> payment_idempotency_key("accounts-payable", "CPP-001", 2, 3, Decimal("150.00"), now, 300)
        "accounts-payable:CPP-001:2:v3:150.00:5793211"
    """
    bucket = time_bucket(moment, bucket_seconds)
    return f"{origin}:{document_number}:{sequence_number or 0}:v{version}:{amount}:{bucket}"


def compensation_key(idempotency_key: str) -> str:
    """Key for the movement that reverses the one posted under `idempotency_key`"""
    return f"{idempotency_key}:compensation"
