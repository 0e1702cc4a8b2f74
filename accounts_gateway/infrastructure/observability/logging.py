"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from accounts_gateway.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_payment_recorded(
    request_id: str,
    document_number: str,
    sequence_number: Optional[int],
    amount: Decimal,
    movement_id: str,
    status: str,
    duration_ms: float,
) -> None:
    """Log structured payment outcome for reconciliation"""
    logging.info(
        "Payment recorded",
        extra={
            "request_id": request_id,
            "document_number": document_number,
            "sequence_number": sequence_number,
            "step": "payment_recorded",
            "amount": str(amount),
            "movement_id": movement_id,
            "status": status,
            "duration_ms": duration_ms,
        },
    )


def log_ledger_failure(
    request_id: str,
    document_number: str,
    idempotency_key: str,
    reason: str,
    ambiguous: bool = False,
) -> None:
    """Log a cash register post that did not go through"""
    logging.error(
        "Cash register movement failed",
        extra={
            "request_id": request_id,
            "document_number": document_number,
            "idempotency_key": idempotency_key,
            "step": "ledger_post",
            "reason": reason,
            "ambiguous": ambiguous,
        },
    )
