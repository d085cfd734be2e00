"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

SERVICE_NAME = "gurtpay-ledger"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME


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


def log_money_movement(
    transaction_id: str,
    kind: str,
    amount_micros: int,
    from_account: Optional[str] = None,
    to_account: Optional[str] = None,
) -> None:
    """One record per ledger entry so balances can be reconciled from logs"""
    logging.getLogger("gurtpay_ledger.ledger").info(
        "Ledger entry written",
        extra={
            "transaction_id": transaction_id,
            "kind": kind,
            "amount_micros": amount_micros,
            "from_account": from_account,
            "to_account": to_account,
        },
    )


def log_rejection(request_id: str, code: str, message: str, path: str) -> None:
    """Business-rule rejections are expected outcomes, logged at warning"""
    logging.getLogger("gurtpay_ledger.rules").warning(
        "Request rejected",
        extra={
            "request_id": request_id,
            "rejection_code": code,
            "reason": message,
            "path": path,
        },
    )
