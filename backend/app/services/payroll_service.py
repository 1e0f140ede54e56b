"""Payroll operations on an employee's sub-collections.

Payments and advances are appended as new sub-records, and repaying an
advance updates that one sub-record. None of these rewrite the employee
document, so a stale copy of a list can never truncate it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from app.models.employee import Advance, EmployeeRecord, Transaction
from app.services.record_source import RecordSource

logger = logging.getLogger(__name__)

PaymentType = Literal["salary", "advance", "bonus", "deduction"]

_DEFAULT_DESCRIPTIONS: dict[str, str] = {
    "salary": "Salary payment",
    "advance": "Advance payment",
    "bonus": "Bonus payment",
    "deduction": "Salary deduction",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class PayrollService:
    def __init__(self, source: RecordSource, collection: str = "employees", processed_by: str = "Admin") -> None:
        self.source = source
        self.collection = collection
        self.processed_by = processed_by

    async def record_payment(
        self,
        employee_id: str,
        payment_type: PaymentType,
        amount: float,
        description: str | None = None,
    ) -> Transaction | Advance:
        if amount <= 0:
            raise ValueError("Amount must be positive")
        if payment_type not in _DEFAULT_DESCRIPTIONS:
            raise ValueError(f"Unknown payment type: {payment_type}")

        entry: dict[str, Any] = {
            "date": _now(),
            "description": description or _DEFAULT_DESCRIPTIONS[payment_type],
            "processedBy": self.processed_by,
        }

        if payment_type == "advance":
            entry.update(amount=amount, repaid=False, status="pending")
            created = await self.source.append_sub_record(self.collection, employee_id, "advances", entry)
            logger.info("Advance of %.2f recorded for %s", amount, employee_id)
            return Advance.model_validate(created)

        # Deductions are stored as negative amounts
        signed = -amount if payment_type == "deduction" else amount
        entry.update(amount=signed, type=payment_type)
        created = await self.source.append_sub_record(self.collection, employee_id, "transactions", entry)
        logger.info("%s of %.2f recorded for %s", payment_type.capitalize(), signed, employee_id)
        return Transaction.model_validate(created)

    async def mark_advance_repaid(self, employee_id: str, advance_id: str) -> None:
        await self.source.update_sub_record(
            self.collection,
            employee_id,
            "advances",
            advance_id,
            {"repaid": True, "repaidDate": _now(), "status": "repaid"},
        )
        logger.info("Advance %s of %s marked as repaid", advance_id, employee_id)


def pending_advances_total(record: EmployeeRecord) -> float | None:
    advances = record.advances
    if advances is None:
        return None
    return sum(advance.amount for advance in advances if not advance.repaid)


def total_paid(record: EmployeeRecord) -> float | None:
    transactions = record.transactions
    if transactions is None:
        return None
    return sum(transaction.amount for transaction in transactions)
