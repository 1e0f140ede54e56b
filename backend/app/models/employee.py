"""Employee models for the aggregated detail record."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Keys of the primary document that belong to sub-collections. Older documents
# embed them as arrays; the detail record only takes them from the
# independently fetched sub-collections.
SUBCOLLECTION_KEYS = frozenset({"advances", "transactions"})

_STORE_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True)
# Nested groups are written back whole, so keys we do not model must survive
_GROUP_CONFIG = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


def _parse_date(value: str | None) -> date | None:
    """Calendar date of an ISO 8601 date or timestamp, as written; None if unparseable."""
    if not value:
        return None
    try:
        # fromisoformat only takes a trailing "Z" from 3.11 on
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


class ExpiryStatus(BaseModel):
    status: Literal["unknown", "expired", "critical", "warning", "ok"]
    days_left: int | None = None
    message: str


class IdentityDocument(BaseModel):
    """Passport or national ID (QID) details."""

    model_config = _GROUP_CONFIG

    number: str | None = None
    expiry: str | None = None
    photo_url: str | None = None
    document_url: str | None = None

    def expiry_status(self, today: date | None = None) -> ExpiryStatus:
        expiry = _parse_date(self.expiry)
        if expiry is None:
            return ExpiryStatus(status="unknown", message="No date")

        days_left = (expiry - (today or date.today())).days
        if days_left < 0:
            return ExpiryStatus(
                status="expired", days_left=days_left, message=f"Expired {abs(days_left)} days ago"
            )
        if days_left <= 30:
            return ExpiryStatus(status="critical", days_left=days_left, message=f"{days_left} days left")
        if days_left <= 90:
            return ExpiryStatus(status="warning", days_left=days_left, message=f"{days_left} days left")
        return ExpiryStatus(status="ok", days_left=days_left, message=f"{days_left} days left")


class BankDetails(BaseModel):
    model_config = _GROUP_CONFIG

    bank_name: str | None = None
    account_holder_name: str | None = None
    account_number: str | None = None
    iban: str | None = None
    swift_code: str | None = None
    branch_name: str | None = None
    branch_code: str | None = None
    account_type: str | None = None
    bank_statement_url: str | None = None
    bank_letter_url: str | None = None


class LeaveBalance(BaseModel):
    model_config = _GROUP_CONFIG

    annual: float | None = None
    annual_used: float | None = None
    sick: float | None = None
    sick_used: float | None = None
    emergency: float | None = None
    emergency_used: float | None = None


class PerformanceReview(BaseModel):
    model_config = _STORE_CONFIG

    date: str | None = None
    rating: str | None = None
    reviewer: str | None = None
    comments: str | None = None


class Advance(BaseModel):
    model_config = _STORE_CONFIG

    id: str | None = None
    amount: float = 0.0
    date: str | None = None
    reason: str | None = None
    description: str | None = None
    status: str | None = None
    repaid: bool = False
    repaid_date: str | None = None
    processed_by: str | None = None


class Transaction(BaseModel):
    model_config = _STORE_CONFIG

    id: str | None = None
    amount: float = 0.0
    date: str | None = None
    type: str | None = None
    description: str | None = None
    processed_by: str | None = None


class SubcollectionSlot(BaseModel):
    """One independently fetched sub-collection of a record.

    ``unavailable`` means the fetch failed or timed out and nothing is known;
    a ``loaded`` slot with no items is a confirmed empty list. ``stale`` marks
    items kept from an earlier successful fetch after a later one failed.
    """

    status: Literal["loaded", "unavailable"]
    items: list[dict[str, Any]] = Field(default_factory=list)
    stale: bool = False
    error: str | None = None

    @classmethod
    def loaded(cls, items: list[dict[str, Any]]) -> SubcollectionSlot:
        return cls(status="loaded", items=items)

    @classmethod
    def unavailable(cls, error: str) -> SubcollectionSlot:
        return cls(status="unavailable", error=error)

    @property
    def is_available(self) -> bool:
        return self.status == "loaded"


class EmployeeSummary(BaseModel):
    """Shallow employee info as shown in the list view.

    Also used as the seed for a detail session so the view is never empty.
    """

    model_config = _STORE_CONFIG

    id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    department: str | None = None
    position: str | None = None
    salary: float | None = None
    photo_url: str | None = None
    qatar_id: str | None = None
    passport: IdentityDocument | None = None
    qid: IdentityDocument | None = None


class EmployeeRecord(EmployeeSummary):
    """Aggregated employee record assembled for the detail view."""

    address: str | None = None
    join_date: str | None = None
    total_paid: float | None = None
    created_at: str | None = None
    updated_at: str | None = None

    bank_details: BankDetails | None = None
    leave_balance: LeaveBalance | None = None
    performance_reviews: list[PerformanceReview] | None = None
    hr_notes: str | None = None

    subcollections: dict[str, SubcollectionSlot] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> EmployeeRecord:
        fields = {k: v for k, v in document.items() if k not in SUBCOLLECTION_KEYS and k != "subcollections"}
        return cls.model_validate(fields)

    def core_fields(self) -> dict[str, Any]:
        """Store-shaped fields of the primary document, without sub-collections."""
        return self.model_dump(by_alias=True, exclude={"subcollections"}, exclude_none=True)

    def slot(self, name: str) -> SubcollectionSlot | None:
        return self.subcollections.get(name)

    @property
    def unavailable_sections(self) -> list[str]:
        return sorted(name for name, slot in self.subcollections.items() if not slot.is_available)

    @property
    def stale_sections(self) -> list[str]:
        return sorted(name for name, slot in self.subcollections.items() if slot.stale)

    @property
    def advances(self) -> list[Advance] | None:
        slot = self.slot("advances")
        if slot is None or not slot.is_available:
            return None
        return [Advance.model_validate(item) for item in slot.items]

    @property
    def transactions(self) -> list[Transaction] | None:
        slot = self.slot("transactions")
        if slot is None or not slot.is_available:
            return None
        return [Transaction.model_validate(item) for item in slot.items]
