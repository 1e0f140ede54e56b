"""Sample employees served when no document store is configured."""

from __future__ import annotations

from typing import Any

from app.services.record_source import InMemoryRecordSource

DEMO_EMPLOYEES: list[dict[str, Any]] = [
    {
        "id": "emp001",
        "name": "Ahmed Al-Mansouri",
        "email": "ahmed.mansouri@company.com",
        "phone": "+974 5555 1234",
        "department": "IT",
        "position": "Software Engineer",
        "salary": 8500,
        "address": "Doha, Qatar",
        "joinDate": "2024-01-15",
        "passport": {"number": "A1234567", "expiry": "2026-12-31", "photoUrl": ""},
        "qid": {"number": "28901234567", "expiry": "2025-11-15", "photoUrl": ""},
        "bankDetails": {"bankName": "Qatar National Bank", "iban": "QA58QNBA000000000000693123456"},
        "leaveBalance": {"annual": 25, "annualUsed": 5, "sick": 10, "sickUsed": 1, "emergency": 5},
        "totalPaid": 68000,
        "transactions": [
            {"date": "2025-08-31", "amount": 8500, "type": "salary", "description": "Monthly Salary - August 2025"},
            {"date": "2025-07-31", "amount": 8500, "type": "salary", "description": "Monthly Salary - July 2025"},
            {"date": "2025-04-15", "amount": 2000, "type": "advance", "description": "Emergency Advance Payment"},
        ],
        "advances": [
            {"amount": 2000, "date": "2025-04-15", "reason": "Emergency medical expenses", "status": "active"},
        ],
        "createdAt": "2024-01-15T00:00:00.000Z",
        "updatedAt": "2025-09-01T00:00:00.000Z",
    },
    {
        "id": "emp002",
        "name": "Fatima Al-Zahra",
        "email": "fatima.zahra@company.com",
        "phone": "+974 5555 2345",
        "department": "HR",
        "position": "HR Manager",
        "salary": 12000,
        "joinDate": "2023-03-20",
        "passport": {"number": "B2345678", "expiry": "2027-06-30", "photoUrl": ""},
        "qid": {"number": "28912345678", "expiry": "2026-03-20", "photoUrl": ""},
        "hrNotes": "Leads onboarding for new hires.",
        "totalPaid": 96000,
        "transactions": [
            {"date": "2025-08-31", "amount": 12000, "type": "salary", "description": "Monthly Salary - August 2025"},
        ],
        "advances": [],
        "createdAt": "2023-03-20T00:00:00.000Z",
        "updatedAt": "2025-09-01T00:00:00.000Z",
    },
]


def build_demo_source(collection: str, subcollections: tuple[str, ...]) -> InMemoryRecordSource:
    source = InMemoryRecordSource()
    for employee in DEMO_EMPLOYEES:
        source.add_record(collection, employee, subcollections=subcollections)
    return source
