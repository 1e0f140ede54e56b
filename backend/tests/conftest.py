from __future__ import annotations

import copy

import pytest
from starlette.testclient import TestClient

from app.main import app
from app.models.employee import EmployeeRecord, EmployeeSummary, SubcollectionSlot
from app.services.aggregator import RecordAggregator
from app.services.detail_session import DetailSession
from app.services.edit_reconciler import EditReconciler
from tests.fakes import ADVANCES, EMPLOYEE_DOC, FAST_CONFIG, TRANSACTIONS, ScriptedSource


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def source() -> ScriptedSource:
    src = ScriptedSource()
    src.add(EMPLOYEE_DOC, advances=ADVANCES, transactions=TRANSACTIONS)
    src.add({"id": "emp002", "name": "Fatima Al-Zahra", "department": "HR", "salary": 12000.0})
    return src


@pytest.fixture
def aggregator(source) -> RecordAggregator:
    return RecordAggregator(source, FAST_CONFIG)


@pytest.fixture
def reconciler(source) -> EditReconciler:
    return EditReconciler(source, collection="employees", timeout_ms=80)


@pytest.fixture
def session(aggregator, reconciler) -> DetailSession:
    return DetailSession(aggregator, reconciler)


@pytest.fixture
def seed() -> EmployeeSummary:
    return EmployeeSummary(id="emp001", name="Ahmed Al-Mansouri", department="IT")


@pytest.fixture
def loaded_record() -> EmployeeRecord:
    record = EmployeeRecord.from_document(EMPLOYEE_DOC)
    record.subcollections = {
        "advances": SubcollectionSlot.loaded(copy.deepcopy(ADVANCES)),
        "transactions": SubcollectionSlot.loaded(copy.deepcopy(TRANSACTIONS)),
    }
    return record


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c
