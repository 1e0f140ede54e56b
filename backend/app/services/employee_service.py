"""Employee services wired to the configured record source."""

from __future__ import annotations

import logging

from app.core.config import Settings
from app.models.employee import EmployeeSummary
from app.services.aggregator import AggregationConfig, RecordAggregator
from app.services.demo_data import build_demo_source
from app.services.detail_session import DetailSessionRegistry
from app.services.edit_reconciler import EditReconciler
from app.services.payroll_service import PayrollService
from app.services.record_source import RecordSource, cosmos_source

logger = logging.getLogger(__name__)


def _matches(employee: EmployeeSummary, term: str) -> bool:
    values = [
        employee.name,
        employee.qid.number if employee.qid else None,
        employee.passport.number if employee.passport else None,
        employee.qatar_id,
        employee.department,
        employee.position,
        employee.email,
    ]
    return any(term in value.lower() for value in values if value)


class EmployeeService:
    def __init__(self) -> None:
        self.source: RecordSource | None = None
        self.mode: str = "not_configured"
        self.collection: str = "employees"
        self.aggregator: RecordAggregator | None = None
        self.reconciler: EditReconciler | None = None
        self.payroll: PayrollService | None = None
        self.sessions: DetailSessionRegistry | None = None
        self.initialized: bool = False

    async def initialize(self, settings: Settings, source: RecordSource | None = None) -> None:
        if self.initialized:
            return

        self.collection = settings.COSMOS_DB_EMPLOYEES_CONTAINER
        if source is not None:
            self.source, self.mode = source, "custom"
        else:
            await cosmos_source.initialize(settings)
            if cosmos_source.initialized:
                self.source, self.mode = cosmos_source, "cosmos"
            elif settings.DEMO_MODE:
                logger.warning("Document store not configured — serving demo employees")
                self.source = build_demo_source(self.collection, tuple(settings.SUBCOLLECTIONS))
                self.mode = "demo"
            else:
                logger.warning("Document store not configured — EmployeeService not initialized")
                return

        self.aggregator = RecordAggregator(self.source, AggregationConfig.from_settings(settings))
        self.reconciler = EditReconciler.from_settings(self.source, settings)
        self.payroll = PayrollService(self.source, collection=self.collection)
        self.sessions = DetailSessionRegistry.from_settings(self.aggregator, self.reconciler, settings)
        self.initialized = True
        logger.info("EmployeeService initialized (mode=%s, collection=%s)", self.mode, self.collection)

    async def close(self) -> None:
        if self.sessions:
            self.sessions.close_all()
        if self.mode == "cosmos":
            await cosmos_source.close()
        self.source = None
        self.aggregator = None
        self.reconciler = None
        self.payroll = None
        self.sessions = None
        self.mode = "not_configured"
        self.initialized = False

    async def get_employees(self, skip: int = 0, limit: int = 50, search: str | None = None) -> list[EmployeeSummary]:
        if not self.source:
            return []

        documents = await self.source.list_records(self.collection, skip=skip, limit=limit)
        employees = [EmployeeSummary.model_validate(doc) for doc in documents]

        term = (search or "").strip().lower()
        if term:
            employees = [employee for employee in employees if _matches(employee, term)]
        return employees

    async def check_connection(self) -> bool:
        if not self.source:
            return False
        try:
            return await self.source.check_connection()
        except Exception:
            logger.exception("Record source connection check failed")
            return False


employee_service = EmployeeService()
