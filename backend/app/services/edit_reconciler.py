"""Write-back of detail-view edits.

Only edited fields are sent. The store replaces nested objects wholesale, so an
edit inside a nested group is merged over the last known group locally and the
whole group is written. Sub-collections are never part of a save; they change
only through their own append/update operations.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ValidationError

from app.core.config import Settings
from app.core.errors import (
    CONFLICT,
    InvalidEditError,
    SaveConflictError,
    SaveError,
    classify,
)
from app.models.employee import (
    SUBCOLLECTION_KEYS,
    BankDetails,
    EmployeeRecord,
    IdentityDocument,
    LeaveBalance,
)
from app.services.bounded_call import with_timeout
from app.services.record_source import RecordSource

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "name",
        "email",
        "phone",
        "department",
        "position",
        "salary",
        "address",
        "photo_url",
        "join_date",
        "qatar_id",
        "hr_notes",
        "performance_reviews",
    }
)
NESTED_GROUPS: dict[str, type[BaseModel]] = {
    "passport": IdentityDocument,
    "qid": IdentityDocument,
    "bank_details": BankDetails,
    "leave_balance": LeaveBalance,
}


def _field_names(model: type[BaseModel], data: dict[str, Any]) -> dict[str, Any]:
    """Accept store (camelCase) keys as well as attribute names."""
    by_alias = {info.alias: name for name, info in model.model_fields.items() if info.alias}
    return {by_alias.get(key, key): value for key, value in data.items()}


def _check_fields(edited_fields: dict[str, Any]) -> None:
    rejected = sorted(set(edited_fields) & (SUBCOLLECTION_KEYS | {"subcollections"}))
    if rejected:
        raise InvalidEditError(
            f"Sub-collections cannot be saved with the record: {', '.join(rejected)}"
        )
    if "id" in edited_fields:
        raise InvalidEditError("Record id is immutable")
    unknown = sorted(set(edited_fields) - EDITABLE_FIELDS - set(NESTED_GROUPS))
    if unknown:
        raise InvalidEditError(f"Fields cannot be edited: {', '.join(unknown)}")


def _merge_group(name: str, edit: Any, last_known: EmployeeRecord) -> dict[str, Any] | None:
    if edit is None:
        return None
    if not isinstance(edit, dict):
        raise InvalidEditError(f"Edit for '{name}' must be a mapping of its fields")
    current = getattr(last_known, name)
    base = current.model_dump(exclude_none=True) if current is not None else {}
    return {**base, **_field_names(NESTED_GROUPS[name], edit)}


def merge_edits(edited_fields: dict[str, Any], last_known: EmployeeRecord) -> EmployeeRecord:
    """Return ``last_known`` with the edits applied, validated by the model."""
    edited_fields = _field_names(EmployeeRecord, edited_fields)
    _check_fields(edited_fields)

    update: dict[str, Any] = {}
    for name, value in edited_fields.items():
        if name in NESTED_GROUPS:
            update[name] = _merge_group(name, value, last_known)
        else:
            update[name] = value

    data = last_known.model_dump(exclude={"subcollections"})
    data.update(update)
    try:
        merged = EmployeeRecord.model_validate(data)
    except ValidationError as err:
        raise InvalidEditError(str(err)) from err
    merged.subcollections = {name: slot.model_copy(deep=True) for name, slot in last_known.subcollections.items()}
    return merged


def _payload(merged: EmployeeRecord, edited_fields: dict[str, Any]) -> dict[str, Any]:
    stored = merged.model_dump(by_alias=True, exclude={"subcollections"}, exclude_none=True)
    payload: dict[str, Any] = {}
    for name in _field_names(EmployeeRecord, edited_fields):
        alias = EmployeeRecord.model_fields[name].alias or name
        payload[alias] = stored.get(alias)
    return payload


def build_payload(edited_fields: dict[str, Any], last_known: EmployeeRecord) -> dict[str, Any]:
    """Store-shaped partial update holding exactly the edited fields.

    Nested groups are sent whole; every other unedited field is left out.
    """
    return _payload(merge_edits(edited_fields, last_known), edited_fields)


class EditReconciler:
    def __init__(self, source: RecordSource, collection: str = "employees", timeout_ms: float = 10000) -> None:
        self.source = source
        self.collection = collection
        self.timeout_ms = timeout_ms

    @classmethod
    def from_settings(cls, source: RecordSource, settings: Settings) -> EditReconciler:
        return cls(source, collection=settings.COSMOS_DB_EMPLOYEES_CONTAINER, timeout_ms=settings.SAVE_TIMEOUT_MS)

    async def save(
        self,
        record_id: str,
        edited_fields: dict[str, Any],
        last_known: EmployeeRecord,
    ) -> EmployeeRecord:
        merged = merge_edits(edited_fields, last_known)
        payload = _payload(merged, edited_fields)
        logger.info("Saving %s fields=%s", record_id, sorted(payload))

        try:
            await with_timeout(
                self.source.update_record(self.collection, record_id, payload),
                self.timeout_ms,
                label=f"update {self.collection}/{record_id}",
            )
        except Exception as err:
            kind = classify(err)
            logger.error("Saving %s failed (%s): %s", record_id, kind, err)
            if kind == CONFLICT:
                raise SaveConflictError(str(err), edited_fields) from err
            raise SaveError(kind, str(err), edited_fields) from err

        return merged
