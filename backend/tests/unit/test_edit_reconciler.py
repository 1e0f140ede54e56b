from __future__ import annotations

import pytest

from app.core.config import Settings
from app.core.errors import (
    CONFLICT,
    NETWORK,
    TIMEOUT,
    InvalidEditError,
    SaveConflictError,
    SaveError,
    TransportError,
)
from app.services.edit_reconciler import EditReconciler, build_payload, merge_edits


def test_payload_holds_only_edited_field(loaded_record):
    assert build_payload({"salary": 9000}, loaded_record) == {"salary": 9000.0}


def test_nested_edit_sends_whole_group(loaded_record):
    payload = build_payload({"passport": {"expiry": "2030-01-01"}}, loaded_record)

    assert payload == {
        "passport": {
            "number": "A1234567",
            "expiry": "2030-01-01",
            "photoUrl": "https://files/passport.png",
        }
    }


def test_nested_edit_keeps_unmodelled_keys(loaded_record):
    loaded_record.bank_details = loaded_record.bank_details.model_validate(
        {"bankName": "QNB", "iban": "QA58", "sortCode": "12-34"}
    )

    payload = build_payload({"bankDetails": {"iban": "QA99"}}, loaded_record)

    assert payload == {"bankDetails": {"bankName": "QNB", "iban": "QA99", "sortCode": "12-34"}}


def test_accepts_store_field_names(loaded_record):
    payload = build_payload({"hrNotes": "Promoted", "joinDate": "2020-01-01"}, loaded_record)

    assert payload == {"hrNotes": "Promoted", "joinDate": "2020-01-01"}


@pytest.mark.parametrize(
    "edit",
    [
        {"advances": []},
        {"transactions": [{"id": "t9", "amount": 1}]},
        {"subcollections": {}},
    ],
)
def test_rejects_subcollection_edits(loaded_record, edit):
    with pytest.raises(InvalidEditError, match="Sub-collections"):
        build_payload(edit, loaded_record)


def test_rejects_id_change(loaded_record):
    with pytest.raises(InvalidEditError, match="immutable"):
        build_payload({"id": "emp999"}, loaded_record)


def test_rejects_unknown_and_derived_fields(loaded_record):
    with pytest.raises(InvalidEditError, match="favouriteColour"):
        build_payload({"favouriteColour": "blue"}, loaded_record)
    with pytest.raises(InvalidEditError, match="total_paid"):
        build_payload({"totalPaid": 0}, loaded_record)


def test_rejects_invalid_values(loaded_record):
    with pytest.raises(InvalidEditError):
        build_payload({"salary": "a lot"}, loaded_record)
    with pytest.raises(InvalidEditError, match="mapping"):
        build_payload({"passport": "A1234567"}, loaded_record)


def test_merge_keeps_subcollection_slots(loaded_record):
    merged = merge_edits({"position": "Tech Lead"}, loaded_record)

    assert merged.position == "Tech Lead"
    assert merged.subcollections == loaded_record.subcollections
    assert merged.subcollections["advances"] is not loaded_record.subcollections["advances"]
    assert loaded_record.position == "Software Engineer"


@pytest.mark.anyio
async def test_save_writes_payload_and_returns_merged_record(source, reconciler, loaded_record):
    merged = await reconciler.save("emp001", {"salary": 9000, "passport": {"number": "B7654321"}}, loaded_record)

    collection, record_id, payload = source.updates[0]
    assert (collection, record_id) == ("employees", "emp001")
    assert payload["salary"] == 9000
    assert payload["passport"]["number"] == "B7654321"
    assert payload["passport"]["photoUrl"] == "https://files/passport.png"
    assert not {"advances", "transactions", "subcollections"} & set(payload)

    assert merged.salary == 9000
    assert merged.passport.number == "B7654321"
    assert merged.passport.photo_url == "https://files/passport.png"
    assert len(merged.transactions) == 2


@pytest.mark.anyio
async def test_save_does_not_touch_stored_subcollections(source, reconciler, loaded_record):
    await reconciler.save("emp001", {"name": "Ahmed M."}, loaded_record)

    assert len(source.sub_records[("emp001", "transactions")]) == 2
    assert "transactions" not in source.records["emp001"]


@pytest.mark.anyio
async def test_conflict_raises_save_conflict_with_edits(source, reconciler, loaded_record):
    source.errors["update"] = TransportError(CONFLICT, "precondition failed")
    edits = {"salary": 9000}

    with pytest.raises(SaveConflictError) as exc_info:
        await reconciler.save("emp001", edits, loaded_record)

    err = exc_info.value
    assert err.kind == CONFLICT
    assert err.edited_fields == edits
    assert "changed by someone else" in err.message


@pytest.mark.anyio
async def test_transport_failure_raises_save_error(source, reconciler, loaded_record):
    source.errors["update"] = TransportError(NETWORK, "network unreachable")

    with pytest.raises(SaveError) as exc_info:
        await reconciler.save("emp001", {"phone": "+974 1111"}, loaded_record)

    assert exc_info.value.kind == NETWORK
    assert exc_info.value.edited_fields == {"phone": "+974 1111"}
    assert not isinstance(exc_info.value, SaveConflictError)


@pytest.mark.anyio
async def test_slow_save_times_out(source, reconciler, loaded_record):
    source.delays["update"] = 0.3

    with pytest.raises(SaveError) as exc_info:
        await reconciler.save("emp001", {"salary": 9000}, loaded_record)

    assert exc_info.value.kind == TIMEOUT
    assert exc_info.value.edited_fields == {"salary": 9000}


@pytest.mark.anyio
async def test_invalid_edit_never_reaches_store(source, reconciler, loaded_record):
    with pytest.raises(InvalidEditError):
        await reconciler.save("emp001", {"advances": []}, loaded_record)

    assert ("update", "emp001") not in source.calls


def test_from_settings_uses_configured_timeout(source):
    settings = Settings(SAVE_TIMEOUT_MS=2500, COSMOS_DB_EMPLOYEES_CONTAINER="staff")

    reconciler = EditReconciler.from_settings(source, settings)

    assert reconciler.timeout_ms == 2500
    assert reconciler.collection == "staff"
