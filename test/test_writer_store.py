import json
import sqlite3
from datetime import date
from unittest.mock import Mock, patch

import pytest
import requests

from sales_sync.errors import WriteError
from sales_sync.model import SaleRecord, SyncLogEntry, week_bounds
from sales_sync.store import RestStore
from sales_sync.writer import BatchWriter


def sale(external_id="E1", amount=100.0, status="accepted"):
    return SaleRecord(
        external_id=external_id,
        sale_date=date(2026, 2, 18),
        client_name="Client Inc.",
        amount=amount,
        quote_number="EST-1",
        rep_id="r1",
        department="PROMOTIONNEL",
        raw_department_label="PROMOTIONNEL",
        office="QC",
        status=status,
    )


def test_week_bounds():
    assert week_bounds(date(2026, 2, 18)) == (date(2026, 2, 16), date(2026, 2, 22))


def test_upsert_inserts_with_week(store):
    assert BatchWriter(store).upsert_many([sale()]) == 1
    row = store.get_sale("E1")
    assert row["status"] == "accepted"
    assert row["week_start"] == "2026-02-16"
    assert row["week_end"] == "2026-02-22"


def test_upsert_replaces_existing_row(store):
    writer = BatchWriter(store)
    writer.upsert_many([sale(amount=100.0)])
    writer.upsert_many([sale(amount=250.0, status="invoiced")])
    rows = store.list_sales()
    assert len(rows) == 1
    assert rows[0]["amount"] == 250.0
    assert rows[0]["status"] == "invoiced"


def test_duplicate_ids_in_one_batch_keep_last(store):
    assert BatchWriter(store).upsert_many([sale(amount=1.0), sale(amount=2.0)]) == 1
    assert store.get_sale("E1")["amount"] == 2.0


def test_delete_counts_rows_removed(store):
    writer = BatchWriter(store)
    writer.upsert_many([sale("E1"), sale("E2")])
    assert writer.delete_many(["E1", "E9"]) == 1
    assert store.get_sale("E1") is None
    assert store.get_sale("E2") is not None


def test_empty_batches_are_noops():
    store = Mock()
    writer = BatchWriter(store)
    assert writer.upsert_many([]) == 0
    assert writer.delete_many([]) == 0
    store.upsert_sales.assert_not_called()
    store.delete_sales.assert_not_called()


def test_store_failure_becomes_write_error():
    store = Mock()
    store.upsert_sales.side_effect = sqlite3.IntegrityError("constraint")
    store.delete_sales.side_effect = requests.ConnectionError("locked")
    writer = BatchWriter(store)
    with pytest.raises(WriteError, match="Upsert failed: constraint"):
        writer.upsert_many([sale()])
    with pytest.raises(WriteError, match="Delete failed: locked"):
        writer.delete_many(["E1"])


def test_non_store_errors_are_not_wrapped():
    store = Mock()
    store.upsert_sales.side_effect = TypeError("bad row")
    with pytest.raises(TypeError):
        BatchWriter(store).upsert_many([sale()])


def test_unknown_rep_reference_rejects_whole_batch(store):
    bad = sale("E2")
    bad.rep_id = "ghost"
    with pytest.raises(WriteError):
        BatchWriter(store).upsert_many([sale("E1"), bad])
    assert store.list_sales() == []


def test_log_is_append_only(store):
    writer = BatchWriter(store)
    writer.log(SyncLogEntry("upserted", 200, "E1", payload={"status": "accepted"}))
    writer.log(SyncLogEntry("sync_manual", 200))
    entries = store.recent_log()
    assert [e.action for e in entries] == ["sync_manual", "upserted"]
    assert entries[1].payload == {"status": "accepted"}
    assert entries[0].received_at is not None


def test_last_sync_at_ignores_webhook_rows(store):
    assert store.last_sync_at() is None
    store.insert_log(SyncLogEntry("sync_auto", 200, received_at="2026-10-01T00:00:00+00:00"))
    store.insert_log(SyncLogEntry("upserted", 200, "E1", received_at="2026-10-02T00:00:00+00:00"))
    assert store.last_sync_at() == "2026-10-01T00:00:00+00:00"


# --------------------------------------------------------------------
# REST STORE (mocked session)
# --------------------------------------------------------------------
def test_rest_store_maps_columns_and_counts_deletes():
    rest = RestStore("https://db.example.com/", "key")
    response = Mock(ok=True)
    response.json.return_value = [{"zoho_id": "E1"}]
    with patch.object(rest.session, "request", return_value=response) as request:
        rest.upsert_sales([sale().to_row()])
        removed = rest.delete_sales(["E1", "E2"])

    upsert_call, delete_call = request.call_args_list
    assert upsert_call.args == ("POST", "https://db.example.com/rest/v1/sales")
    assert upsert_call.kwargs["params"] == {"on_conflict": "zoho_id"}
    sent = json.loads(upsert_call.kwargs["data"])[0]
    assert sent["zoho_id"] == "E1"
    assert sent["zoho_department_label"] == "PROMOTIONNEL"
    assert "week_start" not in sent
    assert delete_call.kwargs["params"] == {"zoho_id": 'in.("E1","E2")'}
    assert removed == 1


def test_rest_store_raises_on_error_status():
    rest = RestStore("https://db.example.com", "key")
    response = Mock(ok=False, status_code=503, text="unavailable")
    with patch.object(rest.session, "request", return_value=response):
        with pytest.raises(requests.HTTPError, match="503"):
            rest.fetch_reps()
