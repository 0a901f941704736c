import pytest
from unittest.mock import MagicMock

import rental_checkout.checkout.repository as repo
# Fonctions d'origine (la fixture session_store remplace les attributs du module)
from rental_checkout.checkout.repository import delete_record, load_record, save_record
from rental_checkout.checkout.models import CheckoutStep
from rental_checkout.checkout.serialization import SCHEMA_VERSION

class _Resp:
    def __init__(self, data=None):
        self.data = data

def _mk_client(data=None):
    client = MagicMock()
    table = MagicMock()
    client.table.return_value = table
    # select().eq().limit().execute()
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = _Resp(data)
    return client, table

def test_load_record_returns_payload(monkeypatch):
    client, table = _mk_client([{"payload": {"version": SCHEMA_VERSION, "session": {}}}])
    monkeypatch.setattr("rental_checkout.infra.supabase_client.get_service_supabase", lambda: client)

    assert load_record("u1") == {"version": SCHEMA_VERSION, "session": {}}
    table.select.return_value.eq.assert_called_with("session_key", "u1")

def test_load_record_absent(monkeypatch):
    client, _ = _mk_client([])
    monkeypatch.setattr("rental_checkout.infra.supabase_client.get_service_supabase", lambda: client)
    assert load_record("u1") is None
    assert load_record("") is None

def test_load_record_storage_error(monkeypatch):
    monkeypatch.setattr(
        "rental_checkout.infra.supabase_client.get_service_supabase",
        lambda: (_ for _ in ()).throw(Exception("boom")),
    )
    assert load_record("u1") is None

def test_save_record_upserts_on_session_key(monkeypatch):
    client, table = _mk_client()
    monkeypatch.setattr("rental_checkout.infra.supabase_client.get_service_supabase", lambda: client)

    assert save_record("u1", {"version": SCHEMA_VERSION, "session": {"step": "review"}}) is True

    row = table.upsert.call_args.args[0]
    assert row["session_key"] == "u1"
    assert row["version"] == SCHEMA_VERSION
    assert row["payload"]["session"] == {"step": "review"}
    assert table.upsert.call_args.kwargs == {"on_conflict": "session_key"}

def test_save_record_failure(monkeypatch):
    client, table = _mk_client()
    table.upsert.return_value.execute.side_effect = Exception("down")
    monkeypatch.setattr("rental_checkout.infra.supabase_client.get_service_supabase", lambda: client)
    assert save_record("u1", {"version": SCHEMA_VERSION}) is False

def test_delete_record(monkeypatch):
    client, table = _mk_client()
    monkeypatch.setattr("rental_checkout.infra.supabase_client.get_service_supabase", lambda: client)
    assert delete_record("u1") is True
    table.delete.return_value.eq.assert_called_with("session_key", "u1")

def test_session_round_trip_through_store(session_store, make_session):
    session = make_session(step=CheckoutStep.SCHEDULE)

    assert repo.save_session(session) is True
    assert session_store["test-user"]["version"] == SCHEMA_VERSION

    restored = repo.load_session("test-user")
    assert restored.step == CheckoutStep.SCHEDULE
    assert [i.id for i in restored.items] == ["tent", "chairs"]

    repo.delete_session("test-user")
    assert repo.load_session("test-user") is None

def test_unknown_version_treated_as_absent(session_store):
    session_store["u1"] = {"version": 99, "session": {}}
    assert repo.load_session("u1") is None
