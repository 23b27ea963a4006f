"""CLI wiring, with the SQL Server collaborators swapped for in-memory fakes."""

import json

import pytest

pytest.importorskip("pyodbc")

from dbops import ops_cli  # noqa: E402
from dbops.errors import FailureReason, StoreError  # noqa: E402
from fakes import FakeDatabase, FakeInspector, FakeRecordStore, FakeTable, rec  # noqa: E402


@pytest.fixture
def db():
    return FakeDatabase(
        messages=FakeTable(columns={"id", "content", "created_at"}),
        conversations=FakeTable(columns={"id", "contact_phone", "real_time_sync", "whatsapp_chat_id"},
                                indexes={"idx_conversations_whatsapp_chat_id"}),
        whatsapp_numbers=FakeTable(
            columns={"id", "phone_number", "created_at", "last_connected_at"},
            indexes={"idx_whatsapp_numbers_phone_number"},
            rows=[
                rec(1, "2024-01-01", phone_number="+91 98765 43210"),
                rec(2, "2024-06-01", phone_number="+91 98765 43210"),
                rec(3, "2024-03-01", phone_number="+1 555 010 1234"),
                rec(4, "2024-03-02", phone_number=None),
                rec(5, "2024-04-01", phone_number="98765 43210"),
            ],
        ),
    )


@pytest.fixture
def wire(monkeypatch, db):
    def _wire(store=None):
        store = store or FakeRecordStore(db)
        monkeypatch.setattr(ops_cli, "_make_inspector", lambda: FakeInspector(db))
        monkeypatch.setattr(ops_cli, "_make_store", lambda *a, **k: store)
        return store

    return _wire


def test_ping(capsys):
    assert ops_cli.main(["ping"]) == 0
    assert "pong" in capsys.readouterr().out


def test_reconcile_adds_missing_structure(wire, db, capsys):
    wire()

    assert ops_cli.main(["reconcile", "--table", "messages"]) == 0

    out = capsys.readouterr().out
    assert "reconcile ✅ dbo.messages added=10 present=0 failed=0" in out
    assert "idx_messages_media_type" in db.tables["messages"].indexes


def test_reconcile_all_is_clean_on_second_run(wire, capsys):
    wire()
    ops_cli.main(["reconcile", "--table", "all"])
    capsys.readouterr()

    assert ops_cli.main(["reconcile", "--table", "all", "--json"]) == 0

    reports = json.loads(capsys.readouterr().out)
    assert [r["table"] for r in reports] == ["dbo.whatsapp_numbers", "dbo.conversations", "dbo.messages"]
    statuses = {i["status"] for r in reports for i in r["columns"] + r["indexes"]}
    assert statuses == {"AlreadyPresent"}


def test_reconcile_failure_prints_manual_sql_and_exits_1(wire, db, capsys):
    denied = StoreError("ALTER permission denied", FailureReason.PERMISSION_DENIED)
    wire(FakeRecordStore(db, schema_failures={"media_url": denied}))

    assert ops_cli.main(["reconcile", "--table", "messages"]) == 1

    out = capsys.readouterr().out
    assert "❌ column media_url: PermissionDenied ALTER permission denied" in out
    assert "ALTER TABLE dbo.messages ADD [media_url] NVARCHAR(MAX) NULL;" in out


def test_show_sql(capsys):
    assert ops_cli.main(["show_sql", "--table", "conversations"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[0] == "-- dbo.conversations"
    assert "CREATE INDEX [idx_conversations_whatsapp_chat_id] ON dbo.conversations ([whatsapp_chat_id]);" in out


def test_dedupe_requires_confirmation(wire):
    store = wire()

    with pytest.raises(SystemExit, match="Safety check"):
        ops_cli.main(["dedupe", "--table", "dbo.whatsapp_numbers"])
    assert store.delete_calls == []


def test_dedupe_dry_run(wire, capsys):
    store = wire()

    assert ops_cli.main(["dedupe", "--table", "dbo.whatsapp_numbers", "--dry-run"]) == 0

    out = capsys.readouterr().out
    assert "dedupe (dry run) ✅" in out
    assert "key=+91 98765 43210 keep id=2" in out
    assert "would remove ids=[1]" in out
    assert store.delete_calls == []


def test_dedupe_with_confirmation_removes_older_duplicates(wire, db, capsys):
    wire()

    code = ops_cli.main(
        ["dedupe", "--table", "dbo.whatsapp_numbers", "--require-confirm", "DEDUPE dbo.whatsapp_numbers", "--json"]
    )

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["removed"] == [1]
    assert report["skipped"] == [4]
    assert sorted(r.id for r in db.tables["whatsapp_numbers"].rows) == [2, 3, 4, 5]


def test_dedupe_phone_normalization_is_opt_in(wire, capsys):
    wire()

    ops_cli.main(["dedupe", "--table", "whatsapp_numbers", "--phone", "--dry-run", "--json"])

    report = json.loads(capsys.readouterr().out)
    assert report["survivors"] == {"919876543210": 2}
    assert sorted(report["planned"]) == [1, 5]


def test_dedupe_default_keeps_same_digits_from_different_countries(monkeypatch, capsys):
    db = FakeDatabase(
        whatsapp_numbers=FakeTable(
            columns={"id", "phone_number", "created_at"},
            rows=[
                rec(1, "2024-01-01", phone_number="+44 7912 345678"),
                rec(2, "2024-02-01", phone_number="+91 79123 45678"),
            ],
        )
    )
    monkeypatch.setattr(ops_cli, "_make_store", lambda *a, **k: FakeRecordStore(db))

    code = ops_cli.main(
        ["dedupe", "--table", "whatsapp_numbers", "--require-confirm", "DEDUPE whatsapp_numbers", "--json"]
    )

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["removed"] == []
    assert sorted(r.id for r in db.tables["whatsapp_numbers"].rows) == [1, 2]


def test_dedupe_conversations_has_no_default_key(wire):
    wire()

    with pytest.raises(SystemExit, match="--key"):
        ops_cli.main(["dedupe", "--table", "conversations", "--dry-run"])


def test_dedupe_unknown_table_needs_key(wire):
    wire()

    with pytest.raises(SystemExit, match="--key"):
        ops_cli.main(["dedupe", "--table", "contacts", "--dry-run"])


def test_list_columns_missing_table(monkeypatch, capsys):
    monkeypatch.setattr(ops_cli, "_make_inspector", lambda: FakeInspector(FakeDatabase()))

    assert ops_cli.main(["list_columns", "--table", "dbo.ghost"]) == 1
    assert "TableNotFound" in capsys.readouterr().out


def test_count_table_rejects_unsafe_name_without_traceback():
    with pytest.raises(SystemExit, match="Unsafe SQL identifier"):
        ops_cli.main(["count_table", "--table", "x;y"])
