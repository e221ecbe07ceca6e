# ruff: noqa: S101
"""Tests for the DuckDB ledger."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import duckdb
import polars as pl
import pytest

from paysync.errors import PersistError
from paysync.ledger import DuckDBLedger
from paysync.schemas import ProviderId


@pytest.fixture
def ledger(tmp_path: Path) -> DuckDBLedger:
    """Ledger backed by a temporary database file."""
    return DuckDBLedger(tmp_path / "ledger" / "test.duckdb")


PAID = datetime(2026, 2, 1, 9, 30, tzinfo=timezone.utc)


@pytest.mark.integration
class TestDuckDBLedger:
    """Ledger behaviour against a real database file."""

    def test_creates_raw_tables(self, ledger: DuckDBLedger) -> None:
        conn = duckdb.connect(str(ledger.database_path))
        try:
            tables = {
                row[0]
                for row in conn.execute(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = 'raw'"
                ).fetchall()
            }
        finally:
            conn.close()

        assert tables == {
            "naver_payment",
            "naver_payment_item",
            "coupang_payment",
            "coupang_payment_item",
        }

    def test_empty_ledger_has_no_checkpoint(self, ledger: DuckDBLedger) -> None:
        assert ledger.get_checkpoint("acct", ProviderId.NAVER) is None

    def test_checkpoint_is_newest_record(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        ledger.save("acct", record_factory("NEW", paid_at=PAID))
        ledger.save("acct", record_factory("OLD", paid_at=PAID - timedelta(days=3)))
        ledger.save("other", record_factory("OTHER", paid_at=PAID + timedelta(days=1)))

        checkpoint = ledger.get_checkpoint("acct", "naver")

        assert checkpoint is not None
        assert checkpoint.last_external_id == "NEW"
        assert checkpoint.last_paid_at == PAID

    def test_checkpoint_is_per_provider(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        ledger.save("acct", record_factory("N1", paid_at=PAID))

        assert ledger.get_checkpoint("acct", ProviderId.COUPANG) is None

    def test_save_writes_line_items(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        record = record_factory("MULTI", paid_at=PAID, items=3).model_copy(
            update={"payment_breakdown": {"card": 3000}}
        )

        ledger.save("acct", record)

        df = ledger.list_records("naver", "acct", with_items=True)
        assert isinstance(df, pl.DataFrame)
        assert df.height == 3
        assert df["line_no"].to_list() == [1, 2, 3]
        assert df["payment_breakdown"][0] == '{"card": 3000}'

    def test_duplicate_save_raises_persist_error(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        ledger.save("acct", record_factory("DUP", paid_at=PAID))

        with pytest.raises(PersistError, match="DUP"):
            ledger.save("acct", record_factory("DUP", paid_at=PAID))

        assert ledger.list_records("naver", "acct").height == 1
        assert ledger.list_records("naver", "acct", with_items=True).height == 1

    def test_same_id_allowed_for_another_account(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        ledger.save("alice", record_factory("SAME", paid_at=PAID))
        ledger.save("bob", record_factory("SAME", paid_at=PAID))

        assert ledger.list_records("naver", "bob").height == 1

    def test_truncate_is_scoped_to_account(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        ledger.save("alice", record_factory("A1", paid_at=PAID))
        ledger.save("bob", record_factory("B1", paid_at=PAID))

        ledger.truncate("naver_payment_item", "alice")
        ledger.truncate("naver_payment", "alice")

        assert ledger.list_records("naver", "alice").height == 0
        assert ledger.list_records("naver", "bob").height == 1

    def test_truncate_rejects_unknown_table(self, ledger: DuckDBLedger) -> None:
        with pytest.raises(ValueError, match="Invalid ledger table"):
            ledger.truncate("naver_payment; DROP TABLE x", "acct")

    def test_list_records_newest_first(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        for days in (5, 1, 3):
            ledger.save("acct", record_factory(f"R{days}", paid_at=PAID - timedelta(days=days)))

        df = ledger.list_records("naver", "acct")

        assert df["external_id"].to_list() == ["R1", "R3", "R5"]

    def test_stats(self, ledger: DuckDBLedger, record_factory: Any) -> None:
        empty = ledger.stats("coupang", "acct")
        assert empty["record_count"] == 0
        assert empty["last_external_id"] is None
        assert empty["days_since_collected"] is None

        ledger.save(
            "acct",
            record_factory("C1", paid_at=PAID, provider_id=ProviderId.COUPANG),
        )
        stats = ledger.stats(ProviderId.COUPANG, "acct")

        assert stats["record_count"] == 1
        assert stats["last_external_id"] == "C1"
        assert stats["days_since_collected"] == 0

    def test_reopening_keeps_data(
        self, ledger: DuckDBLedger, record_factory: Any
    ) -> None:
        ledger.save("acct", record_factory("KEEP", paid_at=PAID))

        reopened = DuckDBLedger(ledger.database_path)

        assert reopened.get_checkpoint("acct", "naver") is not None
