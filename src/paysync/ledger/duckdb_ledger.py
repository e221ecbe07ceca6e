"""DuckDB-backed ledger of collected purchase records.

Records are stored per provider in two raw tables: ``raw.<provider>_payment``
for the record itself and ``raw.<provider>_payment_item`` for its line items.
Both are keyed by ``(account_id, external_id)``, so a record can only be
saved once per account.
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import duckdb
import polars as pl

from ..errors import PersistError
from ..schemas import Checkpoint, ProviderId, TransactionRecord

logger = logging.getLogger(__name__)

SCHEMA_FILES = [
    "raw_schema.sql",
    "raw_naver_payment.sql",
    "raw_naver_payment_item.sql",
    "raw_coupang_payment.sql",
    "raw_coupang_payment_item.sql",
]

LEDGER_TABLES = frozenset(
    f"{provider.value}_{suffix}"
    for provider in ProviderId
    for suffix in ("payment", "payment_item")
)

_PAYMENT_COLUMNS = [
    "account_id",
    "external_id",
    "provider_id",
    "source_id",
    "service_type",
    "paid_at",
    "ordered_at",
    "merchant_name",
    "merchant_tel",
    "merchant_url",
    "merchant_image_url",
    "status_code",
    "status_text",
    "status_color",
    "total_amount",
    "discount_amount",
    "product_name",
    "product_count",
    "product_detail_url",
    "order_detail_url",
    "payment_breakdown",
]

_ITEM_COLUMNS = [
    "account_id",
    "external_id",
    "line_no",
    "product_name",
    "quantity",
    "unit_price",
    "line_amount",
    "image_url",
    "info_url",
    "memo",
    "product_id",
    "brand_name",
]


def _to_utc_naive(value: datetime | None) -> datetime | None:
    """Convert to naive UTC for TIMESTAMP columns."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _provider_value(provider_id: ProviderId | str) -> str:
    return ProviderId(provider_id).value


def _validate_table(table_name: str) -> str:
    if table_name not in LEDGER_TABLES:
        raise ValueError(
            f"Invalid ledger table: {table_name}. "
            f"Must be one of: {', '.join(sorted(LEDGER_TABLES))}"
        )
    return table_name


class DuckDBLedger:
    """Append-only purchase ledger stored in a DuckDB file.

    A connection is opened per operation. Writes from concurrent runs are
    serialized with a lock.
    """

    def __init__(self, database_path: Path | str, create_tables: bool = True):
        """Initialize the ledger.

        Args:
            database_path: Path to the DuckDB database file
            create_tables: Create the raw tables if they do not exist
        """
        self.database_path = Path(database_path)
        self.sql_dir = Path(__file__).parent.parent / "sql" / "schema"
        self._write_lock = threading.Lock()
        if create_tables:
            self.database_path.parent.mkdir(parents=True, exist_ok=True)
            self.create_tables()

    def _connect(self) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(str(self.database_path))

    def create_tables(self) -> None:
        """Create the raw ledger tables by executing the SQL schema files.

        Raises:
            FileNotFoundError: If a schema file is missing
        """
        with self._write_lock:
            conn = self._connect()
            try:
                for sql_file in SCHEMA_FILES:
                    sql_path = self.sql_dir / sql_file
                    if not sql_path.exists():
                        raise FileNotFoundError(f"SQL schema file not found: {sql_path}")
                    conn.execute(sql_path.read_text())
                    logger.debug(f"Executed schema file: {sql_file}")
            finally:
                conn.close()
        logger.debug(f"Ledger tables ready in {self.database_path}")

    def get_checkpoint(
        self, account_id: str, provider_id: ProviderId | str
    ) -> Checkpoint | None:
        """Return the newest record key for an account, or None if it has none."""
        provider = _provider_value(provider_id)
        conn = self._connect()
        try:
            row = conn.execute(
                f"""
                SELECT external_id, paid_at
                FROM raw.{provider}_payment
                WHERE account_id = ?
                ORDER BY paid_at DESC, collected_at ASC
                LIMIT 1
                """,  # noqa: S608  # provider validated by ProviderId
                [account_id],
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None
        external_id, paid_at = row
        if paid_at is not None:
            paid_at = paid_at.replace(tzinfo=timezone.utc)
        return Checkpoint(last_external_id=external_id, last_paid_at=paid_at)

    def save(self, account_id: str, record: TransactionRecord) -> None:
        """Insert a record and its line items in one transaction.

        Raises:
            PersistError: If the record already exists or the insert fails
        """
        provider = _provider_value(record.provider_id)
        payment_row = [
            account_id,
            record.external_id,
            provider,
            record.source_id,
            record.service_type,
            _to_utc_naive(record.paid_at),
            _to_utc_naive(record.ordered_at),
            record.merchant.name,
            record.merchant.tel,
            record.merchant.url,
            record.merchant.image_url,
            record.status_code,
            record.status_text,
            record.status_color,
            record.total_amount,
            record.discount_amount,
            record.product_name,
            record.product_count,
            record.product_detail_url,
            record.order_detail_url,
            json.dumps(record.payment_breakdown, ensure_ascii=False),
        ]
        item_rows = [
            [
                account_id,
                record.external_id,
                item.line_no,
                item.product_name,
                item.quantity,
                item.unit_price,
                item.line_amount,
                item.image_url,
                item.info_url,
                item.memo,
                item.product_id,
                item.brand_name,
            ]
            for item in record.line_items
        ]

        payment_sql = (
            f"INSERT INTO raw.{provider}_payment ({', '.join(_PAYMENT_COLUMNS)}) "  # noqa: S608
            f"VALUES ({', '.join('?' for _ in _PAYMENT_COLUMNS)})"
        )
        item_sql = (
            f"INSERT INTO raw.{provider}_payment_item ({', '.join(_ITEM_COLUMNS)}) "  # noqa: S608
            f"VALUES ({', '.join('?' for _ in _ITEM_COLUMNS)})"
        )

        with self._write_lock:
            conn = self._connect()
            try:
                conn.begin()
                conn.execute(payment_sql, payment_row)
                if item_rows:
                    conn.executemany(item_sql, item_rows)
                conn.commit()
            except duckdb.Error as e:
                conn.rollback()
                raise PersistError(
                    f"Could not save {provider} record {record.external_id}: {e}"
                ) from e
            finally:
                conn.close()
        logger.debug(f"Saved {provider} record {record.external_id} for {account_id}")

    def truncate(self, table_name: str, account_id: str | None = None) -> None:
        """Delete rows from a ledger table, optionally for one account only.

        Raises:
            ValueError: If the table is not a ledger table
        """
        table = _validate_table(table_name)
        with self._write_lock:
            conn = self._connect()
            try:
                if account_id is None:
                    conn.execute(f"DELETE FROM raw.{table}")  # noqa: S608
                else:
                    conn.execute(
                        f"DELETE FROM raw.{table} WHERE account_id = ?",  # noqa: S608
                        [account_id],
                    )
            finally:
                conn.close()
        scope = f" for {account_id}" if account_id else ""
        logger.info(f"Truncated raw.{table}{scope}")

    def list_records(
        self,
        provider_id: ProviderId | str,
        account_id: str,
        with_items: bool = False,
    ) -> pl.DataFrame:
        """Return an account's records, newest first.

        Args:
            provider_id: Provider whose tables to read
            account_id: Account to read
            with_items: Return one row per line item joined to its record
        """
        provider = _provider_value(provider_id)
        if with_items:
            query = f"""
                SELECT p.*, i.line_no, i.product_name AS item_name, i.quantity,
                       i.unit_price, i.line_amount, i.image_url, i.memo,
                       i.product_id, i.brand_name
                FROM raw.{provider}_payment p
                LEFT JOIN raw.{provider}_payment_item i
                  ON p.account_id = i.account_id AND p.external_id = i.external_id
                WHERE p.account_id = ?
                ORDER BY p.paid_at DESC, i.line_no
            """  # noqa: S608
        else:
            query = f"""
                SELECT * FROM raw.{provider}_payment
                WHERE account_id = ?
                ORDER BY paid_at DESC
            """  # noqa: S608

        conn = self._connect()
        try:
            return conn.execute(query, [account_id]).pl()
        finally:
            conn.close()

    def stats(self, provider_id: ProviderId | str, account_id: str) -> dict[str, Any]:
        """Summarize an account's collection state.

        Returns:
            dict: record_count, last_external_id, last_paid_at, last_collected_at
                and days_since_collected (None when nothing was collected)
        """
        provider = _provider_value(provider_id)
        conn = self._connect()
        try:
            count_row = conn.execute(
                f"""
                SELECT COUNT(*), MAX(collected_at),
                       date_diff('day', MAX(collected_at)::DATE, current_date)
                FROM raw.{provider}_payment
                WHERE account_id = ?
                """,  # noqa: S608
                [account_id],
            ).fetchone()
        finally:
            conn.close()

        record_count, last_collected_at, days_since = (
            count_row if count_row else (0, None, None)
        )
        checkpoint = self.get_checkpoint(account_id, provider)

        return {
            "record_count": record_count,
            "last_external_id": checkpoint.last_external_id if checkpoint else None,
            "last_paid_at": checkpoint.last_paid_at if checkpoint else None,
            "last_collected_at": last_collected_at,
            "days_since_collected": days_since,
        }
