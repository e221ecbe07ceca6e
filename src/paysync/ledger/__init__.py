"""Local ledger of collected purchase records."""

from .duckdb_ledger import LEDGER_TABLES, DuckDBLedger

__all__ = ["DuckDBLedger", "LEDGER_TABLES"]
