"""paysync: Local-first purchase history collector.

This package reconciles purchase history scraped from provider web endpoints
against a local append-only ledger:
- Payment portal (naver) and online marketplace (coupang) collectors
- Incremental and full resynchronization with checkpoint tracking
- DuckDB-based ledger storage
- Typer CLI for collection, status and export

All purchase data is stored locally under the active profile.
"""

__version__ = "0.1.0"
