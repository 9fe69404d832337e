"""
Data access layer for the account/estimate store.

Loads connection settings from environment (.env) and exposes helpers to pull
accounts, estimates and snooze directives, and to write a batch result back
in a single transaction. A CSV snapshot directory can stand in for the
database for offline runs.
"""

from __future__ import annotations

import datetime as dt
import json
import os
from pathlib import Path
from typing import Mapping, Optional, Tuple
from urllib.parse import quote_plus

import pandas as pd
from dotenv import load_dotenv
from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError

from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_DEAL_ACCOUNT,
    COL_DEAL_COUNT_BY_YEAR,
    COL_DEAL_ID,
    COL_REVENUE_BY_YEAR,
    COL_REVENUE_SEGMENT,
    COL_SEGMENT_BY_YEAR,
    COL_SNOOZE_ACCOUNT,
)

load_dotenv()

ACCOUNTS_TABLE = "accounts"
ESTIMATES_TABLE = "estimates"
SNOOZES_TABLE = "notification_snoozes"
CACHE_TABLE = "notification_cache"

ACCOUNTS_CSV = "accounts.csv"
ESTIMATES_CSV = "estimates.csv"
SNOOZES_CSV = "snoozes.csv"


class StorageError(RuntimeError):
    """Reading from or writing to the store failed; the batch must abort."""


def _build_connection_url(database_override: Optional[str] = None) -> str:
    url = (os.getenv("SEGMENT_DB_URL") or "").strip()
    if url and not database_override:
        return url

    server = (os.getenv("AZSQL_SERVER") or "").strip()
    database = (database_override or os.getenv("AZSQL_DB") or "").strip()
    user = (os.getenv("AZSQL_USER") or "").strip()
    pwd = (os.getenv("AZSQL_PWD") or "").strip()

    if not server or not database:
        raise RuntimeError("Missing SEGMENT_DB_URL, or AZSQL_SERVER/AZSQL_DB environment variables")

    driver = "ODBC Driver 18 for SQL Server"

    if user and pwd:
        print(f"[DEBUG] Connecting to {server}/{database} using SQL Authentication (User: {user})")
        odbc = (
            "DRIVER={" + driver + "};SERVER=" + server + ";DATABASE=" + database + ";" +
            "UID=" + user + ";PWD=" + pwd + ";Encrypt=yes;TrustServerCertificate=no"
        )
        return f"mssql+pyodbc:///?odbc_connect={quote_plus(odbc)}"
    print(f"[DEBUG] Connecting to {server}/{database} using ActiveDirectoryInteractive")
    return (
        f"mssql+pyodbc://@{server}/{database}?"
        f"driver={driver.replace(' ', '+')}&Encrypt=yes&TrustServerCertificate=no"
        f"&Authentication=ActiveDirectoryInteractive"
    )


def get_engine(url: Optional[str] = None, database: Optional[str] = None):
    """Create and return a SQLAlchemy engine.

    An explicit ``url`` wins; otherwise SEGMENT_DB_URL, then the AZSQL_*
    variables are used.
    """
    url = url or _build_connection_url(database_override=database)
    if url.startswith("mssql"):
        return create_engine(url, fast_executemany=True)
    return create_engine(url)


# ---------------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------------
def _read_table(table: str, engine) -> pd.DataFrame:
    try:
        return pd.read_sql(text(f"SELECT * FROM {table}"), engine)
    except (SQLAlchemyError, pd.errors.DatabaseError) as exc:
        raise StorageError(f"Failed to read {table}: {exc}") from exc


def get_accounts(engine=None) -> pd.DataFrame:
    engine = engine or get_engine()
    return _read_table(ACCOUNTS_TABLE, engine)


def get_estimates(engine=None) -> pd.DataFrame:
    engine = engine or get_engine()
    return _read_table(ESTIMATES_TABLE, engine)


def get_snoozes(engine=None) -> pd.DataFrame:
    """Snooze directives; expired rows are filtered later by the detectors."""
    engine = engine or get_engine()
    return _read_table(SNOOZES_TABLE, engine)


def load_snapshot(engine=None) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Accounts, estimates and snoozes read through one engine."""
    engine = engine or get_engine()
    return get_accounts(engine), get_estimates(engine), get_snoozes(engine)


def load_snapshot_csv(src_dir: Path) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """Read ``accounts.csv``, ``estimates.csv`` and optional ``snoozes.csv``."""
    src_dir = Path(src_dir)
    accounts_path = src_dir / ACCOUNTS_CSV
    estimates_path = src_dir / ESTIMATES_CSV
    for path in (accounts_path, estimates_path):
        if not path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {path}")

    accounts = pd.read_csv(accounts_path, dtype={COL_ACCOUNT_ID: str})
    deals = pd.read_csv(estimates_path, dtype={COL_DEAL_ID: str, COL_DEAL_ACCOUNT: str})
    snoozes_path = src_dir / SNOOZES_CSV
    if snoozes_path.exists():
        snoozes = pd.read_csv(snoozes_path, dtype={COL_SNOOZE_ACCOUNT: str})
    else:
        snoozes = pd.DataFrame()
    return accounts, deals, snoozes


# ---------------------------------------------------------------------------
# Write-back
# ---------------------------------------------------------------------------
def dump_year_map(values: Mapping[int, object]) -> str:
    """JSON text with string year keys in ascending order."""
    return json.dumps({str(year): values[year] for year in sorted(values)})


def account_updates(result) -> list[dict]:
    """One parameter dict per account for the accounts UPDATE."""
    rows = []
    for account_id in result.account_ids:
        rows.append(
            {
                "account_id": account_id,
                COL_REVENUE_BY_YEAR: dump_year_map(result.revenue_by_year.get(account_id, {})),
                COL_SEGMENT_BY_YEAR: dump_year_map(result.segment_by_year.get(account_id, {})),
                COL_DEAL_COUNT_BY_YEAR: dump_year_map(result.deal_count_by_year.get(account_id, {})),
                COL_REVENUE_SEGMENT: result.revenue_segment.get(account_id),
            }
        )
    return rows


def write_batch(result, cache_entries: Mapping[str, dict], engine=None) -> None:
    """Persist account maps and notification cache rows atomically.

    Either every account map and cache row is written, or the transaction is
    rolled back and the previous values stay in place.
    """
    engine = engine or get_engine()
    updates = account_updates(result)
    update_sql = text(
        f"""
        UPDATE {ACCOUNTS_TABLE}
        SET {COL_REVENUE_BY_YEAR} = :{COL_REVENUE_BY_YEAR},
            {COL_SEGMENT_BY_YEAR} = :{COL_SEGMENT_BY_YEAR},
            {COL_DEAL_COUNT_BY_YEAR} = :{COL_DEAL_COUNT_BY_YEAR},
            {COL_REVENUE_SEGMENT} = :{COL_REVENUE_SEGMENT}
        WHERE {COL_ACCOUNT_ID} = :account_id
        """
    )
    delete_sql = text(f"DELETE FROM {CACHE_TABLE} WHERE cache_key = :cache_key")
    insert_sql = text(
        f"""
        INSERT INTO {CACHE_TABLE} (cache_key, cache_data, expires_at, updated_at)
        VALUES (:cache_key, :cache_data, :expires_at, :updated_at)
        """
    )
    cache_rows = [
        {
            "cache_key": key,
            "cache_data": json.dumps(payload, default=str),
            "expires_at": payload.get("expires_at"),
            "updated_at": payload.get("updated_at") or dt.datetime.now(dt.timezone.utc).isoformat(),
        }
        for key, payload in cache_entries.items()
    ]

    try:
        with engine.begin() as conn:
            if updates:
                conn.execute(update_sql, updates)
            for row in cache_rows:
                conn.execute(delete_sql, {"cache_key": row["cache_key"]})
            if cache_rows:
                conn.execute(insert_sql, cache_rows)
    except SQLAlchemyError as exc:
        raise StorageError(f"Batch write-back failed and was rolled back: {exc}") from exc
    print(f"[INFO] Wrote {len(updates):,} account maps and {len(cache_rows):,} cache entries")
