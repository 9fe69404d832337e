"""
Input validation schemas using Pandera.
"""
from __future__ import annotations

from typing import Iterable, Tuple

import pandas as pd
import pandera.pandas as pa

from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_ARCHIVED,
    COL_DEAL_ACCOUNT,
    COL_DEAL_ID,
    COL_ICP_SCORE,
    COL_PRICE,
    COL_PRICE_WITH_TAX,
    COL_SNOOZE_ACCOUNT,
    COL_SNOOZE_TYPE,
    COL_SNOOZE_UNTIL,
)


def get_deals_schema() -> pa.DataFrameSchema:
    return pa.DataFrameSchema(
        {
            COL_DEAL_ID: pa.Column(str, coerce=True, nullable=False, unique=True),
            COL_DEAL_ACCOUNT: pa.Column(str, coerce=True, nullable=True),
            COL_PRICE: pa.Column(float, coerce=True, nullable=True, required=False),
            COL_PRICE_WITH_TAX: pa.Column(float, coerce=True, nullable=True, required=False),
            COL_ARCHIVED: pa.Column(bool, coerce=True, required=False),
        },
        strict=False,
    )


def get_accounts_schema() -> pa.DataFrameSchema:
    return pa.DataFrameSchema(
        {
            COL_ACCOUNT_ID: pa.Column(str, coerce=True, nullable=False, unique=True),
            COL_ICP_SCORE: pa.Column(
                float,
                pa.Check.in_range(0, 100),
                coerce=True,
                nullable=True,
                required=False,
            ),
            COL_ARCHIVED: pa.Column(bool, coerce=True, required=False),
        },
        strict=False,
    )


def get_snoozes_schema() -> pa.DataFrameSchema:
    return pa.DataFrameSchema(
        {
            COL_SNOOZE_ACCOUNT: pa.Column(str, coerce=True, nullable=False),
            COL_SNOOZE_TYPE: pa.Column(str, coerce=True, nullable=False),
            COL_SNOOZE_UNTIL: pa.Column(nullable=True),
        },
        strict=False,
    )


def _validate(df: pd.DataFrame, schema: pa.DataFrameSchema, label: str, strict: bool) -> pd.DataFrame:
    try:
        return schema.validate(df, lazy=True)
    except pa.errors.SchemaErrors as err:
        print(f"[WARN] {label} validation failed with {len(err.failure_cases)} errors.")
        print(err.failure_cases.head())
        if strict:
            raise
        return df


def validate_deals(df: pd.DataFrame, strict: bool = False) -> pd.DataFrame:
    """Validates the deals frame; failures warn unless ``strict``."""
    return _validate(df, get_deals_schema(), "Deals", strict)


def validate_accounts(df: pd.DataFrame, strict: bool = False) -> pd.DataFrame:
    """Validates the accounts frame; failures warn unless ``strict``."""
    return _validate(df, get_accounts_schema(), "Accounts", strict)


def validate_snoozes(df: pd.DataFrame, strict: bool = False) -> pd.DataFrame:
    if df.empty:
        return df
    return _validate(df, get_snoozes_schema(), "Snoozes", strict)


def ensure_non_negative(df: pd.DataFrame, cols: Iterable[str]) -> Tuple[bool, list[str]]:
    bad = []
    for c in cols:
        if c in df.columns:
            s = pd.to_numeric(df[c], errors="coerce")
            if (s < 0).any():
                bad.append(c)
    return (len(bad) == 0, bad)
