"""
Canonical column names and schema helpers for the segmentation engine.

Use these constants instead of hardcoded strings. The `unify_columns` helper
renames common aliases to canonical names for downstream logic.
"""
import json
from typing import Dict, List, Mapping

import pandas as pd

# ---------------------------------------------------------------------------
# Deals ("estimates")
# ---------------------------------------------------------------------------
COL_DEAL_ID = "id"
COL_DEAL_ACCOUNT = "account_id"
COL_DEAL_NUMBER = "estimate_number"
COL_STATUS = "status"
COL_PIPELINE_STATUS = "pipeline_status"
COL_DEAL_TYPE = "estimate_type"
COL_PRICE = "total_price"  # tax-exclusive, preferred
COL_PRICE_WITH_TAX = "total_price_with_tax"  # tax-inclusive, fallback
COL_CONTRACT_START = "contract_start"
COL_CONTRACT_END = "contract_end"
COL_ESTIMATE_DATE = "estimate_date"
COL_CREATED_DATE = "created_date"
COL_DIVISION = "division"
COL_ADDRESS = "address"
COL_ARCHIVED = "archived"

# Year determination priority: first parseable field wins.
YEAR_PRIORITY_COLUMNS: List[str] = [
    COL_CONTRACT_END,
    COL_CONTRACT_START,
    COL_ESTIMATE_DATE,
    COL_CREATED_DATE,
]

DEAL_TYPE_STANDARD = "standard"
DEAL_TYPE_SERVICE = "service"

# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------
COL_ACCOUNT_ID = "id"
COL_ACCOUNT_NAME = "name"
COL_REVENUE_BY_YEAR = "revenue_by_year"
COL_SEGMENT_BY_YEAR = "segment_by_year"
COL_DEAL_COUNT_BY_YEAR = "deal_count_by_year"
COL_REVENUE_SEGMENT = "revenue_segment"
COL_ICP_SCORE = "organization_score"
COL_LAST_INTERACTION = "last_interaction_date"
COL_ICP_STATUS = "icp_status"

ICP_STATUS_NOT_APPLICABLE = "na"

# ---------------------------------------------------------------------------
# Snooze directives
# ---------------------------------------------------------------------------
COL_SNOOZE_ACCOUNT = "related_account_id"
COL_SNOOZE_TYPE = "notification_type"
COL_SNOOZE_UNTIL = "snoozed_until"

SNOOZE_RENEWAL = "renewal_reminder"
SNOOZE_NEGLECT = "neglected_account"
SNOOZE_DOWNGRADE = "segment_downgrade"


# Aliases mapping: alias (lowercase) -> canonical
DEAL_ALIASES: Dict[str, str] = {
    "deal_id": COL_DEAL_ID,
    "estimate_id": COL_DEAL_ID,
    "account": COL_DEAL_ACCOUNT,
    "account id": COL_DEAL_ACCOUNT,
    "type": COL_DEAL_TYPE,
    "deal_type": COL_DEAL_TYPE,
    "estimate type": COL_DEAL_TYPE,
    "pipeline status": COL_PIPELINE_STATUS,
    "department": COL_DIVISION,
    "total price": COL_PRICE,
    "total price with tax": COL_PRICE_WITH_TAX,
    "amount_excl_tax": COL_PRICE,
    "amount_incl_tax": COL_PRICE_WITH_TAX,
    "contract start": COL_CONTRACT_START,
    "contract end": COL_CONTRACT_END,
    "estimate date": COL_ESTIMATE_DATE,
    "created": COL_CREATED_DATE,
    "estimate number": COL_DEAL_NUMBER,
}

ACCOUNT_ALIASES: Dict[str, str] = {
    "account_id": COL_ACCOUNT_ID,
    "account_name": COL_ACCOUNT_NAME,
    "account name": COL_ACCOUNT_NAME,
    "icp_score": COL_ICP_SCORE,
    "icp score": COL_ICP_SCORE,
    "organization score": COL_ICP_SCORE,
    "last_interaction": COL_LAST_INTERACTION,
    "last interaction date": COL_LAST_INTERACTION,
    "segment": COL_REVENUE_SEGMENT,
}

SNOOZE_ALIASES: Dict[str, str] = {
    "account_id": COL_SNOOZE_ACCOUNT,
    "type": COL_SNOOZE_TYPE,
    "category": COL_SNOOZE_TYPE,
    "expires_at": COL_SNOOZE_UNTIL,
    "until": COL_SNOOZE_UNTIL,
}


def unify_columns(df: pd.DataFrame, aliases: Dict[str, str]) -> pd.DataFrame:
    """
    Rename alias columns to their canonical names (returns a copy when renaming).

    Args:
        df: input DataFrame
        aliases: alias -> canonical mapping, aliases matched case-insensitively

    Returns:
        DataFrame with standardized columns
    """
    lower_cols = {c.lower(): c for c in df.columns if isinstance(c, str)}
    renames: Dict[str, str] = {}
    for alias_lower, canonical in aliases.items():
        if alias_lower in lower_cols and canonical not in df.columns:
            renames[lower_cols[alias_lower]] = canonical

    if renames:
        return df.rename(columns=renames)
    return df


def canonicalize_id(series: pd.Series) -> pd.Series:
    """Normalize record IDs as strings without losing leading zeros; nulls become ''."""
    s = series.astype(str).str.strip()
    s = s.str.replace(r"\.0$", "", regex=True)
    return s.where(series.notna(), "")


def normalize_text(value) -> str:
    """Lowercase, trim and collapse internal whitespace; missing values become ''."""
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return " ".join(str(value).strip().lower().split())


def load_year_map(value) -> Dict[int, object]:
    """Stored per-year map (dict or JSON text) keyed by int year.

    Missing, blank or malformed values read as an empty map.
    """
    if value is None:
        return {}
    if isinstance(value, float) and pd.isna(value):
        return {}
    if isinstance(value, str):
        if not value.strip():
            return {}
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return {}
    if not isinstance(value, Mapping):
        return {}
    out: Dict[int, object] = {}
    for year, item in value.items():
        try:
            out[int(year)] = item
        except (TypeError, ValueError):
            continue
    return out


REQUIRED_DEAL_COLUMNS: List[str] = [
    COL_DEAL_ID,
    COL_DEAL_ACCOUNT,
    COL_STATUS,
]

OPTIONAL_DEAL_COLUMNS: List[str] = [
    COL_DEAL_NUMBER,
    COL_PIPELINE_STATUS,
    COL_DEAL_TYPE,
    COL_PRICE,
    COL_PRICE_WITH_TAX,
    COL_CONTRACT_START,
    COL_CONTRACT_END,
    COL_ESTIMATE_DATE,
    COL_CREATED_DATE,
    COL_DIVISION,
    COL_ADDRESS,
    COL_ARCHIVED,
]

REQUIRED_ACCOUNT_COLUMNS: List[str] = [
    COL_ACCOUNT_ID,
]

OPTIONAL_ACCOUNT_COLUMNS: List[str] = [
    COL_ACCOUNT_NAME,
    COL_ICP_SCORE,
    COL_LAST_INTERACTION,
    COL_ARCHIVED,
    COL_ICP_STATUS,
    COL_REVENUE_BY_YEAR,
    COL_SEGMENT_BY_YEAR,
    COL_DEAL_COUNT_BY_YEAR,
    COL_REVENUE_SEGMENT,
]

SNOOZE_COLUMNS: List[str] = [
    COL_SNOOZE_ACCOUNT,
    COL_SNOOZE_TYPE,
    COL_SNOOZE_UNTIL,
]


def is_archived(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    try:
        if pd.isna(value):
            return False
    except (TypeError, ValueError):
        pass
    return str(value).strip().lower() in ("1", "true", "yes", "y", "t", "1.0")


def _coerce_archived(series: pd.Series) -> pd.Series:
    return series.map(is_archived).astype(bool)


def prepare_deals(df: pd.DataFrame) -> pd.DataFrame:
    """Unify aliases, add missing optional columns and canonicalize IDs."""
    data = unify_columns(df, DEAL_ALIASES).copy()
    missing = [c for c in REQUIRED_DEAL_COLUMNS if c not in data.columns]
    if missing:
        raise KeyError(f"Deals missing required columns: {', '.join(missing)}")
    for col in OPTIONAL_DEAL_COLUMNS:
        if col not in data.columns:
            data[col] = None
    data[COL_DEAL_ID] = canonicalize_id(data[COL_DEAL_ID])
    data[COL_DEAL_ACCOUNT] = canonicalize_id(data[COL_DEAL_ACCOUNT])
    data[COL_ARCHIVED] = _coerce_archived(data[COL_ARCHIVED])
    return data


def prepare_accounts(df: pd.DataFrame) -> pd.DataFrame:
    """Unify aliases, add missing optional columns and canonicalize IDs."""
    data = unify_columns(df, ACCOUNT_ALIASES).copy()
    missing = [c for c in REQUIRED_ACCOUNT_COLUMNS if c not in data.columns]
    if missing:
        raise KeyError(f"Accounts missing required columns: {', '.join(missing)}")
    for col in OPTIONAL_ACCOUNT_COLUMNS:
        if col not in data.columns:
            data[col] = None
    data[COL_ACCOUNT_ID] = canonicalize_id(data[COL_ACCOUNT_ID])
    data[COL_ACCOUNT_NAME] = data[COL_ACCOUNT_NAME].fillna("").astype(str)
    data[COL_ARCHIVED] = _coerce_archived(data[COL_ARCHIVED])
    return data


def prepare_snoozes(df: pd.DataFrame | None) -> pd.DataFrame:
    """Return a snooze frame with canonical columns (empty when none supplied)."""
    if df is None or df.empty:
        return pd.DataFrame({col: pd.Series(dtype=object) for col in SNOOZE_COLUMNS})
    data = unify_columns(df, SNOOZE_ALIASES).copy()
    missing = [c for c in SNOOZE_COLUMNS if c not in data.columns]
    if missing:
        raise KeyError(f"Snoozes missing required columns: {', '.join(missing)}")
    data[COL_SNOOZE_ACCOUNT] = canonicalize_id(data[COL_SNOOZE_ACCOUNT])
    data[COL_SNOOZE_TYPE] = data[COL_SNOOZE_TYPE].astype(str).str.strip().str.lower()
    return data
