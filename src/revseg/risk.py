"""
Renewal risk detection.

A won deal whose contract ends within the risk window is at risk unless the
account already holds a renewal: another won deal for the same department and
address that ends later and lies beyond the window. Surviving at-risk deals
that share a department and address are reported as duplicate groups.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Tuple

import pandas as pd

from revseg.config import RiskConfig
from revseg.normalizer import parse_date, won_mask
from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_ACCOUNT_NAME,
    COL_ADDRESS,
    COL_ARCHIVED,
    COL_CONTRACT_END,
    COL_DEAL_ACCOUNT,
    COL_DEAL_ID,
    COL_DEAL_NUMBER,
    COL_DIVISION,
    SNOOZE_RENEWAL,
    normalize_text,
)
from revseg.snoozes import snoozed_accounts


@dataclass(frozen=True)
class DealRef:
    deal_id: str
    deal_number: str | None
    contract_end: dt.date
    days_until_renewal: int


@dataclass
class DuplicateGroup:
    account_id: str
    account_name: str
    division: str
    address: str
    deals: List[DealRef] = field(default_factory=list)


@dataclass
class RiskFlag:
    account_id: str
    account_name: str
    renewal_date: dt.date
    days_until_renewal: int
    expiring_deal_id: str
    expiring_deal_number: str | None
    division: str | None
    address: str | None
    has_duplicates: bool = False
    duplicate_deals: List[DealRef] = field(default_factory=list)


def normalize_department(value) -> str:
    return normalize_text(value)


def normalize_address(value) -> str:
    return normalize_text(value)


def _optional_text(value) -> str | None:
    text = "" if value is None or (not isinstance(value, str) and pd.isna(value)) else str(value).strip()
    return text or None


def dated_won_deals(deals: pd.DataFrame, today: dt.date) -> pd.DataFrame:
    """Won, non-archived deals with a parseable contract_end, annotated for risk checks."""
    if deals.empty:
        return deals.assign(_end=[], _days=[], _dept=[], _addr=[])
    active = deals.loc[~deals[COL_ARCHIVED].astype(bool)]
    won = active.loc[won_mask(active)].copy()
    won["_end"] = won[COL_CONTRACT_END].map(parse_date)
    won = won.loc[won["_end"].notna()].copy()
    today_ts = pd.Timestamp(today)
    won["_days"] = [int((end - today_ts).days) for end in won["_end"]]
    won["_dept"] = won[COL_DIVISION].map(normalize_department)
    won["_addr"] = won[COL_ADDRESS].map(normalize_address)
    return won


def in_risk_window(days: int, cfg: RiskConfig) -> bool:
    if days > cfg.window_days:
        return False
    return cfg.include_past_due or days >= 0


def is_superseded(deal: pd.Series, account_deals: pd.DataFrame, cfg: RiskConfig) -> bool:
    """Whether a later renewal for the same department and address exists."""
    if not deal["_dept"] or not deal["_addr"]:
        return False
    renewals = account_deals.loc[
        (account_deals[COL_DEAL_ID] != deal[COL_DEAL_ID])
        & (account_deals["_dept"] == deal["_dept"])
        & (account_deals["_addr"] == deal["_addr"])
        & (account_deals["_end"] > deal["_end"])
        & (account_deals["_days"] > cfg.window_days)
    ]
    return not renewals.empty


def _ref(deal: pd.Series) -> DealRef:
    return DealRef(
        deal_id=str(deal[COL_DEAL_ID]),
        deal_number=_optional_text(deal.get(COL_DEAL_NUMBER)),
        contract_end=deal["_end"].date(),
        days_until_renewal=int(deal["_days"]),
    )


def duplicate_groups(at_risk: pd.DataFrame, account_id: str, account_name: str) -> List[DuplicateGroup]:
    """Groups of surviving at-risk deals sharing department and address."""
    groups: List[DuplicateGroup] = []
    for (dept, addr), members in at_risk.groupby(["_dept", "_addr"], sort=True):
        if len(members) < 2:
            continue
        members = members.sort_values(["_end", COL_DEAL_ID])
        groups.append(
            DuplicateGroup(
                account_id=account_id,
                account_name=account_name,
                division=dept,
                address=addr,
                deals=[_ref(row) for _, row in members.iterrows()],
            )
        )
    return groups


def detect_at_risk(
    accounts: pd.DataFrame,
    deals: pd.DataFrame,
    snoozes: pd.DataFrame | None,
    today: dt.date,
    cfg: RiskConfig | None = None,
) -> Tuple[List[RiskFlag], List[DuplicateGroup]]:
    """One RiskFlag per at-risk account plus every duplicate group found.

    Archived accounts and accounts under an active renewal snooze are skipped.
    Flags are ordered by days until renewal, then account id.
    """
    cfg = cfg or RiskConfig()
    snoozed = snoozed_accounts(snoozes, SNOOZE_RENEWAL, today)
    active_accounts = accounts.loc[~accounts[COL_ARCHIVED].astype(bool)]
    names = dict(zip(active_accounts[COL_ACCOUNT_ID], active_accounts[COL_ACCOUNT_NAME]))

    dated = dated_won_deals(deals, today)
    flags: List[RiskFlag] = []
    duplicates: List[DuplicateGroup] = []
    if dated.empty:
        return flags, duplicates

    for account_id, account_deals in dated.groupby(COL_DEAL_ACCOUNT, sort=True):
        if account_id not in names or account_id in snoozed:
            continue
        window = account_deals.loc[[in_risk_window(d, cfg) for d in account_deals["_days"]]]
        if window.empty:
            continue
        surviving = window.loc[[not is_superseded(row, account_deals, cfg) for _, row in window.iterrows()]]
        if surviving.empty:
            continue

        name = names[account_id]
        groups = duplicate_groups(surviving, account_id, name)
        duplicates.extend(groups)

        soonest = surviving.sort_values(["_end", COL_DEAL_ID]).iloc[0]
        flags.append(
            RiskFlag(
                account_id=account_id,
                account_name=name,
                renewal_date=soonest["_end"].date(),
                days_until_renewal=int(soonest["_days"]),
                expiring_deal_id=str(soonest[COL_DEAL_ID]),
                expiring_deal_number=_optional_text(soonest.get(COL_DEAL_NUMBER)),
                division=_optional_text(soonest.get(COL_DIVISION)),
                address=_optional_text(soonest.get(COL_ADDRESS)),
                has_duplicates=bool(groups),
                duplicate_deals=[ref for g in groups for ref in g.deals],
            )
        )

    flags.sort(key=lambda f: (f.days_until_renewal, f.account_id))
    return flags, duplicates
