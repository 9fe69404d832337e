"""Neglect detection: accounts without recent interaction for their segment."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import List, Mapping

import pandas as pd

from revseg.config import NeglectConfig
from revseg.normalizer import parse_date
from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_ACCOUNT_NAME,
    COL_ARCHIVED,
    COL_ICP_STATUS,
    COL_LAST_INTERACTION,
    ICP_STATUS_NOT_APPLICABLE,
    SNOOZE_NEGLECT,
    normalize_text,
)
from revseg.snoozes import snoozed_accounts

DEFAULT_SEGMENT = "C"


@dataclass
class NeglectFlag:
    account_id: str
    account_name: str
    days_since_interaction: int | None
    threshold_days: int
    segment: str


def threshold_for(segment: str | None, cfg: NeglectConfig | None = None) -> int:
    cfg = cfg or NeglectConfig()
    if segment in cfg.priority_segments:
        return cfg.priority_days
    return cfg.default_days


def detect_neglected(
    accounts: pd.DataFrame,
    segments: Mapping[str, str | None],
    snoozes: pd.DataFrame | None,
    today: dt.date,
    cfg: NeglectConfig | None = None,
) -> List[NeglectFlag]:
    """Flag accounts whose last interaction is missing or older than their threshold.

    ``segments`` maps account id to the segment of the active year; accounts
    missing from it fall in the default bucket.
    """
    cfg = cfg or NeglectConfig()
    snoozed = snoozed_accounts(snoozes, SNOOZE_NEGLECT, today)
    today_ts = pd.Timestamp(today)
    flags: List[NeglectFlag] = []

    for account in accounts.to_dict("records"):
        account_id = account[COL_ACCOUNT_ID]
        if account.get(COL_ARCHIVED):
            continue
        if normalize_text(account.get(COL_ICP_STATUS)) == ICP_STATUS_NOT_APPLICABLE:
            continue
        if account_id in snoozed:
            continue

        segment = segments.get(account_id) or DEFAULT_SEGMENT
        threshold = threshold_for(segment, cfg)
        last = parse_date(account.get(COL_LAST_INTERACTION))
        if last is None:
            days_since = None
        else:
            days_since = int((today_ts - last).days)
            if days_since <= threshold:
                continue
        flags.append(
            NeglectFlag(
                account_id=account_id,
                account_name=account.get(COL_ACCOUNT_NAME) or "",
                days_since_interaction=days_since,
                threshold_days=threshold,
                segment=segment,
            )
        )
    return flags
