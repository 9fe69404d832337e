"""Segment downgrade detection between the prior and the active segment year."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Dict, List, Mapping

import pandas as pd

from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_ACCOUNT_NAME,
    COL_ARCHIVED,
    SNOOZE_DOWNGRADE,
)
from revseg.segments import SEGMENT_ORDER, active_segment_year
from revseg.snoozes import snoozed_accounts

SEGMENT_RANK = {letter: rank for rank, letter in enumerate(SEGMENT_ORDER)}


@dataclass
class SegmentDowngrade:
    account_id: str
    account_name: str
    previous_year: int
    previous_segment: str
    current_year: int
    current_segment: str


def is_downgrade(previous: str | None, current: str | None) -> bool:
    if previous not in SEGMENT_RANK or current not in SEGMENT_RANK:
        return False
    return SEGMENT_RANK[current] > SEGMENT_RANK[previous]


def detect_downgrades(
    accounts: pd.DataFrame,
    segments: Mapping[str, Mapping[int, str]],
    snoozes: pd.DataFrame | None,
    today: dt.date,
) -> List[SegmentDowngrade]:
    """Accounts whose active-year segment ranks below the year before."""
    current_year = active_segment_year(today)
    previous_year = current_year - 1
    snoozed = snoozed_accounts(snoozes, SNOOZE_DOWNGRADE, today)
    names: Dict[str, str] = dict(zip(accounts[COL_ACCOUNT_ID], accounts[COL_ACCOUNT_NAME]))
    archived = set(accounts.loc[accounts[COL_ARCHIVED].astype(bool), COL_ACCOUNT_ID])

    out: List[SegmentDowngrade] = []
    for account_id in sorted(segments):
        if account_id in archived or account_id in snoozed:
            continue
        by_year = segments[account_id]
        previous = by_year.get(previous_year)
        current = by_year.get(current_year)
        if is_downgrade(previous, current):
            out.append(
                SegmentDowngrade(
                    account_id=account_id,
                    account_name=names.get(account_id, ""),
                    previous_year=previous_year,
                    previous_segment=previous,
                    current_year=current_year,
                    current_segment=current,
                )
            )
    return out
