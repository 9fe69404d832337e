"""
Batch pipeline: snapshot in, every derived map and flag list out.

``run_batch`` does not touch storage. The caller persists the result in one
step (see ``revseg.data_access.write_batch``), so an aborted run never leaves
partially updated maps behind.
"""
from __future__ import annotations

import datetime as dt
import time
from dataclasses import dataclass, field
from typing import Dict, List

import pandas as pd

from revseg.allocation import ContractTypo, find_contract_typos
from revseg.anomalies import CONTRACT_TYPO, RunSummary
from revseg.config import AppConfig
from revseg.config import config as default_config
from revseg.downgrades import SegmentDowngrade, detect_downgrades
from revseg.neglect import NeglectFlag, detect_neglected
from revseg.revenue import compute_revenue
from revseg.risk import DuplicateGroup, RiskFlag, detect_at_risk
from revseg.schema import (
    COL_ACCOUNT_ID,
    COL_ARCHIVED,
    COL_DEAL_ACCOUNT,
    prepare_accounts,
    prepare_deals,
    prepare_snoozes,
)
from revseg.segments import active_segment_year, segment_years, segments_by_year


@dataclass
class BatchResult:
    today: dt.date
    active_year: int
    revenue_by_year: Dict[str, Dict[int, float]] = field(default_factory=dict)
    deal_count_by_year: Dict[str, Dict[int, int]] = field(default_factory=dict)
    segment_by_year: Dict[str, Dict[int, str]] = field(default_factory=dict)
    revenue_segment: Dict[str, str | None] = field(default_factory=dict)
    totals: Dict[int, float] = field(default_factory=dict)
    at_risk: List[RiskFlag] = field(default_factory=list)
    duplicates: List[DuplicateGroup] = field(default_factory=list)
    neglected: List[NeglectFlag] = field(default_factory=list)
    downgrades: List[SegmentDowngrade] = field(default_factory=list)
    typos: List[ContractTypo] = field(default_factory=list)
    summary: RunSummary = field(default_factory=RunSummary)

    @property
    def account_ids(self) -> List[str]:
        return sorted(self.segment_by_year)


def _check_deadline(deadline: float | None, stage: str) -> None:
    if deadline is not None and time.monotonic() > deadline:
        raise TimeoutError(f"Batch deadline exceeded before {stage}; nothing was written")


def run_batch(
    accounts: pd.DataFrame,
    deals: pd.DataFrame,
    snoozes: pd.DataFrame | None = None,
    *,
    today: dt.date,
    config: AppConfig | None = None,
    deadline: float | None = None,
) -> BatchResult:
    """Recompute revenue, segments and notification flags for a snapshot.

    Args:
        accounts: account records (aliases are unified).
        deals: deal/estimate records.
        snoozes: snooze directives, optional.
        today: reference date for every day count and the active segment year.
        config: engine settings; the module-level config when omitted.
        deadline: optional ``time.monotonic()`` value; a ``TimeoutError`` is
            raised between stages once it has passed.
    """
    cfg = config or default_config
    summary = RunSummary(sample_limit=cfg.run.sample_limit)

    accounts = prepare_accounts(accounts)
    deals = prepare_deals(deals)
    snoozes = prepare_snoozes(snoozes)

    _check_deadline(deadline, "revenue aggregation")
    revenue = compute_revenue(accounts, deals, summary)

    _check_deadline(deadline, "segment classification")
    active_year = active_segment_year(today)
    segments = segments_by_year(accounts, revenue, segment_years(revenue, today), cfg.segments)
    current = {account_id: by_year.get(active_year) for account_id, by_year in segments.items()}

    _check_deadline(deadline, "risk detection")
    at_risk, duplicates = detect_at_risk(accounts, deals, snoozes, today, cfg.risk)
    neglected = detect_neglected(accounts, current, snoozes, today, cfg.neglect)
    downgrades = detect_downgrades(accounts, segments, snoozes, today)

    active_ids = set(accounts.loc[~accounts[COL_ARCHIVED], COL_ACCOUNT_ID])
    live_deals = deals.loc[~deals[COL_ARCHIVED] & deals[COL_DEAL_ACCOUNT].isin(active_ids)]
    typos = find_contract_typos(live_deals, cfg.allocation.typo_grace_days)
    for typo in typos:
        summary.record(CONTRACT_TYPO, typo.deal_id)

    _check_deadline(deadline, "write-back")
    return BatchResult(
        today=today,
        active_year=active_year,
        revenue_by_year={a: revenue.revenue_by_year.get(a, {}) for a in segments},
        deal_count_by_year={a: revenue.deal_count_by_year.get(a, {}) for a in segments},
        segment_by_year=segments,
        revenue_segment=current,
        totals=revenue.totals,
        at_risk=at_risk,
        duplicates=duplicates,
        neglected=neglected,
        downgrades=downgrades,
        typos=typos,
        summary=summary,
    )
