"""Contract duration, typo detection and multi-year proration."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping

import pandas as pd

from revseg.normalizer import applicable_year, parse_date
from revseg.schema import (
    COL_CONTRACT_END,
    COL_CONTRACT_START,
    COL_DEAL_ACCOUNT,
    COL_DEAL_ID,
)

PRORATED = "prorated"
SINGLE_YEAR = "single_year"
NON_ALLOCATABLE = "non_allocatable"
UNDETERMINABLE = "undeterminable"


@dataclass(frozen=True)
class Allocation:
    """Calendar years a deal's value is spread over, and the slice per year."""

    years: tuple[int, ...]
    annual_value: float
    status: str
    months: int | None = None

    def spans(self, year: int) -> bool:
        return int(year) in self.years

    def value_for(self, year: int) -> float:
        return self.annual_value if self.spans(year) else 0.0

    @property
    def total(self) -> float:
        return self.annual_value * len(self.years)


def duration_months(start, end) -> int:
    """Whole months between two dates.

    The end month only counts when the end day-of-month is past the start
    day-of-month, so Apr 15 -> Apr 15 next year is 12 months, not 13.
    """
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day > start.day:
        months += 1
    return months


def contract_years(months: int) -> int:
    """Number of calendar years a contract of ``months`` is spread across."""
    if months <= 12:
        return 1
    if months <= 24:
        return 2
    if months <= 36:
        return 3
    if months % 12 == 0:
        return months // 12
    return math.ceil(months / 12)


def is_likely_typo(start, end, grace_days: int = 30) -> bool:
    """Flag 13/25/37... month contracts that look like a mistyped end year.

    Contracts whose end falls within ``grace_days`` after the anniversary are
    treated as a grace period and not flagged. Advisory only: the year count
    used for proration is unchanged.
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)
    months = duration_months(start, end)
    if months <= 12 or months % 12 != 1:
        return False
    anniversary = start + pd.DateOffset(years=months // 12)
    days_past = (end - anniversary).days
    return not (0 <= days_past <= grace_days)


def allocate(deal: Mapping, value: float) -> Allocation:
    """Spread ``value`` for ``deal`` across the calendar years it covers.

    - both contract dates valid: value / year-count to each year from the
      contract_start year on;
    - both valid but the duration is not positive: nothing is allocated;
    - otherwise the full value goes to the deal's applicable year, or nowhere
      when no date parses.
    """
    start = parse_date(deal.get(COL_CONTRACT_START))
    end = parse_date(deal.get(COL_CONTRACT_END))
    if start is not None and end is not None:
        months = duration_months(start, end)
        if months <= 0:
            return Allocation((), 0.0, NON_ALLOCATABLE, months)
        n_years = contract_years(months)
        years = tuple(int(start.year) + i for i in range(n_years))
        return Allocation(years, float(value) / n_years, PRORATED, months)

    year = applicable_year(deal)
    if year is None:
        return Allocation((), 0.0, UNDETERMINABLE)
    return Allocation((year,), float(value), SINGLE_YEAR)


def allocated_value(deal: Mapping, value: float, target_year: int) -> float:
    """Slice of ``value`` recognized in ``target_year`` (0 outside the span)."""
    return allocate(deal, value).value_for(target_year)


def allocation_years(deal: Mapping) -> tuple[int, ...]:
    return allocate(deal, 0.0).years


def applies_to_year(deal: Mapping, target_year: int) -> bool:
    """Whether the deal's allocation reaches ``target_year``."""
    return allocate(deal, 0.0).spans(target_year)


@dataclass(frozen=True)
class ContractTypo:
    deal_id: str
    account_id: str
    contract_start: pd.Timestamp
    contract_end: pd.Timestamp
    months: int


def find_contract_typos(deals: pd.DataFrame, grace_days: int = 30) -> list[ContractTypo]:
    """Deals whose contract dates look like a mistyped end year."""
    typos: list[ContractTypo] = []
    for deal in deals.to_dict("records"):
        start = parse_date(deal.get(COL_CONTRACT_START))
        end = parse_date(deal.get(COL_CONTRACT_END))
        if start is None or end is None:
            continue
        if is_likely_typo(start, end, grace_days):
            typos.append(
                ContractTypo(
                    deal_id=str(deal.get(COL_DEAL_ID)),
                    account_id=str(deal.get(COL_DEAL_ACCOUNT) or ""),
                    contract_start=start,
                    contract_end=end,
                    months=duration_months(start, end),
                )
            )
    return typos
