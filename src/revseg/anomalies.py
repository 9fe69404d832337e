"""Run summary: per-record anomalies accumulated across a batch."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List

UNRECOGNIZED_STATUS = "unrecognized_status"
UNDETERMINABLE_YEAR = "undeterminable_year"
NON_ALLOCATABLE = "non_allocatable_contract"
PRICE_FALLBACK = "price_fallback"
MISSING_VALUE = "missing_value"
ORPHAN_DEAL = "orphan_deal"
CONTRACT_TYPO = "contract_typo"

# Kinds that print a single warning per run rather than one per unique value.
_ONCE_PER_RUN = {PRICE_FALLBACK}


@dataclass
class RunSummary:
    """Counts and samples of anomalies seen during one batch run.

    Nothing here aborts the batch; the summary is returned alongside the
    results so the caller can surface it.
    """

    sample_limit: int = 5
    counts: Counter = field(default_factory=Counter)
    samples: Dict[str, List[Any]] = field(default_factory=dict)
    _warned: set = field(default_factory=set, repr=False)

    def record(self, kind: str, sample: Any = None, *, warn_key: Any = None) -> None:
        """Count one anomaly of ``kind`` and keep ``sample`` if there is room.

        ``warn_key`` prints a ``[WARN]`` line the first time a given key is seen
        for this kind (used for unrecognized statuses).
        """
        self.counts[kind] += 1
        if sample is not None:
            bucket = self.samples.setdefault(kind, [])
            if len(bucket) < self.sample_limit and sample not in bucket:
                bucket.append(sample)

        if kind in _ONCE_PER_RUN:
            key = (kind,)
        elif warn_key is not None:
            key = (kind, warn_key)
        else:
            return
        if key in self._warned:
            return
        self._warned.add(key)
        if kind == PRICE_FALLBACK:
            print("[WARN] Tax-exclusive price missing on some deals; using tax-inclusive price as fallback")
        else:
            print(f"[WARN] {kind}: {warn_key!r}")

    def count(self, kind: str) -> int:
        return int(self.counts.get(kind, 0))

    @property
    def price_fallback_occurred(self) -> bool:
        return self.count(PRICE_FALLBACK) > 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "counts": dict(sorted(self.counts.items())),
            "samples": {k: list(v) for k, v in sorted(self.samples.items())},
            "price_fallback_occurred": self.price_fallback_occurred,
        }

    def print_report(self) -> None:
        if not self.counts:
            print("[INFO] No data anomalies recorded")
            return
        print("[INFO] Data anomalies recorded this run:")
        for kind, n in sorted(self.counts.items()):
            samples = self.samples.get(kind, [])
            suffix = f" (e.g. {', '.join(map(str, samples))})" if samples else ""
            print(f"  - {kind}: {n:,}{suffix}")
