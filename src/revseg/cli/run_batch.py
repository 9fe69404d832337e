"""
Recompute revenue-by-year, segments and notification flags for every account.

Usage (from repo root):
    set PYTHONPATH=src
    python -m revseg.cli.run_batch                      # read + write the database
    python -m revseg.cli.run_batch --src-dir data/snapshot --dry-run
"""
from __future__ import annotations

import argparse
import datetime as dt
import json
import time
from pathlib import Path

import revseg.data_access as da
from revseg.config import load_config
from revseg.pipeline import BatchResult, run_batch
from revseg.reporting.notifications import (
    AT_RISK_KEY,
    DOWNGRADES_KEY,
    DUPLICATES_KEY,
    NEGLECTED_KEY,
    TYPOS_KEY,
    account_year_table,
    build_cache_entries,
    flag_table,
)
from revseg.schema import (
    COL_PRICE,
    COL_PRICE_WITH_TAX,
    prepare_accounts,
    prepare_deals,
    prepare_snoozes,
)
from revseg.validation import (
    ensure_non_negative,
    validate_accounts,
    validate_deals,
    validate_snoozes,
)

ROOT = Path(__file__).resolve().parents[3]


def _parse_date(value: str) -> dt.date:
    try:
        return dt.date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"--today must be YYYY-MM-DD, got {value!r}") from exc


def write_artifacts(result: BatchResult, cache_entries: dict, out_dir: Path) -> None:
    """CSV tables per flag list plus the raw cache payloads and run summary."""
    out_dir.mkdir(parents=True, exist_ok=True)
    tables = {
        "account_years": account_year_table(result),
        AT_RISK_KEY: flag_table(result.at_risk),
        NEGLECTED_KEY: flag_table(result.neglected),
        DOWNGRADES_KEY: flag_table(result.downgrades),
        DUPLICATES_KEY: flag_table(result.duplicates),
        TYPOS_KEY: flag_table(result.typos),
    }
    for name, table in tables.items():
        path = out_dir / f"{name}.csv"
        table.to_csv(path, index=False)
        print(f"[INFO] Wrote {len(table):,} rows to {path}")

    meta = {
        "today": result.today.isoformat(),
        "active_year": result.active_year,
        "totals": {str(y): v for y, v in result.totals.items()},
        "summary": result.summary.as_dict(),
        "generated_at": dt.datetime.now().isoformat(timespec="seconds"),
    }
    with (out_dir / "run_summary.json").open("w", encoding="utf-8") as handle:
        json.dump(meta, handle, indent=2, default=str)
    with (out_dir / "notification_cache.json").open("w", encoding="utf-8") as handle:
        json.dump(cache_entries, handle, indent=2, default=str)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Recompute revenue, segments and notification flags for all accounts."
    )
    parser.add_argument(
        "--src-dir",
        type=str,
        default=None,
        help="Read accounts.csv/estimates.csv/snoozes.csv from this directory instead of the database.",
    )
    parser.add_argument(
        "--out-dir",
        type=str,
        default=None,
        help="Optional directory for CSV/JSON artifacts.",
    )
    parser.add_argument(
        "--today",
        type=_parse_date,
        default=None,
        help="Reference date YYYY-MM-DD (defaults to today).",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=str(ROOT / "config.toml"),
        help="Path to config.toml (default: repo root).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Abort the batch, without writing, after this many seconds.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Compute everything but skip the database write-back.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on input validation errors instead of warning.",
    )
    return parser


def main(argv: list[str] | None = None) -> BatchResult:
    args = build_parser().parse_args(argv)
    today = args.today or dt.date.today()
    cfg = load_config(Path(args.config))
    deadline = time.monotonic() + args.timeout if args.timeout else None

    print("--- Starting Segmentation Batch ---")
    print(f"[INFO] Reference date {today.isoformat()}")

    engine = None
    if args.src_dir:
        print(f"[INFO] Loading snapshot from {args.src_dir}")
        accounts, deals, snoozes = da.load_snapshot_csv(Path(args.src_dir))
    else:
        print("[INFO] Loading snapshot from the database...")
        engine = da.get_engine()
        accounts, deals, snoozes = da.load_snapshot(engine)
    print(f"[INFO] {len(accounts):,} accounts, {len(deals):,} estimates, {len(snoozes):,} snoozes")

    print("Validating inputs...")
    accounts = validate_accounts(prepare_accounts(accounts), strict=args.strict)
    deals = validate_deals(prepare_deals(deals), strict=args.strict)
    snoozes = validate_snoozes(prepare_snoozes(snoozes), strict=args.strict)
    ok, negative = ensure_non_negative(deals, [COL_PRICE, COL_PRICE_WITH_TAX])
    if not ok:
        print(f"[WARN] Negative monetary values in: {', '.join(negative)}")

    print("Computing revenue, segments and flags...")
    result = run_batch(accounts, deals, snoozes, today=today, config=cfg, deadline=deadline)
    print(
        f"[INFO] Active segment year {result.active_year}: "
        f"{len(result.account_ids):,} accounts classified, "
        f"{len(result.at_risk):,} at risk, {len(result.neglected):,} neglected, "
        f"{len(result.downgrades):,} downgrades"
    )
    if result.duplicates:
        print(f"[WARN] {len(result.duplicates):,} duplicate at-risk estimate groups")
    if result.typos:
        print(f"[WARN] {len(result.typos):,} contracts look like end-year typos")
    result.summary.print_report()

    cache_entries = build_cache_entries(result)
    if args.out_dir:
        write_artifacts(result, cache_entries, Path(args.out_dir))

    if args.dry_run:
        print("[INFO] Dry run: skipping database write-back")
    else:
        engine = engine or da.get_engine()
        try:
            da.write_batch(result, cache_entries, engine)
        except da.StorageError as exc:
            print(f"Error: {exc}")
            raise

    print("--- Segmentation Batch Complete ---")
    return result


if __name__ == "__main__":
    main()
