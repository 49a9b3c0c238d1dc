"""CLI job that merges listings and staging CSVs into the vendor master list."""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from partner_discovery.core.config import ConfigError, Settings, get_settings
from partner_discovery.etl.csv_io import LISTING_COLUMNS, write_csv
from partner_discovery.etl.vendor_list import MergeResult, VendorListError, collect_inputs, merge_vendor_files

logger = logging.getLogger(__name__)


def build_vendor_list(
    *,
    master_output: str,
    base_listings: str,
    staging_dir: str,
    append_mode: bool = False,
    new_files: Sequence[str] = (),
    include_staging: bool = True,
    max_rows: Optional[int] = None,
) -> MergeResult:
    if append_mode and not new_files:
        raise VendorListError("append mode requires --new <path1,path2>")

    inputs = collect_inputs(
        append_mode=append_mode,
        master_output=master_output,
        base_listings=base_listings,
        staging_dir=staging_dir,
        new_files=new_files,
        include_staging=include_staging,
    )
    result = merge_vendor_files(inputs, master_output=master_output, max_rows=max_rows)
    write_csv(master_output, result.rows, LISTING_COLUMNS)

    logger.info("Output: %s", master_output)
    logger.info("Mode: %s", "append" if append_mode else "full")
    logger.info("Sources: %s", ", ".join(inputs))
    logger.info("Incoming rows: %d", result.incoming)
    logger.info("Unique rows: %d", result.unique)
    logger.info("Duplicates skipped: %d", result.duplicate_count)
    return result


def _dry_run_rows(value: str) -> Optional[int]:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    return parsed if parsed > 0 else None


def build_parser(settings: Optional[Settings] = None) -> argparse.ArgumentParser:
    settings = settings or get_settings()
    parser = argparse.ArgumentParser(description="Build the de-duplicated vendor master CSV")
    parser.add_argument("--output", default=settings.vendor_master, help="Output master CSV path")
    parser.add_argument("--base", default=settings.listings_csv, help="Base listings CSV path")
    parser.add_argument("--staging-dir", default=settings.staging_dir, help="Staging directory path")
    parser.add_argument("--append", action="store_true", help="Merge the existing master with --new files only")
    parser.add_argument("--new", default="", help="Comma separated candidate CSVs to append")
    parser.add_argument("--no-staging", action="store_true", help="Skip staging/*.csv inputs")
    parser.add_argument("--max-dry-run", type=_dry_run_rows, default=None, help="Read only N rows per input")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    try:
        settings = get_settings()
        args = build_parser(settings).parse_args(argv)
        build_vendor_list(
            master_output=args.output,
            base_listings=args.base,
            staging_dir=args.staging_dir,
            append_mode=args.append,
            new_files=[entry.strip() for entry in args.new.split(",") if entry.strip()],
            include_staging=not args.no_staging,
            max_rows=args.max_dry_run,
        )
    except (VendorListError, ConfigError, OSError) as exc:
        logger.error("build-vendor-list failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
