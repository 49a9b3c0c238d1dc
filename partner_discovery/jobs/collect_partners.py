"""CLI job that discovers, verifies and stages automation agency partners."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from partner_discovery.core.config import ConfigError, Settings, get_settings
from partner_discovery.core.listings_store import DedupIndex, append_listing_rows, read_existing_listings
from partner_discovery.core.pool import process_each
from partner_discovery.etl.csv_io import STAGING_COLUMNS, write_csv
from partner_discovery.etl.normalize import (
    get_verification_mode_default,
    normalize_candidate,
    normalize_platform_tokens,
)
from partner_discovery.etl.transform import staging_sort_key, to_listing_row, to_staging_row
from partner_discovery.models import (
    STATUS_ACCEPTED,
    STATUS_PENDING,
    STATUS_REJECTED,
    VERIFICATION_MODES,
    CandidateRaw,
    NormalizedPartner,
    SearchQuery,
)
from partner_discovery.sources.base import SourceAdapter
from partner_discovery.sources.registry import available_sources, create_adapter

logger = logging.getLogger(__name__)

DEFAULT_SOURCES = ("duckduckgo",)
DEFAULT_MAX_RESULTS = 5000
DEFAULT_LIMIT_PER_SOURCE = 2000
DEFAULT_MIN_SCORE = 45
VERBOSE_PREVIEW = 30


class CollectionError(RuntimeError):
    """Fatal start-up problem: bad query file or no usable source adapter."""


@dataclass
class CollectOptions:
    sources: Sequence[str] = DEFAULT_SOURCES
    query_file: str = ""
    listings_csv: str = ""
    staging_dir: str = ""
    max_results: int = DEFAULT_MAX_RESULTS
    limit_per_source: int = DEFAULT_LIMIT_PER_SOURCE
    verification_mode: str = "strict"
    min_score: int = DEFAULT_MIN_SCORE
    require_email: bool = True
    write_staging: bool = True
    dry_run: bool = False
    append_to_listings: bool = False
    concurrency: int = 1
    verbose: bool = False


@dataclass
class CollectionResult:
    summary: Dict[str, Any]
    candidates: List[NormalizedPartner] = field(default_factory=list)
    staging_file: str = ""
    summary_file: str = ""


def load_queries(path: str) -> List[SearchQuery]:
    """Read the JSON query template file; entries without a query are skipped."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError) as exc:
        raise CollectionError(f"Unable to load query file {path}: {exc}") from exc

    entries = payload if isinstance(payload, list) else []
    queries: List[SearchQuery] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        text = str(entry.get("query") or "").strip()
        if not text:
            continue
        platforms = entry.get("platforms") or []
        if isinstance(platforms, str):
            platforms = [platforms]
        queries.append(
            SearchQuery(
                query=text,
                country=str(entry.get("country") or "").strip() or None,
                platforms=tuple(normalize_platform_tokens(platforms)),
            )
        )
    return queries


def resolve_adapters(names: Sequence[str], settings: Settings) -> Dict[str, SourceAdapter]:
    adapters: Dict[str, SourceAdapter] = {}
    for name in names:
        adapter = create_adapter(name, settings=settings)
        if adapter is None:
            logger.warning("Ignoring unknown source %r", name)
            continue
        adapters[name] = adapter
    return adapters


def run_discoveries(
    adapter: SourceAdapter, query: SearchQuery, limit: int, *, concurrency: int = 1
) -> List[CandidateRaw]:
    discovered = adapter.discover(query, limit)
    logger.info("%s discovered %d candidates for %r", adapter.key, len(discovered), query.query)
    return process_each(discovered, adapter.fetch_details, concurrency=concurrency)


def discover_candidates(
    adapters: Dict[str, SourceAdapter],
    queries: Sequence[SearchQuery],
    *,
    max_results: int,
    limit_per_source: int,
    concurrency: int = 1,
) -> List[CandidateRaw]:
    """Run every query through every adapter within the global and per-source budgets."""
    discovered: List[CandidateRaw] = []
    for name, adapter in adapters.items():
        source_count = 0
        for query in queries:
            if len(discovered) >= max_results:
                break
            remaining = min(limit_per_source, max_results - len(discovered))
            budget = min(remaining, limit_per_source - source_count)
            if budget <= 0:
                break

            candidates = run_discoveries(adapter, query, budget, concurrency=concurrency)
            source_count += len(candidates)
            discovered.extend(replace(candidate, query=query) for candidate in candidates)
        logger.info("Source %s yielded %d candidates", name, source_count)
    return discovered


def summarize_candidate(partner: NormalizedPartner) -> str:
    return (
        f"{partner.name} | {partner.country} | {'/'.join(partner.platforms)} | "
        f"score={partner.score} | {partner.status} | {partner.website}"
    )


def candidate_report(partner: NormalizedPartner) -> Dict[str, Any]:
    signals = partner.verification_signals
    return {
        "status": partner.status,
        "id": partner.assigned_id,
        "name": partner.name,
        "country": partner.country,
        "website": partner.website,
        "source": partner.source,
        "email": partner.email,
        "verification_score": partner.score,
        "verification_status": partner.status,
        "validation_notes": list(partner.validation_notes),
        "reasonCodes": list(partner.reasons),
        "validation": {
            "websiteOk": signals.website_ok,
            "contactSignal": signals.contact_signal,
            "aboutSignal": signals.about_signal,
            "emailValid": partner.email_valid,
            "emailDomain": partner.email_domain,
            "websiteStatus": signals.website_status or "unknown",
        },
        "signals": {
            "contactSignal": signals.contact_signal,
            "aboutSignal": signals.about_signal,
            "automationSignal": signals.automation_signal,
            "servicesSignal": signals.services_signal,
            "workSignal": signals.work_signal,
            "socialSignal": signals.social_signal,
            "mailtoSignal": signals.mailto_signal,
            "emailFromSource": signals.email_from_source,
            "websiteStatus": signals.website_status or "unknown",
        },
        "summary": summarize_candidate(partner),
    }


def blocked_report(candidate: CandidateRaw) -> Dict[str, Any]:
    flags = candidate.discovery_flags
    return {
        "source": candidate.source,
        "name": candidate.discovered_name,
        "website": candidate.discovered_website,
        "query": candidate.query.query if candidate.query else "",
        "reasonCodes": list(flags.rejection_reasons) if flags else [],
    }


def quality_gate(accepted: Sequence[NormalizedPartner], blocked_by_domain: int) -> Dict[str, Any]:
    average = round(sum(p.score for p in accepted) / len(accepted), 2) if accepted else 0
    return {
        "withEmail": sum(1 for p in accepted if p.email),
        "validatedWebsite": sum(1 for p in accepted if p.verification_signals.website_ok),
        "blockedByDomain": blocked_by_domain,
        "avgVerificationScore": average,
    }


def make_timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y%m%d%H%M")


def run_collection(options: CollectOptions, settings: Optional[Settings] = None) -> CollectionResult:
    settings = settings or get_settings()
    query_file = options.query_file or settings.query_file
    listings_csv = options.listings_csv or settings.listings_csv
    staging_dir = options.staging_dir or settings.staging_dir

    queries = load_queries(query_file)
    if not queries:
        raise CollectionError(f"No queries loaded from {query_file}")

    adapters = resolve_adapters(options.sources, settings)
    if not adapters:
        raise CollectionError(
            f"No valid source adapters in --source. Available: {', '.join(available_sources())}"
        )

    started_at = datetime.now(timezone.utc)
    index = DedupIndex(read_existing_listings(listings_csv))

    try:
        discovered = discover_candidates(
            adapters,
            queries,
            max_results=options.max_results,
            limit_per_source=options.limit_per_source,
            concurrency=options.concurrency,
        )
    finally:
        blocked_by_source = [blocked for adapter in adapters.values() for blocked in adapter.blocked_candidates()]
        for adapter in adapters.values():
            adapter.close()

    partners: List[NormalizedPartner] = []
    for candidate in discovered:
        normalized = normalize_candidate(
            candidate,
            candidate.query or SearchQuery(query=""),
            options.min_score,
            options.verification_mode,
            options.require_email,
        )
        partners.append(index.apply(normalized))

    accepted = [p for p in partners if p.status == STATUS_ACCEPTED]
    pending = [p for p in partners if p.status == STATUS_PENDING]
    rejected = [p for p in partners if p.status == STATUS_REJECTED]
    gate = quality_gate(accepted, index.blocked)

    summary: Dict[str, Any] = {
        "startedAt": started_at.isoformat(),
        "sources": list(adapters),
        "maxResults": options.max_results,
        "limitPerSource": options.limit_per_source,
        "verificationMode": options.verification_mode,
        "minScore": options.min_score,
        "requireEmail": options.require_email,
        "totalDiscovered": len(discovered),
        "accepted": len(accepted),
        "pendingReview": len(pending),
        "rejected": len(rejected),
        "blockedBySource": len(blocked_by_source),
        "appended": 0,
        "stagingFile": "",
        "qualityGate": gate,
    }
    result = CollectionResult(summary=summary, candidates=partners)

    timestamp = make_timestamp(started_at)
    if options.write_staging:
        staging_path = Path(staging_dir) / f"partners_{timestamp}.csv"
        staged = sorted(accepted, key=staging_sort_key)
        write_csv(str(staging_path), [to_staging_row(p) for p in staged], STAGING_COLUMNS)
        result.staging_file = str(staging_path)
        summary["stagingFile"] = result.staging_file

    if options.append_to_listings and not options.dry_run:
        summary["appended"] = append_listing_rows(listings_csv, [to_listing_row(p) for p in accepted])

    if options.write_staging:
        summary_path = Path(staging_dir) / f"partners_{timestamp}.summary.json"
        report = {
            **summary,
            "candidates": [candidate_report(p) for p in partners],
            "blocked": [blocked_report(candidate) for candidate in blocked_by_source],
        }
        summary_path.write_text(json.dumps(report, indent=2, ensure_ascii=False), encoding="utf-8")
        result.summary_file = str(summary_path)

    logger.info("Sources: %s", ", ".join(summary["sources"]))
    logger.info(
        "discovered=%d accepted=%d pending_review=%d rejected=%d blocked_by_source=%d",
        len(discovered),
        len(accepted),
        len(pending),
        len(rejected),
        len(blocked_by_source),
    )
    logger.info(
        "qualityGate: withEmail=%d validatedWebsite=%d blockedByDomain=%d avgVerificationScore=%s",
        gate["withEmail"],
        gate["validatedWebsite"],
        gate["blockedByDomain"],
        gate["avgVerificationScore"],
    )
    if result.staging_file:
        logger.info("Staging file: %s", result.staging_file)
        logger.info("Summary file: %s", result.summary_file)
    if summary["appended"]:
        logger.info("Appended %d partners to %s", summary["appended"], listings_csv)

    if options.verbose:
        for partner in partners[:VERBOSE_PREVIEW]:
            logger.info("%s | %s", partner.status, summarize_candidate(partner))
        if len(partners) > VERBOSE_PREVIEW:
            logger.info("... and %d more", len(partners) - VERBOSE_PREVIEW)

    return result


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return parsed


def _min_score(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if not 0 <= parsed <= 200:
        raise argparse.ArgumentTypeError("--min-score must be between 0 and 200")
    return parsed


def build_parser(settings: Optional[Settings] = None) -> argparse.ArgumentParser:
    settings = settings or get_settings()
    parser = argparse.ArgumentParser(description="Discover and verify automation agency partners")
    parser.add_argument(
        "--source",
        dest="sources",
        default=",".join(DEFAULT_SOURCES),
        help=f"Comma separated source adapters: {', '.join(available_sources())}",
    )
    parser.add_argument("--query-file", default=settings.query_file, help="Query template JSON file")
    parser.add_argument("--listings", default=settings.listings_csv, help="Master listings CSV")
    parser.add_argument("--staging-dir", default=settings.staging_dir, help="Directory for staging output")
    parser.add_argument("--max-results", type=_positive_int, default=DEFAULT_MAX_RESULTS, help="Total candidate cap")
    parser.add_argument(
        "--limit-per-source", type=_positive_int, default=DEFAULT_LIMIT_PER_SOURCE, help="Per source candidate cap"
    )
    parser.add_argument("--verification-mode", choices=VERIFICATION_MODES, default="strict")
    parser.add_argument(
        "--min-score",
        type=_min_score,
        default=None,
        help="Acceptance threshold (default: derived from the verification mode)",
    )
    parser.add_argument(
        "--require-email",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Require a valid extracted email",
    )
    parser.add_argument(
        "--write-staging",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Write the staging CSV and summary JSON",
    )
    parser.add_argument("--dry-run", action="store_true", help="Preview only; never touch the listings file")
    parser.add_argument("--append-to-listings", action="store_true", help="Append accepted partners to listings")
    parser.add_argument(
        "--concurrency",
        type=_positive_int,
        default=settings.fetch_concurrency,
        help="Website detail fetches in flight at once",
    )
    parser.add_argument("--verbose", action="store_true", help="Print the first candidate summaries")
    return parser


def options_from_args(args: argparse.Namespace) -> CollectOptions:
    min_score = args.min_score
    if min_score is None:
        min_score = get_verification_mode_default(args.verification_mode, DEFAULT_MIN_SCORE)
    return CollectOptions(
        sources=[name.strip() for name in args.sources.split(",") if name.strip()],
        query_file=args.query_file,
        listings_csv=args.listings,
        staging_dir=args.staging_dir,
        max_results=args.max_results,
        limit_per_source=args.limit_per_source,
        verification_mode=args.verification_mode,
        min_score=min_score,
        require_email=args.require_email,
        write_staging=args.write_staging,
        dry_run=args.dry_run,
        append_to_listings=args.append_to_listings,
        concurrency=args.concurrency,
        verbose=args.verbose,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    try:
        settings = get_settings()
        args = build_parser(settings).parse_args(argv)
        run_collection(options_from_args(args), settings)
    except (CollectionError, ConfigError, OSError) as exc:
        logger.error("collect-partners failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
