import csv
import json
from pathlib import Path

import pytest

from partner_discovery.core.config import Settings
from partner_discovery.etl.csv_io import LISTING_COLUMNS, format_csv_line
from partner_discovery.jobs import collect_partners
from partner_discovery.jobs.collect_partners import (
    CollectionError,
    CollectOptions,
    build_parser,
    discover_candidates,
    load_queries,
    options_from_args,
    run_collection,
)
from partner_discovery.models import CandidateRaw, DiscoveryFlags, SearchQuery, VerificationSignals
from partner_discovery.sources.base import SourceAdapter

VERIFIED = VerificationSignals(website_ok=True, website_status="ok", contact_signal=True)


class FakeAdapter(SourceAdapter):
    key = "fake"
    display_name = "Fake source"

    def __init__(self, candidates=None, per_query=None, blocked=None):
        self.candidates = candidates or []
        self.blocked = blocked or []
        self.per_query = per_query
        self.calls = []
        self.fetched = []
        self.closed = False

    def discover(self, query, max_results):
        self.calls.append((query.query, max_results))
        if self.per_query is not None:
            return [
                CandidateRaw(
                    source="fake",
                    discovered_name=f"{query.query} {n}",
                    discovered_website=f"https://{n}.example",
                    source_ref="fake",
                )
                for n in range(min(self.per_query, max_results))
            ]
        return list(self.candidates[:max_results])

    def fetch_details(self, candidate):
        self.fetched.append(candidate.discovered_website)
        return candidate

    def blocked_candidates(self):
        return list(self.blocked)

    def close(self):
        self.closed = True


def partner_candidates():
    return [
        CandidateRaw(
            source="fake",
            discovered_name="Acme Automations",
            discovered_website="https://acme.io",
            source_ref="https://acme.io",
            snippet="Zapier automation experts",
            email="ops@acme.io",
            verification_signals=VERIFIED,
        ),
        CandidateRaw(
            source="fake",
            discovered_name="Flow Builders",
            discovered_website="https://flowbuilders.ai",
            source_ref="https://flowbuilders.ai",
            snippet="n8n automation for ops teams",
            email="hi@flowbuilders.ai",
            verification_signals=VERIFIED,
        ),
        CandidateRaw(
            source="fake",
            discovered_name="Quiet Studio",
            discovered_website="https://quiet.example",
            source_ref="https://quiet.example",
            snippet="Small shop",
            email="team@quiet.example",
            platforms=("zapier",),
            verification_signals=VerificationSignals(website_ok=True, website_status="ok"),
        ),
        CandidateRaw(
            source="fake",
            discovered_name="Nomail Automation",
            discovered_website="https://nomail.io",
            source_ref="https://nomail.io",
            snippet="Make scenarios",
            verification_signals=VERIFIED,
        ),
    ]


@pytest.fixture
def workspace(tmp_path):
    queries = tmp_path / "queries.json"
    queries.write_text(
        json.dumps([{"query": "automation agency", "country": "United States", "platforms": ["zapier"]}]),
        encoding="utf-8",
    )
    listings = tmp_path / "listings.csv"
    existing = ["7", "Acme Automations", "zapier", "Austin", "United States", "", "0", "0", "0", "0", "false",
                "https://acme.io", "ops@acme.io", "manual", "", "true", "manual", ""]
    listings.write_text(format_csv_line(LISTING_COLUMNS) + "\n" + format_csv_line(existing) + "\n", encoding="utf-8")
    return {"queries": queries, "listings": listings, "staging": tmp_path / "staging"}


def use_adapter(monkeypatch, adapter):
    monkeypatch.setattr(
        collect_partners,
        "create_adapter",
        lambda name, settings=None: adapter if name == "fake" else None,
    )


def make_options(workspace, **overrides):
    values = dict(
        sources=["fake"],
        query_file=str(workspace["queries"]),
        listings_csv=str(workspace["listings"]),
        staging_dir=str(workspace["staging"]),
        max_results=50,
        limit_per_source=50,
        min_score=45,
    )
    values.update(overrides)
    return CollectOptions(**values)


def test_load_queries(tmp_path):
    path = tmp_path / "queries.json"
    path.write_text(
        json.dumps(
            [
                {"query": "automation agency", "country": "Germany", "platforms": ["Zapier, Make", "zapier"]},
                {"query": "  ", "country": "France"},
                {"country": "Spain"},
                {"query": "n8n studio", "platforms": "n8n"},
            ]
        ),
        encoding="utf-8",
    )

    queries = load_queries(str(path))

    assert queries == [
        SearchQuery(query="automation agency", country="Germany", platforms=("zapier", "make")),
        SearchQuery(query="n8n studio", country=None, platforms=("n8n",)),
    ]


def test_load_queries_errors(tmp_path):
    with pytest.raises(CollectionError):
        load_queries(str(tmp_path / "missing.json"))

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(CollectionError):
        load_queries(str(broken))


def test_discover_candidates_respects_budgets():
    adapter = FakeAdapter(per_query=3)
    queries = [SearchQuery(query=f"q{n}") for n in range(3)]

    found = discover_candidates({"fake": adapter}, queries, max_results=5, limit_per_source=4)

    assert len(found) == 4
    assert adapter.calls == [("q0", 4), ("q1", 1)]
    assert found[0].query == queries[0]
    assert found[-1].query == queries[1]


def test_discover_candidates_global_cap_across_sources():
    first = FakeAdapter(per_query=3)
    second = FakeAdapter(per_query=3)
    queries = [SearchQuery(query="q0"), SearchQuery(query="q1")]

    found = discover_candidates({"a": first, "b": second}, queries, max_results=7, limit_per_source=10)

    assert len(found) == 7
    assert first.calls == [("q0", 7), ("q1", 4)]
    assert second.calls == [("q0", 1)]


def test_run_collection_end_to_end(monkeypatch, workspace):
    adapter = FakeAdapter(candidates=partner_candidates())
    use_adapter(monkeypatch, adapter)

    result = run_collection(make_options(workspace, append_to_listings=True), Settings())

    summary = result.summary
    assert summary["totalDiscovered"] == 4
    assert summary["accepted"] == 1
    assert summary["pendingReview"] == 1
    assert summary["rejected"] == 2
    assert summary["appended"] == 1
    assert summary["qualityGate"]["blockedByDomain"] == 1
    assert summary["qualityGate"]["withEmail"] == 1
    assert adapter.closed is True
    assert len(adapter.fetched) == 4

    by_name = {partner.name: partner for partner in result.candidates}
    assert by_name["Acme Automations"].status == "rejected"
    assert "duplicate domain or slug" in by_name["Acme Automations"].reasons
    assert by_name["Flow Builders"].status == "accepted"
    assert by_name["Flow Builders"].assigned_id == 8
    assert by_name["Quiet Studio"].status == "pending_review"
    assert by_name["Nomail Automation"].status == "rejected"

    with open(result.staging_file, newline="", encoding="utf-8") as handle:
        staged = list(csv.DictReader(handle))
    assert [row["name"] for row in staged] == ["Flow Builders"]
    assert staged[0]["id"] == "8"
    assert staged[0]["verification_status"] == "accepted"
    assert staged[0]["contact_signal"] == "true"

    report = json.loads(Path(result.summary_file).read_text(encoding="utf-8"))
    assert report["accepted"] == 1
    assert len(report["candidates"]) == 4
    assert report["candidates"][0]["validation"]["websiteStatus"] == "ok"

    with open(workspace["listings"], newline="", encoding="utf-8") as handle:
        listings = list(csv.DictReader(handle))
    assert [row["id"] for row in listings] == ["7", "8"]
    assert listings[1]["name"] == "Flow Builders"
    assert listings[1]["verified"] == "false"


def test_dry_run_never_touches_listings(monkeypatch, workspace):
    use_adapter(monkeypatch, FakeAdapter(candidates=partner_candidates()))
    before = workspace["listings"].read_text(encoding="utf-8")

    result = run_collection(
        make_options(workspace, append_to_listings=True, dry_run=True, write_staging=False), Settings()
    )

    assert result.summary["appended"] == 0
    assert result.staging_file == ""
    assert workspace["listings"].read_text(encoding="utf-8") == before
    assert not workspace["staging"].exists()


def test_run_collection_without_known_sources_fails(monkeypatch, workspace):
    use_adapter(monkeypatch, FakeAdapter())

    with pytest.raises(CollectionError):
        run_collection(make_options(workspace, sources=["unknown"]), Settings())


def test_run_collection_without_queries_fails(monkeypatch, workspace):
    use_adapter(monkeypatch, FakeAdapter())
    workspace["queries"].write_text("[]", encoding="utf-8")

    with pytest.raises(CollectionError):
        run_collection(make_options(workspace), Settings())


def test_options_from_args_derives_min_score():
    parser = build_parser(Settings())

    assert options_from_args(parser.parse_args([])).min_score == 45
    assert options_from_args(parser.parse_args(["--verification-mode", "moderate"])).min_score == 35
    assert options_from_args(parser.parse_args(["--verification-mode", "lenient"])).min_score == 25
    assert options_from_args(parser.parse_args(["--min-score", "70"])).min_score == 70


def test_parser_flags():
    args = build_parser(Settings()).parse_args(
        ["--source", "duckduckgo, bing", "--no-require-email", "--no-write-staging", "--dry-run", "--concurrency", "4"]
    )
    options = options_from_args(args)

    assert options.sources == ["duckduckgo", "bing"]
    assert options.require_email is False
    assert options.write_staging is False
    assert options.dry_run is True
    assert options.concurrency == 4


@pytest.mark.parametrize("argv", [["--min-score", "250"], ["--max-results", "0"], ["--verification-mode", "loose"]])
def test_parser_rejects_bad_values(argv):
    with pytest.raises(SystemExit):
        build_parser(Settings()).parse_args(argv)


def test_main_returns_error_code_for_missing_query_file(tmp_path):
    assert collect_partners.main(["--query-file", str(tmp_path / "missing.json")]) == 1


def test_run_collection_reports_blocked_directory_results(monkeypatch, workspace):
    directory = CandidateRaw(
        source="fake",
        discovered_name="Zapier agencies",
        discovered_website="https://clutch.co/agencies/zapier",
        source_ref="https://clutch.co/agencies/zapier",
        query=SearchQuery(query="automation agency"),
        discovery_flags=DiscoveryFlags(blocked_by_source=True, rejection_reasons=("blacklist_host:clutch.co",)),
    )
    use_adapter(monkeypatch, FakeAdapter(candidates=partner_candidates(), blocked=[directory]))

    result = run_collection(make_options(workspace), Settings())

    assert result.summary["blockedBySource"] == 1
    report = json.loads(Path(result.summary_file).read_text(encoding="utf-8"))
    assert report["blocked"] == [
        {
            "source": "fake",
            "name": "Zapier agencies",
            "website": "https://clutch.co/agencies/zapier",
            "query": "automation agency",
            "reasonCodes": ["blacklist_host:clutch.co"],
        }
    ]
    assert report["blockedBySource"] == 1
