import csv

from partner_discovery.core.listings_store import (
    DUPLICATE_REASON,
    DedupIndex,
    append_listing_rows,
    read_existing_listings,
)
from partner_discovery.etl.csv_io import LISTING_COLUMNS, ListingRow, format_csv_line
from partner_discovery.models import ExistingPartnerSnapshot, NormalizedPartner, VerificationSignals


def make_partner(name="Flow Builders", website="https://flowbuilders.ai", slug=None, status="accepted"):
    return NormalizedPartner(
        name=name,
        website=website,
        location="",
        country="United States",
        description="n8n builds",
        email="hi@flowbuilders.ai",
        platforms=["n8n"],
        source_ref=website,
        slug=slug or "flow-builders-united-states",
        verification_signals=VerificationSignals(website_ok=True, website_status="ok"),
        status=status,
    )


def write_listings(path, rows):
    lines = [format_csv_line(LISTING_COLUMNS)]
    lines.extend(format_csv_line([row.get(column, "") for column in LISTING_COLUMNS]) for row in rows)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def test_read_existing_listings(tmp_path):
    listings = tmp_path / "listings.csv"
    write_listings(
        listings,
        [
            {"id": "3", "name": "Acme Automations", "location": "Austin", "website": "https://www.acme.io/"},
            {"id": "12", "name": "Flow Builders", "website": "flowbuilders.ai"},
            {"id": "abc", "name": "Broken Id", "website": ""},
        ],
    )

    snapshot = read_existing_listings(str(listings))

    assert snapshot.max_id == 12
    assert snapshot.websites == {"acme.io", "flowbuilders.ai"}
    assert "acme-automations-austin" in snapshot.slugs
    assert "broken-id" in snapshot.slugs


def test_read_existing_listings_missing_file(tmp_path):
    snapshot = read_existing_listings(str(tmp_path / "missing.csv"))

    assert snapshot.max_id == 0
    assert snapshot.websites == set()
    assert snapshot.slugs == set()


def test_duplicate_domain_is_rejected_without_consuming_an_id():
    index = DedupIndex(ExistingPartnerSnapshot(websites={"acme.io"}, max_id=7))
    partner = make_partner(name="Acme Automations", website="https://www.acme.io", slug="acme-automations-global")

    result = index.apply(partner)

    assert result.status == "rejected"
    assert DUPLICATE_REASON in result.reasons
    assert DUPLICATE_REASON in result.validation_notes
    assert result.assigned_id is None
    assert partner.status == "accepted"
    assert index.next_id == 8
    assert index.blocked == 1


def test_duplicate_rejection_is_idempotent():
    index = DedupIndex(ExistingPartnerSnapshot(websites={"acme.io"}, max_id=7))
    partner = make_partner(website="https://acme.io")

    first = index.apply(partner)
    second = index.apply(partner)

    assert first.status == second.status == "rejected"
    assert index.next_id == 8


def test_accepted_partners_get_sequential_ids():
    index = DedupIndex(ExistingPartnerSnapshot(max_id=7))

    first = index.apply(make_partner())
    second = index.apply(make_partner(name="Acme", website="https://acme.io", slug="acme-global"))

    assert first.assigned_id == 8
    assert second.assigned_id == 9
    assert index.next_id == 10


def test_duplicate_slug_within_run_is_rejected():
    index = DedupIndex(ExistingPartnerSnapshot())

    kept = index.apply(make_partner())
    repeat = index.apply(make_partner(website="https://other.example"))

    assert kept.status == "accepted"
    assert repeat.status == "rejected"
    assert index.blocked == 1


def test_pending_claims_slug_but_gets_no_id():
    index = DedupIndex(ExistingPartnerSnapshot(max_id=1))

    pending = index.apply(make_partner(status="pending_review"))
    later = index.apply(make_partner(website="https://flowbuilders.ai/contact"))

    assert pending.status == "pending_review"
    assert pending.assigned_id is None
    assert later.status == "rejected"
    assert index.next_id == 2


def test_rejected_partner_does_not_claim():
    index = DedupIndex(ExistingPartnerSnapshot())

    index.apply(make_partner(status="rejected"))
    accepted = index.apply(make_partner())

    assert accepted.status == "accepted"
    assert accepted.assigned_id == 1


def test_append_listing_rows_to_existing_file(tmp_path):
    listings = tmp_path / "listings.csv"
    listings.write_text(format_csv_line(LISTING_COLUMNS) + "\n7,Acme,zapier", encoding="utf-8")

    count = append_listing_rows(
        str(listings), [ListingRow(id="8", name="Flow, Builders", description='The "n8n" shop', website="https://flowbuilders.ai")]
    )

    with open(listings, newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert count == 1
    assert [row["id"] for row in rows] == ["7", "8"]
    assert rows[1]["name"] == "Flow, Builders"
    assert rows[1]["description"] == 'The "n8n" shop'


def test_append_listing_rows_creates_file_with_header(tmp_path):
    listings = tmp_path / "nested" / "listings.csv"

    append_listing_rows(str(listings), [ListingRow(id="1", name="Flow Builders")])

    header = listings.read_text(encoding="utf-8").splitlines()[0]
    assert header == ",".join(LISTING_COLUMNS)


def test_append_nothing_leaves_file_alone(tmp_path):
    listings = tmp_path / "listings.csv"

    assert append_listing_rows(str(listings), []) == 0
    assert not listings.exists()


def test_read_existing_listings_malformed_file(tmp_path, caplog):
    listings = tmp_path / "listings.csv"
    listings.write_text('id,name,website\n1,"' + "x" * 200_000 + '",https://acme.io\n', encoding="utf-8")

    with caplog.at_level("WARNING"):
        snapshot = read_existing_listings(str(listings))

    assert snapshot.max_id == 0
    assert snapshot.websites == set()
    assert "malformed CSV" in caplog.text


def test_read_existing_listings_short_rows(tmp_path):
    listings = tmp_path / "listings.csv"
    listings.write_text(format_csv_line(LISTING_COLUMNS) + "\n5,Acme\n", encoding="utf-8")

    snapshot = read_existing_listings(str(listings))

    assert snapshot.max_id == 5
    assert snapshot.slugs == {"acme"}
    assert snapshot.websites == set()
