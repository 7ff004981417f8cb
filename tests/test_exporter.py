import json

import pandas as pd

from leadscraper.core.assembler import derive_city
from leadscraper.models.business import (
    CSV_COLUMNS,
    BusinessContact,
    BusinessLocation,
    create_empty_business,
)
from leadscraper.utils.dedupe import deduplicate
from leadscraper.utils.exporter import CsvBuffer, export_all


def _business(name, url="", phone=None, address=""):
    business = create_empty_business(
        name=name,
        google_maps_url=url,
        contact=BusinessContact(phone=phone),
        location=BusinessLocation(full_address=address, city=derive_city(address)),
    )
    return business.finalize()


# ── De-duplication ────────────────────────────────────────────────────────────

def test_dedupe_on_maps_url_keeps_more_complete():
    sparse = _business("Cafe", url="https://maps/place/1")
    rich = _business("Cafe", url="https://maps/place/1", phone="03-555-1234",
                     address="Herzl 1, Haifa, Israel")
    other = _business("Bakery", url="https://maps/place/2")

    unique = deduplicate([sparse, other, rich])

    assert [b.name for b in unique] == ["Cafe", "Bakery"]
    assert unique[0] is rich


def test_dedupe_on_phone_ignores_country_prefix():
    local = _business("A", url="https://maps/place/a", phone="03-555-1234")
    intl = _business("A", url="https://maps/place/b", phone="+972 3-555-1234")
    assert len(deduplicate([local, intl])) == 1


def test_dedupe_tie_keeps_first():
    first = _business("First", url="https://maps/place/1")
    second = _business("Second", url="https://maps/place/1")
    assert deduplicate([first, second]) == [first]


def test_dedupe_leaves_keyless_records():
    records = [_business("X"), _business("Y")]
    assert len(deduplicate(records)) == 2


# ── CSV buffer ────────────────────────────────────────────────────────────────

def test_buffer_flushes_in_batches_with_single_header(tmp_path):
    path = tmp_path / "out" / "stream.csv"
    with CsvBuffer(path, buffer_size=2) as buffer:
        buffer.extend([_business(f"B{i}") for i in range(3)])
        assert buffer.written == 2

    assert buffer.written == 3
    df = pd.read_csv(path)
    assert list(df.columns) == CSV_COLUMNS
    assert list(df["name"]) == ["B0", "B1", "B2"]


def test_buffer_appends_to_existing_file(tmp_path):
    path = tmp_path / "stream.csv"
    with CsvBuffer(path) as buffer:
        buffer.add(_business("Old"))
    with CsvBuffer(path) as buffer:
        buffer.add(_business("New"))

    df = pd.read_csv(path)
    assert list(df["name"]) == ["Old", "New"]


def test_flush_with_nothing_pending(tmp_path):
    buffer = CsvBuffer(tmp_path / "empty.csv")
    assert buffer.flush() == 0
    assert not (tmp_path / "empty.csv").exists()


# ── Final export ──────────────────────────────────────────────────────────────

def test_export_all_writes_csv_and_json(tmp_path):
    businesses = [_business("מסעדה", phone="04-123-4567", address="Herzl 1, Haifa, Israel")]

    paths = export_all(businesses, tmp_path, "Restaurants Haifa")

    assert paths["csv"].name == "restaurants_haifa_leads.csv"
    df = pd.read_csv(paths["csv"], encoding="utf-8")
    assert df.loc[0, "name"] == "מסעדה"
    assert df.loc[0, "city"] == "Haifa"
    assert bool(df.loc[0, "hasWebsite"]) is False

    records = json.loads(paths["json"].read_text(encoding="utf-8"))
    assert records[0]["name"] == "מסעדה"
    assert records[0]["contact"]["phone"] == "04-123-4567"
    assert records[0]["has_website"] is False


def test_export_all_separates_businesses_without_website(tmp_path):
    with_site = _business("Has Site", url="https://maps/place/1")
    with_site.contact.website = "https://site.co.il"
    without = _business("No Site", url="https://maps/place/2")

    paths = export_all([with_site, without], tmp_path, "run")

    assert len(pd.read_csv(paths["csv"])) == 2
    assert list(pd.read_csv(paths["no_website_csv"])["name"]) == ["No Site"]
