import pytest

from partner_discovery.core.text import clean_text, normalize_text
from partner_discovery.core.urls import domain_from_url, normalize_website, origin_of


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("acme.io", "https://acme.io"),
        ("https://WWW.Acme.io/", "https://acme.io"),
        ("http://acme.io/services/?utm=x#top", "http://acme.io/services"),
        ("  https://acme.io/contact//  ", "https://acme.io/contact"),
        ("", ""),
        ("https://", ""),
    ],
)
def test_normalize_website(raw, expected):
    assert normalize_website(raw) == expected


def test_domain_from_url():
    assert domain_from_url("https://www.Acme.io/about") == "acme.io"
    assert domain_from_url("acme.io") == "acme.io"
    assert domain_from_url("") == ""


def test_origin_of():
    assert origin_of("https://Acme.io/contact?x=1") == "https://acme.io"


def test_text_helpers():
    assert normalize_text("  a \n\t b  ") == "a b"
    assert normalize_text(None) == ""
    assert clean_text("<p>Acme<br>Automations</p>") == "Acme Automations"
