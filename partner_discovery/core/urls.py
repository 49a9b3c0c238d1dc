"""Website normalisation used for discovery, dedup and the vendor merge."""

from __future__ import annotations

from urllib.parse import urlparse, urlunparse


def _strip_www(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


def normalize_website(raw_url: str) -> str:
    """Scheme-qualify a URL, drop `www.`, query and fragment, strip trailing slashes.

    Returns an empty string when no host can be recovered.
    """
    if not raw_url:
        return ""

    url = str(raw_url).strip()
    if not url:
        return ""
    if not url.lower().startswith(("http://", "https://")):
        url = f"https://{url}"

    try:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
    except ValueError:
        return ""
    if not host or " " in host:
        return ""

    normalized = urlunparse((parsed.scheme.lower(), _strip_www(host), parsed.path, "", "", ""))
    return normalized.rstrip("/")


def domain_from_url(website: str) -> str:
    """Bare lower-case host of a website, without `www.`."""
    value = str(website or "").strip().lower()
    if not value:
        return ""
    if not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    try:
        host = urlparse(value).hostname or ""
    except ValueError:
        host = ""
    if not host:
        host = value.split("://", 1)[-1].split("/")[0].split("?")[0]
    return _strip_www(host)


def origin_of(url: str) -> str:
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}".lower()
