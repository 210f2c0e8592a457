"""Domain name helpers backed by the public suffix list."""

from functools import lru_cache

import tldextract


@lru_cache
def _extractor() -> tldextract.TLDExtract:
    # Bundled snapshot only: workers must not fetch the list at runtime
    return tldextract.TLDExtract(suffix_list_urls=())


def normalize_domain(name: str) -> str:
    return name.strip().lower().rstrip(".")


def registrable_domain(host: str) -> str | None:
    """``ns1.dns.example.co.uk`` -> ``example.co.uk``; None for bare suffixes."""
    ext = _extractor()(normalize_domain(host))
    if not ext.domain or not ext.suffix:
        return None
    return f"{ext.domain}.{ext.suffix}"


def registry_tld(domain: str) -> str:
    """Top-level label used to pick an RDAP server (``co.uk`` -> ``uk``)."""
    return normalize_domain(domain).rsplit(".", 1)[-1]
