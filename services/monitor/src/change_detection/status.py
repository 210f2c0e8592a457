"""EPP status code normalization.

RDAP reports ``client transfer prohibited`` while WHOIS reports
``clientTransferProhibited https://icann.org/epp#clientTransferProhibited``;
both normalize to ``clienttransferprohibited``.
"""

import re

_URL = re.compile(r"\(?https?://\S+\)?", re.IGNORECASE)
_NON_ALNUM = re.compile(r"[^a-z0-9]")

TRANSFER_LOCK_STATUSES = {"clienttransferprohibited", "servertransferprohibited"}


def normalize_status(status: str) -> str:
    without_url = _URL.sub("", status)
    return _NON_ALNUM.sub("", without_url.lower())


def normalize_statuses(statuses: list[str] | None) -> set[str]:
    return {normalized for s in statuses or [] if (normalized := normalize_status(s))}


def statuses_equal(a: list[str] | None, b: list[str] | None) -> bool:
    return normalize_statuses(a) == normalize_statuses(b)


def transfer_lock_from_statuses(statuses: list[str]) -> bool | None:
    """Tri-state: None when the registry reported no statuses at all."""
    if not statuses:
        return None
    return bool(normalize_statuses(statuses) & TRANSFER_LOCK_STATUSES)
