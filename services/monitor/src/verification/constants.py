"""Challenge artifacts. These strings are part of the public contract with users."""

TXT_PREFIX = "domainstack-verify="
TXT_LEGACY_LABEL = "_domainstack-verify"

HTML_DIR = "/.well-known/domainstack-verify"
HTML_LEGACY_PATH = "/.well-known/domainstack-verify.html"
HTML_BODY_PREFIX = "domainstack-verify: "

META_NAME = "domainstack-verify"


def txt_value(token: str) -> str:
    return f"{TXT_PREFIX}{token}"


def txt_legacy_host(apex: str) -> str:
    return f"{TXT_LEGACY_LABEL}.{apex}"


def html_path(token: str) -> str:
    return f"{HTML_DIR}/{token}.html"


def html_body(token: str) -> str:
    return f"{HTML_BODY_PREFIX}{token}"


def meta_tag(token: str) -> str:
    return f'<meta name="{META_NAME}" content="{token}">'
