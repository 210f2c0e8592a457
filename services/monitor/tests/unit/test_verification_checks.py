"""Unit tests for ownership verification checks."""

from unittest.mock import AsyncMock, MagicMock

import dns.exception
import httpx
import pytest
import respx

from src.models.tracked_domain import VerificationMethod
from src.verification.checks import CheckOutcome, VerificationChecker

TOKEN = "0123456789abcdef0123456789abcdef"


def make_resolver(records: dict[str, list[str]]) -> MagicMock:
    resolver = MagicMock()
    resolver.txt = AsyncMock(side_effect=lambda name: records.get(name, []))
    return resolver


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient(follow_redirects=True) as client:
        yield client


class TestDnsTxt:
    @pytest.mark.asyncio
    async def test_exact_match_at_apex(self, http_client):
        checker = VerificationChecker(
            make_resolver({"example.com": ["v=spf1 -all", f"domainstack-verify={TOKEN}"]}), http_client
        )

        result = await checker.verify("example.com", TOKEN, VerificationMethod.DNS_TXT)

        assert result.verified is True
        assert result.method == VerificationMethod.DNS_TXT

    @pytest.mark.asyncio
    async def test_legacy_host(self, http_client):
        checker = VerificationChecker(
            make_resolver({"_domainstack-verify.example.com": [f"domainstack-verify={TOKEN}"]}),
            http_client,
        )

        result = await checker.verify("Example.COM.", TOKEN, VerificationMethod.DNS_TXT)

        assert result.verified is True

    @pytest.mark.asyncio
    async def test_value_is_trimmed_of_whitespace_and_quotes(self, http_client):
        checker = VerificationChecker(
            make_resolver({"example.com": [f'  "domainstack-verify={TOKEN}" ']}), http_client
        )

        assert await checker.check_dns_txt("example.com", TOKEN) == CheckOutcome.VERIFIED

    @pytest.mark.asyncio
    async def test_token_comparison_is_case_sensitive(self, http_client):
        checker = VerificationChecker(
            make_resolver({"example.com": [f"domainstack-verify={TOKEN.upper()}"]}), http_client
        )

        result = await checker.verify("example.com", TOKEN, VerificationMethod.DNS_TXT)

        assert result.verified is False

    @pytest.mark.asyncio
    async def test_prefix_or_suffix_is_not_a_match(self, http_client):
        checker = VerificationChecker(
            make_resolver({"example.com": [f"domainstack-verify={TOKEN}extra", f"xdomainstack-verify={TOKEN}"]}),
            http_client,
        )

        assert await checker.check_dns_txt("example.com", TOKEN) == CheckOutcome.NOT_FOUND

    @pytest.mark.asyncio
    async def test_lookup_error_reports_error_not_exception(self, http_client):
        resolver = MagicMock()
        resolver.txt = AsyncMock(side_effect=dns.exception.Timeout())
        checker = VerificationChecker(resolver, http_client)

        assert await checker.check_dns_txt("example.com", TOKEN) == CheckOutcome.ERROR
        result = await checker.verify("example.com", TOKEN, VerificationMethod.DNS_TXT)
        assert result.verified is False


class TestHtmlFile:
    @pytest.mark.asyncio
    @respx.mock
    async def test_token_file_over_https(self, http_client):
        respx.get(f"https://example.com/.well-known/domainstack-verify/{TOKEN}.html").respond(
            200, text=f"domainstack-verify: {TOKEN}\n"
        )
        checker = VerificationChecker(make_resolver({}), http_client)

        result = await checker.verify("example.com", TOKEN, VerificationMethod.HTML_FILE)

        assert result.verified is True
        assert result.method == VerificationMethod.HTML_FILE

    @pytest.mark.asyncio
    @respx.mock
    async def test_falls_back_to_legacy_path_over_http(self, http_client):
        respx.get(f"https://example.com/.well-known/domainstack-verify/{TOKEN}.html").respond(404)
        respx.get(f"http://example.com/.well-known/domainstack-verify/{TOKEN}.html").mock(
            side_effect=httpx.ConnectError("refused")
        )
        respx.get("https://example.com/.well-known/domainstack-verify.html").respond(500)
        respx.get("http://example.com/.well-known/domainstack-verify.html").respond(
            200, text=f"domainstack-verify: {TOKEN}"
        )
        checker = VerificationChecker(make_resolver({}), http_client)

        assert await checker.check_html_file("example.com", TOKEN) == CheckOutcome.VERIFIED

    @pytest.mark.asyncio
    @respx.mock
    async def test_wrong_body_is_not_verified(self, http_client):
        respx.get(url__regex=r".*").respond(200, text=f"<html>domainstack-verify: {TOKEN}</html>")
        checker = VerificationChecker(make_resolver({}), http_client)

        result = await checker.verify("example.com", TOKEN, VerificationMethod.HTML_FILE)

        assert result.verified is False


class TestMetaTag:
    @pytest.mark.asyncio
    @respx.mock
    async def test_any_of_several_tags_may_match(self, http_client):
        html = f"""
        <html><head>
          <meta name="domainstack-verify" content="stale-token">
          <meta content="  {TOKEN} " NAME="DomainStack-Verify">
          <meta name="domainstack-verify" content="other">
        </head><body>
        """
        respx.get("https://example.com/").respond(200, html=html)
        checker = VerificationChecker(make_resolver({}), http_client)

        result = await checker.verify("example.com", TOKEN, VerificationMethod.META_TAG)

        assert result.verified is True
        assert result.method == VerificationMethod.META_TAG

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_matching_tag(self, http_client):
        respx.get("https://example.com/").respond(
            200, html='<meta name="description" content="' + TOKEN + '"><meta name="domainstack-verify" content="nope">'
        )
        checker = VerificationChecker(make_resolver({}), http_client)

        assert await checker.check_meta_tag("example.com", TOKEN) == CheckOutcome.NOT_FOUND

    @pytest.mark.asyncio
    @respx.mock(assert_all_called=False)
    async def test_https_only(self, http_client, respx_mock):
        route = respx_mock.get("http://example.com/").respond(
            200, html=f'<meta name="domainstack-verify" content="{TOKEN}">'
        )
        respx_mock.get("https://example.com/").mock(side_effect=httpx.ConnectTimeout("timeout"))
        checker = VerificationChecker(make_resolver({}), http_client)

        assert await checker.check_meta_tag("example.com", TOKEN) == CheckOutcome.ERROR
        assert not route.called


@pytest.mark.asyncio
@respx.mock
async def test_methods_tried_in_order_until_first_success(http_client):
    respx.get(url__regex=r"https?://example\.com/\.well-known/.*").respond(404)
    respx.get("https://example.com/").respond(200, html=f'<meta name="domainstack-verify" content="{TOKEN}">')
    resolver = make_resolver({})
    checker = VerificationChecker(resolver, http_client)

    result = await checker.verify("example.com", TOKEN)

    assert result.verified is True
    assert result.method == VerificationMethod.META_TAG
    assert resolver.txt.await_count == 2


@pytest.mark.asyncio
async def test_crashing_checker_never_raises(http_client):
    resolver = MagicMock()
    resolver.txt = AsyncMock(side_effect=RuntimeError("boom"))
    checker = VerificationChecker(resolver, http_client)

    result = await checker.verify("example.com", TOKEN, VerificationMethod.DNS_TXT)

    assert result.verified is False
