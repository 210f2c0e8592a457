"""HTTP response headers of a domain's homepage."""

import httpx
import structlog

from src.workflow.errors import classify_fetch_error

from .http import fetch_limited
from .types import FetchOutcome, Header, HeadersResult

logger = structlog.get_logger()


async def fetch_headers(client: httpx.AsyncClient, domain: str) -> FetchOutcome[HeadersResult]:
    """Homepage headers over https, falling back to http."""
    last_error: httpx.HTTPError | None = None
    for scheme in ("https", "http"):
        try:
            response = await fetch_limited(client, f"{scheme}://{domain}/", read_body=False)
        except httpx.HTTPError as e:
            last_error = e
            logger.debug("headers_fetch_attempt_failed", domain=domain, scheme=scheme, error=str(e))
            continue
        return FetchOutcome.success(
            HeadersResult(
                url=response.url,
                status_code=response.status_code,
                headers=[Header(name=name, value=value) for name, value in response.headers],
            )
        )

    error = classify_fetch_error(last_error, "headers fetch")
    logger.info("headers_fetch_failed", domain=domain, error_code=error.code)
    return FetchOutcome.failure(error.code)
