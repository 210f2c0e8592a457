"""Redirect-following, size-capped HTTP fetches."""

from dataclasses import dataclass, field

import httpx

USER_AGENT = "DomainstackBot/1.0 (+https://domainstack.io/bot)"


@dataclass
class HttpResponse:
    url: str
    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def create_http_client(timeout: float = 10.0, max_redirects: int = 5) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        max_redirects=max_redirects,
        headers={"User-Agent": USER_AGENT},
    )


async def fetch_limited(
    client: httpx.AsyncClient,
    url: str,
    max_bytes: int = 512 * 1024,
    read_body: bool = True,
) -> HttpResponse:
    """GET ``url`` and read at most ``max_bytes`` of the body.

    Raises httpx errors; callers decide whether they are expected.
    """
    async with client.stream("GET", url) as response:
        chunks: list[bytes] = []
        size = 0
        if read_body:
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                size += len(chunk)
                if size >= max_bytes:
                    break
        body = b"".join(chunks)[:max_bytes].decode(
            response.charset_encoding or "utf-8", errors="replace"
        )
        return HttpResponse(
            url=str(response.url),
            status_code=response.status_code,
            headers=list(response.headers.items()),
            body=body,
        )
