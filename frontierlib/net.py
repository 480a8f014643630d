import asyncio
from typing import Dict, Tuple

import urllib3
from urllib3.util.retry import Retry
from urllib3 import exceptions as urllib3_exc

from .errors import DriverError
from .types import RequestContext


DEFAULT_USER_AGENT = "frontier-crawler/1.0 (+https://example.com; contact: crawler@example.com)"


class HttpDriver:
    """Default driver: a pooled urllib3 client run off the event loop."""

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout_s: float = 15.0, max_connections: int = 16):
        self.user_agent = user_agent
        self.timeout = urllib3.Timeout(connect=5.0, read=timeout_s)
        self.http = urllib3.PoolManager(
            num_pools=8,
            maxsize=max_connections,
            headers={
                "User-Agent": user_agent,
                "Accept": "text/html,application/json,*/*;q=0.8",
                "Accept-Encoding": "gzip, deflate",
            },
            retries=Retry(
                total=2,
                backoff_factor=0.3,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET", "HEAD"],
                raise_on_status=False,
            ),
        )

    def _request(self, method: str, url: str, headers: Dict[str, str]) -> Tuple[int, Dict[str, str], bytes]:
        try:
            response = self.http.request(
                method,
                url,
                timeout=self.timeout,
                preload_content=True,
                headers={"User-Agent": self.user_agent, **headers},
            )
        except urllib3_exc.HTTPError as exc:
            raise DriverError(f"request failed: {exc}", url) from exc
        return response.status, dict(response.headers), response.data or b""

    async def __call__(self, ctx: RequestContext) -> RequestContext:
        status, headers, body = await asyncio.to_thread(
            self._request, ctx.request.method, ctx.url, dict(ctx.request.headers)
        )
        content_type = headers.get("Content-Type") or headers.get("content-type") or ""
        ctx.response.status = status
        ctx.response.headers = headers
        ctx.response.content_type = content_type
        ctx.body = decode_body(content_type, body)
        return ctx


def decode_body(content_type: str, body: bytes) -> str:
    charset = "utf-8"
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset" and value.strip():
            charset = value.strip().strip('"')
    try:
        return body.decode(charset, errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")
