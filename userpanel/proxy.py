"""Outbound HTTP fetcher backing the proxy tester page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

logger = logging.getLogger("userpanel.proxy")

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class ProxyResult:
    status_code: int
    content_type: str
    json_body: Any = None
    text: Optional[str] = None

    @property
    def is_json(self) -> bool:
        return self.text is None


def _normalize_url(url: str) -> str:
    cleaned = (url or "").strip()
    if not cleaned:
        raise ValueError("URL must not be empty")
    try:
        parsed = httpx.URL(cleaned)
    except httpx.InvalidURL as exc:
        raise ValueError(f"Invalid URL: {exc}") from exc
    if parsed.scheme not in {"http", "https"}:
        raise ValueError("Only http and https URLs can be tested")
    if not parsed.host:
        raise ValueError("URL must include a host")
    return cleaned


class ProxyTester:
    """Fetch arbitrary URLs on behalf of an administrator."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._transport = transport

    async def fetch(self, url: str) -> ProxyResult:
        target = _normalize_url(url)
        logger.info("Proxy test requesting %s", target)

        async with httpx.AsyncClient(
            timeout=self._timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            response = await client.get(target)

        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                payload = response.json()
            except ValueError:
                logger.warning("Proxy target %s returned invalid JSON", target)
            else:
                return ProxyResult(
                    status_code=response.status_code,
                    content_type=content_type,
                    json_body=payload,
                )

        return ProxyResult(
            status_code=response.status_code,
            content_type=content_type,
            text=response.text,
        )


__all__ = ["DEFAULT_TIMEOUT", "ProxyResult", "ProxyTester"]
