"""Pytest fixtures for LibProbe tests."""

from __future__ import annotations

import inspect
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from libprobe.config import Settings

OSV_TEST_URL = "https://osv.test/v1/querybatch"

Handler = Callable[[httpx.Request], Any]


class FakeSite:
    """
    In-memory web server behind an httpx MockTransport.

    Routes are keyed by absolute URL; unknown URLs answer 404. Every
    request is recorded for later assertions.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Handler] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        url: str,
        body: str = "",
        *,
        status: int = 200,
        content_type: str = "text/html; charset=utf-8",
    ) -> None:
        self.routes[url] = lambda request: httpx.Response(
            status, text=body, headers={"content-type": content_type}
        )

    def add_bytes(self, url: str, content: bytes, *, content_type: str = "application/octet-stream") -> None:
        self.routes[url] = lambda request: httpx.Response(200, content=content, headers={"content-type": content_type})

    def add_handler(self, url: str, handler: Handler) -> None:
        self.routes[url] = handler

    def add_sitemap(self, url: str, page_urls: list[str], *, index: bool = False) -> None:
        self.add(url, sitemap_xml(page_urls, index=index), content_type="application/xml")

    def add_page(self, url: str, *asset_urls: str) -> None:
        self.add(url, page_html(*asset_urls))

    def add_osv(self, handler: Callable[[list[dict[str, Any]]], Any], url: str = OSV_TEST_URL) -> None:
        """Serve OSV batch queries; ``handler`` maps the query list to a results list."""

        def respond(request: httpx.Request) -> httpx.Response:
            queries = json.loads(request.content)["queries"]
            return httpx.Response(200, json={"results": handler(queries)})

        self.add_handler(url, respond)

    def requested(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)

    async def _dispatch(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(str(request.url))
        if handler is None:
            return httpx.Response(404, text="not found", headers={"content-type": "text/html"})
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._dispatch)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, follow_redirects=True)


def sitemap_xml(locs: list[str], *, index: bool = False) -> str:
    """Build a minimal urlset or sitemapindex document."""
    root, item = ("sitemapindex", "sitemap") if index else ("urlset", "url")
    entries = "".join(f"<{item}><loc>{loc}</loc></{item}>" for loc in locs)
    return f'<?xml version="1.0" encoding="UTF-8"?><{root} xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">{entries}</{root}>'


def page_html(*asset_urls: str) -> str:
    """Build an HTML page referencing the given scripts and stylesheets."""
    tags = []
    for url in asset_urls:
        if url.split("?", 1)[0].endswith(".css"):
            tags.append(f'<link rel="stylesheet" href="{url}">')
        else:
            tags.append(f'<script src="{url}"></script>')
    return f"<!doctype html><html><head>{''.join(tags)}</head><body><p>hi</p></body></html>"


@pytest.fixture
def site() -> FakeSite:
    """Empty fake site; every URL is 404 until routed."""
    return FakeSite()


@pytest.fixture
def settings() -> Settings:
    """Settings that never depend on the process environment."""
    return Settings(
        user_agent="LibProbe-test/1.0",
        osv_url=OSV_TEST_URL,
        osv_batch_size=50,
        max_vulns_per_library=10,
        provenance_cap=50,
        verify_ssl=True,
    )
