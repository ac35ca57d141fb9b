# File: tests/conftest.py
import asyncio
from collections import Counter
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Dict, Optional, Union

import pytest
import pytest_asyncio
from aiohttp import web
from fakeredis.aioredis import FakeRedis

from sitegraph.storage.database import MemoryStorageBackend, RedisStorageBackend
from sitegraph.utils.config import CrawlerConfig


@dataclass
class FakePage:
    body: Union[str, bytes] = ""
    status: int = 200
    content_type: str = "text/html"
    delay: float = 0.0


class FakeSite:
    """
    A tiny site served by aiohttp. Pages can be added while it runs;
    unknown paths return 404. Tracks hits and concurrent requests.
    """

    def __init__(self):
        self.base_url: Optional[str] = None
        self.pages: Dict[str, FakePage] = {}
        self.hits: Counter = Counter()
        self.request_order = []
        self.active = 0
        self.peak_active = 0

    def add(self, path: str, body: Union[str, bytes] = "", **kwargs) -> str:
        self.pages[path] = FakePage(body=body, **kwargs)
        return self.url(path)

    def url(self, path: str = "/") -> str:
        return f"{self.base_url}{path}"

    async def handle(self, request: web.Request) -> web.StreamResponse:
        path = request.path
        self.hits[path] += 1
        self.request_order.append(path)
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)
        try:
            page = self.pages.get(path)
            if page is None:
                return web.Response(status=404, text="not found")
            if page.delay:
                await asyncio.sleep(page.delay)
            if isinstance(page.body, bytes):
                return web.Response(status=page.status, body=page.body, content_type=page.content_type)
            return web.Response(status=page.status, text=page.body, content_type=page.content_type)
        finally:
            self.active -= 1


def html_page(title: str = "", body: str = "") -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


def links(*paths: str) -> str:
    return "".join(f'<a href="{p}">{p.strip("/") or "home"}</a>' for p in paths)


async def _serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "localhost", port)
    await site.start()
    try:
        yield f"http://localhost:{port}"
    finally:
        await runner.cleanup()


@pytest_asyncio.fixture
async def fake_site(unused_tcp_port: int) -> AsyncIterator[FakeSite]:
    site = FakeSite()
    app = web.Application()
    app.router.add_route("GET", "/{tail:.*}", site.handle)
    async for url in _serve_app(app, unused_tcp_port):
        site.base_url = url
        yield site


@pytest.fixture()
def crawler_config():
    """Build a fast CrawlerConfig for tests."""
    def _make(target_url: str, **overrides) -> CrawlerConfig:
        values = dict(
            target_url=target_url,
            max_depth=3,
            max_workers=5,
            delay_ms=0,
            request_timeout=2.0,
            user_agent="TestAgent/1.0",
        )
        values.update(overrides)
        return CrawlerConfig(**values)
    return _make


@pytest_asyncio.fixture
async def redis_client():
    """In-memory FakeRedis instance."""
    client = FakeRedis(decode_responses=True)
    await client.flushall()
    yield client
    await client.aclose()


@pytest_asyncio.fixture(params=["memory", "redis"])
async def storage(request, redis_client):
    """Every storage backend, so record-store tests run against both."""
    if request.param == "memory":
        backend = MemoryStorageBackend()
    else:
        backend = RedisStorageBackend(redis_client, key_prefix="test")
    await backend.initialize()
    yield backend
