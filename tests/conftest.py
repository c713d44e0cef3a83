import io
import zipfile

import httpx
import pytest
import pytest_asyncio

from artifact.fetcher import HTTPFetcher


def make_jar(size: int = 120_000) -> bytes:
    """Bytes that start with the PK signature and are exactly ``size`` long."""
    body = b'PK\x03\x04' + bytes(range(256)) * (size // 256 + 1)
    return body[:size]


def make_html(size: int = 300) -> bytes:
    page = b'<html><head><title>404 Not Found</title></head><body>' + b'x' * size
    return page[:size]


def make_zip(members: dict) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w', compression=zipfile.ZIP_DEFLATED) as z:
        for name, data in members.items():
            z.writestr(name, data)
    return buf.getvalue()


def make_patched_zip(name: str, data: bytes, method: int = None, encrypted: bool = False) -> bytes:
    """A single-member stored zip with its header fields rewritten in place."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w', compression=zipfile.ZIP_STORED) as z:
        z.writestr(name, data)
    raw = bytearray(buf.getvalue())
    central = raw.rfind(b'PK\x01\x02')
    if method is not None:
        raw[8:10] = method.to_bytes(2, 'little')
        raw[central + 10:central + 12] = method.to_bytes(2, 'little')
    if encrypted:
        raw[6] |= 0x01
        raw[central + 8] |= 0x01
    return bytes(raw)


class Router:
    """httpx MockTransport handler keyed by URL path; unknown paths are 404."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, path: str, status: int = 200, content: bytes = b'', headers: dict = None):
        self.routes[path] = lambda request: httpx.Response(status, headers=headers, content=content)

    def add_handler(self, path: str, handler):
        self.routes[path] = handler

    def redirect(self, path: str, location: str, status: int = 302):
        self.add(path, status=status, headers={'Location': location})

    def chain(self, prefix: str, hops: int, content: bytes):
        """``prefix/<hops>`` redirects down to ``prefix/0``, which serves ``content``."""
        for n in range(hops, 0, -1):
            self.redirect(f"{prefix}/{n}", f"{prefix}/{n - 1}")
        self.add(f"{prefix}/0", content=content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            return httpx.Response(404, content=b'not found')
        return handler(request)

    def hits(self, path: str) -> int:
        return sum(1 for r in self.calls if r.url.path == path)


@pytest.fixture
def jar_bytes():
    return make_jar()


@pytest.fixture
def html_bytes():
    return make_html()


@pytest.fixture
def router():
    return Router()


@pytest.fixture
def transport(router):
    return httpx.MockTransport(router)


@pytest_asyncio.fixture
async def fetcher(transport):
    f = HTTPFetcher(max_redirects=5, transport=transport)
    yield f
    await f.close()


@pytest.fixture
def destination(tmp_path):
    return tmp_path / 'gradle' / 'wrapper' / 'gradle-wrapper.jar'
