"""
Retrieve the raw bytes of a single candidate source.

Network locations go through an httpx client that follows redirects itself;
``file://`` URLs and bare paths are read from the local filesystem.
"""

import time
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote, urlparse

import httpx
import structlog

from .errors import HTTPStatusError, RedirectLoopError, TransportError

logger = structlog.get_logger(__name__)

DEFAULT_USER_AGENT = 'Mozilla/5.0 (compatible; ArtifactFetcher/1.0)'
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_MAX_RESPONSE_SIZE = 100 * 1024 * 1024  # 100MB


class FetchResult:
    def __init__(
        self,
        url: str,
        status_code: int,
        content: bytes = b'',
        headers: Dict[str, str] = None,
        final_url: str = None,
        redirects: int = 0,
        fetch_time: float = 0.0,
    ):
        """Initialize a FetchResult with the retrieved body and response metadata."""
        self.url = url
        self.status_code = status_code
        self.content = content
        self.headers = headers or {}
        self.final_url = final_url or url
        self.redirects = redirects
        self.fetch_time = fetch_time
        self.valid: Optional[bool] = None

    @property
    def success(self) -> bool:
        """Check if the retrieval ended with a 2xx status code."""
        return 200 <= self.status_code < 300

    @property
    def size(self) -> int:
        """Get the size of the retrieved content in bytes."""
        return len(self.content)

    @property
    def content_type(self) -> str:
        """Lower-cased Content-Type header, empty for local files."""
        return self.headers.get('content-type', '').lower()


def is_local_source(url: str) -> bool:
    """True for ``file://`` URLs and plain filesystem paths."""
    scheme = urlparse(url).scheme.lower()
    # single-letter schemes are Windows drive letters
    return scheme == 'file' or scheme == '' or len(scheme) == 1


class HTTPFetcher:
    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = DEFAULT_TIMEOUT,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        max_response_size: int = DEFAULT_MAX_RESPONSE_SIZE,
        transport: httpx.AsyncBaseTransport = None,
    ):
        """Initialize the fetcher and its underlying httpx client."""
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.max_response_size = max_response_size

        headers = {
            'User-Agent': self.user_agent,
            'Accept': '*/*',
        }
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            max_redirects=self.max_redirects,
            headers=headers,
            transport=transport,
        )

    async def __aenter__(self) -> 'HTTPFetcher':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self._client.aclose()

    async def fetch(self, url: str) -> FetchResult:
        """Fetch a candidate and return its full body.

        Raises:
            TransportError: connection, timeout, protocol or size failure
            HTTPStatusError: the final response was not 2xx
            RedirectLoopError: more than ``max_redirects`` hops
        """
        if is_local_source(url):
            return self._read_local(url)

        start_time = time.time()
        try:
            async with self._client.stream('GET', url) as response:
                redirects = len(response.history)
                if not 200 <= response.status_code < 300:
                    raise HTTPStatusError(response.status_code, url=url)

                content_length = response.headers.get('content-length')
                if content_length and content_length.isdigit() and int(content_length) > self.max_response_size:
                    raise TransportError(
                        f"Content too large: {content_length} bytes > {self.max_response_size} bytes",
                        url=url,
                    )

                chunks = []
                received = 0
                async for chunk in response.aiter_bytes(chunk_size=8192):
                    received += len(chunk)
                    if received > self.max_response_size:
                        raise TransportError(
                            f"Content too large: more than {self.max_response_size} bytes",
                            url=url,
                        )
                    chunks.append(chunk)

                result = FetchResult(
                    url=url,
                    status_code=response.status_code,
                    content=b''.join(chunks),
                    headers=dict(response.headers),
                    final_url=str(response.url),
                    redirects=redirects,
                    fetch_time=time.time() - start_time,
                )

        except httpx.TooManyRedirects:
            raise RedirectLoopError(self.max_redirects, url=url)

        except httpx.TimeoutException as e:
            raise TransportError(f"Timeout after {self.timeout}s: {e}", url=url)

        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}", url=url)

        except (httpx.RequestError, httpx.InvalidURL) as e:
            raise TransportError(f"{type(e).__name__}: {e}", url=url)

        logger.debug("fetch_complete",
                     url=url,
                     final_url=result.final_url,
                     redirects=result.redirects,
                     size=result.size,
                     fetch_time=round(result.fetch_time, 3))
        return result

    def _read_local(self, url: str) -> FetchResult:
        """Read a ``file://`` URL or plain path into a FetchResult."""
        parsed = urlparse(url)
        path = Path(unquote(parsed.path)) if parsed.scheme.lower() == 'file' else Path(url)

        start_time = time.time()
        try:
            size = path.stat().st_size
            if size > self.max_response_size:
                raise TransportError(
                    f"Content too large: {size} bytes > {self.max_response_size} bytes",
                    url=url,
                )
            content = path.read_bytes()
        except OSError as e:
            raise TransportError(f"Cannot read {path}: {e.strerror or e}", url=url)

        return FetchResult(
            url=url,
            status_code=200,
            content=content,
            final_url=path.resolve().as_uri(),
            fetch_time=time.time() - start_time,
        )


def create_fetcher(fetcher_config: dict = None, transport: httpx.AsyncBaseTransport = None) -> HTTPFetcher:
    """Create an HTTPFetcher from the ``fetcher`` config section."""
    fetcher_config = fetcher_config or {}
    return HTTPFetcher(
        user_agent=fetcher_config.get('user_agent', DEFAULT_USER_AGENT),
        timeout=float(fetcher_config.get('timeout', DEFAULT_TIMEOUT)),
        max_redirects=int(fetcher_config.get('max_redirects', DEFAULT_MAX_REDIRECTS)),
        max_response_size=int(fetcher_config.get('max_response_size', DEFAULT_MAX_RESPONSE_SIZE)),
        transport=transport,
    )
