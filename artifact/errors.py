"""
Failure types raised while fetching, validating and persisting an artifact
"""
from typing import List, Optional


class ArtifactError(Exception):
    """Base class for every artifact fetch failure."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url

    def __str__(self) -> str:
        return self.message


class TransportError(ArtifactError):
    """Network-level failure: DNS, refused connection, TLS, timeout, truncated stream."""


class HTTPStatusError(ArtifactError):
    def __init__(self, status_code: int, url: Optional[str] = None):
        super().__init__(f"HTTP {status_code}", url=url)
        self.status_code = status_code


class RedirectLoopError(ArtifactError):
    def __init__(self, max_redirects: int, url: Optional[str] = None):
        super().__init__(f"Too many redirects (limit {max_redirects})", url=url)
        self.max_redirects = max_redirects


class ValidationError(ArtifactError):
    """Fetched bytes failed the signature/size/checksum rule."""


class PersistError(ArtifactError):
    """Destination directory or file could not be written or read back."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message, url=url)
        self.outcomes: List = []


class ExhaustedError(ArtifactError):
    """Every candidate failed. ``failures`` holds one outcome per candidate."""

    def __init__(self, failures: List):
        self.failures = list(failures)
        lines = [f"All {len(self.failures)} candidate(s) failed"]
        for outcome in self.failures:
            lines.append(f"  - {outcome.url}: {outcome.reason}")
        super().__init__("\n".join(lines))
