"""
Try candidate sources in order, validate what comes back, persist the first good one
"""

from typing import Iterable, List, Optional

import structlog

from .archive import extract_member
from .errors import (
    ArtifactError,
    ExhaustedError,
    HTTPStatusError,
    PersistError,
    RedirectLoopError,
    TransportError,
    ValidationError,
)
from .fetcher import FetchResult, HTTPFetcher
from .storage import ArtifactStorage
from .validator import DEFAULT_MIN_SIZE, MinSizeRule, ValidationRule, build_rule

logger = structlog.get_logger(__name__)

CANDIDATE_ERRORS = (TransportError, HTTPStatusError, RedirectLoopError, ValidationError)


class Candidate:
    """One source location, optionally naming a member inside a zip."""

    def __init__(self, url: str, member: str = None):
        if not url:
            raise ValueError("Candidate url must not be empty")
        self.url = url
        self.member = member

    @classmethod
    def parse(cls, value) -> 'Candidate':
        """Build a Candidate from a string, a mapping, or an existing Candidate."""
        if isinstance(value, Candidate):
            return value
        if isinstance(value, str):
            return cls(value)
        if isinstance(value, dict):
            return cls(value.get('url'), member=value.get('member'))
        raise TypeError(f"Unsupported candidate: {value!r}")

    def __repr__(self):
        if self.member:
            return f"Candidate({self.url!r}, member={self.member!r})"
        return f"Candidate({self.url!r})"


class CandidateOutcome:
    def __init__(self, url: str, ok: bool, size: int = 0, error: ArtifactError = None):
        self.url = url
        self.ok = ok
        self.size = size
        self.error = error

    @property
    def reason(self) -> str:
        if self.error is None:
            return "ok"
        return f"{type(self.error).__name__}: {self.error}"

    def __repr__(self):
        return f"CandidateOutcome({self.url!r}, ok={self.ok}, {self.reason})"


class FetchReport:
    def __init__(self, destination, outcomes: List[CandidateOutcome],
                 size: int = 0, success: bool = False, verified: bool = False,
                 source: str = None):
        self.destination = destination
        self.outcomes = outcomes
        self.size = size
        self.success = success
        self.verified = verified
        self.source = source

    @property
    def failures(self) -> List[CandidateOutcome]:
        return [o for o in self.outcomes if not o.ok]

    def raise_for_status(self) -> 'FetchReport':
        """Escalate an exhausted fetch into an ExhaustedError."""
        if not self.success:
            raise ExhaustedError(self.failures)
        return self


class ArtifactFetcher:
    """Fetch-validate-persist loop over an ordered list of candidates."""

    def __init__(self, fetcher: HTTPFetcher, storage: ArtifactStorage,
                 rule: ValidationRule = None, best_effort: bool = False,
                 fallback_rule: ValidationRule = None):
        self.fetcher = fetcher
        self.storage = storage
        self.rule = rule or build_rule()
        self.best_effort = best_effort
        if fallback_rule is None:
            min_size = _min_size_of(self.rule)
            fallback_rule = MinSizeRule(DEFAULT_MIN_SIZE if min_size is None else min_size)
        self.fallback_rule = fallback_rule

    async def fetch(self, candidates: Iterable) -> FetchReport:
        """Try each candidate in turn.

        Returns a FetchReport; an exhausted candidate list is reported, not raised.
        PersistError propagates and ends the run.
        """
        candidates = [Candidate.parse(c) for c in candidates]
        if not candidates:
            raise ValueError("At least one candidate source is required")

        outcomes: List[CandidateOutcome] = []
        degraded: Optional[tuple] = None

        for candidate in candidates:
            logger.info("trying_candidate", url=candidate.url, member=candidate.member)
            try:
                result = await self._retrieve(candidate)
            except CANDIDATE_ERRORS as e:
                logger.warning("candidate_failed", url=candidate.url,
                               error=type(e).__name__, reason=str(e))
                outcomes.append(CandidateOutcome(candidate.url, ok=False, error=e))
                continue

            data = result.content
            reason = self.rule.check(data)
            result.valid = reason is None
            if reason is not None:
                error = ValidationError(reason, url=candidate.url)
                logger.warning("candidate_invalid", url=candidate.url, size=len(data),
                               content_type=result.content_type, reason=reason)
                outcomes.append(CandidateOutcome(candidate.url, ok=False, size=len(data), error=error))
                if self.best_effort and self.fallback_rule(data):
                    degraded = (candidate, data)
                continue

            size = self._persist(candidate, data, outcomes)
            outcomes.append(CandidateOutcome(candidate.url, ok=True, size=size))
            logger.info("candidate_succeeded", url=candidate.url, size=size,
                        destination=str(self.storage.destination))
            return FetchReport(self.storage.destination, outcomes, size=size,
                               success=True, verified=True, source=candidate.url)

        if degraded is not None:
            candidate, data = degraded
            size = self._persist(candidate, data, outcomes)
            logger.warning("persisted_unverified", url=candidate.url, size=size,
                           destination=str(self.storage.destination))
            return FetchReport(self.storage.destination, outcomes, size=size,
                               success=True, verified=False, source=candidate.url)

        logger.error("all_candidates_failed", count=len(outcomes))
        return FetchReport(self.storage.destination, outcomes)

    async def _retrieve(self, candidate: Candidate) -> FetchResult:
        result = await self.fetcher.fetch(candidate.url)
        logger.info("candidate_downloaded", url=candidate.url, size=result.size,
                    redirects=result.redirects, final_url=result.final_url)
        if candidate.member:
            result.content = extract_member(result.content, candidate.member, url=candidate.url,
                                            max_size=getattr(self.fetcher, 'max_response_size', None))
        return result

    def _persist(self, candidate: Candidate, data: bytes, outcomes: List[CandidateOutcome]) -> int:
        """Write the artifact; a PersistError carries the outcomes gathered so far."""
        try:
            return self.storage.write(data)
        except PersistError as e:
            e.url = candidate.url
            outcomes.append(CandidateOutcome(candidate.url, ok=False, size=len(data), error=e))
            e.outcomes = list(outcomes)
            logger.error("persist_failed", url=candidate.url, reason=str(e),
                         destination=str(self.storage.destination))
            raise


def _min_size_of(rule: ValidationRule) -> Optional[int]:
    """Find the size threshold inside a (possibly composite) rule."""
    if isinstance(rule, MinSizeRule):
        return rule.min_size
    for sub in getattr(rule, 'rules', []):
        size = _min_size_of(sub)
        if size is not None:
            return size
    return None
