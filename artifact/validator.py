"""
Artifact validation rules
Decide whether fetched bytes look like the archive we asked for
"""

import hashlib
from pathlib import Path
from typing import Optional

import structlog

logger = structlog.get_logger(__name__)

# ZIP/JAR local file header
ZIP_SIGNATURE = b'PK'
# Anything smaller is an error page or a truncated download
DEFAULT_MIN_SIZE = 10000
PREVIEW_BYTES = 200


class ValidationRule:
    """A predicate over a byte sequence.

    ``check`` returns ``None`` when the bytes pass, otherwise a short reason.
    """

    def check(self, data: bytes) -> Optional[str]:
        raise NotImplementedError

    def __call__(self, data: bytes) -> bool:
        return self.check(data) is None


class SignatureRule(ValidationRule):
    def __init__(self, signature: bytes = ZIP_SIGNATURE):
        if not signature:
            raise ValueError("signature must not be empty")
        self.signature = bytes(signature)

    def check(self, data: bytes) -> Optional[str]:
        if data[:len(self.signature)] == self.signature:
            return None
        return (f"Bad signature: expected {self.signature.hex()}, "
                f"got {data[:len(self.signature)].hex() or 'empty'}")

    def __repr__(self):
        return f"SignatureRule({self.signature!r})"


class MinSizeRule(ValidationRule):
    """Length must exceed ``min_size`` bytes."""

    def __init__(self, min_size: int = DEFAULT_MIN_SIZE):
        if min_size < 0:
            raise ValueError("min_size must be >= 0")
        self.min_size = min_size

    def check(self, data: bytes) -> Optional[str]:
        if len(data) > self.min_size:
            return None
        return f"Too small: {len(data)} bytes (minimum: more than {self.min_size})"

    def __repr__(self):
        return f"MinSizeRule({self.min_size})"


class Sha256Rule(ValidationRule):
    def __init__(self, expected: str):
        expected = expected.strip().lower()
        if len(expected) != 64 or any(c not in '0123456789abcdef' for c in expected):
            raise ValueError(f"Not a SHA-256 hex digest: {expected!r}")
        self.expected = expected

    def check(self, data: bytes) -> Optional[str]:
        actual = hashlib.sha256(data).hexdigest()
        if actual == self.expected:
            return None
        return f"Checksum mismatch: expected sha256 {self.expected}, got {actual}"

    def __repr__(self):
        return f"Sha256Rule({self.expected[:12]}...)"


class AllOf(ValidationRule):
    """Passes when every rule passes; reports the first failure."""

    def __init__(self, *rules: ValidationRule):
        self.rules = list(rules)

    def check(self, data: bytes) -> Optional[str]:
        for rule in self.rules:
            reason = rule.check(data)
            if reason is not None:
                return reason
        return None

    def __repr__(self):
        return f"AllOf({', '.join(repr(r) for r in self.rules)})"


class AnyOf(ValidationRule):
    """Passes when at least one rule passes."""

    def __init__(self, *rules: ValidationRule):
        if not rules:
            raise ValueError("AnyOf needs at least one rule")
        self.rules = list(rules)

    def check(self, data: bytes) -> Optional[str]:
        reasons = []
        for rule in self.rules:
            reason = rule.check(data)
            if reason is None:
                return None
            reasons.append(reason)
        return " and ".join(reasons)

    def __repr__(self):
        return f"AnyOf({', '.join(repr(r) for r in self.rules)})"


def build_rule(min_size: int = DEFAULT_MIN_SIZE,
               require_signature: bool = True,
               sha256: str = None,
               signature: bytes = ZIP_SIGNATURE) -> ValidationRule:
    """Assemble the strict rule from CLI/config options."""
    rules = []
    if require_signature:
        rules.append(SignatureRule(signature))
    rules.append(MinSizeRule(min_size))
    if sha256:
        rules.append(Sha256Rule(sha256))
    return AllOf(*rules)


def inspect_artifact(path, rule: ValidationRule = None) -> dict:
    """
    Report on an artifact already on disk

    Returns:
        dict: {
            "exists": bool,
            "size": int,
            "head_hex": first 16 bytes as hex,
            "signature_ok": bool,
            "passed": bool,
            "reason": failure reason or None,
            "preview": leading text when the signature is wrong
        }
    """
    path = Path(path)
    rule = rule or build_rule()
    if not path.is_file():
        logger.warning("artifact_missing", path=str(path))
        return {
            "exists": False,
            "size": 0,
            "head_hex": "",
            "signature_ok": False,
            "passed": False,
            "reason": "File does not exist",
            "preview": None,
        }

    data = path.read_bytes()
    signature_ok = data[:len(ZIP_SIGNATURE)] == ZIP_SIGNATURE
    reason = rule.check(data)

    report = {
        "exists": True,
        "size": len(data),
        "head_hex": data[:16].hex(),
        "signature_ok": signature_ok,
        "passed": reason is None,
        "reason": reason,
        "preview": None,
    }
    if not signature_ok:
        report["preview"] = data[:PREVIEW_BYTES].decode('utf-8', errors='replace')

    if report["passed"]:
        logger.info("artifact_valid", path=str(path), size=len(data))
    else:
        logger.warning("artifact_invalid", path=str(path), size=len(data), reason=reason)
    return report
