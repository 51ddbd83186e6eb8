"""
Classification of remote error text.

The remote store reports failures as free text. This is the one place
that turns that text into an ErrorKind; nothing else in the package
inspects error strings.
"""

from __future__ import annotations

import re
from enum import Enum


class ErrorKind(Enum):
    """Failure classes the caller must tell apart."""

    TRANSIENT = "transient"
    POLICY_DENIED = "policy_denied"
    SCHEMA_MISMATCH = "schema_mismatch"

    @property
    def requires_operator(self) -> bool:
        """Whether only an administrator (not a retry) can resolve it."""
        return self is not ErrorKind.TRANSIENT


_POLICY_PATTERNS = (
    re.compile(r"security policy"),
    re.compile(r"\brls\b"),
    re.compile(r"permission denied"),
)

_SCHEMA_PATTERNS = (
    re.compile(r'column "[^"]*"( of relation "[^"]*")? does not exist'),
    re.compile(r"schema cache"),
    re.compile(r"scheme cache"),
    re.compile(r"could not find the '[^']*' column"),
)


def classify_remote_error(text: str | None) -> ErrorKind:
    """Map raw remote error text to an ErrorKind.

    Example:
        >>> classify_remote_error('new row violates row-level security policy for table "fees"')
        <ErrorKind.POLICY_DENIED: 'policy_denied'>
        >>> classify_remote_error("connection reset by peer")
        <ErrorKind.TRANSIENT: 'transient'>
    """
    if not text:
        return ErrorKind.TRANSIENT
    lowered = text.lower()
    if any(p.search(lowered) for p in _POLICY_PATTERNS):
        return ErrorKind.POLICY_DENIED
    if any(p.search(lowered) for p in _SCHEMA_PATTERNS):
        return ErrorKind.SCHEMA_MISMATCH
    return ErrorKind.TRANSIENT
