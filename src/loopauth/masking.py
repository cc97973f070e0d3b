"""Redaction helper for secrets that show up in log and status lines."""

from __future__ import annotations

from typing import Optional


def redact(secret: Optional[str], visible: int = 4) -> str:
    """Return a log-safe rendering of *secret*.

    Only the first *visible* characters and the total length are kept, e.g.
    ``"eyJh...(812 chars)"``. Values too short to hide anything are fully
    masked.

    Example::

        >>> redact("abcdefghijklmnop")
        'abcd...(16 chars)'
        >>> redact(None)
        '<none>'
    """
    if secret is None:
        return "<none>"
    if len(secret) <= visible * 2:
        return "*" * len(secret)
    return f"{secret[:visible]}...({len(secret)} chars)"
