"""Credential redaction for log output."""

from __future__ import annotations

_VISIBLE_CHARS = 6


def mask_token(token: object) -> str:
    """Mask a credential for logging.

    Keeps at most the last six characters. Tokens of six characters or
    fewer are fully masked.

    Args:
        token: Credential value, may be None.

    Returns:
        Masked representation, "(none)" for empty values.
    """
    if token is None:
        return "(none)"
    normalized = str(token).strip()
    if not normalized:
        return "(none)"
    if len(normalized) <= _VISIBLE_CHARS:
        return "*" * len(normalized)
    return f"***…{normalized[-_VISIBLE_CHARS:]}"
