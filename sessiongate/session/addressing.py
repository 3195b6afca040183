"""Recipient address normalization."""

from __future__ import annotations

DOMAIN_SEPARATOR = "@"


def normalize_recipient(recipient: str, default_domain: str) -> str:
    """Suffix a bare identifier with *default_domain*; full addresses pass through."""
    recipient = recipient.strip()
    if not recipient:
        raise ValueError("recipient cannot be empty")
    if DOMAIN_SEPARATOR in recipient:
        return recipient
    return f"{recipient}{DOMAIN_SEPARATOR}{default_domain}"
