"""Exceptions raised by the session gateway.

All exceptions inherit from GatewayError so callers can catch any gateway
error in one place. Credential material never appears in messages.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base exception for all gateway errors."""


class NotConnectedError(GatewayError):
    """Raised when a send is requested while the session is not connected."""


class ProtocolClientNotConfigured(GatewayError):
    """Raised when no protocol client factory can be loaded."""


class CredentialStoreError(GatewayError):
    """Raised by storage backends for I/O or serialization failures."""
