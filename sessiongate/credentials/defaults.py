"""Fresh identity material for an account that has never been paired."""

from __future__ import annotations

import base64
import secrets
from typing import Any

from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)


def generate_key_pair() -> dict[str, bytes]:
    """Generate a Curve25519 key pair as raw 32-byte strings."""
    private_key = x25519.X25519PrivateKey.generate()
    return {
        "private": private_key.private_bytes(
            encoding=Encoding.Raw,
            format=PrivateFormat.Raw,
            encryption_algorithm=NoEncryption(),
        ),
        "public": private_key.public_key().public_bytes(
            encoding=Encoding.Raw, format=PublicFormat.Raw
        ),
    }


def generate_registration_id() -> int:
    return secrets.randbelow(16380) + 1


def init_credentials() -> dict[str, Any]:
    """Build the default ``creds`` record.

    The protocol layer completes registration (signatures, server-assigned
    identity) during pairing and reports it back as credential updates.
    """
    return {
        "noiseKey": generate_key_pair(),
        "pairingEphemeralKeyPair": generate_key_pair(),
        "signedIdentityKey": generate_key_pair(),
        "signedPreKey": {"keyPair": generate_key_pair(), "keyId": 1},
        "registrationId": generate_registration_id(),
        "advSecretKey": base64.b64encode(secrets.token_bytes(32)).decode("ascii"),
        "processedHistoryMessages": [],
        "nextPreKeyId": 1,
        "firstUnuploadedPreKeyId": 1,
        "accountSyncCounter": 0,
        "accountSettings": {"unarchiveChats": False},
        "registered": False,
        "pairingCode": None,
        "me": None,
    }
