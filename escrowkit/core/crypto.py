"""
escrowkit/core/crypto.py

Ed25519 keys for admin deposit authorizations and ledger signing.

An externally-owned signer is identified by its raw public key in hex,
so "who signed" and "which key verifies" are the same string:

    admin = Ed25519KeyManager.generate()
    roles.grant_role(owner, admin.public_key_hex, Role.ADMIN)
    sig = admin.sign(digest)
    Ed25519KeyManager.verify_detached(digest, sig, admin.public_key_hex)

Signatures travel as unpadded base64url text.
"""

import base64
import binascii
from pathlib import Path
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


PUBLIC_KEY_HEX_LENGTH = 64
SIGNATURE_LENGTH = 64
SEED_LENGTH = 32


def is_public_key_hex(value) -> bool:
    """True if value could be an EOA signer identity."""
    if not isinstance(value, str) or len(value) != PUBLIC_KEY_HEX_LENGTH:
        return False
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


def encode_signature(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def decode_signature(text: str) -> Optional[bytes]:
    """Raw signature bytes, or None if text is not a well-formed signature."""
    try:
        raw = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError, TypeError):
        return None
    return raw if len(raw) == SIGNATURE_LENGTH else None


class Ed25519KeyManager:
    """
    One signing identity.

        generate() / from_seed(seed) / load(path)   construction
        public_key_hex                              identity (property)
        sign(data) -> str                           unpadded base64url
        verify_detached(data, sig, hex)             no key material needed
        save(path)                                  PKCS8 PEM, unencrypted
    """

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key_hex = private_key.public_key().public_bytes(
            Encoding.Raw, PublicFormat.Raw
        ).hex()

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_seed(cls, seed: bytes) -> "Ed25519KeyManager":
        """Deterministic key from a 32-byte seed."""
        if len(seed) != SEED_LENGTH:
            raise ValueError(f"seed must be {SEED_LENGTH} bytes, got {len(seed)}")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def load(cls, path: Path) -> "Ed25519KeyManager":
        """Read a PEM private key written by save()."""
        key = load_pem_private_key(Path(path).read_bytes(), password=None)
        if not isinstance(key, Ed25519PrivateKey):
            raise ValueError(f"{path} does not hold an Ed25519 private key")
        return cls(key)

    @property
    def public_key_hex(self) -> str:
        return self._public_key_hex

    def sign(self, data: bytes) -> str:
        """Sign already-canonicalized bytes."""
        return encode_signature(self._private_key.sign(data))

    @staticmethod
    def verify_detached(data: bytes, signature: str, public_key_hex: str) -> bool:
        """False on any malformed input or mismatch; never raises."""
        if not is_public_key_hex(public_key_hex) or not isinstance(signature, str):
            return False
        raw = decode_signature(signature)
        if raw is None:
            return False
        try:
            public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
            public_key.verify(raw, data)
        except (InvalidSignature, ValueError):
            return False
        return True

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self._private_key.private_bytes(
            Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
        ))

    def __repr__(self) -> str:
        return f"Ed25519KeyManager({self._public_key_hex[:16]}...)"
