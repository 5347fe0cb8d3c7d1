"""
NKey - Ed25519 identities in NATS nkey encoding

Module: security.nkey
Date: 2025-11-23
Version: 0.2.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - Seed and public key encoding with role prefixes
[2025-11-24 v0.2.0] Seeds handled by the nkeys package
  - Signing keypairs come from nkeys.from_seed()
  - Only public key decoding (issuer verification) stays here

ARCHITECTURE:
An nkey is an Ed25519 key printed as base32 (no padding):
  public key: <prefix byte> <32 byte key> <crc16 little-endian>
The first character of a public key tells the role: N server, A account,
U user, O operator, C cluster.

Signing keys are always loaded from a seed through nkeys. Claims from the
server only carry the issuer public key, so verification decodes that key
and checks the signature with cryptography's Ed25519 implementation.

SECURITY NOTES:
- Checksums are verified before any key material is used
- Seeds are never logged
"""

import base64
import binascii
from typing import Optional

import nkeys
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey


class NKeyError(Exception):
    """Base nkey error"""
    pass


class InvalidSeedError(NKeyError):
    """Seed is malformed or has a bad checksum"""
    pass


class InvalidPublicKeyError(NKeyError):
    """Public key is malformed or has a bad checksum"""
    pass


class InvalidSignatureError(NKeyError):
    """Signature does not verify"""
    pass


PREFIX_BYTE_SEED = 18 << 3       # S
PREFIX_BYTE_SERVER = 13 << 3     # N
PREFIX_BYTE_CLUSTER = 2 << 3     # C
PREFIX_BYTE_OPERATOR = 14 << 3   # O
PREFIX_BYTE_ACCOUNT = 0          # A
PREFIX_BYTE_USER = 20 << 3       # U

PUBLIC_PREFIXES = (
    PREFIX_BYTE_SERVER,
    PREFIX_BYTE_CLUSTER,
    PREFIX_BYTE_OPERATOR,
    PREFIX_BYTE_ACCOUNT,
    PREFIX_BYTE_USER,
)


def crc16(data: bytes) -> int:
    """CRC-16/XMODEM (poly 0x1021, init 0)"""
    crc = 0
    for byte in data:
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


def _decode_checked(src: bytes) -> Optional[bytes]:
    """base32 decode and strip the checksum; None if it does not match"""
    try:
        raw = base64.b32decode(src + b"=" * (-len(src) % 8))
    except (binascii.Error, ValueError):
        return None
    if len(raw) < 3:
        return None
    payload, checksum = raw[:-2], raw[-2:]
    if crc16(payload) != int.from_bytes(checksum, byteorder="little"):
        return None
    return payload


def decode_public_key(public_key) -> tuple:
    """
    Decode an encoded public key

    Args:
        public_key: Encoded public key (str or bytes)

    Returns:
        Tuple (prefix, raw 32-byte key)

    Raises:
        InvalidPublicKeyError: If malformed or checksum mismatch
    """
    if isinstance(public_key, str):
        public_key = public_key.encode()
    if not isinstance(public_key, bytes):
        raise InvalidPublicKeyError("Public key must be str or bytes")

    payload = _decode_checked(public_key)
    if payload is None or len(payload) != 33:
        raise InvalidPublicKeyError("Invalid public key checksum")

    prefix = payload[0]
    if prefix not in PUBLIC_PREFIXES:
        raise InvalidPublicKeyError(f"Invalid public key prefix: {prefix}")
    return prefix, payload[1:]


class NKeyPair:
    """
    Ed25519 keypair (or public key only) with nkey encoding

    Built from a seed it can sign; built from a public key it can only
    verify.
    """

    def __init__(self, public_key: str, keypair: Optional["nkeys.KeyPair"] = None):
        self._prefix, raw = decode_public_key(public_key)
        try:
            self._verify_key = Ed25519PublicKey.from_public_bytes(raw)
        except ValueError as e:
            raise InvalidPublicKeyError(f"Invalid public key: {e}")
        self._public_key = public_key
        self._keypair = keypair

    @classmethod
    def from_seed(cls, seed) -> "NKeyPair":
        """
        Load a signing keypair from an encoded seed

        Raises:
            InvalidSeedError: If malformed, checksum mismatch or not a seed
        """
        if isinstance(seed, str):
            seed = seed.encode()
        if not isinstance(seed, bytes):
            raise InvalidSeedError("Seed must be str or bytes")

        payload = _decode_checked(seed)
        if payload is None or len(payload) != 34:
            raise InvalidSeedError("Invalid seed checksum")
        if payload[0] & 248 != PREFIX_BYTE_SEED:
            raise InvalidSeedError("Not a seed")

        try:
            keypair = nkeys.from_seed(seed)
            public_key = keypair.public_key.decode()
        except Exception as e:
            raise InvalidSeedError(f"Invalid seed: {e}")
        return cls(public_key, keypair)

    @classmethod
    def from_public_key(cls, public_key) -> "NKeyPair":
        """Load a verify-only key from an encoded public key"""
        if isinstance(public_key, bytes):
            public_key = public_key.decode("ascii", errors="replace")
        return cls(public_key)

    @property
    def public_key(self) -> str:
        """Encoded public key"""
        return self._public_key

    @property
    def prefix(self) -> int:
        return self._prefix

    @property
    def can_sign(self) -> bool:
        return self._keypair is not None

    def sign(self, data: bytes) -> bytes:
        """
        Sign data

        Raises:
            NKeyError: If this is a public key only
        """
        if self._keypair is None:
            raise NKeyError("Public key only, cannot sign")
        return bytes(self._keypair.sign(data))

    def verify(self, data: bytes, signature: bytes) -> None:
        """
        Verify a signature

        Raises:
            InvalidSignatureError: If the signature does not match
        """
        try:
            self._verify_key.verify(signature, data)
        except (InvalidSignature, TypeError) as e:
            raise InvalidSignatureError(f"Signature verification failed: {e}")

    def __repr__(self) -> str:
        return f"NKeyPair({self._public_key})"


def is_server_key(public_key: str) -> bool:
    """Server public keys start with N"""
    return isinstance(public_key, str) and public_key.startswith("N")
