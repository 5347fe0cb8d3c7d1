"""
JWT Handler - NATS signed claims

Module: security.authentication.jwt_handler
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - ed25519-nkey algorithm registered with PyJWT
  - Claims decoding with issuer-key signature verification
  - Signer for user claims and authorization responses

ARCHITECTURE:
NATS claims are ordinary JWTs whose header announces the "ed25519-nkey"
algorithm. The signing key is the issuer's nkey, so decoding verifies the
signature against the public key found in the "iss" claim itself.

Signer wraps the service's account keypair and produces:
  - user claims (session token handed to the connecting client)
  - authorization response claims (reply to the server)

SECURITY NOTES:
- Signature always verified before any claim is trusted
- Only the ed25519-nkey algorithm is accepted
- All times in UTC
"""

import base64
import hashlib
import json
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Any

import jwt
from jwt.algorithms import Algorithm

from ..nkey import NKeyPair, NKeyError
from ...core.constants import (
    NKEY_ALGORITHM,
    CLAIMS_VERSION,
    CLAIM_TYPE_USER,
    CLAIM_TYPE_AUTH_RESPONSE,
)


class ClaimsError(Exception):
    """Base claims error"""
    pass


class ClaimsDecodeError(ClaimsError):
    """Claims could not be decoded or verified"""
    pass


class ClaimsValidationError(ClaimsError):
    """Claims decoded but failed a protocol check"""
    pass


class ClaimsEncodeError(ClaimsError):
    """Claims could not be signed"""
    pass


class NKeyAlgorithm(Algorithm):
    """PyJWT algorithm backed by an nkey"""

    def prepare_key(self, key: Any) -> NKeyPair:
        if isinstance(key, NKeyPair):
            return key
        if isinstance(key, (str, bytes)):
            try:
                return NKeyPair.from_public_key(key)
            except NKeyError as e:
                raise jwt.InvalidKeyError(f"Invalid nkey: {e}")
        raise TypeError("Expecting an NKeyPair or an encoded public key")

    def sign(self, msg: bytes, key: NKeyPair) -> bytes:
        return key.sign(msg)

    def verify(self, msg: bytes, key: NKeyPair, sig: bytes) -> bool:
        try:
            key.verify(msg, sig)
        except NKeyError:
            return False
        return True

    @staticmethod
    def to_jwk(key_obj, as_dict: bool = False):
        raise NotImplementedError("nkeys have no JWK representation")

    @staticmethod
    def from_jwk(jwk):
        raise NotImplementedError("nkeys have no JWK representation")


try:
    jwt.get_algorithm_by_name(NKEY_ALGORITHM)
except NotImplementedError:
    jwt.register_algorithm(NKEY_ALGORITHM, NKeyAlgorithm())


def decode_claims(token: str) -> Dict[str, Any]:
    """
    Decode claims and verify them against their own issuer

    Args:
        token: Encoded JWT

    Returns:
        Verified payload dict

    Raises:
        ClaimsDecodeError: If malformed, not nkey-signed or bad signature
    """
    if not token or not isinstance(token, str):
        raise ClaimsDecodeError("Token must be non-empty string")

    try:
        header = jwt.get_unverified_header(token)
        unverified = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise ClaimsDecodeError(f"Decode error: {e}")

    if header.get("alg") != NKEY_ALGORITHM:
        raise ClaimsDecodeError(f"Unexpected algorithm: {header.get('alg')!r}")

    issuer = unverified.get("iss")
    if not issuer or not isinstance(issuer, str):
        raise ClaimsDecodeError("Missing issuer")

    try:
        issuer_key = NKeyPair.from_public_key(issuer)
    except NKeyError as e:
        raise ClaimsDecodeError(f"Invalid issuer {issuer!r}: {e}")

    try:
        return jwt.decode(
            token,
            issuer_key,
            algorithms=[NKEY_ALGORITHM],
            options={"verify_aud": False},
        )
    except jwt.ExpiredSignatureError as e:
        raise ClaimsDecodeError(f"Claims expired: {e}")
    except jwt.InvalidSignatureError as e:
        raise ClaimsDecodeError(f"Invalid signature: {e}")
    except jwt.PyJWTError as e:
        raise ClaimsDecodeError(f"Invalid claims: {e}")


def _claims_hash(payload: Dict[str, Any]) -> str:
    data = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()
    digest = hashlib.sha256(data).digest()
    return base64.b32encode(digest).decode().rstrip("=")


class Signer:
    """
    Signs user and authorization-response claims

    Read-only after construction, safe to share between concurrent
    handler invocations.
    """

    def __init__(self, keypair: NKeyPair):
        """
        Initialize signer

        Args:
            keypair: Signing keypair (account nkey)

        Raises:
            ValueError: If keypair cannot sign
        """
        if not keypair.can_sign:
            raise ValueError("Signer requires a keypair with a seed")

        self.logger = logging.getLogger("security.signer")
        self.keypair = keypair

        self.logger.info(f"Signer initialized (issuer={keypair.public_key})")

    @classmethod
    def from_seed(cls, seed: str) -> "Signer":
        """
        Build a signer from an encoded seed

        Raises:
            InvalidSeedError: If seed is invalid
        """
        return cls(NKeyPair.from_seed(seed))

    @property
    def issuer(self) -> str:
        return self.keypair.public_key

    def encode(self, subject: str, audience: str, nats: Dict[str, Any]) -> str:
        """
        Sign a claims set

        Args:
            subject: "sub" claim
            audience: "aud" claim
            nats: NATS-specific section

        Returns:
            Encoded JWT

        Raises:
            ClaimsEncodeError: If signing fails
        """
        payload = {
            "aud": audience,
            "iat": int(datetime.now(timezone.utc).timestamp()),
            "iss": self.issuer,
            "sub": subject,
            "nats": nats,
        }
        payload["jti"] = _claims_hash(payload)

        try:
            return jwt.encode(payload, self.keypair, algorithm=NKEY_ALGORITHM)
        except (jwt.PyJWTError, NKeyError, TypeError, ValueError) as e:
            raise ClaimsEncodeError(f"Cannot sign claims: {e}")

    def encode_user_claims(self, user_nkey: str, audience: str) -> str:
        """
        Sign the session token for a connecting user

        Args:
            user_nkey: User public key (subject)
            audience: Account the user is placed in

        Returns:
            Encoded user JWT
        """
        nats = {
            "pub": {},
            "sub": {},
            "subs": -1,
            "data": -1,
            "payload": -1,
            "type": CLAIM_TYPE_USER,
            "version": CLAIMS_VERSION,
        }
        return self.encode(user_nkey, audience, nats)

    def encode_authorization_response(
        self,
        user_nkey: str,
        server_id: str,
        token: Optional[str] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Sign the reply to an authorization request

        Exactly one of token/error is expected.

        Args:
            user_nkey: User public key (subject)
            server_id: Requesting server (audience)
            token: Signed user JWT on grant
            error: Denial reason on deny

        Returns:
            Encoded response JWT
        """
        nats: Dict[str, Any] = {
            "type": CLAIM_TYPE_AUTH_RESPONSE,
            "version": CLAIMS_VERSION,
        }
        if token:
            nats["jwt"] = token
        if error:
            nats["error"] = error
        return self.encode(user_nkey, server_id, nats)
