"""
Authentication module - Credentials and signed claims

Provides:
- CredentialTable: Managed accounts with bcrypt-hashed passwords
- authenticate: Pure (table, username, password) -> account lookup
- authenticate_async: authenticate in the thread pool
- Signer: Signs user and authorization-response claims
- decode_claims: Decodes and verifies nkey-signed claims
"""

from .jwt_handler import (
    Signer,
    NKeyAlgorithm,
    decode_claims,
    ClaimsError,
    ClaimsDecodeError,
    ClaimsValidationError,
    ClaimsEncodeError,
)
from .credential_table import (
    CredentialTable,
    authenticate,
    authenticate_async,
    load_accounts,
)

__all__ = [
    "Signer",
    "NKeyAlgorithm",
    "decode_claims",
    "ClaimsError",
    "ClaimsDecodeError",
    "ClaimsValidationError",
    "ClaimsEncodeError",
    "CredentialTable",
    "authenticate",
    "authenticate_async",
    "load_accounts",
]
