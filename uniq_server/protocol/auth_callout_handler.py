"""
Auth Callout Handler - Authenticate and reserve client names

Module: protocol.auth_callout_handler
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - Request envelope validation (signature, issuer, audience)
  - Credential check against the CredentialTable
  - Name reservation through the ReservationStore
  - Signed grant/deny response published as reply

ARCHITECTURE:
handle(message) runs, for one request:
  validate -> decide -> sign -> respond

decide() reduces the request to one of three outcomes:
  AUTH_FAILED    -> deny "Authentication Failed"
  NAME_CONFLICT  -> deny "Unique Client Name Required"
  GRANTED        -> user token with audience = matched account
                    ($G when no username was given)

Authentication is always checked before the store is touched, so wrong
credentials never create a reservation.

SECURITY NOTES:
- Malformed or foreign requests get no reply (the server times out)
- Passwords are never logged
- Every per-request failure is contained; the subscription keeps running
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from .events import AuthorizationRequest
from ..core.constants import (
    AUTH_REQUEST_AUDIENCE,
    GLOBAL_ACCOUNT,
    ERROR_AUTHENTICATION_FAILED,
    ERROR_UNIQUE_NAME_REQUIRED,
)
from ..persistence.reservation_store import (
    ReservationStore,
    ReservationStoreError,
    reservation_key,
)
from ..security.authentication import (
    CredentialTable,
    Signer,
    authenticate_async,
    decode_claims,
    ClaimsError,
    ClaimsValidationError,
)
from ..security.nkey import is_server_key
from ..transport.base_transport import BusMessage, TransportError


class Decision(enum.Enum):
    """Outcome of an authorization request"""
    AUTH_FAILED = "auth_failed"
    NAME_CONFLICT = "name_conflict"
    GRANTED = "granted"


@dataclass(frozen=True)
class AuthOutcome:
    """Decision plus the account a grant is scoped to"""
    decision: Decision
    account: Optional[str] = None

    @classmethod
    def auth_failed(cls) -> "AuthOutcome":
        return cls(Decision.AUTH_FAILED)

    @classmethod
    def name_conflict(cls) -> "AuthOutcome":
        return cls(Decision.NAME_CONFLICT)

    @classmethod
    def granted(cls, account: str) -> "AuthOutcome":
        return cls(Decision.GRANTED, account)

    @property
    def error(self) -> Optional[str]:
        """Denial reason, None on grant"""
        if self.decision is Decision.AUTH_FAILED:
            return ERROR_AUTHENTICATION_FAILED
        if self.decision is Decision.NAME_CONFLICT:
            return ERROR_UNIQUE_NAME_REQUIRED
        return None


@dataclass
class HandlerStats:
    """Process-local counters"""
    received: int = 0
    granted: int = 0
    denied: Dict[str, int] = field(default_factory=dict)
    dropped: int = 0

    def to_dict(self) -> Dict:
        return {
            "received": self.received,
            "granted": self.granted,
            "denied": dict(self.denied),
            "dropped": self.dropped,
        }


def validate_request(request: AuthorizationRequest) -> None:
    """
    Protocol checks on a decoded request

    Raises:
        ClaimsValidationError: If the request is not from a server, is not
            self-consistent about its issuer, or has the wrong audience
    """
    if not is_server_key(request.issuer):
        raise ClaimsValidationError(f"bad request: expected server: {request.issuer!r}")
    if request.issuer != request.server.id:
        raise ClaimsValidationError(
            f"bad request: issuers don't match: {request.issuer!r} != {request.server.id!r}"
        )
    if request.audience != AUTH_REQUEST_AUDIENCE:
        raise ClaimsValidationError(f"bad request: unexpected audience: {request.audience!r}")


class AuthCalloutHandler:
    """
    Handles $SYS.REQ.USER.AUTH requests

    Stateless apart from counters: the store is the only shared mutable
    resource and the credential table and signer are read-only, so any
    number of invocations may run concurrently.
    """

    def __init__(
        self,
        credentials: CredentialTable,
        store: ReservationStore,
        signer: Signer,
    ):
        """
        Initialize handler

        Args:
            credentials: Managed accounts
            store: Name reservations
            signer: Response signer
        """
        self.logger = logging.getLogger("protocol.auth_callout")
        self.credentials = credentials
        self.store = store
        self.signer = signer
        self.stats = HandlerStats()

    async def __call__(self, message: BusMessage) -> None:
        await self.handle(message)

    async def handle(self, message: BusMessage) -> None:
        """
        Process one request; errors are logged, never raised

        Args:
            message: Raw request (payload is the request JWT)
        """
        self.stats.received += 1
        try:
            await self._handle(message)
        except ClaimsError as e:
            self.stats.dropped += 1
            self.logger.warning(f"Authentication: {e}")
        except (ReservationStoreError, TransportError) as e:
            self.stats.dropped += 1
            self.logger.error(f"Authentication: {e}")
        except Exception as e:
            self.stats.dropped += 1
            self.logger.error(f"Authentication: unexpected error: {e}", exc_info=True)

    async def _handle(self, message: BusMessage) -> None:
        request = self.decode_request(message.data)
        self.logger.info(str(request))

        outcome = await self.decide(request)
        try:
            response = self.build_response(request, outcome)
            await message.respond(response.encode())
        except Exception:
            if outcome.decision is Decision.GRANTED and request.connect_options.username:
                await self._rollback(request)
            raise

        if outcome.decision is Decision.GRANTED:
            self.stats.granted += 1
        else:
            reason = outcome.error
            self.stats.denied[reason] = self.stats.denied.get(reason, 0) + 1
        self.logger.info(
            f"{outcome.decision.value}: client={request.client_info.name!r}"
            f"#{request.client_info.id} account={outcome.account!r}"
        )

    async def _rollback(self, request: AuthorizationRequest) -> None:
        # The client never gets the grant, so no disconnect will free the name
        key = reservation_key(request.client_info.name)
        try:
            await self.store.release_if_owner(key, request.client_info.id)
        except ReservationStoreError as e:
            self.logger.error(f"Rollback of {key!r} failed: {e}")

    def decode_request(self, data: bytes) -> AuthorizationRequest:
        """
        Decode and validate the request envelope

        Raises:
            ClaimsDecodeError: If the envelope cannot be decoded/verified
            ClaimsValidationError: If a protocol check fails
        """
        if isinstance(data, bytes):
            data = data.decode("utf-8", errors="replace")
        claims = decode_claims(data.strip())
        request = AuthorizationRequest.from_claims(claims)
        validate_request(request)
        return request

    async def decide(self, request: AuthorizationRequest) -> AuthOutcome:
        """
        Authenticate, then reserve the client name

        Raises:
            ReservationStoreError: If the store cannot be reached
        """
        username = request.connect_options.username
        if not username:
            return AuthOutcome.granted(GLOBAL_ACCOUNT)

        account = await authenticate_async(
            self.credentials, username, request.connect_options.password
        )
        if account is None:
            return AuthOutcome.auth_failed()

        key = reservation_key(request.client_info.name)
        if not await self.store.claim(key, request.client_info.id):
            return AuthOutcome.name_conflict()

        return AuthOutcome.granted(account)

    def build_response(self, request: AuthorizationRequest, outcome: AuthOutcome) -> str:
        """
        Sign the response for an outcome

        Raises:
            ClaimsEncodeError: If signing fails
        """
        if outcome.decision is Decision.GRANTED:
            token = self.signer.encode_user_claims(request.user_nkey, outcome.account)
            return self.signer.encode_authorization_response(
                request.user_nkey, request.server.id, token=token
            )
        return self.signer.encode_authorization_response(
            request.user_nkey, request.server.id, error=outcome.error
        )
