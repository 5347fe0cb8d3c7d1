"""
Protocol events - Authorization requests and disconnect notifications

Module: protocol.events
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - AuthorizationRequest from verified claims
  - DisconnectEvent from the server's JSON advisory

ARCHITECTURE:
Plain dataclasses with from_claims()/from_dict() constructors. Only the
fields the handlers act on are required; everything else defaults so
that newer server versions adding fields do not break decoding.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..security.authentication.jwt_handler import ClaimsDecodeError


@dataclass
class ServerID:
    """Identity of the requesting server"""
    name: str = ""
    host: str = ""
    id: str = ""
    version: str = ""
    cluster: str = ""


@dataclass
class ConnectOptions:
    """Options the client sent in its CONNECT"""
    username: str = ""
    password: str = ""
    name: str = ""
    lang: str = ""
    version: str = ""


@dataclass
class ClientInformation:
    """What the server knows about the connecting client"""
    id: int = 0
    name: str = ""
    host: str = ""
    user: str = ""
    kind: str = ""
    type: str = ""


@dataclass
class AuthorizationRequest:
    """Decoded auth callout request"""
    issuer: str
    audience: str
    server: ServerID
    user_nkey: str
    connect_options: ConnectOptions
    client_info: ClientInformation

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "AuthorizationRequest":
        """
        Build from a verified claims payload

        Raises:
            ClaimsDecodeError: If the nats section is missing or malformed
        """
        nats = claims.get("nats")
        if not isinstance(nats, dict):
            raise ClaimsDecodeError("Missing nats section")

        server = nats.get("server_id") or {}
        opts = nats.get("connect_opts") or {}
        info = nats.get("client_info") or {}
        if not all(isinstance(part, dict) for part in (server, opts, info)):
            raise ClaimsDecodeError("Malformed nats section")

        try:
            client_id = int(info.get("id") or 0)
        except (TypeError, ValueError):
            raise ClaimsDecodeError(f"Invalid client id: {info.get('id')!r}")

        aud = claims.get("aud", "")
        if isinstance(aud, list):
            aud = aud[0] if len(aud) == 1 else ""

        return cls(
            issuer=claims.get("iss", ""),
            audience=aud or "",
            server=ServerID(
                name=server.get("name", ""),
                host=server.get("host", ""),
                id=server.get("id", ""),
                version=server.get("version", ""),
                cluster=server.get("cluster", ""),
            ),
            user_nkey=nats.get("user_nkey", ""),
            connect_options=ConnectOptions(
                username=opts.get("user") or "",
                password=opts.get("pass") or "",
                name=opts.get("name") or "",
                lang=opts.get("lang") or "",
                version=opts.get("version") or "",
            ),
            client_info=ClientInformation(
                id=client_id,
                name=info.get("name") or "",
                host=info.get("host") or "",
                user=info.get("user") or "",
                kind=info.get("kind") or "",
                type=info.get("type") or "",
            ),
        )

    def __str__(self) -> str:
        return (
            f"AuthorizationRequest(server={self.server.id}, "
            f"user={self.connect_options.username!r}, "
            f"client={self.client_info.name!r}#{self.client_info.id})"
        )


@dataclass
class DisconnectServer:
    name: str = ""
    host: str = ""
    id: str = ""
    ver: str = ""
    jetstream: bool = False
    flags: int = 0
    seq: int = 0
    time: str = ""


@dataclass
class DisconnectClient:
    start: str = ""
    host: str = ""
    id: int = 0
    acc: str = ""
    name: str = ""
    lang: str = ""
    ver: str = ""
    rtt: int = 0
    stop: str = ""
    issuer_key: str = ""
    kind: str = ""
    client_type: str = ""


@dataclass
class DataStats:
    msgs: int = 0
    bytes: int = 0


@dataclass
class DisconnectEvent:
    """Server advisory published when a client disconnects"""
    type: str = ""
    id: str = ""
    timestamp: str = ""
    server: DisconnectServer = field(default_factory=DisconnectServer)
    client: DisconnectClient = field(default_factory=DisconnectClient)
    sent: DataStats = field(default_factory=DataStats)
    received: DataStats = field(default_factory=DataStats)
    reason: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DisconnectEvent":
        """
        Build from the decoded JSON advisory

        Raises:
            ValueError: If the structure is invalid
        """
        if not isinstance(data, dict):
            raise ValueError("Disconnect event must be a JSON object")

        def section(name: str, kind):
            raw = data.get(name) or {}
            if not isinstance(raw, dict):
                raise ValueError(f"Invalid {name!r} section")
            known = {k: v for k, v in raw.items() if k in kind.__dataclass_fields__}
            return kind(**known)

        event = cls(
            type=data.get("type", ""),
            id=data.get("id", ""),
            timestamp=data.get("timestamp", ""),
            server=section("server", DisconnectServer),
            client=section("client", DisconnectClient),
            sent=section("sent", DataStats),
            received=section("received", DataStats),
            reason=data.get("reason", ""),
        )
        try:
            event.client.id = int(event.client.id)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid client id: {event.client.id!r}")
        return event

    @classmethod
    def from_json(cls, payload: bytes) -> "DisconnectEvent":
        """
        Decode raw message bytes

        Raises:
            ValueError: If not valid JSON or invalid structure
        """
        return cls.from_dict(json.loads(payload))

    def __str__(self) -> str:
        return (
            f"DisconnectEvent(acc={self.client.acc!r}, "
            f"client={self.client.name!r}#{self.client.id}, reason={self.reason!r})"
        )
