"""
Constants for Uniq Server

Module: core.constants
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial constants definition
  - Auth callout protocol constants
  - Bus subjects and queue group
  - Reservation key layout
  - NATS client defaults
  - Development seed and accounts

SECURITY NOTES:
- DEFAULT_SEED and DEFAULT_ACCOUNTS are development values only
- Production deployments must set UNIQ_SEED and UNIQ_ACCOUNTS
"""

from typing import Final, Dict

# ============================================================================
# Server identity
# ============================================================================

SERVER_NAME: Final[str] = "UNIQUER"
SERVER_VERSION: Final[str] = "0.1.0"

# ============================================================================
# Auth callout protocol
# ============================================================================

# Audience of every request the server sends to the callout
AUTH_REQUEST_AUDIENCE: Final[str] = "nats-authorization-request"

# Claim types
CLAIM_TYPE_AUTH_REQUEST: Final[str] = "authorization_request"
CLAIM_TYPE_AUTH_RESPONSE: Final[str] = "authorization_response"
CLAIM_TYPE_USER: Final[str] = "user"
CLAIMS_VERSION: Final[int] = 2

# Signature algorithm advertised in the JWT header
NKEY_ALGORITHM: Final[str] = "ed25519-nkey"

# Global account: audience of tokens that skipped the account lookup
GLOBAL_ACCOUNT: Final[str] = "$G"

# Denial reasons
ERROR_AUTHENTICATION_FAILED: Final[str] = "Authentication Failed"
ERROR_UNIQUE_NAME_REQUIRED: Final[str] = "Unique Client Name Required"

# ============================================================================
# Subjects
# ============================================================================

SUBJECT_AUTH_REQUEST: Final[str] = "$SYS.REQ.USER.AUTH"
SUBJECT_DISCONNECT: Final[str] = "$SYS.ACCOUNT.*.DISCONNECT"
QUEUE_GROUP: Final[str] = "UNIQUER"

# ============================================================================
# Reservation store
# ============================================================================

RESERVATION_KEY_PREFIX: Final[str] = "UNIQUER/"

DEFAULT_REDIS_HOST: Final[str] = "localhost"
DEFAULT_REDIS_PORT: Final[int] = 6379
DEFAULT_REDIS_PROTOCOL: Final[int] = 2

# ============================================================================
# NATS client defaults (same values as the reference Go client)
# ============================================================================

DEFAULT_NATS_URL: Final[str] = "nats://localhost:4222"
DEFAULT_MAX_RECONNECT: Final[int] = 60
DEFAULT_RECONNECT_WAIT: Final[float] = 2.0
DEFAULT_RECONNECT_JITTER: Final[float] = 0.1
DEFAULT_RECONNECT_JITTER_TLS: Final[float] = 1.0
DEFAULT_TIMEOUT: Final[float] = 2.0
DEFAULT_PING_INTERVAL: Final[float] = 120.0
DEFAULT_MAX_PINGS_OUT: Final[int] = 2
DEFAULT_SUB_CHAN_LEN: Final[int] = 64 * 1024
DEFAULT_RECONNECT_BUF_SIZE: Final[int] = 8 * 1024 * 1024  # 8 MB
DEFAULT_DRAIN_TIMEOUT: Final[float] = 30.0
DEFAULT_FLUSHER_TIMEOUT: Final[float] = 60.0

# ============================================================================
# Health endpoint
# ============================================================================

DEFAULT_HEALTH_HOST: Final[str] = "0.0.0.0"
DEFAULT_HEALTH_PORT: Final[int] = 0  # disabled

# ============================================================================
# Development defaults
# ============================================================================

DEFAULT_SEED: Final[str] = "SAAGYA5HIPHPB2NZTTZTF5BGX6YNLGLMXIYPUPNJPIN7Z4QQSTCGT3NFRY"

DEFAULT_ACCOUNTS: Final[Dict[str, Dict[str, str]]] = {
    "APP": {"staff": "password"},
}


def get_default_config() -> dict:
    """
    Get default service configuration

    Returns:
        dict: Default configuration
    """
    return {
        "server": {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
        },
        "bus": {
            "servers": [DEFAULT_NATS_URL],
            "max_reconnect": DEFAULT_MAX_RECONNECT,
            "reconnect_wait": DEFAULT_RECONNECT_WAIT,
            "reconnect_jitter": DEFAULT_RECONNECT_JITTER,
            "reconnect_jitter_tls": DEFAULT_RECONNECT_JITTER_TLS,
            "timeout": DEFAULT_TIMEOUT,
            "ping_interval": DEFAULT_PING_INTERVAL,
            "max_pings_out": DEFAULT_MAX_PINGS_OUT,
            "sub_chan_len": DEFAULT_SUB_CHAN_LEN,
            "reconnect_buf_size": DEFAULT_RECONNECT_BUF_SIZE,
            "drain_timeout": DEFAULT_DRAIN_TIMEOUT,
            "flusher_timeout": DEFAULT_FLUSHER_TIMEOUT,
        },
        "store": {
            "host": DEFAULT_REDIS_HOST,
            "port": DEFAULT_REDIS_PORT,
            "protocol": DEFAULT_REDIS_PROTOCOL,
        },
        "subjects": {
            "auth": SUBJECT_AUTH_REQUEST,
            "disconnect": SUBJECT_DISCONNECT,
            "queue": QUEUE_GROUP,
        },
        "health": {
            "host": DEFAULT_HEALTH_HOST,
            "port": DEFAULT_HEALTH_PORT,
        },
    }
