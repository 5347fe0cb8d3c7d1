"""
Service Configuration

Module: core.config
Date: 2025-11-23
Version: 0.1.0

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - BusOptions with NATS client defaults for every unset value
  - StoreOptions (Redis)
  - HealthOptions (aiohttp endpoint)
  - ServiceConfig.from_env()

ARCHITECTURE:
Configuration is plain dataclasses built once at startup. Zero or unset
bus values are replaced by the defaults of core.constants, so a partially
filled BusOptions is always usable.

Environment variables:
  NATS_URL            comma separated server URLs
  NATS_USER           bus user
  NATS_PASSWORD       bus password
  REDIS_HOST          store host
  REDIS_PORT          store port
  REDIS_DB            store database
  REDIS_USERNAME      store user
  REDIS_PASSWORD      store password
  UNIQ_SEED           signing seed (account nkey)
  UNIQ_ACCOUNTS       managed accounts as JSON
  UNIQ_ACCOUNTS_FILE  path to a JSON file with managed accounts
  UNIQ_HEALTH_HOST    health endpoint bind address
  UNIQ_HEALTH_PORT    health endpoint port (0 disables it)
  UNIQ_LOG_LEVEL      logging level

SECURITY NOTES:
- Development seed and accounts used when nothing is configured
- Passwords are never logged
"""

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional, Mapping

from .constants import (
    SERVER_NAME,
    DEFAULT_NATS_URL,
    DEFAULT_MAX_RECONNECT,
    DEFAULT_RECONNECT_WAIT,
    DEFAULT_RECONNECT_JITTER,
    DEFAULT_RECONNECT_JITTER_TLS,
    DEFAULT_TIMEOUT,
    DEFAULT_PING_INTERVAL,
    DEFAULT_MAX_PINGS_OUT,
    DEFAULT_SUB_CHAN_LEN,
    DEFAULT_RECONNECT_BUF_SIZE,
    DEFAULT_DRAIN_TIMEOUT,
    DEFAULT_FLUSHER_TIMEOUT,
    DEFAULT_REDIS_HOST,
    DEFAULT_REDIS_PORT,
    DEFAULT_REDIS_PROTOCOL,
    DEFAULT_HEALTH_HOST,
    DEFAULT_HEALTH_PORT,
    DEFAULT_SEED,
    DEFAULT_ACCOUNTS,
)
from ..security.authentication.credential_table import load_accounts

logger = logging.getLogger("core.config")


class ConfigError(Exception):
    """Invalid configuration"""
    pass


@dataclass
class BusOptions:
    """NATS connection options"""
    servers: List[str] = field(default_factory=list)
    user: Optional[str] = None
    password: Optional[str] = None
    name: str = ""
    allow_reconnect: bool = True
    max_reconnect: int = 0
    reconnect_wait: float = 0.0
    reconnect_jitter: float = 0.0
    reconnect_jitter_tls: float = 0.0
    timeout: float = 0.0
    ping_interval: float = 0.0
    max_pings_out: int = 0
    sub_chan_len: int = 0
    reconnect_buf_size: int = 0
    drain_timeout: float = 0.0
    flusher_timeout: float = 0.0

    def with_defaults(self) -> "BusOptions":
        """
        Copy with every zero/unset value replaced by its default

        The connection name is always the service name.
        """
        return replace(
            self,
            servers=list(self.servers) or [DEFAULT_NATS_URL],
            name=SERVER_NAME,
            allow_reconnect=True,
            max_reconnect=self.max_reconnect or DEFAULT_MAX_RECONNECT,
            reconnect_wait=self.reconnect_wait or DEFAULT_RECONNECT_WAIT,
            reconnect_jitter=self.reconnect_jitter or DEFAULT_RECONNECT_JITTER,
            reconnect_jitter_tls=self.reconnect_jitter_tls or DEFAULT_RECONNECT_JITTER_TLS,
            timeout=self.timeout or DEFAULT_TIMEOUT,
            ping_interval=self.ping_interval or DEFAULT_PING_INTERVAL,
            max_pings_out=self.max_pings_out or DEFAULT_MAX_PINGS_OUT,
            sub_chan_len=self.sub_chan_len or DEFAULT_SUB_CHAN_LEN,
            reconnect_buf_size=self.reconnect_buf_size or DEFAULT_RECONNECT_BUF_SIZE,
            drain_timeout=self.drain_timeout or DEFAULT_DRAIN_TIMEOUT,
            flusher_timeout=self.flusher_timeout or DEFAULT_FLUSHER_TIMEOUT,
        )


@dataclass
class StoreOptions:
    """Redis connection options"""
    host: str = DEFAULT_REDIS_HOST
    port: int = DEFAULT_REDIS_PORT
    db: int = 0
    username: Optional[str] = None
    password: Optional[str] = None
    protocol: int = DEFAULT_REDIS_PROTOCOL
    socket_timeout: float = 5.0


@dataclass
class HealthOptions:
    """Health endpoint options (port 0 disables the endpoint)"""
    host: str = DEFAULT_HEALTH_HOST
    port: int = DEFAULT_HEALTH_PORT

    @property
    def enabled(self) -> bool:
        return self.port > 0


@dataclass
class ServiceConfig:
    """Everything the service needs at construction time"""
    bus: BusOptions = field(default_factory=BusOptions)
    store: StoreOptions = field(default_factory=StoreOptions)
    health: HealthOptions = field(default_factory=HealthOptions)
    seed: str = DEFAULT_SEED
    accounts: Dict[str, Dict[str, str]] = field(
        default_factory=lambda: {a: dict(u) for a, u in DEFAULT_ACCOUNTS.items()}
    )
    bcrypt_rounds: int = 10

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServiceConfig":
        """
        Build configuration from environment variables

        Args:
            environ: Mapping to read (defaults to os.environ)

        Raises:
            ConfigError: If a value cannot be parsed
        """
        env = os.environ if environ is None else environ

        servers = [s.strip() for s in env.get("NATS_URL", "").split(",") if s.strip()]
        bus = BusOptions(
            servers=servers,
            user=env.get("NATS_USER") or None,
            password=env.get("NATS_PASSWORD") or None,
        )

        try:
            store = StoreOptions(
                host=env.get("REDIS_HOST", DEFAULT_REDIS_HOST),
                port=int(env.get("REDIS_PORT", DEFAULT_REDIS_PORT)),
                db=int(env.get("REDIS_DB", 0)),
                username=env.get("REDIS_USERNAME") or None,
                password=env.get("REDIS_PASSWORD") or None,
            )
            health = HealthOptions(
                host=env.get("UNIQ_HEALTH_HOST", DEFAULT_HEALTH_HOST),
                port=int(env.get("UNIQ_HEALTH_PORT", DEFAULT_HEALTH_PORT)),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric setting: {e}")

        seed = env.get("UNIQ_SEED") or DEFAULT_SEED
        if seed == DEFAULT_SEED:
            logger.warning("Using development signing seed (set UNIQ_SEED)")

        accounts = cls._load_accounts(env)

        return cls(bus=bus, store=store, health=health, seed=seed, accounts=accounts)

    @staticmethod
    def _load_accounts(env: Mapping[str, str]) -> Dict[str, Dict[str, str]]:
        raw = env.get("UNIQ_ACCOUNTS")
        path = env.get("UNIQ_ACCOUNTS_FILE")

        if not raw and path:
            try:
                raw = Path(path).read_text(encoding="utf-8")
            except OSError as e:
                raise ConfigError(f"Cannot read accounts file {path}: {e}")

        if not raw:
            logger.warning("Using development accounts (set UNIQ_ACCOUNTS)")
            return {a: dict(u) for a, u in DEFAULT_ACCOUNTS.items()}

        try:
            return load_accounts(json.loads(raw))
        except (json.JSONDecodeError, ValueError) as e:
            raise ConfigError(f"Invalid accounts: {e}")
