"""
Credential Table - Managed accounts and their users

Module: security.authentication.credential_table
Date: 2025-11-23
Version: 0.1.1

CHANGELOG:
[2025-11-23 v0.1.0] Initial implementation
  - Account -> username -> password table, immutable after construction
  - bcrypt hashing of passwords at construction
  - authenticate(): pure account lookup
[2025-11-24 v0.1.1] authenticate_async(): bcrypt check in the thread pool

ARCHITECTURE:
CredentialTable is built once at startup from a plain mapping and is then
read-only, so handlers share it without locking. authenticate() is a pure
function of (table, username, password) returning the matched account.

bcrypt.checkpw costs tens of milliseconds at the default cost factor.
Handlers call authenticate_async(), which runs the lookup in the default
executor so the event loop keeps serving other messages meanwhile.

SECURITY NOTES:
- Plaintext passwords are not kept after construction
- Password comparison through bcrypt.checkpw (constant time)
"""

import asyncio
import logging
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Iterator

import bcrypt


class CredentialTable:
    """
    Immutable mapping of account -> {username -> bcrypt hash}

    Usernames are unique within an account, not across accounts.
    """

    def __init__(self, accounts: Mapping[str, Mapping[str, str]], bcrypt_rounds: int = 10):
        """
        Initialize credential table

        Args:
            accounts: account -> {username -> plaintext password}
            bcrypt_rounds: Cost factor for bcrypt (4-31)
        """
        self.logger = logging.getLogger("security.credential_table")

        table = {}
        for account, users in accounts.items():
            if not account:
                raise ValueError("Account name must be non-empty")
            table[account] = MappingProxyType({
                username: self._hash_password(password, bcrypt_rounds)
                for username, password in users.items()
            })
        self._accounts = MappingProxyType(table)

        self.logger.info(
            f"CredentialTable initialized ({len(self._accounts)} accounts, "
            f"{sum(len(u) for u in self._accounts.values())} users)"
        )

    def __contains__(self, account: str) -> bool:
        return account in self._accounts

    def __iter__(self) -> Iterator[str]:
        return iter(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    @property
    def accounts(self) -> Mapping[str, Mapping[str, str]]:
        """Read-only view of account -> {username -> hash}"""
        return self._accounts

    def find_account(self, username: str) -> Optional[str]:
        """
        First account whose credential set contains the username

        Iteration order across accounts is not part of the contract.
        """
        for account, users in self._accounts.items():
            if username in users:
                return account
        return None

    def check_password(self, account: str, username: str, password: str) -> bool:
        """Verify password for username in account"""
        users = self._accounts.get(account)
        if users is None or username not in users:
            return False
        return self._verify_password(password, users[username])

    @staticmethod
    def _hash_password(password: str, rounds: int) -> bytes:
        salt = bcrypt.gensalt(rounds=rounds)
        return bcrypt.hashpw(password.encode(), salt)

    @staticmethod
    def _verify_password(password: Optional[str], password_hash: bytes) -> bool:
        if password is None:
            return False
        try:
            return bcrypt.checkpw(password.encode(), password_hash)
        except ValueError:
            # bcrypt rejects passwords over 72 bytes
            return False


def authenticate(table: CredentialTable, username: str, password: str) -> Optional[str]:
    """
    Look up the account that accepts these credentials

    Args:
        table: Credential table
        username: Requested username (non-empty)
        password: Requested password

    Returns:
        Matched account name, or None if the username is unknown or the
        password does not match
    """
    account = table.find_account(username)
    if account is None:
        return None
    if not table.check_password(account, username, password):
        return None
    return account


async def authenticate_async(
    table: CredentialTable, username: str, password: str
) -> Optional[str]:
    """
    authenticate() run in the default executor

    Returns:
        Matched account name, or None
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, authenticate, table, username, password)


def load_accounts(data: Dict[str, Dict[str, str]]) -> Dict[str, Dict[str, str]]:
    """
    Validate a raw accounts mapping (e.g. parsed from JSON)

    Raises:
        ValueError: If the structure is not account -> {user -> password}
    """
    if not isinstance(data, dict):
        raise ValueError("Accounts must be an object of account -> users")
    for account, users in data.items():
        if not isinstance(users, dict):
            raise ValueError(f"Users of account {account!r} must be an object")
        for username, password in users.items():
            if not isinstance(username, str) or not isinstance(password, str):
                raise ValueError(f"Invalid credentials in account {account!r}")
    return data
