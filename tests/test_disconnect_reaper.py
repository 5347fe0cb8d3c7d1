"""
Integration Tests - Disconnect reaper

Module: tests.test_disconnect_reaper
Date: 2025-11-23
Version: 0.1.0

Gherkin Scenarios Tested:
1. La déconnexion libère le nom
2. Déconnexion en double: sans effet
3. Déconnexion périmée: le nom reste à la nouvelle connexion
4. Compte non géré: ignoré sans toucher au store
5. Événement invalide / store injoignable: journalisé, non fatal
"""

import asyncio
import unittest
from unittest.mock import AsyncMock

from uniq_server.core.constants import DEFAULT_SEED
from uniq_server.persistence import (
    MemoryReservationStore,
    ReservationStore,
    ReservationStoreError,
    reservation_key,
)
from uniq_server.protocol.auth_callout_handler import AuthCalloutHandler
from uniq_server.protocol.disconnect_reaper import DisconnectReaper, ReleaseResult
from uniq_server.protocol.events import DisconnectEvent
from uniq_server.security.authentication import CredentialTable, Signer, decode_claims

from callout_fixtures import (
    TEST_ACCOUNTS,
    FAST_BCRYPT_ROUNDS,
    FakeMessage,
    make_disconnect_event,
    make_request_token,
    server_keypair,
)


class TestDisconnectReaper(unittest.TestCase):
    """Owner-checked release"""

    @classmethod
    def setUpClass(cls):
        cls.credentials = CredentialTable(TEST_ACCOUNTS, bcrypt_rounds=FAST_BCRYPT_ROUNDS)

    def setUp(self):
        self.store = MemoryReservationStore()
        self.reaper = DisconnectReaper(self.credentials, self.store)

    def event(self, **kwargs) -> DisconnectEvent:
        return DisconnectEvent.from_json(make_disconnect_event(**kwargs))

    def test_scenario_1_disconnect_releases_name(self):
        """
        Scenario: La déconnexion libère le nom
        Given: "alice" is reserved by connection 1
        When: connection 1 disconnects
        Then: the reservation is deleted
        """
        async def test():
            key = reservation_key("alice")
            await self.store.claim(key, 1)

            result = await self.reaper.release(self.event(client_name="alice", client_id=1))

            self.assertEqual(result, ReleaseResult.RELEASED)
            self.assertIsNone(await self.store.owner(key))

        asyncio.run(test())

    def test_scenario_2_duplicate_disconnect_is_noop(self):
        async def test():
            await self.store.claim(reservation_key("alice"), 1)
            event = self.event(client_name="alice", client_id=1)

            first = await self.reaper.release(event)
            second = await self.reaper.release(event)

            self.assertEqual(first, ReleaseResult.RELEASED)
            self.assertEqual(second, ReleaseResult.MISSING)
            self.assertEqual(len(self.store), 0)

        asyncio.run(test())

    def test_scenario_3_stale_disconnect_keeps_newer_owner(self):
        """
        Scenario: Déconnexion périmée
        Given: "alice" is now reserved by connection 2
        When: a late advisory for connection 1 arrives
        Then: the reservation still belongs to connection 2
        """
        async def test():
            key = reservation_key("alice")
            await self.store.claim(key, 2)

            with self.assertLogs("protocol.disconnect_reaper", level="WARNING") as logs:
                result = await self.reaper.release(
                    self.event(client_name="alice", client_id=1)
                )

            self.assertEqual(result, ReleaseResult.STALE)
            self.assertEqual(await self.store.owner(key), 2)
            self.assertIn("mismatch id 2 != 1", logs.output[0])
            self.assertEqual(self.reaper.stats.stale, 1)

        asyncio.run(test())

    def test_scenario_4_unmanaged_account_ignored(self):
        async def test():
            store = AsyncMock(spec=ReservationStore)
            reaper = DisconnectReaper(self.credentials, store)

            result = await reaper.release(self.event(account="$SYS", client_id=1))

            self.assertEqual(result, ReleaseResult.IGNORED)
            self.assertEqual(store.mock_calls, [])

        asyncio.run(test())

    def test_disconnect_without_reservation(self):
        async def test():
            result = await self.reaper.release(self.event(client_name="ghost"))
            self.assertEqual(result, ReleaseResult.MISSING)

        asyncio.run(test())

    def test_scenario_5_invalid_event_is_not_fatal(self):
        async def test():
            await self.reaper.handle(FakeMessage(b"{broken"))
            await self.reaper.handle(FakeMessage(b'{"client": {"id": "x"}}'))

            self.assertEqual(self.reaper.stats.received, 2)
            self.assertEqual(self.reaper.stats.errors, 2)

        asyncio.run(test())

    def test_store_failure_is_not_fatal(self):
        async def test():
            store = AsyncMock(spec=ReservationStore)
            store.release_if_owner.side_effect = ReservationStoreError("timeout")
            reaper = DisconnectReaper(self.credentials, store)

            await reaper.handle(FakeMessage(make_disconnect_event()))

            self.assertEqual(reaper.stats.errors, 1)

        asyncio.run(test())

    def test_handle_releases(self):
        async def test():
            await self.store.claim(reservation_key("alice"), 3)
            await self.reaper(FakeMessage(make_disconnect_event(client_id=3)))

            self.assertEqual(len(self.store), 0)
            self.assertEqual(self.reaper.stats.released, 1)

        asyncio.run(test())


class TestConnectDisconnectCycle(unittest.TestCase):
    """Auth callout and reaper sharing one store"""

    def test_name_reusable_after_disconnect(self):
        """
        Scenario: alice se connecte, se déconnecte, se reconnecte
        Given: alice connected as connection 1
        When: connection 1 disconnects and alice reconnects as connection 2
        Then: the second connection is granted
              And a late duplicate advisory for connection 1 changes nothing
        """
        async def test():
            credentials = CredentialTable(TEST_ACCOUNTS, bcrypt_rounds=FAST_BCRYPT_ROUNDS)
            store = MemoryReservationStore()
            handler = AuthCalloutHandler(credentials, store, Signer.from_seed(DEFAULT_SEED))
            reaper = DisconnectReaper(credentials, store)
            server = server_keypair()

            first = FakeMessage(make_request_token(server, client_name="alice", client_id=1).encode())
            await handler.handle(first)

            blocked = FakeMessage(make_request_token(server, client_name="alice", client_id=2).encode())
            await handler.handle(blocked)
            self.assertIn("error", decode_claims(blocked.responses[0].decode())["nats"])

            await reaper.handle(FakeMessage(make_disconnect_event(client_name="alice", client_id=1)))

            second = FakeMessage(make_request_token(server, client_name="alice", client_id=3).encode())
            await handler.handle(second)
            self.assertIn("jwt", decode_claims(second.responses[0].decode())["nats"])

            await reaper.handle(FakeMessage(make_disconnect_event(client_name="alice", client_id=1)))
            self.assertEqual(await store.owner(reservation_key("alice")), 3)

        asyncio.run(test())


if __name__ == "__main__":
    unittest.main()
